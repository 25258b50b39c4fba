"""Tests for hookguard.tool_logger"""

import json
from dataclasses import replace

import pytest

from conftest import bash, read, write
from hookguard.console import Console
from hookguard.hook_input import HookInvocation
from hookguard.tool_logger import ToolLogger, classify, run


def entries(config):
    if not config.unified_log.exists():
        return []
    return [json.loads(line) for line in config.unified_log.read_text().splitlines()]


@pytest.fixture
def make_logger(config, tmp_path):
    def factory(level="info", **overrides):
        cfg = replace(config, log_level=level, **overrides)
        return ToolLogger(cfg, console=Console("LOG", level), cwd=tmp_path)

    return factory


@pytest.mark.parametrize(
    "invocation,event_type,level,risk",
    [
        (bash("sudo rm -rf /tmp/x"), "dangerous_command", "warn", "high"),
        (bash("git status"), "git_operation", "info", "low"),
        (bash("git push origin main"), "git_operation", "info", "medium"),
        (bash("kubectl apply -f deploy.yaml"), "deployment_operation", "info", "medium"),
        (bash("systemctl restart nginx"), "system_operation", "info", "low"),
        (bash("ls -la"), "bash_command", "info", "low"),
        (write("src/app.py"), "file_write", "info", "low"),
        (write("config/.env"), "sensitive_file_write", "warn", "high"),
        (read("src/app.py"), "file_read", "debug", "low"),
        (HookInvocation("mcp__db__delete_rows", {"table": "users"}), "mcp_operation", "warn", "medium"),
        (HookInvocation("mcp__db__query", {}), "mcp_operation", "info", "low"),
        (HookInvocation("WebFetch", {}), "other_operation", "debug", "low"),
    ],
)
def test_classify(invocation, event_type, level, risk):
    result = classify(invocation)

    assert (result.event_type, result.level, result.risk) == (event_type, level, risk)


def test_entry_shape(make_logger, config, tmp_path):
    assert make_logger().log(bash("ls -la", "list files")).ok is True

    entry = entries(config)[0]
    assert entry["tool"] == "Bash"
    assert entry["event_type"] == "bash_command"
    assert entry["risk_level"] == "low"
    assert entry["details"] == {"command": "ls -la", "description": "list files"}
    assert entry["session_id"] == "test-session"
    assert entry["timestamp"].endswith("Z")
    assert entry["context"]["pwd"] == str(tmp_path)
    assert entry["context"]["git_branch"] == "no-git"


def test_level_filtering(make_logger, config):
    make_logger("warn").log(bash("ls"))
    make_logger("warn").log(read("a.py"))
    assert entries(config) == []

    make_logger("warn").log(bash("sudo reboot"))
    assert [e["event_type"] for e in entries(config)] == ["dangerous_command"]


def test_off_level_writes_nothing(make_logger, config):
    make_logger("off").log(bash("sudo rm -rf /"))

    assert entries(config) == []


def test_high_risk_is_announced(make_logger, capsys):
    make_logger("warn").log(write(".ssh/authorized_keys"))

    assert "[LOG] HIGH RISK: Write" in capsys.readouterr().err


def test_numbered_rotation(make_logger, config):
    logger = make_logger("info", max_log_size=100, backup_count=2)

    for i in range(6):
        logger.log(bash(f"echo {i}"))

    names = sorted(p.name for p in config.logs_dir.glob("unified.jsonl*"))
    assert names == ["unified.jsonl", "unified.jsonl.1", "unified.jsonl.2"]
    newest_backup = json.loads(config.logs_dir.joinpath("unified.jsonl.1").read_text().splitlines()[-1])
    assert newest_backup["details"]["command"] == "echo 4"


def test_hook_always_exits_zero(config):
    assert run(bash("sudo rm -rf /"), replace(config, log_level="debug")) == 0
