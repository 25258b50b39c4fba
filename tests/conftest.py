"""Shared pytest fixtures for hookguard tests."""

import subprocess
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from hookguard.config import GuardConfig
from hookguard.hook_input import HookInvocation


class FakeClock:
    """Settable epoch clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRunner:
    """Stands in for subprocess.run; answers by argv[0] (or "git <subcommand>")."""

    def __init__(self, responses: Optional[Dict[str, tuple]] = None):
        # key -> (returncode, stdout)
        self.responses = responses or {}
        self.calls: List[List[str]] = []

    def __call__(self, argv: List[str]) -> subprocess.CompletedProcess:
        self.calls.append(list(argv))
        key = argv[0]
        if key == "git" and len(argv) > 1:
            key = f"git {argv[1]}"
        returncode, stdout = self.responses.get(key, (0, ""))
        return subprocess.CompletedProcess(argv, returncode, stdout, "")

    def ran(self, tool: str) -> List[List[str]]:
        return [call for call in self.calls if call[0] == tool]


@pytest.fixture
def config(tmp_path: Path) -> GuardConfig:
    """Config rooted in a temporary CLAUDE_HOME."""
    return GuardConfig(
        claude_home=tmp_path / "claude",
        lock_dir=tmp_path / "locks",
        session_id="test-session",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def hook_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Isolated environment for CLI runs; returns CLAUDE_HOME."""
    for var in (
        "CLAUDE_LOG_LEVEL",
        "CLAUDE_HOOK_BYPASS",
        "CLAUDE_QUALITY_MODE",
        "CLAUDE_SECURITY_MODE",
        "CLAUDE_OPERATION_CONTEXT",
        "CLAUDE_HOOK_OUTPUT_FORMAT",
        "CLAUDE_AUTO_FIX",
        "CLAUDE_QUALITY_FAIL_ON_EDIT",
        "CLAUDE_HOOK_MONITOR",
        "CLAUDE_HOOK_DEBOUNCE",
        "CLAUDE_HOOK_MAX_FAILURES",
        "CLAUDE_HOOK_COOLDOWN",
        "CLAUDE_HOOK_MAX_LOG_SIZE",
        "CLAUDE_HOOK_RETENTION",
        "CLAUDE_SECURITY_RULES",
        "CLAUDE_SESSION_ID",
        "CLAUDE_HOOKGUARD_CONFIG",
    ):
        monkeypatch.delenv(var, raising=False)
    home = tmp_path / "claude"
    monkeypatch.setenv("CLAUDE_HOME", str(home))
    monkeypatch.setenv("CLAUDE_HOOK_LOCK_DIR", str(tmp_path / "locks"))
    monkeypatch.chdir(tmp_path)
    return home


def bash(command: str, description: str = "") -> HookInvocation:
    return HookInvocation("Bash", {"command": command, "description": description})


def write(path: str) -> HookInvocation:
    return HookInvocation("Write", {"file_path": path})


def read(path: str) -> HookInvocation:
    return HookInvocation("Read", {"file_path": path})
