"""
Tool-use logger - one classified JSON line per tool call in logs/unified.jsonl.

Classification:
    Bash      dangerous_command (warn/high), git_operation,
              deployment_operation (medium), system_operation, bash_command
    Write...  file_write, sensitive_file_write (warn/high)
    Read      file_read (debug)
    mcp__*    mcp_operation, warn/medium for destructive verbs
    other     other_operation (debug)

An entry is written only when its level passes CLAUDE_LOG_LEVEL. The log
rotates to numbered backups (.1 newest) once it passes the size cap. The hook
always exits 0.
"""

import json
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import portalocker

from hookguard.config import GuardConfig
from hookguard.console import BLUE, RED, RESET, YELLOW, Console, should_log
from hookguard.hook_input import HookInvocation
from hookguard.monitor import LOCK_TIMEOUT, WriteResult
from hookguard.security import current_branch, current_user

DANGEROUS_RE = re.compile(r"(rm\s+-rf|\bsudo\b|dd\s+if=|\bmkfs\b|\bfdisk\b|\bparted\b|chmod\s+777|>\s*/dev/)")
GIT_RE = re.compile(r"^\s*git\b")
MEDIUM_GIT_RE = re.compile(r"git\s+(push|reset\s+--hard)")
DEPLOY_TOOL_RE = re.compile(r"\b(docker|kubectl|helm|terraform)\b")
SYSTEM_RE = re.compile(r"\b(systemctl|service|mount|umount|iptables|ufw)\b")
SENSITIVE_FILE_RE = re.compile(r"(\.env|secrets|credentials|\.key|\.pem|\.ssh|authorized_keys)")
MCP_DESTRUCTIVE_RE = re.compile(r"(delete|remove|clear|reset|execute)")

WRITE_TOOLS = ("Write", "Edit", "MultiEdit", "NotebookEdit")


@dataclass
class Classification:
    event_type: str
    level: str = "info"
    risk: str = "low"
    details: Dict[str, Any] = field(default_factory=dict)


def classify(invocation: HookInvocation) -> Classification:
    tool = invocation.tool_name

    if tool == "Bash":
        command = invocation.command
        details = {"command": command, "description": invocation.description}
        if DANGEROUS_RE.search(command):
            return Classification("dangerous_command", "warn", "high", details)
        if GIT_RE.search(command):
            risk = "medium" if MEDIUM_GIT_RE.search(command) else "low"
            return Classification("git_operation", "info", risk, details)
        if DEPLOY_TOOL_RE.search(command):
            return Classification("deployment_operation", "info", "medium", details)
        if SYSTEM_RE.search(command):
            return Classification("system_operation", "info", "low", details)
        return Classification("bash_command", "info", "low", details)

    if tool in WRITE_TOOLS:
        path = invocation.file_path
        if SENSITIVE_FILE_RE.search(path):
            return Classification("sensitive_file_write", "warn", "high", {"file_path": path})
        return Classification("file_write", "info", "low", {"file_path": path})

    if tool == "Read":
        return Classification("file_read", "debug", "low", {"file_path": invocation.file_path})

    if tool.startswith("mcp__"):
        if MCP_DESTRUCTIVE_RE.search(tool):
            return Classification("mcp_operation", "warn", "medium", dict(invocation.tool_input))
        return Classification("mcp_operation", "info", "low", dict(invocation.tool_input))

    return Classification("other_operation", "debug", "low")


class ToolLogger:
    def __init__(self, config: GuardConfig, console: Optional[Console] = None, cwd: Optional[Path] = None):
        self.path = config.unified_log
        self.level = config.log_level
        self.max_size = config.max_log_size
        self.backup_count = max(1, config.backup_count)
        self.session_id = config.session_id
        self.cwd = Path(cwd) if cwd else None
        self.console = console or Console("LOG", config.log_level)

    def rotate(self) -> None:
        """log -> log.1 -> log.2 ... dropping the oldest beyond backup_count."""
        try:
            if self.path.stat().st_size <= self.max_size:
                return
        except FileNotFoundError:
            return
        for i in range(self.backup_count - 1, 0, -1):
            older = self.path.with_name(f"{self.path.name}.{i}")
            if older.exists():
                os.replace(older, self.path.with_name(f"{self.path.name}.{i + 1}"))
        os.replace(self.path, self.path.with_name(f"{self.path.name}.1"))

    def log(self, invocation: HookInvocation) -> WriteResult:
        if self.level == "off":
            return WriteResult(True)

        result = classify(invocation)
        if not should_log(result.level, self.level):
            return WriteResult(True)

        entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "tool": invocation.tool_name or "unknown",
            "event_type": result.event_type,
            "level": result.level,
            "risk_level": result.risk,
            "details": result.details,
            "session_id": self.session_id,
            "context": {
                "pwd": str(self.cwd or Path.cwd()),
                "user": current_user(),
                "git_branch": current_branch(self.cwd) or "no-git",
            },
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.rotate()
            with portalocker.Lock(str(self.path), mode="a", timeout=LOCK_TIMEOUT) as fh:
                fh.write(json.dumps(entry) + "\n")
                fh.flush()
        except (OSError, TypeError, ValueError, portalocker.exceptions.LockException) as e:
            return WriteResult(False, str(e))

        self._announce(invocation.tool_name, result.risk)
        return WriteResult(True)

    def _announce(self, tool: str, risk: str) -> None:
        if risk == "high":
            self._line(RED, f"[LOG] HIGH RISK: {tool}")
        elif risk == "medium" and self.level != "error":
            self._line(YELLOW, f"[LOG] MEDIUM RISK: {tool}")
        elif self.level == "debug":
            self._line(BLUE, f"[LOG] {tool}")

    def _line(self, color: str, text: str) -> None:
        self.console.plain(f"{color}{text}{RESET}" if self.console.color else text)


def run(invocation: HookInvocation, config: GuardConfig) -> int:
    """tool-logger hook: never blocks."""
    ToolLogger(config).log(invocation)
    return 0
