"""
Security Validator - PreToolUse gate for file operations and shell commands.

Decisions:
- block: the hook exits 1 and the host refuses the tool call
- warn:  printed and logged, the call proceeds
- allow: logged at info level only

File operations (Write, Edit, MultiEdit, NotebookEdit, Read):
  1. ``..`` segment in the raw path           -> block path_traversal
  2. sensitive path (write, or paranoid mode) -> block sensitive_path
     sensitive path (read)                    -> warn sensitive_path_read
  3. dangerous extension on write             -> block dangerous_extension
  4. neither safe nor dangerous on write      -> warn unknown_extension
  5. existing file over 10MB on read          -> warn large_file

Commands (Bash):
  1. ultra-dangerous                          -> block, whatever the mode or branch
  2. dangerous: paranoid mode                 -> block dangerous_command
                production branch             -> block dangerous_command_prod
                otherwise                     -> warn dangerous_command
  3. system path + modifying operation        -> block system_modification
     system path otherwise                    -> warn system_operation

Every decision goes to stderr and to ``logs/security.json`` (one JSON object
per line), both gated by CLAUDE_LOG_LEVEL. At the default "error" level only
blocks are recorded.
"""

import getpass
import json
import os
import re
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

import portalocker

from hookguard.config import GuardConfig
from hookguard.console import Console, should_log
from hookguard.hook_input import HookInvocation
from hookguard.monitor import LOCK_TIMEOUT, WriteResult
from hookguard.rules import ConfigError, RuleSet, default_rules, load_rules

WRITE_TOOLS = ("Write", "Edit", "MultiEdit", "NotebookEdit")
READ_TOOLS = ("Read",)
COMMAND_TOOLS = ("Bash",)

# ".." as a whole path segment, either separator
TRAVERSAL_RE = re.compile(r"(^|[/\\])\.\.([/\\]|$)")

GIT_TIMEOUT = 5


@dataclass
class Verdict:
    decision: str
    event_type: str
    message: str
    target: str = ""
    warnings: List["Verdict"] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return self.decision == "block"

    @property
    def exit_code(self) -> int:
        return 1 if self.blocked else 0


def current_branch(cwd: Optional[Path] = None) -> Optional[str]:
    """Current git branch, or None outside a repository."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
            cwd=str(cwd) if cwd else None,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


class SecurityValidator:
    def __init__(
        self,
        config: GuardConfig,
        rules: Optional[Dict[str, RuleSet]] = None,
        console: Optional[Console] = None,
        branch_fn: Optional[Callable[[], Optional[str]]] = None,
        cwd: Optional[Path] = None,
    ):
        self.mode = config.security_mode
        self.level = config.log_level
        self.log_path = config.security_log
        self.large_file_bytes = config.large_file_bytes
        self.console = console or Console("SECURITY", config.log_level)
        self.cwd = Path(cwd) if cwd else None
        self.branch_fn = branch_fn or (lambda: current_branch(self.cwd))
        self._branch_cache: Dict[str, Optional[str]] = {}

        if rules is None:
            try:
                rules = load_rules(config.rules_file)
            except ConfigError as e:
                self.console.warn(f"Using default rules: {e}")
                rules = default_rules()
        self.rules = rules

    # =========================================================================
    # Entry point
    # =========================================================================

    def validate(self, invocation: HookInvocation) -> Verdict:
        if self.mode == "off":
            self.console.debug("Security checks disabled")
            return Verdict("allow", "security_off", "Security checks disabled")

        tool = invocation.tool_name
        if tool in WRITE_TOOLS or tool in READ_TOOLS:
            path = invocation.file_path
            if not path:
                self.console.debug("No file path provided for file operation")
                return Verdict("allow", "no_target", "No file path provided")
            return self.check_path(path, "write" if tool in WRITE_TOOLS else "read")

        if tool in COMMAND_TOOLS:
            command = invocation.command
            if not command:
                self.console.debug("No command provided for bash operation")
                return Verdict("allow", "no_target", "No command provided")
            return self.check_command(command)

        self.console.debug(f"No security checks for tool: {tool}")
        return Verdict("allow", "unchecked_tool", f"No security checks for tool: {tool}")

    # =========================================================================
    # File operations
    # =========================================================================

    def normalise(self, path: str) -> Path:
        p = Path(path).expanduser()
        if not p.is_absolute():
            p = (self.cwd or Path.cwd()) / p
        return Path(os.path.normpath(str(p)))

    def _is_sensitive(self, full: Path) -> Optional[str]:
        """Action of the first sensitive rule matching the path or its symlink target."""
        candidates = [str(full)]
        real = os.path.realpath(str(full))
        if real != candidates[0]:
            candidates.append(real)
        for candidate in candidates:
            rule = self.rules["sensitive_path"].first_match(candidate)
            if rule is not None and rule.action != "allow":
                return rule.action
        return None

    def _matches(self, category: str, text: str) -> bool:
        rule = self.rules[category].first_match(text)
        return rule is not None and rule.action != "allow"

    def check_path(self, path: str, operation: str) -> Verdict:
        self.console.debug(f"Checking file operation: {operation} on {path}")

        # Checked before normalisation, which would fold the ".." away
        if TRAVERSAL_RE.search(path):
            return self._block("path_traversal", "BLOCKED: Path traversal attempt", path)

        full = self.normalise(path)
        target = str(full)
        warnings: List[Verdict] = []

        sensitive = self._is_sensitive(full)
        if sensitive is not None:
            if sensitive == "block" and (operation == "write" or self.mode == "paranoid"):
                return self._block("sensitive_path", "BLOCKED: Access to sensitive path", target)
            warnings.append(self._warn("sensitive_path_read", "WARNING: Reading sensitive path", target))

        if operation == "write":
            if self._matches("dangerous_extension", target):
                return self._block("dangerous_extension", "BLOCKED: Writing to dangerous file type", target)
            if self.rules["safe_extension"].first_match(target) is None:
                warnings.append(
                    self._warn("unknown_extension", "WARNING: Writing to non-standard file type", target)
                )

        if operation == "read":
            try:
                size = full.stat().st_size if full.is_file() else 0
            except OSError:
                size = 0
            if size > self.large_file_bytes:
                warnings.append(
                    self._warn("large_file", f"WARNING: Reading large file ({size // 1048576}MB)", target)
                )

        return self._finish("file_validated", "File operation validated", target, warnings)

    # =========================================================================
    # Commands
    # =========================================================================

    def branch(self) -> Optional[str]:
        if "branch" not in self._branch_cache:
            self._branch_cache["branch"] = self.branch_fn()
        return self._branch_cache["branch"]

    def is_production_branch(self, branch: Optional[str]) -> bool:
        return bool(branch) and self._matches("production_branch", branch)

    def check_command(self, command: str) -> Verdict:
        self.console.debug(f"Checking bash command: {command}")

        if self._matches("ultra_dangerous_command", command):
            return self._block("ultra_dangerous_command", "BLOCKED: Ultra-dangerous command", command)

        warnings: List[Verdict] = []

        rule = self.rules["dangerous_command"].first_match(command)
        if rule is not None and rule.action != "allow":
            if self.mode == "paranoid":
                return self._block("dangerous_command", "BLOCKED: Dangerous command (paranoid mode)", command)
            if rule.action == "block":
                return self._block("dangerous_command", f"BLOCKED: Dangerous command ({rule.description})", command)
            if self.is_production_branch(self.branch()):
                return self._block(
                    "dangerous_command_prod", "BLOCKED: Dangerous command in production branch", command
                )
            warnings.append(self._warn("dangerous_command", "WARNING: Dangerous command detected", command))

        if self._matches("system_path", command):
            if self._matches("system_modification", command):
                return self._block("system_modification", "BLOCKED: Modification of system files", command)
            warnings.append(self._warn("system_operation", "WARNING: Operation on system path", command))

        summary = command if len(command) <= 50 else command[:50] + "..."
        return self._finish("command_validated", "Command validated", summary, warnings)

    # =========================================================================
    # Reporting
    # =========================================================================

    def _block(self, event_type: str, message: str, target: str) -> Verdict:
        self.console.error(f"{message}: {target}")
        self.log_security_event("error", event_type, message, target)
        return Verdict("block", event_type, message, target)

    def _warn(self, event_type: str, message: str, target: str) -> Verdict:
        self.console.warn(f"{message}: {target}")
        self.log_security_event("warn", event_type, message, target)
        return Verdict("warn", event_type, message, target)

    def _finish(self, event_type: str, message: str, target: str, warnings: List[Verdict]) -> Verdict:
        self.console.info(f"{message}: {target}")
        self.log_security_event("info", event_type, message, target)
        if warnings:
            first = warnings[0]
            return Verdict("warn", first.event_type, first.message, first.target, warnings)
        return Verdict("allow", event_type, message, target)

    def log_security_event(self, level: str, event_type: str, message: str, details: str) -> WriteResult:
        """Append one event to the security log if level passes CLAUDE_LOG_LEVEL."""
        if not should_log(level, self.level):
            return WriteResult(True)

        entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "level": level,
            "event_type": event_type,
            "message": message,
            "details": details,
            "context": {
                "pwd": str(self.cwd or Path.cwd()),
                "user": current_user(),
                "branch": self.branch() or "no-git",
            },
        }
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with portalocker.Lock(str(self.log_path), mode="a", timeout=LOCK_TIMEOUT) as fh:
                fh.write(json.dumps(entry) + "\n")
                fh.flush()
            return WriteResult(True)
        except (OSError, portalocker.exceptions.LockException) as e:
            self.console.plain(f"[SECURITY] Logging failed: {message}")
            return WriteResult(False, str(e))


def run(invocation: HookInvocation, config: GuardConfig) -> int:
    """security-validator hook: exit 1 on block, 0 otherwise."""
    return SecurityValidator(config).validate(invocation).exit_code
