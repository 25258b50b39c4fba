"""
Hook invocation contract.

The host runtime writes one JSON object to the hook's stdin:

    {"tool_name": "Bash", "tool_input": {"command": "...", "description": "..."}}
    {"tool_name": "Write", "tool_input": {"file_path": "..."}}

Anything else (no stdin, empty, oversized, malformed, not an object) is
treated as "nothing to check" and the hook lets the operation through.
"""

import json
import os
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TextIO

MAX_STDIN_SIZE = 1024 * 1024  # 1MB max stdin
STDIN_TIMEOUT = 5  # seconds

IS_WINDOWS = sys.platform == "win32"

_stdin_timer: threading.Timer | None = None


@dataclass
class HookInvocation:
    tool_name: str
    tool_input: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    session_id: str = ""

    @property
    def command(self) -> str:
        value = self.tool_input.get("command")
        return value if isinstance(value, str) else ""

    @property
    def file_path(self) -> str:
        value = (
            self.tool_input.get("file_path")
            or self.tool_input.get("filePath")
            or self.tool_input.get("path")
        )
        return value if isinstance(value, str) else ""

    @property
    def description(self) -> str:
        value = self.tool_input.get("description")
        return value if isinstance(value, str) else ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HookInvocation":
        tool_input = data.get("tool_input")
        return cls(
            tool_name=str(data.get("tool_name") or ""),
            tool_input=tool_input if isinstance(tool_input, dict) else {},
            session_id=str(data.get("session_id") or ""),
        )


@dataclass(frozen=True)
class Bypass:
    """Handler result: nothing to check. Exits 0 and is logged as a bypass."""
    reason: str = ""


def parse_hook_input(raw: str) -> Optional[HookInvocation]:
    """Parse raw stdin text. Returns None for anything that is not a JSON object."""
    if not raw or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    return HookInvocation.from_dict(data)


def read_hook_input(stream: Optional[TextIO] = None, max_size: int = MAX_STDIN_SIZE) -> Optional[HookInvocation]:
    """Read and parse the hook payload from stdin (or stream)."""
    stream = sys.stdin if stream is None else stream
    isatty = getattr(stream, "isatty", None)
    if isatty is not None and isatty():
        # Interactive run without a payload
        return None
    try:
        raw = stream.read(max_size + 1)
    except (OSError, UnicodeDecodeError):
        return None
    if len(raw) > max_size:
        return None
    return parse_hook_input(raw)


def setup_stdin_timeout(seconds: int = STDIN_TIMEOUT) -> None:
    """Exit quietly (status 0) if stdin has not been read within seconds.

    On POSIX: signal.SIGALRM interrupts the blocking read.
    On Windows: a daemon timer thread calls os._exit.
    """
    global _stdin_timer
    cancel_stdin_timeout()

    if IS_WINDOWS:
        _stdin_timer = threading.Timer(seconds, lambda: os._exit(0))
        _stdin_timer.daemon = True
        _stdin_timer.start()
    else:
        import signal

        def _handler(signum, frame):
            sys.exit(0)

        signal.signal(signal.SIGALRM, _handler)
        signal.alarm(seconds)


def cancel_stdin_timeout() -> None:
    """Cancel a previously set stdin timeout."""
    global _stdin_timer
    if IS_WINDOWS:
        if _stdin_timer is not None:
            _stdin_timer.cancel()
            _stdin_timer = None
    else:
        import signal

        signal.alarm(0)
