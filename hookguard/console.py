"""Coloured, level-gated messages on stderr for hook output."""

import os
import sys
from datetime import datetime
from typing import Optional, TextIO

RED = "\033[0;31m"
GREEN = "\033[0;32m"
YELLOW = "\033[1;33m"
BLUE = "\033[0;34m"
RESET = "\033[0m"

# Lower rank = more severe. A message prints when its rank <= configured rank.
LEVEL_RANK = {"off": -1, "error": 0, "warn": 1, "info": 2, "debug": 3}


def should_log(event_level: str, configured: str) -> bool:
    """True if an event at event_level passes the configured verbosity."""
    if configured not in LEVEL_RANK or event_level not in LEVEL_RANK:
        return False
    if configured == "off":
        return False
    return LEVEL_RANK[event_level] <= LEVEL_RANK[configured]


class Console:
    """Tagged stderr writer, e.g. ``[SECURITY-WARN] message``."""

    def __init__(
        self,
        tag: str,
        level: str = "error",
        stream: Optional[TextIO] = None,
        color: Optional[bool] = None,
    ):
        self.tag = tag
        self.level = level
        self.stream = stream if stream is not None else sys.stderr
        if color is None:
            isatty = getattr(self.stream, "isatty", None)
            color = bool(isatty and isatty()) and "NO_COLOR" not in os.environ
        self.color = color

    def _write(self, color: str, label: str, message: str) -> None:
        prefix = f"[{self.tag}-{label}]" if label else f"[{self.tag}]"
        line = f"{prefix} {message}"
        if self.color:
            line = f"{color}{line}{RESET}"
        try:
            print(line, file=self.stream)
        except (OSError, ValueError):
            # Closed/broken stderr must never break the hook
            pass

    def error(self, message: str) -> None:
        # Errors print even when the level is "off"
        self._write(RED, "ERROR", message)

    def warn(self, message: str) -> None:
        if self.level not in ("error", "off"):
            self._write(YELLOW, "WARN", message)

    def success(self, message: str) -> None:
        if self.level not in ("error", "off"):
            self._write(GREEN, "SUCCESS", message)

    def info(self, message: str) -> None:
        if self.level in ("info", "debug"):
            self._write(BLUE, "INFO", message)

    def log(self, message: str) -> None:
        """Timestamped progress line (info and above)."""
        if self.level in ("info", "debug"):
            self._write(BLUE, "", f"{datetime.now():%H:%M:%S} {message}")

    def debug(self, message: str) -> None:
        if self.level == "debug":
            self._write(BLUE, "DEBUG", message)

    def plain(self, message: str) -> None:
        """Unprefixed line, always printed (fix command listings)."""
        try:
            print(message, file=self.stream)
        except (OSError, ValueError):
            pass
