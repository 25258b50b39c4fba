"""
File-backed state repositories for hooks.

Two small stores keep all per-hook state on disk:

- StateStore: one JSON document per key (failure records)
- MarkerStore: one empty marker file per key whose mtime is the value
  (debounce locks)

Keys are hook names. They are validated so a key can never name a path
outside the store's directory.
"""

import os
import re
import time
from pathlib import Path
from typing import Any, Callable, List, Optional

from filelock import FileLock, Timeout as FileLockTimeout

from hookguard.transaction import (
    LockTimeoutError,
    TransactionError,
    atomic_write_json,
    locked_read_json,
)

LOCK_TIMEOUT = 5  # seconds

_KEY_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")


def validate_key(key: str) -> str:
    """Return key unchanged, or raise ValueError if it is not a safe file name."""
    if not isinstance(key, str) or not _KEY_RE.match(key) or ".." in key:
        raise ValueError(f"Invalid hook name: {key!r}")
    return key


class StateStore:
    """JSON documents keyed by hook name, one file per key."""

    def __init__(self, directory: Path, suffix: str = ".json"):
        self.directory = Path(directory)
        self.suffix = suffix

    def path_for(self, key: str) -> Path:
        return self.directory / f"{validate_key(key)}{self.suffix}"

    def _lock_for(self, key: str) -> FileLock:
        return FileLock(str(self.directory / f".{validate_key(key)}.lock"), timeout=LOCK_TIMEOUT)

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Read the document for key; corrupted documents read as default."""
        try:
            return locked_read_json(self.path_for(key), default=default)
        except LockTimeoutError:
            raise
        except TransactionError:
            return default

    def set(self, key: str, value: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        try:
            with self._lock_for(key):
                atomic_write_json(self.path_for(key), value)
        except FileLockTimeout as e:
            raise LockTimeoutError(f"Lock timeout writing {key}") from e

    def update(self, key: str, update_fn: Callable[[Any], Any], default: Optional[Any] = None) -> Any:
        """Read-modify-write under an exclusive lock.

        update_fn receives the current document (or default) and returns the
        new one. Returning None deletes the document.
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        try:
            with self._lock_for(key):
                try:
                    current = locked_read_json(path, default=default)
                except TransactionError:
                    current = default
                new_state = update_fn(current)
                if new_state is None:
                    if path.exists():
                        path.unlink()
                else:
                    atomic_write_json(path, new_state)
                return new_state
        except FileLockTimeout as e:
            raise LockTimeoutError(f"Lock timeout updating {key}") from e

    def delete(self, key: str) -> bool:
        """Remove the document for key. Returns True if one existed."""
        path = self.path_for(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False

    def keys(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            p.name[: -len(self.suffix)]
            for p in self.directory.glob(f"*{self.suffix}")
            if not p.name.startswith(".")
        )


class MarkerStore:
    """Empty marker files keyed by hook name; the value is the file's mtime."""

    def __init__(self, directory: Path, suffix: str = ".lock"):
        self.directory = Path(directory)
        self.suffix = suffix

    def path_for(self, key: str) -> Path:
        return self.directory / f"{validate_key(key)}{self.suffix}"

    def touch(self, key: str, at: Optional[float] = None) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        path.touch()
        if at is not None:
            os.utime(path, (at, at))

    def last_touch(self, key: str) -> Optional[float]:
        try:
            return self.path_for(key).stat().st_mtime
        except FileNotFoundError:
            return None

    def delete(self, key: str) -> bool:
        try:
            self.path_for(key).unlink()
            return True
        except FileNotFoundError:
            return False

    def purge_older_than(self, seconds: float, now: Optional[float] = None) -> int:
        """Delete markers idle for longer than seconds. Returns the count removed."""
        if not self.directory.is_dir():
            return 0
        now = time.time() if now is None else now
        removed = 0
        for marker in self.directory.glob(f"*{self.suffix}"):
            try:
                if now - marker.stat().st_mtime > seconds:
                    marker.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
        return removed

    def keys(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(p.name[: -len(self.suffix)] for p in self.directory.glob(f"*{self.suffix}"))
