r"""Atomic JSON file primitives for hook state.

Every piece of persisted hook state (failure records, reports) goes through
this module so that a hook killed mid-write never leaves a half-written JSON
document behind.

**Core primitives:**
- atomic_write_json: write-or-fail using temp file + rename
- locked_read_json: shared-lock read with timeout

**Guarantees:**
- Atomicity: readers see either the old document or the new one
- Isolation: portalocker shared locks keep readers off a file being rewritten
  in place by another process
- Durability: fsync=True flushes the temp file before the rename

**Error handling:**
- LockTimeoutError: lock not acquired within the timeout (default 5s)
- ValidationError: validate_fn rejected the data
- TransactionError: any other read/write failure
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

import portalocker

DEFAULT_TIMEOUT = 5.0


class HookGuardError(Exception):
    """Base exception for hookguard."""
    pass


class TransactionError(HookGuardError):
    """Base exception for state file failures."""
    pass


class LockTimeoutError(TransactionError):
    """Raised when lock acquisition times out."""
    pass


class ValidationError(TransactionError):
    """Raised when schema validation fails."""
    pass


def atomic_write_json(
    path: Path | str,
    data: Any,
    fsync: bool = True,
    validate_fn: Optional[Callable[[Any], bool]] = None,
) -> None:
    """Write JSON data atomically using temp file + rename.

    The temp file is created in the target's directory so the final
    ``os.replace`` never crosses a filesystem boundary.

    Args:
        path: Target file path
        data: Python object to serialize as JSON
        fsync: Force OS flush to disk before the rename
        validate_fn: Optional check; ValidationError if it returns False

    Raises:
        ValidationError: If validate_fn returns False
        TransactionError: On write or rename failure
    """
    path = Path(path)

    if validate_fn is not None and not validate_fn(data):
        raise ValidationError(f"Validation failed for data: {path}")

    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_file = None
    tmp_path = None

    try:
        tmp_file = tempfile.NamedTemporaryFile(
            mode='w',
            encoding='utf-8',
            dir=path.parent,
            delete=False,
            prefix=f".{path.name}.",
            suffix='.tmp'
        )
        tmp_path = Path(tmp_file.name)

        json.dump(data, tmp_file, indent=2)
        tmp_file.flush()

        if fsync:
            os.fsync(tmp_file.fileno())

        tmp_file.close()
        os.replace(tmp_path, path)

    except Exception as e:
        if tmp_file is not None and not tmp_file.closed:
            tmp_file.close()
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise TransactionError(f"Atomic write failed for {path}: {e}") from e


def locked_read_json(
    path: Path | str,
    timeout: float = DEFAULT_TIMEOUT,
    default: Optional[Any] = None,
) -> Any:
    """Read a JSON file under a shared lock.

    Args:
        path: File path to read
        timeout: Lock acquisition timeout in seconds
        default: Value returned when the file is missing or empty

    Returns:
        Parsed JSON data, or default

    Raises:
        LockTimeoutError: If the lock is not acquired in time
        TransactionError: On JSON parse failure
    """
    path = Path(path)

    if not path.exists():
        return default

    try:
        with portalocker.Lock(
            str(path),
            mode='r',
            timeout=timeout,
            flags=portalocker.LOCK_SH | portalocker.LOCK_NB,
        ) as f:
            # Empty files show up after an interrupted first write
            content = f.read()
            if not content.strip():
                return default
            return json.loads(content)

    except FileNotFoundError:
        # Deleted between the exists() check and the open
        return default
    except portalocker.exceptions.LockException as e:
        raise LockTimeoutError(f"Lock timeout reading {path} after {timeout}s") from e
    except json.JSONDecodeError as e:
        raise TransactionError(f"Invalid JSON in {path}: {e}") from e


def validate_failure_record(data: Any) -> bool:
    """Validate a per-hook failure record.

    **Expected structure:**
    {
        "consecutive_failures": int >= 0,
        "last_failure": float,
        "emergency_brake_active": bool,
        "brake_until": float | null
    }
    """
    if not isinstance(data, dict):
        return False

    count = data.get("consecutive_failures")
    if not isinstance(count, int) or isinstance(count, bool) or count < 0:
        return False

    if not isinstance(data.get("emergency_brake_active"), bool):
        return False

    brake_until = data.get("brake_until")
    if data["emergency_brake_active"] and not isinstance(brake_until, (int, float)):
        return False

    return True
