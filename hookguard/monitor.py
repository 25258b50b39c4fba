"""
Hook Monitor - per-hook event log, rotation, and analytics.

Every hook execution is recorded as newline-delimited JSON in
``<logs>/hooks/<hook>.jsonl``:

    {"timestamp": "...", "hook": "quality-check", "event": "success",
     "file": "app.py", "duration_ms": 412, "details": "...",
     "pid": 1234, "session_id": "..."}

Event lifecycle for one execution:

    start -> success | failure | bypass
    brake                      (pre-empts start while the brake is engaged)

Logging is best-effort. log_event() returns a WriteResult and never raises;
callers discard the error so a broken log can never block the guarded
operation. A line cut short by a killed hook is skipped on read.
"""

import csv
import gzip
import json
import os
import shutil
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple

import portalocker

from hookguard.config import GuardConfig
from hookguard.state import validate_key
from hookguard.transaction import TransactionError, atomic_write_json

LOCK_TIMEOUT = 2.0
EVENT_TYPES = ("start", "success", "failure", "bypass", "brake", "reset")
EXPORT_FORMATS = ("json", "csv")
CSV_COLUMNS = ["timestamp", "hook", "event", "file", "duration_ms", "details"]


@dataclass
class WriteResult:
    ok: bool
    error: Optional[str] = None


def _local_now() -> datetime:
    return datetime.now(timezone.utc).astimezone()


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def format_event(event: Dict) -> str:
    """One-line rendering used by the live monitor."""
    line = f"[{event.get('timestamp', '?')}] {event.get('event', '?')}: {event.get('file') or '-'}"
    duration = event.get("duration_ms")
    if duration:
        line += f" ({duration}ms)"
    details = event.get("details")
    if details:
        line += f" - {details}"
    return line


class HookMonitor:
    def __init__(self, config: GuardConfig, clock: Optional[Callable[[], datetime]] = None):
        self.log_dir = config.hook_logs_dir
        self.enabled = config.monitor_enabled
        self.max_log_size = config.max_log_size
        self.retention_days = config.retention_days
        self.health_threshold = config.health_threshold
        self.session_id = config.session_id
        self.clock = clock or _local_now

    def log_path(self, hook: str) -> Path:
        return self.log_dir / f"{validate_key(hook)}.jsonl"

    # =========================================================================
    # Writing
    # =========================================================================

    def log_event(
        self,
        hook: str,
        event: str,
        file: str = "",
        duration_ms: int = 0,
        details: str = "",
    ) -> WriteResult:
        """Append one event; rotate the log once it passes the size cap."""
        if not self.enabled:
            return WriteResult(True)

        try:
            path = self.log_path(hook)
            entry = {
                "timestamp": self.clock().isoformat(timespec="seconds"),
                "hook": hook,
                "event": event,
                "file": file or "",
                "duration_ms": int(duration_ms),
                "details": details or "",
                "pid": os.getpid(),
                "session_id": self.session_id,
            }
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with portalocker.Lock(str(path), mode="a", timeout=LOCK_TIMEOUT) as fh:
                fh.write(json.dumps(entry) + "\n")
                fh.flush()

            if path.stat().st_size > self.max_log_size:
                self.rotate(path)
            return WriteResult(True)

        except (OSError, ValueError, TypeError, portalocker.exceptions.LockException) as e:
            return WriteResult(False, str(e))

    def rotate(self, path: Path) -> Optional[Path]:
        """Move path to a timestamped gzip backup and leave an empty active log.

        Backups past the retention window are pruned on every rotation.
        """
        stamp = self.clock().strftime("%Y%m%d_%H%M%S")
        backup = path.with_name(f"{path.name}.{stamp}")
        n = 1
        while backup.exists() or backup.with_name(backup.name + ".gz").exists():
            backup = path.with_name(f"{path.name}.{stamp}_{n}")
            n += 1

        try:
            os.replace(path, backup)
        except FileNotFoundError:
            # Another process rotated first
            return None
        path.touch()

        compressed = backup.with_name(backup.name + ".gz")
        try:
            with open(backup, "rb") as src, gzip.open(compressed, "wb") as dst:
                shutil.copyfileobj(src, dst)
            backup.unlink()
        except OSError:
            # Keep the uncompressed backup
            if compressed.exists():
                compressed.unlink()
            compressed = backup

        self.cleanup_old_logs()
        return compressed

    def backups(self, hook: Optional[str] = None) -> List[Path]:
        if not self.log_dir.is_dir():
            return []
        pattern = f"{validate_key(hook)}.jsonl.*" if hook else "*.jsonl.*"
        return sorted(self.log_dir.glob(pattern))

    def cleanup_old_logs(self) -> int:
        """Delete rotated backups older than the retention window."""
        cutoff = time.time() - self.retention_days * 86400
        removed = 0
        for backup in self.backups():
            try:
                if backup.stat().st_mtime < cutoff:
                    backup.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
        return removed

    @contextmanager
    def track(self, hook: str, file: str = "") -> Iterator[Dict[str, str]]:
        """Log start, then the outcome with duration.

        The caller sets ``outcome["event"]`` (success/failure/bypass) and
        optionally ``outcome["details"]``; an exception is logged as failure.
        """
        started = time.monotonic()
        self.log_event(hook, "start", file, 0, "Hook execution started")
        outcome = {"event": "success", "details": ""}
        try:
            yield outcome
        except Exception as e:
            outcome["event"] = "failure"
            outcome["details"] = f"{type(e).__name__}: {e}"
            raise
        finally:
            duration = int((time.monotonic() - started) * 1000)
            self.log_event(hook, outcome["event"], file, duration, outcome["details"])

    # =========================================================================
    # Reading
    # =========================================================================

    def hooks(self) -> List[str]:
        """Hooks that have an active log."""
        if not self.log_dir.is_dir():
            return []
        return sorted(p.stem for p in self.log_dir.glob("*.jsonl"))

    def read_events(self, hook: str, days: Optional[float] = None) -> Iterator[Dict]:
        path = self.log_path(hook)
        if not path.exists():
            return
        since = self.clock() - timedelta(days=days) if days is not None else None
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if not isinstance(event, dict):
                    continue
                if since is not None:
                    ts = _parse_timestamp(event.get("timestamp", ""))
                    if ts is None or ts < since:
                        continue
                yield event

    def get_stats(self, hook: str, days: float = 7) -> Optional[Dict]:
        """Aggregate counts for the last days; None when the hook has no log."""
        if not self.log_path(hook).exists():
            return None

        counts = {"success": 0, "failure": 0, "bypass": 0, "brake": 0}
        total = 0
        durations = []
        for event in self.read_events(hook, days):
            total += 1
            kind = event.get("event")
            if kind in counts:
                counts[kind] += 1
            duration = event.get("duration_ms")
            if isinstance(duration, (int, float)) and duration > 0:
                durations.append(duration)

        completed = counts["success"] + counts["failure"]
        success_rate = round(counts["success"] * 100 / completed, 2) if completed else 0
        avg_duration = round(sum(durations) / len(durations), 2) if durations else 0

        return {
            "hook": hook,
            "period_days": days,
            "total_events": total,
            "successes": counts["success"],
            "failures": counts["failure"],
            "bypasses": counts["bypass"],
            "emergency_brakes": counts["brake"],
            "success_rate": success_rate,
            "avg_duration_ms": avg_duration,
        }

    def generate_report(self, days: float = 7) -> Path:
        """Write stats for every logged hook to report_<stamp>.json."""
        now = self.clock()
        report = {
            "generated": now.isoformat(timespec="seconds"),
            "period_days": days,
            "hooks": [s for s in (self.get_stats(h, days) for h in self.hooks()) if s],
        }
        path = self.log_dir / f"report_{now:%Y%m%d_%H%M%S}.json"
        atomic_write_json(path, report, fsync=False)
        return path

    def check_health(self, hook: str, threshold: Optional[float] = None) -> Tuple[bool, str]:
        """Unhealthy when the 1-day success rate is below threshold or a brake fired."""
        threshold = self.health_threshold if threshold is None else threshold
        stats = self.get_stats(hook, 1)
        if stats is None:
            return True, f"Hook {hook} has no recorded activity"

        if stats["successes"] + stats["failures"] > 0 and stats["success_rate"] < threshold:
            return False, (
                f"WARNING: {hook} success rate is {stats['success_rate']}% "
                f"(threshold: {threshold}%)"
            )
        if stats["emergency_brakes"] > 0:
            return False, f"WARNING: {hook} has {stats['emergency_brakes']} emergency brake(s) active"

        if stats["successes"] + stats["failures"] == 0:
            return True, f"Hook {hook} is healthy (no completed runs in the last day)"
        return True, f"Hook {hook} is healthy (success rate: {stats['success_rate']}%)"

    def export_logs(
        self,
        hook: str,
        fmt: str = "json",
        days: float = 7,
        output_dir: Optional[Path] = None,
    ) -> Optional[Path]:
        """Export the last days of events as NDJSON or CSV. None if no log."""
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"format must be one of {EXPORT_FORMATS}")
        if not self.log_path(hook).exists():
            return None

        out_dir = Path(output_dir) if output_dir else self.log_dir
        out_dir.mkdir(parents=True, exist_ok=True)
        output = out_dir / f"{hook}_export_{self.clock():%Y%m%d_%H%M%S}.{fmt}"

        events = self.read_events(hook, days)
        with open(output, "w", encoding="utf-8", newline="") as f:
            if fmt == "csv":
                writer = csv.writer(f)
                writer.writerow(CSV_COLUMNS)
                for event in events:
                    writer.writerow([event.get(col, "") for col in CSV_COLUMNS])
            else:
                for event in events:
                    f.write(json.dumps(event) + "\n")
        return output

    def follow(
        self,
        hook: str,
        poll_interval: float = 0.5,
        stop: Optional[Callable[[], bool]] = None,
        from_start: bool = False,
    ) -> Iterator[str]:
        """Yield formatted events as they are appended (tail -f)."""
        path = self.log_path(hook)
        position = 0
        if path.exists() and not from_start:
            position = path.stat().st_size

        while True:
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                size = 0
            if size < position:
                # Rotated underneath us
                position = 0
            if size > position:
                with open(path, "rb") as f:
                    f.seek(position)
                    chunk = f.read()
                # A trailing line without a newline is still being written
                end = chunk.rfind(b"\n") + 1
                position += end
                for line in chunk[:end].decode("utf-8", errors="replace").splitlines():
                    try:
                        event = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if isinstance(event, dict):
                        yield format_event(event)
            if stop is not None and stop():
                return
            time.sleep(poll_interval)


def load_report(path: Path) -> Dict:
    """Read back a generated report."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise TransactionError(f"Cannot read report {path}: {e}") from e
