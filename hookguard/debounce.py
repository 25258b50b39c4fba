"""
Hook debounce and emergency brake.

Debouncer
    Refuses a hook that already ran less than `window` seconds ago. The
    last permitted run is the mtime of a marker file in the lock directory.
    Two processes racing on the same hook can both pass the check; hooks
    are advisory so that is accepted.

FailureTracker
    Counts consecutive failures per hook. Once the count reaches the
    threshold the emergency brake engages for `cooldown_minutes`, during
    which the runner skips the hook entirely. Any success deletes the
    record; an expired brake deletes it on the next read.
"""

import time
from dataclasses import asdict, dataclass
from typing import Callable, Optional, Tuple

from hookguard.config import GuardConfig
from hookguard.state import MarkerStore, StateStore
from hookguard.transaction import validate_failure_record

FAILURE_SUFFIX = ".failures"


@dataclass
class FailureRecord:
    consecutive_failures: int = 0
    last_failure: float = 0.0
    emergency_brake_active: bool = False
    brake_until: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["FailureRecord"]:
        if not validate_failure_record(data):
            return None
        return cls(
            consecutive_failures=data["consecutive_failures"],
            last_failure=float(data.get("last_failure") or 0.0),
            emergency_brake_active=data["emergency_brake_active"],
            brake_until=data.get("brake_until"),
        )

    def to_dict(self) -> dict:
        return asdict(self)


class Debouncer:
    def __init__(
        self,
        markers: MarkerStore,
        window: float = 2.0,
        idle_purge: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        self.markers = markers
        self.window = window
        self.idle_purge = idle_purge
        self.clock = clock

    @classmethod
    def from_config(cls, config: GuardConfig, clock: Callable[[], float] = time.time) -> "Debouncer":
        return cls(
            MarkerStore(config.lock_dir),
            window=config.debounce_seconds,
            idle_purge=config.lock_idle_minutes * 60,
            clock=clock,
        )

    def should_run(self, hook: str) -> bool:
        """True (and the marker is touched) unless hook ran within the window."""
        now = self.clock()
        last = self.markers.last_touch(hook)
        if last is not None and now - last < self.window:
            return False
        self.markers.touch(hook, at=now)
        return True

    def remaining(self, hook: str) -> float:
        """Seconds left in the current debounce window (0 if inactive)."""
        last = self.markers.last_touch(hook)
        if last is None:
            return 0.0
        return max(0.0, self.window - (self.clock() - last))

    def reset(self, hook: str) -> bool:
        return self.markers.delete(hook)

    def cleanup(self) -> int:
        """Purge markers idle longer than idle_purge."""
        try:
            return self.markers.purge_older_than(self.idle_purge, now=self.clock())
        except OSError:
            return 0


class FailureTracker:
    def __init__(
        self,
        store: StateStore,
        threshold: int = 5,
        cooldown_minutes: float = 10.0,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.threshold = max(1, threshold)
        self.cooldown_minutes = cooldown_minutes
        self.clock = clock

    @classmethod
    def from_config(cls, config: GuardConfig, clock: Callable[[], float] = time.time) -> "FailureTracker":
        return cls(
            StateStore(config.failures_dir, suffix=FAILURE_SUFFIX),
            threshold=config.max_failures,
            cooldown_minutes=config.cooldown_minutes,
            clock=clock,
        )

    def get(self, hook: str) -> Optional[FailureRecord]:
        return FailureRecord.from_dict(self.store.get(hook))

    def record_failure(self, hook: str) -> FailureRecord:
        """Increment the consecutive failure count, engaging the brake at threshold."""
        now = self.clock()

        def update_fn(state):
            record = FailureRecord.from_dict(state) or FailureRecord()
            record.consecutive_failures += 1
            record.last_failure = now
            if record.consecutive_failures >= self.threshold:
                record.emergency_brake_active = True
                record.brake_until = now + self.cooldown_minutes * 60
            return record.to_dict()

        return FailureRecord.from_dict(self.store.update(hook, update_fn))

    def record_success(self, hook: str) -> None:
        """Reset, not decrement: the record is removed entirely."""
        self.store.delete(hook)

    def is_brake_active(self, hook: str) -> bool:
        record = self.get(hook)
        if record is None or not record.emergency_brake_active or record.brake_until is None:
            return False
        if self.clock() < record.brake_until:
            return True
        # Brake expired
        self.store.delete(hook)
        return False

    def brake_status(self, hook: str) -> Tuple[str, int]:
        """("active", seconds_remaining) | ("expired", 0) | ("inactive", 0)."""
        record = self.get(hook)
        if record is None or not record.emergency_brake_active or record.brake_until is None:
            return ("inactive", 0)
        remaining = record.brake_until - self.clock()
        if remaining > 0:
            return ("active", int(remaining))
        return ("expired", 0)

    def trigger_brake(self, hook: str, minutes: float) -> FailureRecord:
        """Engage the brake manually for minutes, keeping the failure count."""
        now = self.clock()

        def update_fn(state):
            record = FailureRecord.from_dict(state) or FailureRecord()
            record.consecutive_failures = max(record.consecutive_failures, self.threshold)
            record.last_failure = record.last_failure or now
            record.emergency_brake_active = True
            record.brake_until = now + minutes * 60
            return record.to_dict()

        return FailureRecord.from_dict(self.store.update(hook, update_fn))

    def reset(self, hook: str) -> bool:
        return self.store.delete(hook)
