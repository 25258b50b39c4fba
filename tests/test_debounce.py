"""Tests for hookguard.debounce"""

from hookguard.debounce import Debouncer, FailureRecord, FailureTracker
from hookguard.state import MarkerStore, StateStore


def make_debouncer(tmp_path, clock, window=2.0):
    return Debouncer(MarkerStore(tmp_path / "locks"), window=window, clock=clock)


def make_tracker(tmp_path, clock, threshold=5, cooldown=10):
    store = StateStore(tmp_path / "failures", suffix=".failures")
    return FailureTracker(store, threshold=threshold, cooldown_minutes=cooldown, clock=clock)


# =============================================================================
# Debouncer
# =============================================================================


def test_should_run_twice_within_window(tmp_path, clock):
    """Second call inside the window is refused."""
    debouncer = make_debouncer(tmp_path, clock)

    assert debouncer.should_run("quality-check") is True
    clock.advance(1)
    assert debouncer.should_run("quality-check") is False


def test_should_run_after_window(tmp_path, clock):
    debouncer = make_debouncer(tmp_path, clock)

    assert debouncer.should_run("quality-check") is True
    clock.advance(2.5)
    assert debouncer.should_run("quality-check") is True


def test_refused_run_does_not_extend_window(tmp_path, clock):
    """A refused call leaves the marker alone."""
    debouncer = make_debouncer(tmp_path, clock)

    debouncer.should_run("hook")
    clock.advance(1.5)
    assert debouncer.should_run("hook") is False
    clock.advance(0.6)
    assert debouncer.should_run("hook") is True


def test_debounce_is_per_hook(tmp_path, clock):
    debouncer = make_debouncer(tmp_path, clock)

    assert debouncer.should_run("a") is True
    assert debouncer.should_run("b") is True


def test_remaining_and_reset(tmp_path, clock):
    debouncer = make_debouncer(tmp_path, clock)
    assert debouncer.remaining("hook") == 0.0

    debouncer.should_run("hook")
    clock.advance(0.5)
    assert debouncer.remaining("hook") == 1.5

    assert debouncer.reset("hook") is True
    assert debouncer.should_run("hook") is True


def test_cleanup_purges_idle_markers(tmp_path, clock):
    debouncer = Debouncer(MarkerStore(tmp_path / "locks"), window=2, idle_purge=300, clock=clock)
    debouncer.should_run("stale")
    clock.advance(301)
    debouncer.should_run("fresh")

    assert debouncer.cleanup() == 1
    assert debouncer.markers.keys() == ["fresh"]


# =============================================================================
# FailureTracker
# =============================================================================


def test_threshold_failures_engage_brake(tmp_path, clock):
    tracker = make_tracker(tmp_path, clock, threshold=5, cooldown=10)

    for _ in range(4):
        record = tracker.record_failure("quality-check")
        assert record.emergency_brake_active is False
    assert tracker.is_brake_active("quality-check") is False

    record = tracker.record_failure("quality-check")

    assert record.consecutive_failures == 5
    assert record.emergency_brake_active is True
    assert record.brake_until == clock.now + 600
    assert tracker.is_brake_active("quality-check") is True


def test_success_resets_count_and_brake(tmp_path, clock):
    tracker = make_tracker(tmp_path, clock, threshold=2)
    tracker.record_failure("hook")
    tracker.record_failure("hook")
    assert tracker.is_brake_active("hook") is True

    tracker.record_success("hook")

    assert tracker.get("hook") is None
    assert tracker.is_brake_active("hook") is False
    assert tracker.record_failure("hook").consecutive_failures == 1


def test_expired_brake_is_deleted_on_read(tmp_path, clock):
    tracker = make_tracker(tmp_path, clock, threshold=1, cooldown=10)
    tracker.record_failure("hook")
    assert tracker.brake_status("hook")[0] == "active"

    clock.advance(601)

    assert tracker.brake_status("hook") == ("expired", 0)
    assert tracker.is_brake_active("hook") is False
    assert tracker.get("hook") is None
    assert tracker.brake_status("hook") == ("inactive", 0)


def test_brake_status_reports_remaining_seconds(tmp_path, clock):
    tracker = make_tracker(tmp_path, clock, threshold=1, cooldown=10)
    tracker.record_failure("hook")
    clock.advance(60)

    assert tracker.brake_status("hook") == ("active", 540)


def test_trigger_brake_manually(tmp_path, clock):
    tracker = make_tracker(tmp_path, clock, threshold=5)

    record = tracker.trigger_brake("hook", 30)

    assert record.emergency_brake_active is True
    assert record.brake_until == clock.now + 1800
    assert tracker.is_brake_active("hook") is True
    assert tracker.reset("hook") is True
    assert tracker.is_brake_active("hook") is False


def test_corrupted_record_is_treated_as_absent(tmp_path, clock):
    tracker = make_tracker(tmp_path, clock)
    tracker.store.path_for("hook").parent.mkdir(parents=True)
    tracker.store.path_for("hook").write_text('{"consecutive_failures": "many"}')

    assert tracker.get("hook") is None
    assert tracker.is_brake_active("hook") is False
    assert tracker.record_failure("hook").consecutive_failures == 1


def test_failure_record_roundtrip():
    record = FailureRecord(3, 100.0, True, 700.0)
    assert FailureRecord.from_dict(record.to_dict()) == record
    assert FailureRecord.from_dict(None) is None
