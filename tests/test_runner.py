"""Tests for hookguard.runner"""

import json
from dataclasses import replace

import pytest

from conftest import bash, write
from hookguard.debounce import FailureTracker
from hookguard.hook_input import Bypass
from hookguard.runner import HOOKS, UnknownHookError, run_hook
from hookguard.transaction import LockTimeoutError


def events(config, hook):
    path = config.hook_logs_dir / f"{hook}.jsonl"
    if not path.exists():
        return []
    return [json.loads(line)["event"] for line in path.read_text().splitlines()]


class CountingHandler:
    def __init__(self, code=0, error=None):
        self.code = code
        self.error = error
        self.calls = 0

    def __call__(self, invocation, config):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.code


def test_registry_flags():
    assert HOOKS["security-validator"].debounce is False
    assert HOOKS["security-validator"].brake is False
    assert HOOKS["quality-check"].debounce is True
    assert HOOKS["quality-check"].brake is True
    assert HOOKS["pre-commit-quality"].brake is True


def test_unknown_hook(config):
    with pytest.raises(UnknownHookError):
        run_hook("no-such-hook", bash("ls"), config)


def test_success_logs_start_and_success(config, clock):
    handler = CountingHandler(0)

    assert run_hook("quality-check", write("app.py"), config, handler=handler, clock=clock) == 0

    assert handler.calls == 1
    assert events(config, "quality-check") == ["start", "success"]


def test_bypass_skips_handler(config, clock):
    handler = CountingHandler(2)

    code = run_hook("quality-check", write("app.py"), replace(config, bypass=True), handler=handler, clock=clock)

    assert code == 0
    assert handler.calls == 0
    assert events(config, "quality-check") == ["bypass"]


def test_missing_input_allows(config, clock):
    handler = CountingHandler(1)

    assert run_hook("security-validator", None, config, handler=handler, clock=clock) == 0
    assert handler.calls == 0


def test_debounce_skips_second_run(config, clock):
    handler = CountingHandler(0)

    run_hook("quality-check", write("app.py"), config, handler=handler, clock=clock)
    clock.advance(1)
    run_hook("quality-check", write("app.py"), config, handler=handler, clock=clock)
    assert handler.calls == 1

    clock.advance(2)
    run_hook("quality-check", write("app.py"), config, handler=handler, clock=clock)
    assert handler.calls == 2


def test_security_validator_is_never_debounced(config, clock):
    handler = CountingHandler(1)

    assert run_hook("security-validator", bash("rm -rf /"), config, handler=handler, clock=clock) == 1
    assert run_hook("security-validator", bash("rm -rf /"), config, handler=handler, clock=clock) == 1
    assert handler.calls == 2


def test_handler_exception_becomes_failure(config, clock, capsys):
    handler = CountingHandler(error=RuntimeError("boom"))

    code = run_hook("quality-check", write("app.py"), config, handler=handler, clock=clock)

    assert code == 0
    assert events(config, "quality-check") == ["start", "failure"]
    assert "quality-check failed: RuntimeError: boom" in capsys.readouterr().err
    tracker = FailureTracker.from_config(config, clock=clock)
    assert tracker.get("quality-check").consecutive_failures == 1


def test_repeated_failures_engage_brake(config, clock):
    cfg = replace(config, max_failures=3, debounce_seconds=0)
    handler = CountingHandler(2)

    for _ in range(3):
        assert run_hook("pre-commit-quality", bash("git commit -m x"), cfg, handler=handler, clock=clock) == 2
        clock.advance(1)

    # Brake engaged: the handler is skipped and the commit goes through
    assert run_hook("pre-commit-quality", bash("git commit -m x"), cfg, handler=handler, clock=clock) == 0
    assert handler.calls == 3
    assert events(cfg, "pre-commit-quality")[-1] == "brake"

    clock.advance(cfg.cooldown_minutes * 60 + 1)
    assert run_hook("pre-commit-quality", bash("git commit -m x"), cfg, handler=handler, clock=clock) == 2
    assert handler.calls == 4


def test_success_resets_failure_count(config, clock):
    cfg = replace(config, max_failures=2)
    tracker = FailureTracker.from_config(cfg, clock=clock)

    run_hook("pre-commit-quality", bash("git commit"), cfg, handler=CountingHandler(2), clock=clock)
    run_hook("pre-commit-quality", bash("git commit"), cfg, handler=CountingHandler(0), clock=clock)
    run_hook("pre-commit-quality", bash("git commit"), cfg, handler=CountingHandler(2), clock=clock)

    assert tracker.get("pre-commit-quality").consecutive_failures == 1
    assert tracker.is_brake_active("pre-commit-quality") is False


def test_non_brake_hook_never_records_failures(config, clock):
    cfg = replace(config, max_failures=1)

    run_hook("security-validator", bash("rm -rf /"), cfg, handler=CountingHandler(1), clock=clock)

    assert FailureTracker.from_config(cfg, clock=clock).get("security-validator") is None


def test_bypass_result_is_logged_as_bypass(config, clock):
    tracker = FailureTracker.from_config(config, clock=clock)
    tracker.record_failure("quality-check")

    code = run_hook("quality-check", write("README.md"), config, clock=clock)

    assert code == 0
    assert events(config, "quality-check") == ["start", "bypass"]
    # A bypass neither resets nor extends the failure count
    assert tracker.get("quality-check").consecutive_failures == 1


def test_custom_bypass_reason_is_recorded(config, clock):
    run_hook("quality-check", write("notes.txt"), config, handler=lambda i, c: Bypass("nothing to lint"), clock=clock)

    path = config.hook_logs_dir / "quality-check.jsonl"
    last = json.loads(path.read_text().splitlines()[-1])
    assert (last["event"], last["details"]) == ("bypass", "nothing to lint")


def test_unusable_state_dirs_fail_open(config, clock, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    cfg = replace(config, lock_dir=blocker / "locks")
    cfg.failures_dir.parent.mkdir(parents=True)
    cfg.failures_dir.write_text("")
    handler = CountingHandler(0)

    assert run_hook("quality-check", write("app.py"), cfg, handler=handler, clock=clock) == 0
    assert handler.calls == 1
    assert events(cfg, "quality-check") == ["start", "success"]


def test_brake_lock_timeout_fails_open(config, clock, monkeypatch):
    def locked(self, hook):
        raise LockTimeoutError("held")

    monkeypatch.setattr(FailureTracker, "is_brake_active", locked)
    handler = CountingHandler(0)

    assert run_hook("pre-commit-quality", bash("git commit -m x"), config, handler=handler, clock=clock) == 0
    assert handler.calls == 1
