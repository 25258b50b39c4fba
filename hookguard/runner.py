"""
Hook dispatch.

Every hook runs through run_hook(), which wraps the handler in the shared
guard sequence:

    bypass?          -> log "bypass", exit 0
    brake engaged?   -> log "brake", exit 0           (hooks with brake=True)
    debounced?       -> exit 0                        (hooks with debounce=True)
    start            -> handler -> success | failure | bypass  (with duration)

A non-zero handler exit counts as a failure toward the emergency brake; a zero
exit resets the count. A handler returning Bypass (a non-code file, say)
exits 0 and is logged as "bypass" without touching the count. An unexpected
exception inside a handler is printed, recorded as a failure, and turned into
exit 0 so a broken hook never blocks the host. Debounce and brake state that
cannot be read or written is skipped and the handler runs.

The security validator is never debounced or braked: a skipped run would let
a command through unchecked.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from hookguard import deploy, quality, security, tool_logger
from hookguard.config import GuardConfig
from hookguard.console import Console
from hookguard.debounce import Debouncer, FailureTracker
from hookguard.hook_input import Bypass, HookInvocation
from hookguard.monitor import HookMonitor
from hookguard.transaction import HookGuardError

Handler = Callable[[HookInvocation, GuardConfig], Union[int, Bypass]]


@dataclass(frozen=True)
class HookSpec:
    name: str
    event: str
    description: str
    handler: Handler
    debounce: bool = False
    brake: bool = False


HOOKS: Dict[str, HookSpec] = {
    spec.name: spec
    for spec in (
        HookSpec(
            "security-validator",
            "PreToolUse",
            "Blocks dangerous commands and sensitive file access",
            security.run,
        ),
        HookSpec(
            "quality-check",
            "PostToolUse",
            "Runs linters on the edited file",
            quality.run_quality_check,
            debounce=True,
            brake=True,
        ),
        HookSpec(
            "pre-commit-quality",
            "PreToolUse",
            "Runs linters on staged files before git commit",
            quality.run_pre_commit,
            brake=True,
        ),
        HookSpec(
            "tool-logger",
            "PostToolUse",
            "Logs every tool call to the unified log",
            tool_logger.run,
        ),
        HookSpec(
            "deployment-notifier",
            "PostToolUse",
            "Records and announces deployment commands",
            deploy.run,
        ),
    )
}


class UnknownHookError(HookGuardError):
    """Raised for a hook name with no registry entry."""
    pass


def _target(invocation: Optional[HookInvocation]) -> str:
    if invocation is None:
        return ""
    if invocation.file_path:
        return invocation.file_path
    command = invocation.command
    return command if len(command) <= 80 else command[:80] + "..."


def run_hook(
    name: str,
    invocation: Optional[HookInvocation],
    config: GuardConfig,
    monitor: Optional[HookMonitor] = None,
    debouncer: Optional[Debouncer] = None,
    tracker: Optional[FailureTracker] = None,
    console: Optional[Console] = None,
    handler: Optional[Handler] = None,
    clock: Callable[[], float] = time.time,
) -> int:
    """Run hook name through the guard sequence and return its exit code."""
    spec = HOOKS.get(name)
    if spec is None:
        raise UnknownHookError(f"Unknown hook: {name}")

    handler = handler or spec.handler
    console = console or Console("HOOK", config.log_level)
    monitor = monitor or HookMonitor(config)
    target = _target(invocation)

    if config.bypass:
        console.debug(f"{name} bypassed by CLAUDE_HOOK_BYPASS")
        monitor.log_event(name, "bypass", target, 0, "Bypassed by CLAUDE_HOOK_BYPASS")
        return 0

    if invocation is None:
        console.debug(f"No input provided to {name}")
        return 0

    if not spec.brake:
        tracker = None
    else:
        tracker = tracker or FailureTracker.from_config(config, clock=clock)
        if _brake_active(tracker, name, console):
            console.warn(f"Emergency brake active for {name}, skipping")
            monitor.log_event(name, "brake", target, 0, "Emergency brake active")
            return 0

    if spec.debounce:
        debouncer = debouncer or Debouncer.from_config(config, clock=clock)
        if not _should_run(debouncer, name, console):
            console.debug(f"{name} debounced")
            return 0

    with monitor.track(name, target) as outcome:
        try:
            result = handler(invocation, config)
        except Exception as e:  # a broken hook must not block the host
            console.error(f"{name} failed: {type(e).__name__}: {e}")
            outcome["event"] = "failure"
            outcome["details"] = f"{type(e).__name__}: {e}"
            _record(tracker, name, False, console)
            return 0

        if isinstance(result, Bypass):
            outcome["event"] = "bypass"
            outcome["details"] = result.reason
            return 0

        code = result
        if code != 0:
            outcome["event"] = "failure"
            outcome["details"] = f"exit {code}"
        _record(tracker, name, code == 0, console)
        return code


def _record(tracker: Optional[FailureTracker], name: str, ok: bool, console: Console) -> None:
    if tracker is None:
        return
    try:
        if ok:
            tracker.record_success(name)
            return
        record = tracker.record_failure(name)
        console.debug(f"Recorded failure for {name} (consecutive: {record.consecutive_failures})")
    except (HookGuardError, OSError) as e:
        console.debug(f"Could not update failure state for {name}: {e}")


def _brake_active(tracker: FailureTracker, name: str, console: Console) -> bool:
    try:
        return tracker.is_brake_active(name)
    except (HookGuardError, OSError) as e:
        console.debug(f"Could not read failure state for {name}: {e}")
        return False


def _should_run(debouncer: Debouncer, name: str, console: Console) -> bool:
    try:
        debouncer.cleanup()
        return debouncer.should_run(name)
    except (HookGuardError, OSError) as e:
        console.debug(f"Could not update debounce state for {name}: {e}")
        return True
