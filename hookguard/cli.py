"""
hookguard - run hooks and inspect their state.

Usage:
  hookguard run <hook>                    # Run a hook on the JSON payload from stdin
  hookguard status [hook]                 # Debounce / brake / recent activity
  hookguard stats [hook] [days]           # JSON statistics (default: 7 days)
  hookguard report [days]                 # Write a JSON report for all hooks
  hookguard health [hook]                 # Exit 1 if any hook is unhealthy
  hookguard brake <hook> [minutes]        # Manually engage the emergency brake
  hookguard reset <hook>                  # Clear failures, brake and debounce
  hookguard export <hook> [format] [days] # Export events as json or csv
  hookguard monitor <hook>                # Follow events in real time
  hookguard list                          # List registered hooks

Host configuration (settings.json):
  "PreToolUse": [{"matcher": "Bash|Write|Edit|Read",
                  "hooks": [{"type": "command", "command": "hookguard run security-validator"}]}]
"""

import argparse
import json
import sys
from typing import List, Optional

from hookguard.config import GuardConfig, load_config
from hookguard.debounce import Debouncer, FailureTracker
from hookguard.hook_input import cancel_stdin_timeout, read_hook_input, setup_stdin_timeout
from hookguard.monitor import EXPORT_FORMATS, HookMonitor
from hookguard.runner import HOOKS, run_hook
from hookguard.state import validate_key


def _hook_name(value: str) -> str:
    try:
        return validate_key(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


# =============================================================================
# Commands
# =============================================================================


def cmd_run(config: GuardConfig, hook: str) -> int:
    setup_stdin_timeout()
    try:
        invocation = read_hook_input()
    finally:
        cancel_stdin_timeout()
    return run_hook(hook, invocation, config)


def show_status(config: GuardConfig, hook: Optional[str]) -> int:
    names = [hook] if hook else list(HOOKS)
    debouncer = Debouncer.from_config(config)
    tracker = FailureTracker.from_config(config)
    monitor = HookMonitor(config)

    if not hook:
        print("=== Hook Status Overview ===")

    for name in names:
        print("")
        print(f"=== Status for {name} ===")

        remaining = debouncer.remaining(name)
        if remaining > 0:
            print(f"Debounce: ACTIVE ({remaining:.0f}s remaining)")
        else:
            print("Debounce: INACTIVE")

        state, seconds = tracker.brake_status(name)
        if state == "active":
            print(f"Emergency Brake: ACTIVE ({seconds // 60}m remaining)")
        elif state == "expired":
            print("Emergency Brake: EXPIRED (cleaning up)")
            tracker.is_brake_active(name)
        else:
            print("Emergency Brake: INACTIVE")

        record = tracker.get(name)
        if record is not None:
            print(f"Consecutive Failures: {record.consecutive_failures}")

        print("")
        print("Recent Activity:")
        stats = monitor.get_stats(name, 1)
        if stats is None:
            print("  No activity recorded")
        else:
            print(json.dumps(stats, indent=2))
    return 0


def show_stats(config: GuardConfig, hook: Optional[str], days: float) -> int:
    monitor = HookMonitor(config)
    if hook:
        stats = monitor.get_stats(hook, days)
        if stats is None:
            print(f"No log file found for {hook}", file=sys.stderr)
            return 1
        print(json.dumps(stats, indent=2))
        return 0

    all_stats = [s for s in (monitor.get_stats(h, days) for h in monitor.hooks()) if s]
    print(json.dumps(all_stats, indent=2))
    return 0


def generate_report(config: GuardConfig, days: float) -> int:
    path = HookMonitor(config).generate_report(days)
    print(f"Report generated: {path}")
    return 0


def check_health(config: GuardConfig, hook: Optional[str]) -> int:
    monitor = HookMonitor(config)
    names = [hook] if hook else monitor.hooks()
    if not names:
        print("No hook activity recorded")
        return 0

    healthy = True
    for name in names:
        ok, message = monitor.check_health(name)
        print(message, file=sys.stdout if ok else sys.stderr)
        healthy = healthy and ok
    return 0 if healthy else 1


def trigger_brake(config: GuardConfig, hook: str, minutes: float) -> int:
    tracker = FailureTracker.from_config(config)
    tracker.trigger_brake(hook, minutes)
    HookMonitor(config).log_event(hook, "brake", "", 0, f"Manually triggered for {minutes:g} minutes")
    print(f"Emergency brake triggered for {hook} ({minutes:g} minutes)")
    return 0


def reset_hook(config: GuardConfig, hook: str) -> int:
    print(f"Resetting {hook}...")
    Debouncer.from_config(config).reset(hook)
    FailureTracker.from_config(config).reset(hook)
    HookMonitor(config).log_event(hook, "reset", "", 0, "Manually reset by user")
    print(f"Reset complete for {hook}")
    return 0


def export_logs(config: GuardConfig, hook: str, fmt: str, days: float) -> int:
    path = HookMonitor(config).export_logs(hook, fmt, days)
    if path is None:
        print(f"No log file found for {hook}", file=sys.stderr)
        return 1
    print(f"Logs exported to: {path}")
    return 0


def monitor_hook(config: GuardConfig, hook: str) -> int:
    monitor = HookMonitor(config)
    if not monitor.log_path(hook).exists():
        print(f"No log file found for {hook}", file=sys.stderr)
        return 1

    print(f"Monitoring {hook} (Press Ctrl+C to stop)")
    print("=== Real-time Hook Events ===")
    try:
        for line in monitor.follow(hook):
            print(line, flush=True)
    except KeyboardInterrupt:
        print("")
    return 0


def list_hooks() -> int:
    print("Available hooks:")
    print("")
    for spec in HOOKS.values():
        flags = [flag for flag, on in (("debounce", spec.debounce), ("brake", spec.brake)) if on]
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"  {spec.name} ({spec.event}){suffix}")
        print(f"    {spec.description}")
        print("")
    return 0


# =============================================================================
# Main
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hookguard",
        description="Hook guard for AI coding assistant tool use",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", help="Subcommands")

    run_parser = subparsers.add_parser("run", help="Run a hook on the JSON payload from stdin")
    run_parser.add_argument("hook", choices=list(HOOKS), help="Hook name")

    status_parser = subparsers.add_parser("status", help="Show current status of hooks")
    status_parser.add_argument("hook", nargs="?", type=_hook_name, help="Hook name (default: all)")

    stats_parser = subparsers.add_parser("stats", help="Show statistics for a hook")
    stats_parser.add_argument("hook", nargs="?", type=_hook_name, help="Hook name (default: all)")
    stats_parser.add_argument("days", nargs="?", type=float, default=7, help="Period in days (default: 7)")

    report_parser = subparsers.add_parser("report", help="Generate a report for all hooks")
    report_parser.add_argument("days", nargs="?", type=float, default=7, help="Period in days (default: 7)")

    health_parser = subparsers.add_parser("health", help="Check hook health")
    health_parser.add_argument("hook", nargs="?", type=_hook_name, help="Hook name (default: all)")

    brake_parser = subparsers.add_parser("brake", help="Manually trigger the emergency brake")
    brake_parser.add_argument("hook", type=_hook_name, help="Hook name")
    brake_parser.add_argument("minutes", nargs="?", type=float, default=10, help="Duration (default: 10)")

    reset_parser = subparsers.add_parser("reset", help="Reset failure count and emergency brake")
    reset_parser.add_argument("hook", type=_hook_name, help="Hook name")

    export_parser = subparsers.add_parser("export", help="Export logs")
    export_parser.add_argument("hook", type=_hook_name, help="Hook name")
    export_parser.add_argument("format", nargs="?", choices=EXPORT_FORMATS, default="json", help="Output format")
    export_parser.add_argument("days", nargs="?", type=float, default=7, help="Period in days (default: 7)")

    monitor_parser = subparsers.add_parser("monitor", help="Real-time monitoring")
    monitor_parser.add_argument("hook", type=_hook_name, help="Hook name")

    subparsers.add_parser("list", help="List all available hooks")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    config = load_config()

    if args.command == "run":
        return cmd_run(config, args.hook)
    if args.command == "status":
        return show_status(config, args.hook)
    if args.command == "stats":
        return show_stats(config, args.hook, args.days)
    if args.command == "report":
        return generate_report(config, args.days)
    if args.command == "health":
        return check_health(config, args.hook)
    if args.command == "brake":
        return trigger_brake(config, args.hook, args.minutes)
    if args.command == "reset":
        return reset_hook(config, args.hook)
    if args.command == "export":
        return export_logs(config, args.hook, args.format, args.days)
    if args.command == "monitor":
        return monitor_hook(config, args.hook)
    if args.command == "list":
        return list_hooks()

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
