"""
Hook configuration.

All tunables live in one frozen GuardConfig built once per process by
load_config() and handed to every component.

Precedence (lowest to highest):
  1. Built-in defaults
  2. JSON config file ($CLAUDE_HOME/hookguard.json or $CLAUDE_HOOKGUARD_CONFIG)
  3. Environment variables

Values that fail to parse are ignored and the lower layer wins.
"""

import json
import os
import tempfile
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

LOG_LEVELS = ("off", "error", "warn", "info", "debug")
QUALITY_MODES = ("file", "project", "off")
SECURITY_MODES = ("off", "balanced", "paranoid")
OPERATION_CONTEXTS = ("edit", "check", "commit")
OUTPUT_FORMATS = ("text", "json", "mixed")

CONFIG_FILE_NAME = "hookguard.json"

# env var -> GuardConfig field
_ENV_FIELDS = {
    "CLAUDE_LOG_LEVEL": "log_level",
    "CLAUDE_HOOK_BYPASS": "bypass",
    "CLAUDE_QUALITY_MODE": "quality_mode",
    "CLAUDE_SECURITY_MODE": "security_mode",
    "CLAUDE_OPERATION_CONTEXT": "operation_context",
    "CLAUDE_HOOK_OUTPUT_FORMAT": "output_format",
    "CLAUDE_AUTO_FIX": "auto_fix",
    "CLAUDE_QUALITY_FAIL_ON_EDIT": "fail_on_edit",
    "CLAUDE_HOOK_MONITOR": "monitor_enabled",
    "CLAUDE_HOOK_DEBOUNCE": "debounce_seconds",
    "CLAUDE_HOOK_MAX_FAILURES": "max_failures",
    "CLAUDE_HOOK_COOLDOWN": "cooldown_minutes",
    "CLAUDE_HOOK_MAX_LOG_SIZE": "max_log_size",
    "CLAUDE_HOOK_RETENTION": "retention_days",
    "CLAUDE_HOOK_LOCK_DIR": "lock_dir",
    "CLAUDE_SECURITY_RULES": "rules_file",
    "CLAUDE_SESSION_ID": "session_id",
}

_CHOICES = {
    "log_level": LOG_LEVELS,
    "quality_mode": QUALITY_MODES,
    "security_mode": SECURITY_MODES,
    "operation_context": OPERATION_CONTEXTS,
    "output_format": OUTPUT_FORMATS,
}


def _default_claude_home() -> Path:
    return Path.home() / ".claude"


def _default_lock_dir() -> Path:
    return Path(tempfile.gettempdir()) / ".claude_hooks"


@dataclass(frozen=True)
class GuardConfig:
    claude_home: Path = field(default_factory=_default_claude_home)
    log_level: str = "error"
    bypass: bool = False
    quality_mode: str = "file"
    security_mode: str = "balanced"
    operation_context: str = "edit"
    output_format: str = "text"
    auto_fix: bool = False
    fail_on_edit: bool = False
    monitor_enabled: bool = True
    debounce_seconds: float = 2.0
    lock_idle_minutes: float = 5.0
    max_failures: int = 5
    cooldown_minutes: float = 10.0
    max_log_size: int = 10 * 1024 * 1024
    retention_days: int = 30
    backup_count: int = 3
    health_threshold: float = 80.0
    large_file_bytes: int = 10 * 1024 * 1024
    lock_dir: Path = field(default_factory=_default_lock_dir)
    rules_file: Optional[Path] = None
    session_id: str = "unknown"

    @property
    def logs_dir(self) -> Path:
        return self.claude_home / "logs"

    @property
    def hook_logs_dir(self) -> Path:
        return self.logs_dir / "hooks"

    @property
    def failures_dir(self) -> Path:
        return self.claude_home / "hooks" / "failures"

    @property
    def security_log(self) -> Path:
        return self.logs_dir / "security.json"

    @property
    def unified_log(self) -> Path:
        return self.logs_dir / "unified.jsonl"

    @property
    def deployment_log(self) -> Path:
        return self.logs_dir / "deployment-history.log"


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _coerce(name: str, value: Any, current: Any) -> Any:
    """Convert a raw config/env value to the type of the field it targets."""
    if name in _CHOICES:
        text = str(value).strip().lower()
        if text not in _CHOICES[name]:
            raise ValueError(f"{name} must be one of {_CHOICES[name]}, got {value!r}")
        return text
    if name in ("claude_home", "lock_dir", "rules_file"):
        return Path(str(value)).expanduser() if value else None
    if isinstance(current, bool):
        return _parse_bool(value)
    if isinstance(current, int):
        parsed = int(value)
        if parsed < 0:
            raise ValueError(f"{name} must be >= 0")
        return parsed
    if isinstance(current, float):
        parsed = float(value)
        if parsed < 0:
            raise ValueError(f"{name} must be >= 0")
        return parsed
    return str(value)


def _apply(config: GuardConfig, values: Mapping[str, Any]) -> GuardConfig:
    known = {f.name for f in fields(GuardConfig)}
    changes: Dict[str, Any] = {}
    for name, raw in values.items():
        if name not in known:
            continue
        try:
            coerced = _coerce(name, raw, getattr(config, name))
        except (TypeError, ValueError):
            continue
        if coerced is None and name != "rules_file":
            continue
        changes[name] = coerced
    return replace(config, **changes) if changes else config


def _read_config_file(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    config_file: Optional[Path] = None,
) -> GuardConfig:
    """Build the configuration from defaults, config file and environment."""
    env = os.environ if environ is None else environ

    config = GuardConfig()
    home = env.get("CLAUDE_HOME")
    if home:
        config = replace(config, claude_home=Path(home).expanduser())

    if config_file is None:
        override = env.get("CLAUDE_HOOKGUARD_CONFIG")
        config_file = Path(override).expanduser() if override else config.claude_home / CONFIG_FILE_NAME
    if config_file.exists():
        config = _apply(config, _read_config_file(config_file))

    from_env = {
        name: env[var]
        for var, name in _ENV_FIELDS.items()
        if var in env
    }
    return _apply(config, from_env)
