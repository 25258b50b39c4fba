"""
Security rule tables.

Rules are data, not code: each category is an ordered list of
{pattern, action, description} entries evaluated first-match-wins. The
built-in tables below can be replaced per category with a JSON file:

    {
        "dangerous_command": [
            {"pattern": "rm -rf", "action": "warn", "description": "recursive delete"}
        ]
    }

Categories not named in the file keep their defaults.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from hookguard.transaction import HookGuardError

ACTIONS = ("allow", "warn", "block")


class ConfigError(HookGuardError):
    """Raised when a rule file cannot be used."""
    pass


@dataclass(frozen=True)
class Rule:
    pattern: str
    category: str
    action: str = "block"
    description: str = ""

    def __post_init__(self):
        if self.action not in ACTIONS:
            raise ConfigError(f"Unknown action {self.action!r} for rule {self.pattern!r}")
        try:
            compiled = re.compile(self.pattern)
        except re.error as e:
            raise ConfigError(f"Invalid pattern {self.pattern!r} in {self.category}: {e}") from e
        object.__setattr__(self, "_regex", compiled)

    def matches(self, text: str) -> bool:
        return self._regex.search(text) is not None


class RuleSet:
    """Ordered rules for one category."""

    def __init__(self, category: str, rules: Iterable[Rule]):
        self.category = category
        self.rules: List[Rule] = list(rules)

    def first_match(self, text: str) -> Optional[Rule]:
        for rule in self.rules:
            if rule.matches(text):
                return rule
        return None

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)


# =============================================================================
# Default tables
# =============================================================================

DEFAULT_RULES: Dict[str, List[tuple]] = {
    # (pattern, action, description)
    "sensitive_path": [
        (r"^/etc/", "block", "system configuration"),
        (r"^/root/", "block", "root home"),
        (r"^/sys/", "block", "sysfs"),
        (r"^/proc/", "block", "procfs"),
        (r"/\.ssh/", "block", "ssh keys"),
        (r"/\.aws/", "block", "aws credentials"),
        (r"/\.gcp/", "block", "gcp credentials"),
        (r"/\.kube/", "block", "kubernetes config"),
        (r"\.env$", "block", "dotenv file"),
        (r"\.env\.", "block", "dotenv file"),
        (r"secrets", "block", "secrets"),
        (r"credentials", "block", "credentials"),
        (r"password", "block", "password file"),
        (r"\.key$", "block", "private key"),
        (r"\.pem$", "block", "certificate/key"),
        (r"\.crt$", "block", "certificate"),
        (r"\.p12$", "block", "keystore"),
        (r"\.jks$", "block", "java keystore"),
    ],
    "dangerous_extension": [
        (r"\.exe$", "block", "windows executable"),
        (r"\.bat$", "block", "batch script"),
        (r"\.cmd$", "block", "command script"),
        (r"\.com$", "block", "dos executable"),
        (r"\.scr$", "block", "screensaver executable"),
        (r"\.vbs$", "block", "vbscript"),
        (r"\.jar$", "block", "java archive"),
        (r"\.deb$", "block", "debian package"),
        (r"\.rpm$", "block", "rpm package"),
        (r"\.msi$", "block", "windows installer"),
        (r"\.dmg$", "block", "disk image"),
        (r"\.pkg$", "block", "macos package"),
    ],
    "safe_extension": [
        (pattern, "allow", "")
        for pattern in (
            r"\.py$", r"\.js$", r"\.ts$", r"\.jsx$", r"\.tsx$", r"\.html$",
            r"\.css$", r"\.scss$", r"\.md$", r"\.txt$", r"\.json$", r"\.yaml$",
            r"\.yml$", r"\.xml$", r"\.csv$", r"\.log$", r"\.sh$", r"\.bash$",
        )
    ],
    "ultra_dangerous_command": [
        (r"rm\s+-[a-zA-Z]*(rf|fr)[a-zA-Z]*\s+(--\S+\s+)*/", "block", "rm -rf on an absolute path"),
        (r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:", "block", "fork bomb"),
        (r"dd\s+if=/dev/(zero|random|urandom)\s+of=/", "block", "dd over a device or root"),
        (r"mkfs\.", "block", "filesystem format"),
        (r"fdisk\s+/dev/", "block", "partition table edit"),
    ],
    "dangerous_command": [
        (r"rm\s+-rf", "warn", "recursive force delete"),
        (r"chmod\s+777", "warn", "world-writable permissions"),
        (r">\s*/dev/", "warn", "write to device"),
        (r"iptables\s+-F", "warn", "firewall flush"),
        (r"git\s+push\s+(.*\s)?(--force|-f)(\s.*)?\b(main|master)\b", "warn", "force push to main"),
        (r"git\s+push\s+.*\b(main|master)\b.*\s(--force|-f)(\s|$)", "warn", "force push to main"),
        (r"git\s+reset\s+--hard", "warn", "hard reset"),
    ],
    "system_path": [
        (r"(/etc/|/root/|/usr/bin/|/usr/sbin/|/var/lib/)", "warn", "system path"),
    ],
    "system_modification": [
        (r"(>|\brm\b|\bchmod\b|\bchown\b|\bmv\b|\btee\b)", "block", "modifying operation"),
    ],
    "production_branch": [
        (r"^(main|master|prod|production)$", "block", "production branch"),
        (r"^(release|prod|production)[/-]", "block", "production branch"),
    ],
    "deployment_command": [
        (r"docker\s+(build|push|deploy)", "warn", "docker"),
        (r"kubectl\s+(apply|create|delete)", "warn", "kubernetes"),
        (r"helm\s+(install|upgrade)", "warn", "helm"),
        (r"terraform\s+(apply|destroy)", "warn", "terraform"),
        (r"(aws|gcloud|heroku)\s+.*deploy", "warn", "cloud deploy"),
        (r"git\s+push.*origin.*\b(main|master|prod)\b", "warn", "push to release branch"),
        (r"(npm|yarn|pnpm)\s+run\s+(build|deploy)", "warn", "package script"),
        (r"yarn\s+deploy", "warn", "package script"),
        (r"make\s+deploy", "warn", "make deploy"),
        (r"(^|\s)\./deploy", "warn", "deploy script"),
    ],
}

CATEGORIES = tuple(DEFAULT_RULES)


def _build(category: str, entries: Iterable) -> RuleSet:
    rules = []
    for entry in entries:
        if isinstance(entry, (list, tuple)):
            pattern, action, description = (list(entry) + ["block", ""])[:3]
        elif isinstance(entry, dict):
            if "pattern" not in entry:
                raise ConfigError(f"Rule in {category} has no pattern: {entry!r}")
            pattern = entry["pattern"]
            action = entry.get("action", "block")
            description = entry.get("description", "")
        elif isinstance(entry, str):
            pattern, action, description = entry, "block", ""
        else:
            raise ConfigError(f"Unsupported rule entry in {category}: {entry!r}")
        rules.append(Rule(str(pattern), category, str(action), str(description)))
    return RuleSet(category, rules)


def default_rules() -> Dict[str, RuleSet]:
    return {category: _build(category, entries) for category, entries in DEFAULT_RULES.items()}


def load_rules(path: Optional[Path] = None) -> Dict[str, RuleSet]:
    """Return rule sets, with categories from the JSON file at path overriding defaults.

    Raises:
        ConfigError: unreadable file, bad JSON, unknown category, bad regex
    """
    rules = default_rules()
    if path is None:
        return rules

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read rule file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Rule file {path} must contain a JSON object")

    for category, entries in data.items():
        if category not in rules:
            raise ConfigError(f"Unknown rule category {category!r} in {path}")
        if not isinstance(entries, list):
            raise ConfigError(f"Category {category!r} in {path} must be a list")
        rules[category] = _build(category, entries)
    return rules
