"""
Deployment notifier - records deployment commands and announces them on stderr.

A Bash command matching the deployment_command rules (docker build/push,
kubectl apply, helm upgrade, terraform apply, pushes to main/master/prod,
``npm run deploy``, ``make deploy``, ``./deploy`` ...) appends

    2026-01-05 14:03:11 | project | branch | abc1234 | command

to logs/deployment-history.log. The banner is tiered by branch:
production (the production_branch rules: main, master, prod, production,
release/*), staging (staging, stage), development otherwise. The hook always
exits 0.
"""

import re
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import portalocker

from hookguard.config import GuardConfig
from hookguard.console import BLUE, GREEN, RED, RESET, YELLOW, Console
from hookguard.hook_input import HookInvocation
from hookguard.monitor import LOCK_TIMEOUT, WriteResult
from hookguard.rules import ConfigError, RuleSet, default_rules, load_rules
from hookguard.security import GIT_TIMEOUT, current_branch

STAGING_RE = re.compile(r"(^|[/_-])(staging|stage)($|[/_-])")

TIERS = {
    "production": (RED, "PRODUCTION DEPLOYMENT"),
    "staging": (YELLOW, "STAGING DEPLOYMENT"),
    "development": (GREEN, "DEVELOPMENT DEPLOYMENT"),
}


def deployment_tier(branch: Optional[str], production: Optional[RuleSet] = None) -> str:
    """Tier for branch; production comes from the production_branch rules."""
    production = production if production is not None else default_rules()["production_branch"]
    if branch and production.first_match(branch) is not None:
        return "production"
    if branch and STAGING_RE.search(branch):
        return "staging"
    return "development"


def current_commit(cwd: Optional[Path] = None) -> Optional[str]:
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
            cwd=str(cwd) if cwd else None,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


class DeploymentNotifier:
    def __init__(
        self,
        config: GuardConfig,
        rules: Optional[Dict[str, RuleSet]] = None,
        console: Optional[Console] = None,
        cwd: Optional[Path] = None,
    ):
        self.history = config.deployment_log
        self.console = console or Console("DEPLOYMENT-NOTIFIER", config.log_level)
        if rules is None:
            try:
                rules = load_rules(config.rules_file)
            except ConfigError:
                rules = default_rules()
        self.rules = rules["deployment_command"]
        self.production = rules["production_branch"]
        self.cwd = Path(cwd) if cwd else None

    def is_deployment(self, command: str) -> bool:
        rule = self.rules.first_match(command or "")
        return rule is not None and rule.action != "allow"

    def record(self, command: str, project: str, branch: str, commit: str) -> WriteResult:
        line = f"{datetime.now():%Y-%m-%d %H:%M:%S} | {project} | {branch} | {commit} | {command}\n"
        try:
            self.history.parent.mkdir(parents=True, exist_ok=True)
            with portalocker.Lock(str(self.history), mode="a", timeout=LOCK_TIMEOUT) as fh:
                fh.write(line)
                fh.flush()
            return WriteResult(True)
        except (OSError, portalocker.exceptions.LockException) as e:
            return WriteResult(False, str(e))

    def notify(self, invocation: HookInvocation) -> Optional[str]:
        """Record and announce a deployment; returns its tier, or None if not one."""
        if invocation.tool_name != "Bash":
            self.console.debug("Non-bash tool, no notification sent")
            return None
        command = invocation.command
        if not self.is_deployment(command):
            self.console.debug("Non-deployment command, no notification sent")
            return None

        branch = current_branch(self.cwd) or "unknown"
        commit = current_commit(self.cwd) or "unknown"
        project = (self.cwd or Path.cwd()).name
        tier = deployment_tier(branch, self.production)

        self.record(command, project, branch, commit)

        color, title = TIERS[tier]
        banner = [
            f"[DEPLOYMENT-NOTIFIER] {title}",
            f"Project: {project}",
            f"Branch: {branch}",
            f"Commit: {commit}",
            f"Command: {command}",
        ]
        if invocation.description:
            banner.append(f"Description: {invocation.description}")
        for i, text in enumerate(banner):
            shade = color if i == 0 else BLUE
            self.console.plain(f"{shade}{text}{RESET}" if self.console.color else text)
        return tier


def run(invocation: HookInvocation, config: GuardConfig) -> int:
    """deployment-notifier hook: never blocks."""
    DeploymentNotifier(config).notify(invocation)
    return 0
