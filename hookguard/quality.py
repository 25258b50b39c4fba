"""
Quality Checker - runs external linters on edited or staged files.

Dispatch by extension:
- .py:   pylint (threshold by project area), flake8, autopep8 --diff
- .js:   jshint
- .html: html5lib parse in a child interpreter
- md, txt, json, yml, yaml, cfg, ini, conf, lock: skipped (non-code)

Pylint thresholds by project area:
    backend/   10.0
    frontend/   7.0  (docstring checks C0114,C0115,C0116 disabled)
    elsewhere   8.0

Every tool is optional: a linter that is not installed, cannot be started,
or times out is skipped rather than failing the check.

Hooks:
    quality-check       PostToolUse on Write/Edit/MultiEdit
    pre-commit-quality  PreToolUse on Bash ``git commit``, exit 2 vetoes the commit
"""

import json
import re
import shlex
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from hookguard.config import GuardConfig
from hookguard.console import Console
from hookguard.hook_input import Bypass, HookInvocation

# =============================================================================
# Standards
# =============================================================================

PYLINT_THRESHOLDS = {
    "backend": 10.0,
    "frontend": 7.0,
    "general": 8.0,
}
FRONTEND_PYLINT_DISABLE = "C0114,C0115,C0116"
PYTHON_LINE_LENGTH = 120
FLAKE8_IGNORE = "E501,W503,W504"

NON_CODE_RE = re.compile(r"\.(md|txt|json|yml|yaml|cfg|ini|conf|lock)$")
GIT_COMMIT_RE = re.compile(r"(^|[;&|]\s*)git\s+commit\b")

EDIT_TOOLS = ("Write", "Edit", "MultiEdit")
MAX_FIX_PASSES = 3
TOOL_TIMEOUT = 120
GIT_TIMEOUT = 10

# Exits 3 when html5lib is missing so the check can be skipped
HTML5_CHECK = """\
import sys
try:
    import html5lib
except ImportError:
    sys.exit(3)
with open(sys.argv[1], "rb") as f:
    html5lib.parse(f.read())
"""

Runner = Callable[[List[str]], subprocess.CompletedProcess]


def run_command(argv: List[str], cwd: Optional[Path] = None, timeout: int = TOOL_TIMEOUT) -> subprocess.CompletedProcess:
    return subprocess.run(
        argv,
        capture_output=True,
        text=True,
        timeout=timeout,
        cwd=str(cwd) if cwd else None,
    )


def file_type(path: str) -> str:
    if path.endswith(".py"):
        return "python"
    if path.endswith(".js"):
        return "javascript"
    if path.endswith(".ts"):
        return "typescript"
    if path.endswith(".html"):
        return "html"
    if NON_CODE_RE.search(path):
        return "non-code"
    return "unknown"


def project_area(path: str) -> str:
    if "backend/" in path:
        return "backend"
    if "frontend/" in path:
        return "frontend"
    return "general"


def pylint_threshold(path: str) -> float:
    return PYLINT_THRESHOLDS[project_area(path)]


def pylint_args(path: str) -> List[str]:
    if project_area(path) == "frontend":
        return [f"--disable={FRONTEND_PYLINT_DISABLE}"]
    return []


def is_git_commit(command: str) -> bool:
    return bool(GIT_COMMIT_RE.search(command or ""))


# =============================================================================
# Results
# =============================================================================


@dataclass
class QualityIssue:
    issue_type: str
    file: str
    details: str

    def to_dict(self) -> dict:
        return {"type": self.issue_type, "file": self.file, "details": self.details}


@dataclass
class FixCommand:
    argv: List[str] = field(default_factory=list)
    auto_apply: bool = False
    manual: str = ""

    @property
    def command(self) -> str:
        return shlex.join(self.argv) if self.argv else self.manual


@dataclass
class QualityReport:
    status: str
    files: List[str] = field(default_factory=list)
    issues: List[QualityIssue] = field(default_factory=list)
    fixes: List[FixCommand] = field(default_factory=list)
    hook: str = "quality-check"
    message: str = ""
    fix_passes: int = 0

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    def to_dict(self) -> dict:
        return {
            "hook": self.hook,
            "timestamp": datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds"),
            "file": self.files[0] if len(self.files) == 1 else " ".join(self.files),
            "status": self.status,
            "issues": [issue.to_dict() for issue in self.issues],
            "fixes": [{"command": fix.command, "order": i} for i, fix in enumerate(self.fixes, 1)],
            "standards": {
                "pylint_thresholds": {area: str(score) for area, score in PYLINT_THRESHOLDS.items()},
                "python_line_length": str(PYTHON_LINE_LENGTH),
            },
        }


# =============================================================================
# Checker
# =============================================================================


class QualityChecker:
    def __init__(
        self,
        config: GuardConfig,
        runner: Optional[Runner] = None,
        which: Optional[Callable[[str], Optional[str]]] = None,
        console: Optional[Console] = None,
        cwd: Optional[Path] = None,
    ):
        self.config = config
        self.cwd = Path(cwd) if cwd else None
        self.runner = runner or (lambda argv: run_command(argv, cwd=self.cwd))
        self.which = which or shutil.which
        self.console = console or Console("QUALITY", config.log_level)

    def _available(self, tool: str) -> bool:
        if self.which(tool) is None:
            self.console.debug(f"{tool} not available, skipping")
            return False
        return True

    def _run(self, argv: List[str]) -> Optional[subprocess.CompletedProcess]:
        try:
            return self.runner(argv)
        except (OSError, subprocess.SubprocessError) as e:
            self.console.debug(f"{argv[0]} could not run: {e}")
            return None

    def _resolve(self, path: str) -> Path:
        p = Path(path)
        if not p.is_absolute() and self.cwd is not None:
            p = self.cwd / p
        return p

    # -------------------------------------------------------------------------
    # Per-language checks
    # -------------------------------------------------------------------------

    def check_python(self, path: str) -> Tuple[List[QualityIssue], List[FixCommand]]:
        issues: List[QualityIssue] = []
        fixes: List[FixCommand] = []

        threshold = pylint_threshold(path)
        if self._available("pylint"):
            self.console.log(f"Running pylint on {path} (threshold: {threshold})")
            result = self._run(["pylint", *pylint_args(path), f"--fail-under={threshold}", path])
            if result is not None and result.returncode != 0:
                self.console.error(f"Pylint issues in {path} (threshold: {threshold})")
                issues.append(QualityIssue("pylint", path, f"Score below {threshold}"))
                fixes.append(FixCommand(["pylint", path]))
            elif result is not None:
                self.console.success(f"Pylint passed for {path}")

        if self._available("flake8"):
            flake8 = ["flake8", f"--max-line-length={PYTHON_LINE_LENGTH}", f"--ignore={FLAKE8_IGNORE}", path]
            self.console.log(f"Running flake8 on {path}")
            result = self._run(flake8)
            if result is not None and result.returncode != 0:
                self.console.error(f"Flake8 issues in {path}")
                issues.append(QualityIssue("flake8", path, "Style violations detected"))
                fixes.append(FixCommand(flake8))
            elif result is not None:
                self.console.success(f"Flake8 passed for {path}")

        if self._available("autopep8"):
            self.console.log(f"Checking formatting for {path}")
            result = self._run(["autopep8", "--diff", f"--max-line-length={PYTHON_LINE_LENGTH}", path])
            # A non-empty diff means the file would be reformatted
            if result is not None and result.stdout.strip():
                self.console.error(f"Formatting issues in {path}")
                issues.append(QualityIssue("formatting", path, "Code formatting issues detected"))
                fixes.append(
                    FixCommand(
                        ["autopep8", "--in-place", f"--max-line-length={PYTHON_LINE_LENGTH}", path],
                        auto_apply=True,
                    )
                )
            elif result is not None:
                self.console.success(f"Formatting correct for {path}")

        return issues, fixes

    def check_javascript(self, path: str) -> Tuple[List[QualityIssue], List[FixCommand]]:
        if not self._available("jshint"):
            return [], []
        self.console.log(f"Running JSHint on {path}")
        result = self._run(["jshint", path])
        if result is not None and result.returncode != 0:
            self.console.warn(f"JSHint issues in {path}")
            return [QualityIssue("jshint", path, "JavaScript quality issues")], [FixCommand(["jshint", path])]
        if result is not None:
            self.console.success(f"JSHint passed for {path}")
        return [], []

    def check_html(self, path: str) -> Tuple[List[QualityIssue], List[FixCommand]]:
        self.console.log(f"Validating HTML in {path}")
        result = self._run([sys.executable, "-c", HTML5_CHECK, path])
        if result is None or result.returncode == 3:
            self.console.debug("html5lib not available, skipping HTML validation")
            return [], []
        if result.returncode != 0:
            self.console.warn(f"HTML5 validation failed for {path}")
            return (
                [QualityIssue("html5", path, "HTML5 validation failed")],
                [FixCommand(manual=f"# Manual HTML fix required for {path}")],
            )
        self.console.success(f"HTML5 validation passed for {path}")
        return [], []

    def check_security(self) -> Tuple[List[QualityIssue], List[FixCommand]]:
        if not self._available("pip-audit"):
            return [], []
        self.console.log("Running security audit with pip-audit")
        result = self._run(["pip-audit"])
        if result is not None and result.returncode != 0:
            self.console.error("pip-audit found security vulnerabilities")
            return (
                [QualityIssue("security", "project", "Security vulnerabilities detected")],
                [FixCommand(["pip-audit", "--fix"])],
            )
        if result is not None:
            self.console.success("Security audit passed")
        return [], []

    def _check_one(self, path: str) -> Tuple[List[QualityIssue], List[FixCommand]]:
        kind = file_type(path)
        if kind == "non-code":
            self.console.debug(f"Skipping quality checks for non-code file: {path}")
            return [], []
        if not self._resolve(path).is_file():
            self.console.debug(f"File not found, skipping: {path}")
            return [], []
        if kind == "python":
            return self.check_python(path)
        if kind == "javascript":
            return self.check_javascript(path)
        if kind == "html":
            return self.check_html(path)
        self.console.debug(f"No specific quality checks for file type: {path}")
        return [], []

    # -------------------------------------------------------------------------
    # Aggregation
    # -------------------------------------------------------------------------

    def check_files(self, paths: List[str], hook: str = "quality-check") -> QualityReport:
        """Check every path and aggregate; non-code-only input is a bypass."""
        code_paths = [p for p in paths if file_type(p) != "non-code"]
        if not code_paths:
            self.console.log(f"Skipping quality checks for non-code file: {' '.join(paths)}")
            return QualityReport("bypassed", list(paths), hook=hook, message="non-code file")

        issues, fixes = self._collect(code_paths)
        report = QualityReport("failed" if issues else "passed", list(paths), issues, fixes, hook=hook)

        if report.failed and self.config.auto_fix:
            report = self.auto_fix(report, code_paths)
        return report

    def check_file(self, path: str, hook: str = "quality-check") -> QualityReport:
        return self.check_files([path], hook=hook)

    def _collect(self, paths: List[str]) -> Tuple[List[QualityIssue], List[FixCommand]]:
        issues: List[QualityIssue] = []
        fixes: List[FixCommand] = []
        for path in paths:
            self.console.log(f"Checking file: {path}")
            found, suggested = self._check_one(path)
            issues.extend(found)
            fixes.extend(suggested)

        # Security scan only when explicitly checking
        if self.config.operation_context == "check":
            found, suggested = self.check_security()
            issues.extend(found)
            fixes.extend(suggested)
        return issues, fixes

    def auto_fix(self, report: QualityReport, paths: List[str]) -> QualityReport:
        """Apply auto-applicable fixes and re-check until clean, at most MAX_FIX_PASSES times."""
        passes = 0
        while report.failed and passes < MAX_FIX_PASSES:
            applicable = [fix for fix in report.fixes if fix.auto_apply]
            if not applicable:
                break
            passes += 1
            for fix in applicable:
                self.console.info(f"Applying fix: {fix.command}")
                self._run(fix.argv)
            issues, fixes = self._collect(paths)
            report = QualityReport(
                "failed" if issues else "passed", report.files, issues, fixes, hook=report.hook
            )
        report.fix_passes = passes
        return report

    # -------------------------------------------------------------------------
    # Git
    # -------------------------------------------------------------------------

    def _git(self, *args: str) -> Optional[str]:
        try:
            result = self.runner(["git", *args])
        except (OSError, subprocess.SubprocessError):
            return None
        if result.returncode != 0:
            return None
        return result.stdout

    def in_git_repo(self) -> bool:
        return self._git("rev-parse", "--git-dir") is not None

    def _repo_paths(self, output: Optional[str]) -> List[str]:
        if not output:
            return []
        root = (self._git("rev-parse", "--show-toplevel") or "").strip()
        names = [line.strip() for line in output.splitlines() if line.strip()]
        return [str(Path(root) / name) if root else name for name in names]

    def staged_files(self) -> List[str]:
        """Added, copied and modified files in the index."""
        return self._repo_paths(self._git("diff", "--cached", "--name-only", "--diff-filter=ACM"))

    def tracked_files(self) -> List[str]:
        """Tracked code files, for project mode."""
        paths = self._repo_paths(self._git("ls-files"))
        return [p for p in paths if file_type(p) in ("python", "javascript", "html")]


# =============================================================================
# Hook entry points
# =============================================================================


def emit_report(report: QualityReport, config: GuardConfig, console: Console) -> None:
    """Print the report in the configured output format."""
    if config.output_format in ("json", "mixed"):
        print(json.dumps(report.to_dict(), indent=2))
    if config.output_format == "json":
        return

    if report.status == "bypassed":
        console.debug(f"Quality check bypassed: {report.message}")
    elif report.failed:
        console.error(f"Quality checks failed for {' '.join(report.files)}")
        console.plain("Fix these issues and try again:")
        for fix in report.fixes:
            console.plain(f"  {fix.command}")
    else:
        console.success("Quality checks passed!")


def exit_code_for(report: QualityReport, config: GuardConfig) -> int:
    """0 pass/advisory, 1 edit failure with fail_on_edit, 2 veto in check/commit."""
    if not report.failed:
        return 0
    if config.operation_context in ("commit", "check"):
        return 2
    return 1 if config.fail_on_edit else 0


def run_quality_check(
    invocation: HookInvocation,
    config: GuardConfig,
    checker: Optional[QualityChecker] = None,
) -> Union[int, Bypass]:
    console = checker.console if checker else Console("QUALITY", config.log_level)

    if config.quality_mode == "off":
        console.debug("Quality checks disabled")
        return 0
    if invocation.tool_name not in EDIT_TOOLS:
        return 0

    checker = checker or QualityChecker(config, console=console)

    if config.quality_mode == "project":
        if not checker.in_git_repo():
            console.warn("Not in a git repository, skipping quality checks")
            return 0
        console.log("Running in project mode")
        report = checker.check_files(checker.tracked_files())
    else:
        path = invocation.file_path
        if not path:
            console.debug("No specific file to check, skipping quality checks")
            return 0
        if file_type(path) == "non-code":
            report = checker.check_file(path)
            emit_report(report, config, console)
            return Bypass(report.message)
        if not checker.in_git_repo():
            console.warn("Not in a git repository, skipping quality checks")
            return 0
        console.log(f"Running quality checks on edited file: {path}")
        report = checker.check_file(path)

    emit_report(report, config, console)
    code = exit_code_for(report, config)
    if report.failed and code == 0:
        console.warn("Quality issues are advisory in edit context")
    return code


def run_pre_commit(
    invocation: HookInvocation,
    config: GuardConfig,
    checker: Optional[QualityChecker] = None,
) -> Union[int, Bypass]:
    console = checker.console if checker else Console("QUALITY", config.log_level)

    if invocation.tool_name != "Bash" or not is_git_commit(invocation.command):
        return 0
    if config.quality_mode == "off":
        console.debug("Quality checks disabled")
        return 0

    checker = checker or QualityChecker(config, console=console)
    if not checker.in_git_repo():
        console.warn("Not in a git repository, skipping quality checks")
        return 0

    staged = checker.staged_files()
    if not staged:
        console.warn("No staged files to check")
        return 0

    console.warn("Running pre-commit quality checks on staged files...")
    report = checker.check_files(staged, hook="pre-commit-quality")
    if report.status == "bypassed":
        return Bypass(report.message)
    if report.failed:
        console.error("Quality checks failed! Blocking commit.")
        if config.output_format in ("json", "mixed"):
            print(json.dumps(report.to_dict(), indent=2))
        console.plain("Fix these issues and try again:")
        for fix in report.fixes:
            console.plain(f"  {fix.command}")
        return 2

    console.success("Quality checks passed!")
    return 0
