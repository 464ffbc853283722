"""Pre-execution risk assessment and precondition checks.

Nothing here blocks a command. The advisor only reports what it sees; the
caller decides whether to show a warning.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path

from termbrain.activity import log_activity
from termbrain.classification.sensitivity import redact
from termbrain.config import Config
from termbrain.storage.events import EventFilter, EventStore

logger = logging.getLogger(__name__)


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class RiskRule:
    level: RiskLevel
    pattern: re.Pattern
    warning: str


# Checked in order; the first matching rule decides the level.
RISK_RULES: tuple[RiskRule, ...] = (
    RiskRule(
        RiskLevel.CRITICAL,
        re.compile(r"\brm\s+-(rf|fr)\s+(/\*?|\*|~/?)(\s|$)"),
        "This could delete critical files",
    ),
    RiskRule(RiskLevel.CRITICAL, re.compile(r":\(\)\s*\{\s*:\|:&\s*\};:"), "Fork bomb"),
    RiskRule(RiskLevel.CRITICAL, re.compile(r"\bmkfs\."), "Formats a filesystem"),
    RiskRule(
        RiskLevel.CRITICAL,
        re.compile(r"(\bdd\b.*\bof=/dev/|>\s*/dev/(sd|nvme|hd|disk))"),
        "Writes directly to a block device",
    ),
    RiskRule(
        RiskLevel.HIGH,
        re.compile(r"\b(DROP\s+(TABLE|DATABASE|SCHEMA)|TRUNCATE|DELETE\s+FROM)\b", re.IGNORECASE),
        "Destructive database operation",
    ),
    RiskRule(
        RiskLevel.HIGH,
        re.compile(r"^git\s+push\b.*\s(--force|-f)(\s|$)"),
        "Force push can overwrite history",
    ),
    RiskRule(
        RiskLevel.HIGH,
        re.compile(r"^sudo\s+(rm|dd)\b"),
        "Destructive command with sudo privileges",
    ),
    RiskRule(
        RiskLevel.MEDIUM,
        re.compile(r"^git\s+reset\s+.*--hard"),
        "Discards uncommitted changes",
    ),
    RiskRule(
        RiskLevel.MEDIUM,
        re.compile(r"\bchmod\s+-R\s+777\b"),
        "Makes everything world-writable",
    ),
    RiskRule(RiskLevel.MEDIUM, re.compile(r"--force\b"), "Force flag detected"),
)

# Command prefix -> checks worth doing before it runs
PRECONDITIONS: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("git push",), ("tests_run_recently", "no_uncommitted_changes")),
    (
        ("npm publish", "cargo publish", "twine upload", "poetry publish"),
        ("version_bumped", "changelog_updated", "tests_passing"),
    ),
    (("terraform apply",), ("terraform_plan_reviewed", "backup_exists")),
    (("kubectl apply", "helm upgrade"), ("tests_passing",)),
)

# Commands that change the version a package is published under
VERSION_BUMP = re.compile(
    r"^(?:(?:npm|yarn|poetry) version|cargo set-version|bump2?version)\b"
    r"|^git tag\b.*\sv?\d+\.\d+"
)
BUMP_LOOKBACK = 50


def is_version_bump(command: str) -> bool:
    command = command.strip()
    return "--version" not in command and bool(VERSION_BUMP.search(command))


@dataclass
class RiskAssessment:
    level: RiskLevel = RiskLevel.LOW
    warnings: list[str] = field(default_factory=list)


@dataclass
class CheckResult:
    name: str
    satisfied: bool | None  # None when history can't tell
    detail: str = ""


@dataclass
class Advice:
    risk: RiskAssessment
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def failed_checks(self) -> list[CheckResult]:
        return [check for check in self.checks if check.satisfied is False]

    @property
    def has_concerns(self) -> bool:
        return self.risk.level != RiskLevel.LOW or bool(self.failed_checks)


def assess_risk(command: str) -> RiskAssessment:
    """Rate a command before it runs. Always returns an assessment."""
    text = command.strip()
    for rule in RISK_RULES:
        if rule.pattern.search(text):
            return RiskAssessment(level=rule.level, warnings=[rule.warning])
    return RiskAssessment()


def check_preconditions(command: str) -> list[str]:
    """Names of the checks that apply to a command."""
    text = command.strip()
    for prefixes, checks in PRECONDITIONS:
        if text.startswith(prefixes):
            return list(checks)
    return []


class PreconditionAdvisor:
    """Resolves precondition checks against the command history."""

    def __init__(self, events: EventStore, config: Config | None = None) -> None:
        self._events = events
        self._config = config or Config()
        self._checks = {
            "tests_run_recently": self._tests_run_recently,
            "tests_passing": self._tests_passing,
            "no_uncommitted_changes": self._no_uncommitted_changes,
            "version_bumped": self._version_bumped,
            "terraform_plan_reviewed": self._terraform_plan_reviewed,
        }

    def evaluate(self, command: str, directory: str) -> list[CheckResult]:
        results = []
        for name in check_preconditions(command):
            check = self._checks.get(name)
            if check is None:
                results.append(CheckResult(name, None, "Not tracked in command history"))
            else:
                results.append(check(name, directory))
        return results

    def advise(self, command: str, directory: str) -> Advice:
        advice = Advice(risk=assess_risk(command), checks=self.evaluate(command, directory))
        if advice.has_concerns:
            logger.info(f"Advice for '{redact(command)}': {advice.risk.level.value} risk")
        log_activity(
            "advise",
            {
                "command": redact(command),
                "directory": directory,
                "risk": advice.risk.level.value,
                "failed_checks": [check.name for check in advice.failed_checks],
            },
            log_path=self._config.activity_log_path,
        )
        return advice

    def _latest(self, directory: str, **criteria):
        found = self._events.query(EventFilter(directory=directory, **criteria), limit=1)
        return found[0] if found else None

    def _tests_run_recently(self, name: str, directory: str) -> CheckResult:
        minutes = self._config.recent_test_minutes
        since = datetime.now() - timedelta(minutes=minutes)
        event = self._latest(directory, semantic_type="testing", succeeded=True, since=since)
        if event is None:
            return CheckResult(name, False, f"No passing tests in the last {minutes} minutes")
        return CheckResult(name, True, f"Tests passed: {event.command}")

    def _tests_passing(self, name: str, directory: str) -> CheckResult:
        event = self._latest(directory, semantic_type="testing")
        if event is None or event.is_provisional:
            return CheckResult(name, None, f"No test runs recorded in {Path(directory).name}")
        if event.succeeded:
            return CheckResult(name, True, f"Last test run passed: {event.command}")
        return CheckResult(name, False, f"Last test run failed: {event.command}")

    def _no_uncommitted_changes(self, name: str, directory: str) -> CheckResult:
        edit = self._latest(directory, semantic_type="editing")
        commit = self._latest(directory, text="git commit", succeeded=True)
        if edit is None and commit is None:
            return CheckResult(name, None, "No edits or commits recorded here")
        if commit is None or (edit is not None and edit.id > commit.id):
            return CheckResult(name, False, "Files were edited after the last commit")
        return CheckResult(name, True, "No edits since the last commit")

    def _version_bumped(self, name: str, directory: str) -> CheckResult:
        recent = self._events.query(EventFilter(directory=directory, succeeded=True), limit=BUMP_LOOKBACK)
        bump = next((event for event in recent if is_version_bump(event.command)), None)
        if bump is None:
            return CheckResult(name, None, "No version bump recorded here")
        return CheckResult(name, True, f"Version bumped: {bump.command}")

    def _terraform_plan_reviewed(self, name: str, directory: str) -> CheckResult:
        plan = self._latest(directory, text="terraform plan", succeeded=True)
        if plan is None:
            return CheckResult(name, False, "No successful terraform plan in this directory")
        return CheckResult(name, True, f"Plan reviewed at {plan.timestamp:%H:%M}")
