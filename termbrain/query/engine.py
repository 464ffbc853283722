"""Query surface: search, statistics, suggestions and growth.

Everything returns plain dataclasses; formatting is left to the caller.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta

from termbrain.classification.classifier import semantic_type as classify_type
from termbrain.errors import ValidationError
from termbrain.intentions.flow import FlowTracker
from termbrain.intentions.tracker import IntentionTracker
from termbrain.knowledge.base import KnowledgeBase
from termbrain.mining.patterns import PatternMiner
from termbrain.models import CommandEvent, Knowledge, Pattern, PatternKind, Workflow
from termbrain.session import SessionContext
from termbrain.storage.events import EventFilter, EventStore
from termbrain.workflows.engine import WorkflowEngine

logger = logging.getLogger(__name__)

TIME_RANGES = ("today", "week", "month", "all")
PERFORMANCE_MIN_TIMED = 5  # Types need more timed runs than this to get a row


def since_for(time_range: str, now: datetime | None = None) -> datetime | None:
    """Start of a named time range; None for "all"."""
    now = now or datetime.now()
    if time_range == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if time_range == "week":
        return now - timedelta(days=7)
    if time_range == "month":
        return now - timedelta(days=30)
    if time_range == "all":
        return None
    raise ValidationError(
        f"Unknown time range '{time_range}'; expected one of {', '.join(TIME_RANGES)}"
    )


class _JsonMixin:
    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2, default=str)


@dataclass
class TypePerformance:
    semantic_type: str
    count: int
    avg_duration_ms: float | None
    error_rate: float


@dataclass
class StatsResult(_JsonMixin):
    time_range: str
    total_commands: int = 0
    successes: int = 0
    success_rate: float = 0.0
    avg_duration_ms: float | None = None
    by_semantic_type: dict[str, int] = field(default_factory=dict)
    performance: list[TypePerformance] = field(default_factory=list)
    top_commands: list[tuple[str, int]] = field(default_factory=list)
    total_errors: int = 0
    solved_errors: int = 0


@dataclass
class Suggestions(_JsonMixin):
    focus_area: str
    knowledge: list[Knowledge] = field(default_factory=list)
    workflows: list[Workflow] = field(default_factory=list)
    candidates: list[Pattern] = field(default_factory=list)
    likely_next: list[str] = field(default_factory=list)


@dataclass
class GrowthReport(_JsonMixin):
    knowledge_total: int = 0
    knowledge_verified: int = 0
    completed_intentions: int = 0
    patterns_found: int = 0
    avg_productivity: float | None = None  # Last 7 days


class QueryEngine:
    """Read-side facade over the stores."""

    def __init__(
        self,
        events: EventStore,
        knowledge: KnowledgeBase,
        workflows: WorkflowEngine,
        miner: PatternMiner,
        intentions: IntentionTracker,
        flow: FlowTracker,
    ) -> None:
        self._events = events
        self._knowledge = knowledge
        self._workflows = workflows
        self._miner = miner
        self._intentions = intentions
        self._flow = flow

    def search(
        self, text: str, limit: int = 20, semantic_type: str | None = None
    ) -> list[CommandEvent]:
        """Past commands containing ``text``, newest first. Sensitive ones never match."""
        return self._events.query(
            EventFilter(text=text or None, semantic_type=semantic_type), limit=limit
        )

    def stats(self, time_range: str = "all", now: datetime | None = None) -> StatsResult:
        since = since_for(time_range, now)
        groups = self._events.aggregate("semantic_type", since=since)

        result = StatsResult(time_range=time_range)
        result.total_commands = sum(group.count for group in groups)
        result.successes = sum(group.successes for group in groups)
        if result.total_commands:
            result.success_rate = result.successes / result.total_commands

        timed = sum(group.timed for group in groups)
        if timed:
            result.avg_duration_ms = (
                sum((group.avg_duration_ms or 0) * group.timed for group in groups) / timed
            )

        result.by_semantic_type = {group.key: group.count for group in groups}
        result.performance = [
            TypePerformance(
                semantic_type=group.key,
                count=group.count,
                avg_duration_ms=group.avg_duration_ms,
                error_rate=1 - group.success_rate,
            )
            for group in groups
            if group.timed > PERFORMANCE_MIN_TIMED
        ]
        result.top_commands = self._events.top_commands(limit=10, since=since)

        errors = self._events.error_counts(since=since)
        result.total_errors = errors["total_errors"]
        result.solved_errors = errors["solved_errors"]
        return result

    def suggest(self, session: SessionContext) -> Suggestions:
        """What might help with whatever the session is doing now."""
        focus = self._knowledge.derive_topic(session)
        suggestions = Suggestions(focus_area=focus)
        suggestions.knowledge = self._knowledge.relevant(focus)
        suggestions.workflows = [
            workflow
            for workflow in self._workflows.list()
            if any(classify_type(command) == focus for command in workflow.commands)
        ][:3]
        suggestions.candidates = [
            pattern
            for pattern in self._miner.get_patterns(PatternKind.WORKFLOW_CANDIDATE.value)
            if focus in pattern.data.get("steps", [])
        ][:3]

        recent = self._events.recent_types(session.session_id, limit=1)
        if recent:
            suggestions.likely_next = [
                pattern.data["sequence"][1]
                for pattern in self._miner.get_patterns(PatternKind.SEQUENCE.value)
                if pattern.data.get("sequence", [None])[0] == recent[0]
            ][:3]
        return suggestions

    def growth(self) -> GrowthReport:
        totals = self._knowledge.totals()
        return GrowthReport(
            knowledge_total=totals["total"],
            knowledge_verified=totals["verified"],
            completed_intentions=self._intentions.completed_count(),
            patterns_found=len(self._miner.get_patterns(limit=10_000)),
            avg_productivity=self._flow.average_productivity(days=7),
        )
