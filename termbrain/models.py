"""Core data models for termbrain."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class CommandEvent:
    command: str  # Raw command text as typed
    directory: str
    session_id: str
    semantic_type: str = "general"  # "version_control" | "testing" | ...
    intent: str = "unknown"  # "install" | "build" | "deploy" | ...
    complexity: int = 1  # 1-5
    project_type: str = "unknown"
    git_branch: str | None = None
    is_sensitive: bool = False
    exit_code: int | None = None  # None until the command finishes
    duration_ms: int | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    id: int | None = None

    @property
    def is_provisional(self) -> bool:
        return self.exit_code is None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@dataclass
class ErrorRecord:
    id: int
    command_id: int  # FK to the failing CommandEvent
    session_id: str
    exit_code: int | None = None
    error_output: str = ""
    solution_command_id: int | None = None
    solution: str | None = None  # Raw text of the command that fixed it
    solved: bool = False
    timestamp: datetime = field(default_factory=datetime.now)
    solved_at: datetime | None = None


class PatternKind(str, Enum):
    SEQUENCE = "sequence"
    TIME = "time"
    ERROR_FIX = "error-fix"
    WORKFLOW_CANDIDATE = "workflow-candidate"
    PROJECT = "project"


@dataclass
class Pattern:
    kind: str  # PatternKind value
    key: str  # Unique per payload, e.g. "version_control->testing"
    data: dict = field(default_factory=dict)
    frequency: int = 1
    last_seen: datetime | None = None
    id: int | None = None


@dataclass
class Knowledge:
    topic: str  # Usually a semantic type
    insight: str
    confidence: int = 5
    source: str = "experience"  # "experience" | "error" | "documentation"
    verified: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    last_used: datetime = field(default_factory=datetime.now)
    id: int | None = None


@dataclass
class Workflow:
    name: str
    commands: list[str] = field(default_factory=list)  # In position order
    description: str = ""
    times_used: int = 0
    success_rate: float = 0.0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    id: int | None = None


@dataclass
class Intention:
    goal: str
    session_id: str
    context: dict = field(default_factory=dict)  # Snapshot taken at start
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    success: bool | None = None
    learnings: str = ""
    time_spent: int | None = None  # seconds
    id: int | None = None

    @property
    def is_open(self) -> bool:
        return self.completed_at is None


@dataclass
class CognitiveState:
    focus_area: str
    productivity_score: int  # 1-10
    interruption_count: int = 0
    flow_duration: int = 0  # seconds
    energy_level: int = 5  # 1-10
    session_id: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    id: int | None = None
