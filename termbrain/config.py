"""Configuration loading for termbrain.

Config sources (in priority order):
1. Explicit arguments passed to functions
2. Environment variables (TERMBRAIN_DB_PATH, TERMBRAIN_SEQUENCE_MIN, etc.)
3. .env file in current directory
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DB_PATH = Path.home() / ".termbrain" / "data" / "termbrain.db"
DEFAULT_IGNORED_DIRS = [".ssh", ".gnupg"]


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class Config:
    db_path: Path = DEFAULT_DB_PATH
    log_path: Path | None = None  # Activity log; defaults next to the DB

    # Mining thresholds
    sequence_min_frequency: int = 3
    time_min_frequency: int = 5
    time_window_days: int = 30
    error_fix_min_frequency: int = 2
    workflow_min_frequency: int = 2

    # Knowledge confidence range
    knowledge_baseline: int = 5
    knowledge_max: int = 10
    topic_window: int = 10  # Recent commands considered when deriving a topic

    recent_test_minutes: int = 30
    ignored_directories: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORED_DIRS))

    @classmethod
    def load(cls) -> Config:
        log_path = os.getenv("TERMBRAIN_LOG_PATH")
        ignored = os.getenv("TERMBRAIN_IGNORED_DIRS")
        return cls(
            db_path=Path(os.getenv("TERMBRAIN_DB_PATH", str(DEFAULT_DB_PATH))),
            log_path=Path(log_path) if log_path else None,
            sequence_min_frequency=_env_int("TERMBRAIN_SEQUENCE_MIN", 3),
            time_min_frequency=_env_int("TERMBRAIN_TIME_MIN", 5),
            time_window_days=_env_int("TERMBRAIN_TIME_WINDOW_DAYS", 30),
            error_fix_min_frequency=_env_int("TERMBRAIN_ERROR_FIX_MIN", 2),
            workflow_min_frequency=_env_int("TERMBRAIN_WORKFLOW_MIN", 2),
            knowledge_baseline=_env_int("TERMBRAIN_KNOWLEDGE_BASELINE", 5),
            knowledge_max=_env_int("TERMBRAIN_KNOWLEDGE_MAX", 10),
            topic_window=_env_int("TERMBRAIN_TOPIC_WINDOW", 10),
            recent_test_minutes=_env_int("TERMBRAIN_RECENT_TEST_MINUTES", 30),
            ignored_directories=(
                [d.strip() for d in ignored.split(",") if d.strip()]
                if ignored is not None
                else list(DEFAULT_IGNORED_DIRS)
            ),
        )

    @property
    def activity_log_path(self) -> Path:
        return self.log_path or self.db_path.parent / "termbrain-activity.jsonl"

    @property
    def flow_state_path(self) -> Path:
        return self.db_path.parent / "flow-state.json"

    def validate(self) -> list[str]:
        """Return a list of config issues."""
        issues = []
        thresholds = {
            "TERMBRAIN_SEQUENCE_MIN": self.sequence_min_frequency,
            "TERMBRAIN_TIME_MIN": self.time_min_frequency,
            "TERMBRAIN_TIME_WINDOW_DAYS": self.time_window_days,
            "TERMBRAIN_ERROR_FIX_MIN": self.error_fix_min_frequency,
            "TERMBRAIN_WORKFLOW_MIN": self.workflow_min_frequency,
            "TERMBRAIN_TOPIC_WINDOW": self.topic_window,
        }
        for name, value in thresholds.items():
            if value < 1:
                issues.append(f"{name} must be at least 1 (got {value})")
        if self.knowledge_baseline < 0:
            issues.append("Knowledge baseline confidence cannot be negative")
        if self.knowledge_baseline > self.knowledge_max:
            issues.append(
                "Knowledge baseline confidence exceeds the maximum "
                f"({self.knowledge_baseline} > {self.knowledge_max})"
            )
        return issues
