"""Flow tracking: focus samples taken over a stretch of work."""

from __future__ import annotations

import logging
import sqlite3
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta

from termbrain.errors import ValidationError
from termbrain.models import CognitiveState
from termbrain.session import SessionContext
from termbrain.storage.db import to_db_time

logger = logging.getLogger(__name__)

DEFAULT_FOCUS = "general"


@dataclass
class FlowSession:
    """In-progress flow, owned by the caller between commands."""

    session_id: str
    started_at: datetime = field(default_factory=datetime.now)
    type_counts: dict[str, int] = field(default_factory=dict)
    last_type: str | None = None
    interruptions: int = 0  # Switches between semantic types

    def to_dict(self) -> dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> FlowSession:
        return cls(
            session_id=data["session_id"],
            started_at=datetime.fromisoformat(data["started_at"]),
            type_counts=dict(data.get("type_counts", {})),
            last_type=data.get("last_type"),
            interruptions=data.get("interruptions", 0),
        )


def _score(value: int, name: str) -> int:
    if not 1 <= value <= 10:
        raise ValidationError(f"{name} must be between 1 and 10 (got {value})")
    return value


class FlowTracker:
    """Owns the cognitive_state table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def start(self, session: SessionContext) -> FlowSession:
        return FlowSession(session_id=session.session_id)

    def note_command(self, flow: FlowSession, semantic_type: str) -> FlowSession:
        if flow.last_type is not None and semantic_type != flow.last_type:
            flow.interruptions += 1
        flow.type_counts[semantic_type] = flow.type_counts.get(semantic_type, 0) + 1
        flow.last_type = semantic_type
        return flow

    def end(self, flow: FlowSession, productivity: int, energy: int = 5) -> CognitiveState:
        """Close a flow and append its sample."""
        productivity = _score(productivity, "Productivity")
        energy = _score(energy, "Energy")

        focus = DEFAULT_FOCUS
        if flow.type_counts:
            focus = Counter(flow.type_counts).most_common(1)[0][0]
        now = datetime.now()
        state = CognitiveState(
            focus_area=focus,
            productivity_score=productivity,
            interruption_count=flow.interruptions,
            flow_duration=max(0, int((now - flow.started_at).total_seconds())),
            energy_level=energy,
            session_id=flow.session_id,
            timestamp=now,
        )
        cursor = self._conn.execute(
            """INSERT INTO cognitive_state
            (timestamp, session_id, focus_area, productivity_score, interruption_count,
             flow_duration, energy_level)
            VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                to_db_time(state.timestamp),
                state.session_id,
                state.focus_area,
                state.productivity_score,
                state.interruption_count,
                state.flow_duration,
                state.energy_level,
            ),
        )
        self._conn.commit()
        state.id = cursor.lastrowid
        logger.info(f"Flow ended: {focus} for {state.flow_duration}s")
        return state

    def average_productivity(self, days: int = 7) -> float | None:
        since = datetime.now() - timedelta(days=days)
        row = self._conn.execute(
            "SELECT AVG(productivity_score) AS avg FROM cognitive_state WHERE timestamp >= ?",
            (to_db_time(since),),
        ).fetchone()
        return row["avg"]
