"""Goal journal: what the user set out to do and how it went."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime

from termbrain.classification.project import detect_project_type
from termbrain.errors import ValidationError
from termbrain.knowledge.base import KnowledgeBase
from termbrain.models import Intention
from termbrain.session import SessionContext
from termbrain.storage.db import from_db_time, to_db_time
from termbrain.storage.events import EventStore

logger = logging.getLogger(__name__)

CONTEXT_RECENT_TYPES = 5


class IntentionTracker:
    """Owns the intentions table. At most one open intention per session."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        events: EventStore,
        knowledge: KnowledgeBase | None = None,
    ) -> None:
        self._conn = conn
        self._events = events
        self._knowledge = knowledge

    def start(self, session: SessionContext, goal: str) -> Intention:
        goal = goal.strip()
        if not goal:
            raise ValidationError("Intention goal cannot be empty")
        open_intention = self.current(session)
        if open_intention is not None:
            raise ValidationError(
                f"Session already has an open intention: '{open_intention.goal}'"
            )

        context = {
            "directory": session.directory,
            "git_branch": session.git_branch,
            "project_type": detect_project_type(session.directory),
            "recent_types": self._events.recent_types(session.session_id, CONTEXT_RECENT_TYPES),
        }
        now = datetime.now()
        cursor = self._conn.execute(
            """INSERT INTO intentions (session_id, goal, context, started_at)
            VALUES (?, ?, ?, ?)""",
            (session.session_id, goal, json.dumps(context), to_db_time(now)),
        )
        self._conn.commit()
        logger.info(f"Started intention #{cursor.lastrowid}: {goal}")
        return Intention(
            id=cursor.lastrowid,
            goal=goal,
            session_id=session.session_id,
            context=context,
            started_at=now,
        )

    def complete(
        self, session: SessionContext, learnings: str = "", success: bool = True
    ) -> Intention | None:
        """Close the session's open intention. Returns None when there is none."""
        intention = self.current(session)
        if intention is None:
            return None

        now = datetime.now()
        time_spent = int((now - intention.started_at).total_seconds())
        cursor = self._conn.execute(
            """UPDATE intentions
            SET completed_at = ?, success = ?, learnings = ?, time_spent = ?
            WHERE id = ? AND completed_at IS NULL""",
            (to_db_time(now), int(success), learnings, time_spent, intention.id),
        )
        self._conn.commit()
        if cursor.rowcount != 1:
            return None

        intention.completed_at = now
        intention.success = success
        intention.learnings = learnings
        intention.time_spent = time_spent

        if success and learnings.strip() and self._knowledge is not None:
            self._knowledge.extract(session, learnings, source="experience")
        return intention

    def current(self, session: SessionContext) -> Intention | None:
        row = self._conn.execute(
            """SELECT * FROM intentions
            WHERE session_id = ? AND completed_at IS NULL
            ORDER BY id DESC LIMIT 1""",
            (session.session_id,),
        ).fetchone()
        return self._row_to_intention(row) if row else None

    def recent(self, limit: int = 10) -> list[Intention]:
        rows = self._conn.execute(
            "SELECT * FROM intentions ORDER BY started_at DESC, id DESC LIMIT ?", (limit,)
        ).fetchall()
        return [self._row_to_intention(row) for row in rows]

    def success_patterns(self, min_count: int = 2) -> list[dict]:
        """Goals achieved repeatedly, with their average time."""
        rows = self._conn.execute(
            """SELECT goal, COUNT(*) AS count, AVG(time_spent) AS avg_time_spent
            FROM intentions
            WHERE success = 1
            GROUP BY goal
            HAVING COUNT(*) >= ?
            ORDER BY count DESC, goal""",
            (min_count,),
        ).fetchall()
        return [dict(row) for row in rows]

    def completed_count(self) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) AS n FROM intentions WHERE completed_at IS NOT NULL AND success = 1"
        ).fetchone()
        return row["n"]

    def _row_to_intention(self, row: sqlite3.Row) -> Intention:
        return Intention(
            id=row["id"],
            goal=row["goal"],
            session_id=row["session_id"],
            context=json.loads(row["context"]) if row["context"] else {},
            started_at=from_db_time(row["started_at"]),
            completed_at=from_db_time(row["completed_at"]),
            success=None if row["success"] is None else bool(row["success"]),
            learnings=row["learnings"] or "",
            time_spent=row["time_spent"],
        )
