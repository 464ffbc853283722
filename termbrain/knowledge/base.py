"""Confidence-scored knowledge base.

Entries start at a baseline confidence and only ever gain confidence through
reinforcement, capped at a configured maximum. Nothing decays.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import Counter
from datetime import datetime

from termbrain.config import Config
from termbrain.errors import ValidationError
from termbrain.models import Knowledge
from termbrain.session import SessionContext
from termbrain.storage.db import from_db_time, like_substring, to_db_time
from termbrain.storage.events import EventStore

logger = logging.getLogger(__name__)

SOURCES = ("experience", "error", "documentation")
DEFAULT_TOPIC = "general"
RESOLUTION_PREFIX = "Error fixed by: "


class KnowledgeBase:
    """Owns the knowledge table."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        events: EventStore,
        config: Config | None = None,
    ) -> None:
        self._conn = conn
        self._events = events
        self._config = config or Config()

    def record(self, topic: str, insight: str, source: str = "experience") -> Knowledge:
        """Store a new insight at baseline confidence."""
        topic = topic.strip()
        insight = insight.strip()
        if not topic:
            raise ValidationError("Knowledge topic cannot be empty")
        if not insight:
            raise ValidationError("Knowledge insight cannot be empty")
        if source not in SOURCES:
            raise ValidationError(
                f"Unknown knowledge source '{source}'; expected one of {', '.join(SOURCES)}"
            )

        now = datetime.now()
        cursor = self._conn.execute(
            """INSERT INTO knowledge (topic, insight, confidence, source, verified, created_at, last_used)
            VALUES (?, ?, ?, ?, 0, ?, ?)""",
            (topic, insight, self._config.knowledge_baseline, source, to_db_time(now), to_db_time(now)),
        )
        self._conn.commit()
        logger.debug(f"Recorded knowledge #{cursor.lastrowid} under '{topic}'")
        return Knowledge(
            id=cursor.lastrowid,
            topic=topic,
            insight=insight,
            confidence=self._config.knowledge_baseline,
            source=source,
            created_at=now,
            last_used=now,
        )

    def reinforce(self, topic: str, insight_substring: str) -> list[Knowledge]:
        """Raise confidence of matching entries by one and mark them verified.

        Returns the updated entries; an empty list when nothing matched.
        """
        rows = self._conn.execute(
            "SELECT id FROM knowledge WHERE topic = ? AND insight LIKE ? ESCAPE '\\'",
            (topic, like_substring(insight_substring)),
        ).fetchall()
        if not rows:
            return []

        ids = [row["id"] for row in rows]
        placeholders = ",".join("?" for _ in ids)
        self._conn.execute(
            f"""UPDATE knowledge
            SET confidence = MIN(confidence + 1, ?), verified = 1, last_used = ?
            WHERE id IN ({placeholders})""",
            (self._config.knowledge_max, to_db_time(datetime.now()), *ids),
        )
        self._conn.commit()

        updated = self._conn.execute(
            f"SELECT * FROM knowledge WHERE id IN ({placeholders}) ORDER BY id", ids
        ).fetchall()
        return [self._row_to_knowledge(row) for row in updated]

    def find_by_topic(self, query: str, limit: int = 10) -> list[Knowledge]:
        """Entries whose topic or insight contains ``query``, most trusted first."""
        rows = self._conn.execute(
            """SELECT * FROM knowledge
            WHERE topic LIKE ? ESCAPE '\\' OR insight LIKE ? ESCAPE '\\'
            ORDER BY confidence DESC, last_used DESC, id DESC
            LIMIT ?""",
            (like_substring(query), like_substring(query), limit),
        ).fetchall()
        return [self._row_to_knowledge(row) for row in rows]

    def relevant(self, topic: str, min_confidence: int = 7, limit: int = 3) -> list[Knowledge]:
        """High-confidence entries for a topic, used by suggestions."""
        rows = self._conn.execute(
            """SELECT * FROM knowledge
            WHERE topic = ? AND confidence >= ?
            ORDER BY confidence DESC, last_used DESC
            LIMIT ?""",
            (topic, min_confidence, limit),
        ).fetchall()
        return [self._row_to_knowledge(row) for row in rows]

    def derive_topic(self, session: SessionContext) -> str:
        """Most frequent semantic type among the session's recent commands.

        Ties go to the type seen most recently.
        """
        recent = self._events.recent_types(session.session_id, self._config.topic_window)
        if not recent:
            return DEFAULT_TOPIC

        counts = Counter(recent)
        best = max(counts.values())
        # recent is newest first, so the first type at the top count wins the tie
        for semantic_type in recent:
            if counts[semantic_type] == best:
                return semantic_type
        return DEFAULT_TOPIC

    def extract(self, session: SessionContext, insight: str, source: str = "experience") -> Knowledge:
        """Record an insight under the topic the session is working on."""
        return self.record(self.derive_topic(session), insight, source)

    def learn_from_resolution(self, session: SessionContext, solution: str) -> list[Knowledge]:
        """Learn from a command that fixed the session's last error.

        A repeat of a known fix reinforces it; a new fix is recorded.
        """
        topic = self.derive_topic(session)
        reinforced = self.reinforce(topic, solution)
        if reinforced:
            logger.info(f"Reinforced {len(reinforced)} '{topic}' insight(s) for fix: {solution}")
            return reinforced
        entry = self.record(topic, f"{RESOLUTION_PREFIX}{solution}", source="error")
        logger.info(f"Learned new '{topic}' fix: {solution}")
        return [entry]

    def totals(self) -> dict[str, int]:
        row = self._conn.execute(
            """SELECT COUNT(*) AS total, COALESCE(SUM(verified), 0) AS verified
            FROM knowledge"""
        ).fetchone()
        return {"total": row["total"], "verified": row["verified"]}

    def _row_to_knowledge(self, row: sqlite3.Row) -> Knowledge:
        return Knowledge(
            id=row["id"],
            topic=row["topic"],
            insight=row["insight"],
            confidence=row["confidence"],
            source=row["source"],
            verified=bool(row["verified"]),
            created_at=from_db_time(row["created_at"]),
            last_used=from_db_time(row["last_used"]),
        )
