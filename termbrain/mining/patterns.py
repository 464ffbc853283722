"""Pattern mining over the command log.

Each pass reads the log inside one transaction and upserts its findings
into the patterns table, keyed by payload. Frequencies are recomputed from
scratch every time, so running a pass twice over the same log leaves the
table unchanged.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from termbrain.activity import log_activity
from termbrain.config import Config
from termbrain.models import Pattern, PatternKind
from termbrain.storage.db import from_db_time, to_db_time, transaction

logger = logging.getLogger(__name__)

PROJECT_MIN_FREQUENCY = 3

SEQUENCE_SQL = """
WITH ordered AS (
    SELECT semantic_type, exit_code,
           LEAD(semantic_type) OVER w AS next_type,
           LEAD(timestamp) OVER w AS next_timestamp
    FROM commands
    WINDOW w AS (PARTITION BY session_id ORDER BY id)
)
SELECT semantic_type AS first, next_type AS second,
       COUNT(*) AS frequency, MAX(next_timestamp) AS last_seen
FROM ordered
WHERE next_type IS NOT NULL AND exit_code = 0
GROUP BY first, second
HAVING COUNT(*) >= ?
ORDER BY frequency DESC, first, second
"""

TRIPLE_SQL = """
WITH ordered AS (
    SELECT semantic_type, exit_code,
           LEAD(semantic_type, 1) OVER w AS second,
           LEAD(exit_code, 1) OVER w AS second_exit,
           LEAD(semantic_type, 2) OVER w AS third,
           LEAD(exit_code, 2) OVER w AS third_exit,
           LEAD(timestamp, 2) OVER w AS third_timestamp
    FROM commands
    WINDOW w AS (PARTITION BY session_id ORDER BY id)
)
SELECT semantic_type AS first, second, third,
       COUNT(*) AS frequency, MAX(third_timestamp) AS last_seen
FROM ordered
WHERE third IS NOT NULL AND exit_code = 0 AND second_exit = 0 AND third_exit = 0
GROUP BY first, second, third
HAVING COUNT(*) >= ?
ORDER BY frequency DESC, first, second, third
"""

TIME_SQL = """
SELECT strftime('%H', timestamp) AS hour, semantic_type,
       COUNT(*) AS frequency, MAX(timestamp) AS last_seen
FROM commands
WHERE timestamp >= ?
GROUP BY hour, semantic_type
HAVING COUNT(*) >= ?
ORDER BY frequency DESC, hour, semantic_type
"""

ERROR_FIX_SQL = """
SELECT c.semantic_type AS error_type, e.solution AS solution,
       COUNT(*) AS frequency, MAX(e.solved_at) AS last_seen
FROM errors e
JOIN commands c ON c.id = e.command_id
LEFT JOIN commands s ON s.id = e.solution_command_id
WHERE e.solved = 1 AND e.solution IS NOT NULL AND COALESCE(s.is_sensitive, 0) = 0
GROUP BY error_type, e.solution
HAVING COUNT(*) >= ?
ORDER BY frequency DESC, error_type, solution
"""

PROJECT_SQL = """
SELECT project_type, semantic_type,
       COUNT(*) AS frequency, MAX(timestamp) AS last_seen
FROM commands
WHERE project_type IS NOT NULL AND project_type != 'unknown'
GROUP BY project_type, semantic_type
HAVING COUNT(*) >= ?
ORDER BY frequency DESC, project_type, semantic_type
"""


@dataclass
class MiningReport:
    found: dict[str, int] = field(default_factory=dict)  # kind -> patterns upserted
    errors: dict[str, str] = field(default_factory=dict)  # kind -> failure message
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def total(self) -> int:
        return sum(self.found.values())


class PatternMiner:
    """Owns the patterns table."""

    def __init__(self, conn: sqlite3.Connection, config: Config | None = None) -> None:
        self._conn = conn
        self._config = config or Config()

    def mine_sequences(self) -> list[Pattern]:
        """Pairs of semantic types that follow each other within a session."""
        with transaction(self._conn):
            rows = self._conn.execute(
                SEQUENCE_SQL, (self._config.sequence_min_frequency,)
            ).fetchall()
            patterns = [
                Pattern(
                    kind=PatternKind.SEQUENCE.value,
                    key=f"{row['first']}->{row['second']}",
                    data={"sequence": [row["first"], row["second"]]},
                    frequency=row["frequency"],
                    last_seen=from_db_time(row["last_seen"]),
                )
                for row in rows
            ]
            self._upsert(patterns)
        return patterns

    def mine_time_habits(self, now: datetime | None = None) -> list[Pattern]:
        """Semantic types the user reaches for at a given hour."""
        since = (now or datetime.now()) - timedelta(days=self._config.time_window_days)
        with transaction(self._conn):
            rows = self._conn.execute(
                TIME_SQL, (to_db_time(since), self._config.time_min_frequency)
            ).fetchall()
            patterns = [
                Pattern(
                    kind=PatternKind.TIME.value,
                    key=f"time:{row['hour']}:{row['semantic_type']}",
                    data={"hour": int(row["hour"]), "semantic_type": row["semantic_type"]},
                    frequency=row["frequency"],
                    last_seen=from_db_time(row["last_seen"]),
                )
                for row in rows
            ]
            self._upsert(patterns)
        return patterns

    def mine_error_fixes(self) -> list[Pattern]:
        """Solutions that repeatedly fixed the same kind of failing command."""
        with transaction(self._conn):
            rows = self._conn.execute(
                ERROR_FIX_SQL, (self._config.error_fix_min_frequency,)
            ).fetchall()
            patterns = [
                Pattern(
                    kind=PatternKind.ERROR_FIX.value,
                    key=f"error-fix:{row['error_type']}:{row['solution']}",
                    data={"error_type": row["error_type"], "solution": row["solution"]},
                    frequency=row["frequency"],
                    last_seen=from_db_time(row["last_seen"]),
                )
                for row in rows
            ]
            self._upsert(patterns)
        return patterns

    def mine_workflow_candidates(self) -> list[Pattern]:
        """Recurring successful chains worth saving as workflows.

        Candidates are only ever suggested; nothing here creates a workflow.
        """
        with transaction(self._conn):
            pairs = self._conn.execute(
                SEQUENCE_SQL, (self._config.sequence_min_frequency,)
            ).fetchall()
            triples = self._conn.execute(
                TRIPLE_SQL, (self._config.workflow_min_frequency,)
            ).fetchall()

            patterns = []
            for row in pairs:
                steps = [row["first"], row["second"]]
                patterns.append(self._candidate(steps, row["frequency"], row["last_seen"]))
            for row in triples:
                steps = [row["first"], row["second"], row["third"]]
                patterns.append(self._candidate(steps, row["frequency"], row["last_seen"]))
            self._upsert(patterns)
        return patterns

    def mine_project_habits(self) -> list[Pattern]:
        """Semantic types used most in each kind of project."""
        with transaction(self._conn):
            rows = self._conn.execute(PROJECT_SQL, (PROJECT_MIN_FREQUENCY,)).fetchall()
            patterns = [
                Pattern(
                    kind=PatternKind.PROJECT.value,
                    key=f"project:{row['project_type']}:{row['semantic_type']}",
                    data={
                        "project_type": row["project_type"],
                        "semantic_type": row["semantic_type"],
                    },
                    frequency=row["frequency"],
                    last_seen=from_db_time(row["last_seen"]),
                )
                for row in rows
            ]
            self._upsert(patterns)
        return patterns

    def mine_all(self, now: datetime | None = None) -> MiningReport:
        """Run every pass. A failing pass is logged and the rest still run."""
        start = time.monotonic()
        report = MiningReport()
        passes = [
            (PatternKind.SEQUENCE, self.mine_sequences),
            (PatternKind.TIME, lambda: self.mine_time_habits(now)),
            (PatternKind.ERROR_FIX, self.mine_error_fixes),
            (PatternKind.WORKFLOW_CANDIDATE, self.mine_workflow_candidates),
            (PatternKind.PROJECT, self.mine_project_habits),
        ]
        for kind, mine in passes:
            try:
                report.found[kind.value] = len(mine())
            except sqlite3.Error as e:
                logger.error(f"Mining pass '{kind.value}' failed: {e}")
                report.errors[kind.value] = str(e)

        report.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"Mined {report.total} patterns in {report.duration_ms}ms")
        log_activity(
            "mine",
            {"found": report.found},
            error="; ".join(f"{k}: {v}" for k, v in report.errors.items()) or None,
            duration_ms=report.duration_ms,
            log_path=self._config.activity_log_path,
        )
        return report

    def get_patterns(self, kind: str | None = None, limit: int = 50) -> list[Pattern]:
        """Stored patterns, most frequent first."""
        query = "SELECT * FROM patterns"
        params: list = []
        if kind:
            query += " WHERE kind = ?"
            params.append(kind)
        query += " ORDER BY frequency DESC, key LIMIT ?"
        params.append(limit)

        rows = self._conn.execute(query, params).fetchall()
        return [
            Pattern(
                id=row["id"],
                kind=row["kind"],
                key=row["key"],
                data=json.loads(row["data"]) if row["data"] else {},
                frequency=row["frequency"],
                last_seen=from_db_time(row["last_seen"]),
            )
            for row in rows
        ]

    def _candidate(self, steps: list[str], frequency: int, last_seen: str | None) -> Pattern:
        return Pattern(
            kind=PatternKind.WORKFLOW_CANDIDATE.value,
            key="workflow:" + "-".join(steps),
            data={"steps": steps},
            frequency=frequency,
            last_seen=from_db_time(last_seen),
        )

    def _upsert(self, patterns: list[Pattern]) -> None:
        for pattern in patterns:
            self._conn.execute(
                """INSERT INTO patterns (kind, key, data, frequency, last_seen)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    data = excluded.data,
                    frequency = excluded.frequency,
                    last_seen = excluded.last_seen""",
                (
                    pattern.kind,
                    pattern.key,
                    json.dumps(pattern.data, sort_keys=True),
                    pattern.frequency,
                    to_db_time(pattern.last_seen),
                ),
            )
