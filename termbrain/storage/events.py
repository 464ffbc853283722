"""Append-only command event store.

``EventStore`` is the contract the rest of termbrain codes against;
``SqliteEventStore`` is the implementation backed by the termbrain database.

Privacy rule: raw command text of a sensitive event is only returned by
``get()``. Listings never include sensitive rows, and aggregates over them
are only ever grouped by semantic type.
"""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from termbrain.models import CommandEvent, ErrorRecord
from termbrain.storage.db import from_db_time, like_substring, to_db_time

# group key -> SQL expression
GROUP_COLUMNS = {
    "semantic_type": "semantic_type",
    "project_type": "project_type",
    "intent": "intent",
    "hour": "strftime('%H', timestamp)",
    "directory": "directory",
}


@dataclass
class EventFilter:
    text: str | None = None  # Substring of the raw command
    semantic_type: str | None = None
    session_id: str | None = None
    directory: str | None = None
    since: datetime | None = None
    succeeded: bool | None = None  # None: any outcome, including provisional


@dataclass
class AggregateRow:
    key: str | None
    count: int
    successes: int
    avg_duration_ms: float | None
    timed: int = 0  # Rows with a recorded duration

    @property
    def success_rate(self) -> float:
        return self.successes / self.count if self.count else 0.0


class EventStore(ABC):
    """Storage contract for command events and the error log."""

    @abstractmethod
    def append(self, event: CommandEvent) -> int:
        """Store a provisional event and return its id."""

    @abstractmethod
    def finalize(self, event_id: int, exit_code: int, duration_ms: int) -> bool:
        """Attach the outcome to a provisional event. Returns False if nothing changed."""

    @abstractmethod
    def get(self, event_id: int) -> CommandEvent | None:
        ...

    @abstractmethod
    def query(self, event_filter: EventFilter | None = None, limit: int = 100) -> list[CommandEvent]:
        ...

    @abstractmethod
    def aggregate(self, group_by: str, since: datetime | None = None) -> list[AggregateRow]:
        ...

    @abstractmethod
    def top_commands(self, limit: int = 10, since: datetime | None = None) -> list[tuple[str, int]]:
        ...

    @abstractmethod
    def recent_types(self, session_id: str, limit: int = 10) -> list[str]:
        ...

    @abstractmethod
    def record_error(
        self, command_id: int, session_id: str, exit_code: int | None, error_output: str = ""
    ) -> int:
        ...

    @abstractmethod
    def latest_error(self, session_id: str) -> ErrorRecord | None:
        ...

    @abstractmethod
    def resolve_error(self, error_id: int, solution_command_id: int, solution: str) -> bool:
        ...

    @abstractmethod
    def error_counts(self, since: datetime | None = None) -> dict[str, int]:
        ...


class SqliteEventStore(EventStore):
    """Event store on the termbrain SQLite database."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def append(self, event: CommandEvent) -> int:
        cursor = self._conn.execute(
            """INSERT INTO commands
            (timestamp, command, directory, git_branch, project_type, semantic_type,
             intent, complexity, session_id, exit_code, duration_ms, is_sensitive)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                to_db_time(event.timestamp),
                event.command,
                event.directory,
                event.git_branch,
                event.project_type,
                event.semantic_type,
                event.intent,
                event.complexity,
                event.session_id,
                event.exit_code,
                event.duration_ms,
                int(event.is_sensitive),
            ),
        )
        self._conn.commit()
        return cursor.lastrowid

    def finalize(self, event_id: int, exit_code: int, duration_ms: int) -> bool:
        cursor = self._conn.execute(
            """UPDATE commands SET exit_code = ?, duration_ms = ?
            WHERE id = ? AND exit_code IS NULL""",
            (exit_code, duration_ms, event_id),
        )
        self._conn.commit()
        return cursor.rowcount == 1

    def get(self, event_id: int) -> CommandEvent | None:
        row = self._conn.execute(
            "SELECT * FROM commands WHERE id = ?", (event_id,)
        ).fetchone()
        return self._row_to_event(row) if row else None

    def query(self, event_filter: EventFilter | None = None, limit: int = 100) -> list[CommandEvent]:
        """Non-sensitive events matching the filter, newest first."""
        f = event_filter or EventFilter()
        query = "SELECT * FROM commands WHERE is_sensitive = 0"
        params: list = []

        if f.text:
            query += " AND command LIKE ? ESCAPE '\\'"
            params.append(like_substring(f.text))
        if f.semantic_type:
            query += " AND semantic_type = ?"
            params.append(f.semantic_type)
        if f.session_id:
            query += " AND session_id = ?"
            params.append(f.session_id)
        if f.directory:
            query += " AND directory = ?"
            params.append(f.directory)
        if f.since:
            query += " AND timestamp >= ?"
            params.append(to_db_time(f.since))
        if f.succeeded is True:
            query += " AND exit_code = 0"
        elif f.succeeded is False:
            query += " AND exit_code != 0"

        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_event(row) for row in rows]

    def aggregate(self, group_by: str, since: datetime | None = None) -> list[AggregateRow]:
        """Count events per group, most frequent first."""
        if group_by not in GROUP_COLUMNS:
            raise ValueError(
                f"Cannot group by '{group_by}'; expected one of {', '.join(GROUP_COLUMNS)}"
            )
        column = GROUP_COLUMNS[group_by]
        query = f"""
            SELECT {column} AS key,
                   COUNT(*) AS count,
                   SUM(CASE WHEN exit_code = 0 THEN 1 ELSE 0 END) AS successes,
                   AVG(duration_ms) AS avg_duration_ms,
                   COUNT(duration_ms) AS timed
            FROM commands
            WHERE 1=1
        """
        params: list = []
        if group_by != "semantic_type":
            query += " AND is_sensitive = 0"
        if since:
            query += " AND timestamp >= ?"
            params.append(to_db_time(since))
        query += " GROUP BY key ORDER BY count DESC, key"

        rows = self._conn.execute(query, params).fetchall()
        return [
            AggregateRow(
                key=row["key"],
                count=row["count"],
                successes=row["successes"] or 0,
                avg_duration_ms=row["avg_duration_ms"],
                timed=row["timed"],
            )
            for row in rows
        ]

    def top_commands(self, limit: int = 10, since: datetime | None = None) -> list[tuple[str, int]]:
        """Most repeated non-sensitive command lines."""
        query = "SELECT command, COUNT(*) AS count FROM commands WHERE is_sensitive = 0"
        params: list = []
        if since:
            query += " AND timestamp >= ?"
            params.append(to_db_time(since))
        query += " GROUP BY command ORDER BY count DESC, command LIMIT ?"
        params.append(limit)
        rows = self._conn.execute(query, params).fetchall()
        return [(row["command"], row["count"]) for row in rows]

    def recent_types(self, session_id: str, limit: int = 10) -> list[str]:
        rows = self._conn.execute(
            """SELECT semantic_type FROM commands
            WHERE session_id = ?
            ORDER BY id DESC LIMIT ?""",
            (session_id, limit),
        ).fetchall()
        return [row["semantic_type"] for row in rows]

    def record_error(
        self, command_id: int, session_id: str, exit_code: int | None, error_output: str = ""
    ) -> int:
        cursor = self._conn.execute(
            """INSERT INTO errors (timestamp, command_id, session_id, exit_code, error_output)
            VALUES (?, ?, ?, ?, ?)""",
            (to_db_time(datetime.now()), command_id, session_id, exit_code, error_output),
        )
        self._conn.commit()
        return cursor.lastrowid

    def latest_error(self, session_id: str) -> ErrorRecord | None:
        row = self._conn.execute(
            "SELECT * FROM errors WHERE session_id = ? ORDER BY id DESC LIMIT 1",
            (session_id,),
        ).fetchone()
        return self._row_to_error(row) if row else None

    def resolve_error(self, error_id: int, solution_command_id: int, solution: str) -> bool:
        cursor = self._conn.execute(
            """UPDATE errors
            SET solution_command_id = ?, solution = ?, solved = 1, solved_at = ?
            WHERE id = ? AND solved = 0""",
            (solution_command_id, solution, to_db_time(datetime.now()), error_id),
        )
        self._conn.commit()
        return cursor.rowcount == 1

    def error_counts(self, since: datetime | None = None) -> dict[str, int]:
        query = "SELECT COUNT(*) AS total, COALESCE(SUM(solved), 0) AS solved FROM errors"
        params: list = []
        if since:
            query += " WHERE timestamp >= ?"
            params.append(to_db_time(since))
        row = self._conn.execute(query, params).fetchone()
        return {"total_errors": row["total"], "solved_errors": row["solved"]}

    def _row_to_event(self, row: sqlite3.Row) -> CommandEvent:
        return CommandEvent(
            id=row["id"],
            command=row["command"],
            directory=row["directory"] or "",
            session_id=row["session_id"],
            semantic_type=row["semantic_type"],
            intent=row["intent"] or "unknown",
            complexity=row["complexity"],
            project_type=row["project_type"] or "unknown",
            git_branch=row["git_branch"],
            is_sensitive=bool(row["is_sensitive"]),
            exit_code=row["exit_code"],
            duration_ms=row["duration_ms"],
            timestamp=from_db_time(row["timestamp"]),
        )

    def _row_to_error(self, row: sqlite3.Row) -> ErrorRecord:
        return ErrorRecord(
            id=row["id"],
            command_id=row["command_id"],
            session_id=row["session_id"],
            exit_code=row["exit_code"],
            error_output=row["error_output"] or "",
            solution_command_id=row["solution_command_id"],
            solution=row["solution"],
            solved=bool(row["solved"]),
            timestamp=from_db_time(row["timestamp"]),
            solved_at=from_db_time(row["solved_at"]),
        )
