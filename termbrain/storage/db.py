"""SQLite database setup and schema management."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from termbrain.errors import StoreError

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS commands (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    command TEXT NOT NULL,
    directory TEXT,
    git_branch TEXT,
    project_type TEXT,
    semantic_type TEXT NOT NULL,
    intent TEXT,
    complexity INTEGER NOT NULL DEFAULT 1,
    session_id TEXT NOT NULL,
    exit_code INTEGER,
    duration_ms INTEGER,
    is_sensitive INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS errors (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    command_id INTEGER NOT NULL REFERENCES commands(id),
    session_id TEXT NOT NULL,
    exit_code INTEGER,
    error_output TEXT,
    solution_command_id INTEGER REFERENCES commands(id),
    solution TEXT,
    solved INTEGER NOT NULL DEFAULT 0,
    solved_at TEXT
);

CREATE TABLE IF NOT EXISTS patterns (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    key TEXT NOT NULL UNIQUE,
    data TEXT NOT NULL,
    frequency INTEGER NOT NULL DEFAULT 1,
    last_seen TEXT
);

CREATE TABLE IF NOT EXISTS workflows (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    description TEXT,
    times_used INTEGER NOT NULL DEFAULT 0,
    success_rate REAL NOT NULL DEFAULT 0.0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS workflow_steps (
    workflow_id INTEGER NOT NULL REFERENCES workflows(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    command TEXT NOT NULL,
    PRIMARY KEY (workflow_id, position)
);

CREATE TABLE IF NOT EXISTS knowledge (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    topic TEXT NOT NULL,
    insight TEXT NOT NULL,
    confidence INTEGER NOT NULL DEFAULT 5,
    source TEXT NOT NULL,
    verified INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    last_used TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS intentions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    goal TEXT NOT NULL,
    context TEXT,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    success INTEGER,
    learnings TEXT,
    time_spent INTEGER
);

CREATE TABLE IF NOT EXISTS cognitive_state (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    session_id TEXT,
    focus_area TEXT,
    productivity_score INTEGER,
    interruption_count INTEGER NOT NULL DEFAULT 0,
    flow_duration INTEGER,
    energy_level INTEGER NOT NULL DEFAULT 5
);

CREATE INDEX IF NOT EXISTS idx_commands_timestamp ON commands(timestamp);
CREATE INDEX IF NOT EXISTS idx_commands_semantic ON commands(semantic_type);
CREATE INDEX IF NOT EXISTS idx_commands_session ON commands(session_id);
CREATE INDEX IF NOT EXISTS idx_errors_session ON errors(session_id);
CREATE INDEX IF NOT EXISTS idx_errors_solved ON errors(solved);
CREATE INDEX IF NOT EXISTS idx_patterns_kind ON patterns(kind);
CREATE INDEX IF NOT EXISTS idx_knowledge_topic ON knowledge(topic);
CREATE INDEX IF NOT EXISTS idx_intentions_session ON intentions(session_id);
"""


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Create or open a SQLite database with the termbrain schema."""
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

        conn.executescript(SCHEMA_SQL)
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION}")
        conn.commit()
    except (OSError, sqlite3.Error) as e:
        raise StoreError(f"Cannot open database at {db_path}: {e}") from e

    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block of reads and writes against a single snapshot."""
    conn.execute("BEGIN")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


def to_db_time(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def from_db_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def like_substring(text: str) -> str:
    """Substring LIKE pattern with wildcards in ``text`` matched literally.

    Use with ``ESCAPE '\\'``.
    """
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
