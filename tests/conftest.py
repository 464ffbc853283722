"""Shared test fixtures for termbrain."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

import pytest

from termbrain.capture import CommandRecorder
from termbrain.classification.classifier import classify
from termbrain.classification.sensitivity import is_sensitive
from termbrain.config import Config
from termbrain.knowledge.base import KnowledgeBase
from termbrain.mining.patterns import PatternMiner
from termbrain.models import CommandEvent
from termbrain.session import SessionContext
from termbrain.storage.db import get_connection
from termbrain.storage.events import SqliteEventStore
from termbrain.workflows.engine import WorkflowEngine


class FakeExecutor:
    """Stands in for the shell: returns scripted exit codes and records calls."""

    def __init__(self, exit_codes: dict[str, int] | None = None) -> None:
        self.exit_codes = exit_codes or {}
        self.calls: list[str] = []

    def __call__(self, command: str) -> int:
        self.calls.append(command)
        return self.exit_codes.get(command, 0)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def db_conn(db_path: Path) -> sqlite3.Connection:
    conn = get_connection(db_path)
    yield conn
    conn.close()


@pytest.fixture
def config(db_path: Path, tmp_path: Path) -> Config:
    return Config(db_path=db_path, log_path=tmp_path / "activity.jsonl")


@pytest.fixture
def events(db_conn: sqlite3.Connection) -> SqliteEventStore:
    return SqliteEventStore(db_conn)


@pytest.fixture
def knowledge(db_conn: sqlite3.Connection, events: SqliteEventStore, config: Config) -> KnowledgeBase:
    return KnowledgeBase(db_conn, events, config)


@pytest.fixture
def recorder(events: SqliteEventStore, knowledge: KnowledgeBase, config: Config) -> CommandRecorder:
    return CommandRecorder(events, knowledge, config)


@pytest.fixture
def miner(db_conn: sqlite3.Connection, config: Config) -> PatternMiner:
    return PatternMiner(db_conn, config)


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def workflows(db_conn: sqlite3.Connection, executor: FakeExecutor) -> WorkflowEngine:
    return WorkflowEngine(db_conn, executor=executor)


@pytest.fixture
def session(tmp_path: Path) -> SessionContext:
    return SessionContext(session_id="session-test", directory=str(tmp_path))


@pytest.fixture
def add_command(events: SqliteEventStore):
    """Append a classified, finished command straight into the store."""

    def _add(
        command: str,
        session_id: str = "session-test",
        exit_code: int | None = 0,
        directory: str = "/work/app",
        timestamp: datetime | None = None,
        duration_ms: int | None = 100,
    ) -> int:
        classification = classify(command, directory)
        event = CommandEvent(
            command=command,
            directory=directory,
            session_id=session_id,
            semantic_type=classification.semantic_type,
            intent=classification.intent,
            complexity=classification.complexity,
            project_type=classification.project_type,
            is_sensitive=is_sensitive(command),
            exit_code=exit_code,
            duration_ms=duration_ms if exit_code is not None else None,
            timestamp=timestamp or datetime.now(),
        )
        return events.append(event)

    return _add
