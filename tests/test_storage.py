"""Tests for termbrain.storage (db + event store)."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from termbrain.errors import StoreError
from termbrain.models import CommandEvent
from termbrain.storage.db import get_connection, transaction
from termbrain.storage.events import EventFilter, SqliteEventStore


class TestDatabase:
    def test_creates_tables(self, db_conn: sqlite3.Connection):
        tables = db_conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        ).fetchall()
        table_names = {row["name"] for row in tables}
        assert {
            "commands",
            "errors",
            "patterns",
            "workflows",
            "workflow_steps",
            "knowledge",
            "intentions",
            "cognitive_state",
        } <= table_names

    def test_wal_mode(self, db_conn: sqlite3.Connection):
        mode = db_conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode == "wal"

    def test_foreign_keys_on(self, db_conn: sqlite3.Connection):
        fk = db_conn.execute("PRAGMA foreign_keys").fetchone()[0]
        assert fk == 1

    def test_idempotent_schema(self, db_path: Path):
        conn1 = get_connection(db_path)
        conn1.close()
        conn2 = get_connection(db_path)
        tables = conn2.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
        conn2.close()
        assert len(tables) > 0

    def test_unopenable_path_raises_store_error(self, tmp_path: Path):
        with pytest.raises(StoreError):
            get_connection(tmp_path)

    def test_transaction_rolls_back(self, db_conn: sqlite3.Connection):
        with pytest.raises(RuntimeError):
            with transaction(db_conn):
                db_conn.execute(
                    "INSERT INTO patterns (kind, key, data, frequency) VALUES ('sequence', 'a->b', '{}', 3)"
                )
                raise RuntimeError("boom")
        count = db_conn.execute("SELECT COUNT(*) FROM patterns").fetchone()[0]
        assert count == 0


class TestAppendAndFinalize:
    def test_append_is_provisional(self, events: SqliteEventStore):
        event_id = events.append(CommandEvent(command="ls", directory="/tmp", session_id="s1"))
        stored = events.get(event_id)
        assert stored.is_provisional
        assert stored.command == "ls"

    def test_ids_are_monotonic(self, events: SqliteEventStore):
        first = events.append(CommandEvent(command="ls", directory="/tmp", session_id="s1"))
        second = events.append(CommandEvent(command="pwd", directory="/tmp", session_id="s1"))
        assert second > first

    def test_finalize_once(self, events: SqliteEventStore):
        event_id = events.append(CommandEvent(command="ls", directory="/tmp", session_id="s1"))
        assert events.finalize(event_id, 0, 12)
        assert not events.finalize(event_id, 1, 99)
        stored = events.get(event_id)
        assert stored.exit_code == 0
        assert stored.duration_ms == 12

    def test_finalize_unknown_id(self, events: SqliteEventStore):
        assert not events.finalize(999, 0, 1)

    def test_get_missing(self, events: SqliteEventStore):
        assert events.get(42) is None

    def test_get_shows_sensitive_detail(self, events: SqliteEventStore, add_command):
        event_id = add_command("export API_TOKEN=xyz")
        stored = events.get(event_id)
        assert stored.is_sensitive
        assert stored.command == "export API_TOKEN=xyz"


class TestQuery:
    def test_excludes_sensitive(self, events: SqliteEventStore, add_command):
        add_command("export API_TOKEN=xyz")
        add_command("ls -la")
        results = events.query()
        assert [e.command for e in results] == ["ls -la"]

    def test_text_match_never_finds_sensitive(self, events: SqliteEventStore, add_command):
        add_command("export API_TOKEN=xyz")
        assert events.query(EventFilter(text="TOKEN")) == []

    def test_text_wildcards_are_literal(self, events: SqliteEventStore, add_command):
        add_command("echo axb")
        add_command("echo a_b")
        add_command("echo 100%")
        assert [e.command for e in events.query(EventFilter(text="a_b"))] == ["echo a_b"]
        assert [e.command for e in events.query(EventFilter(text="%"))] == ["echo 100%"]

    def test_newest_first(self, events: SqliteEventStore, add_command):
        now = datetime.now()
        add_command("git status", timestamp=now - timedelta(minutes=5))
        add_command("git log", timestamp=now)
        assert [e.command for e in events.query()] == ["git log", "git status"]

    def test_filters(self, events: SqliteEventStore, add_command):
        add_command("git status", session_id="s1", directory="/a")
        add_command("npm test", session_id="s2", directory="/b", exit_code=1)
        add_command("npm install", session_id="s2", directory="/b")

        assert len(events.query(EventFilter(session_id="s2"))) == 2
        assert len(events.query(EventFilter(directory="/a"))) == 1
        assert [e.command for e in events.query(EventFilter(succeeded=False))] == ["npm test"]
        assert len(events.query(EventFilter(semantic_type="package_management"))) == 2

    def test_since(self, events: SqliteEventStore, add_command):
        now = datetime.now()
        add_command("git status", timestamp=now - timedelta(days=3))
        add_command("git log", timestamp=now)
        recent = events.query(EventFilter(since=now - timedelta(days=1)))
        assert [e.command for e in recent] == ["git log"]

    def test_limit(self, events: SqliteEventStore, add_command):
        for i in range(5):
            add_command(f"echo {i}")
        assert len(events.query(limit=3)) == 3


class TestAggregate:
    def test_semantic_type_includes_sensitive(self, events: SqliteEventStore, add_command):
        add_command("export API_TOKEN=xyz")
        add_command("ls")
        counts = {row.key: row.count for row in events.aggregate("semantic_type")}
        assert counts == {"general": 1, "navigation": 1}

    def test_other_keys_exclude_sensitive(self, events: SqliteEventStore, add_command):
        add_command("export API_TOKEN=xyz", directory="/secret")
        add_command("ls", directory="/home")
        keys = {row.key for row in events.aggregate("directory")}
        assert keys == {"/home"}

    def test_success_and_duration(self, events: SqliteEventStore, add_command):
        add_command("npm test", exit_code=0, duration_ms=100)
        add_command("npm test", exit_code=1, duration_ms=300)
        (row,) = events.aggregate("semantic_type")
        assert row.count == 2
        assert row.successes == 1
        assert row.success_rate == 0.5
        assert row.avg_duration_ms == 200
        assert row.timed == 2

    def test_unknown_group_key(self, events: SqliteEventStore):
        with pytest.raises(ValueError):
            events.aggregate("command")

    def test_top_commands_exclude_sensitive(self, events: SqliteEventStore, add_command):
        add_command("ls")
        add_command("ls")
        add_command("export API_TOKEN=xyz")
        assert events.top_commands() == [("ls", 2)]


class TestRecentTypes:
    def test_most_recent_first(self, events: SqliteEventStore, add_command):
        add_command("git status")
        add_command("npm install")
        add_command("ls", session_id="other")
        assert events.recent_types("session-test") == ["package_management", "version_control"]


class TestErrors:
    def test_record_and_resolve(self, events: SqliteEventStore, add_command):
        failing = add_command("npm test", exit_code=1)
        fix = add_command("npm install")
        error_id = events.record_error(failing, "session-test", 1, "missing module")

        latest = events.latest_error("session-test")
        assert latest.id == error_id
        assert not latest.solved

        assert events.resolve_error(error_id, fix, "npm install")
        assert not events.resolve_error(error_id, fix, "npm install")

        solved = events.latest_error("session-test")
        assert solved.solved
        assert solved.solution == "npm install"
        assert solved.solution_command_id == fix
        assert solved.solved_at is not None

    def test_latest_error_per_session(self, events: SqliteEventStore, add_command):
        failing = add_command("npm test", exit_code=1)
        events.record_error(failing, "session-test", 1)
        assert events.latest_error("other-session") is None

    def test_error_counts(self, events: SqliteEventStore, add_command):
        a = add_command("npm test", exit_code=1)
        b = add_command("make", exit_code=2)
        fix = add_command("npm install")
        first = events.record_error(a, "session-test", 1)
        events.record_error(b, "session-test", 2)
        events.resolve_error(first, fix, "npm install")
        assert events.error_counts() == {"total_errors": 2, "solved_errors": 1}
