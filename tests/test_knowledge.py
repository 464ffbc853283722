"""Tests for termbrain.knowledge."""

from __future__ import annotations

import pytest

from termbrain.config import Config
from termbrain.errors import ValidationError
from termbrain.knowledge.base import KnowledgeBase
from termbrain.session import SessionContext
from termbrain.storage.events import SqliteEventStore


class TestRecord:
    def test_baseline_confidence(self, knowledge: KnowledgeBase):
        entry = knowledge.record("docker", "Use --rm for throwaway containers")
        assert entry.id is not None
        assert entry.confidence == 5
        assert entry.source == "experience"
        assert not entry.verified

    def test_configured_baseline(self, db_conn, events: SqliteEventStore):
        kb = KnowledgeBase(db_conn, events, Config(knowledge_baseline=3))
        assert kb.record("git", "Rebase before pushing").confidence == 3

    @pytest.mark.parametrize("topic, insight", [("", "x"), ("git", "  ")])
    def test_rejects_empty(self, knowledge: KnowledgeBase, topic: str, insight: str):
        with pytest.raises(ValidationError):
            knowledge.record(topic, insight)

    def test_rejects_unknown_source(self, knowledge: KnowledgeBase):
        with pytest.raises(ValidationError):
            knowledge.record("git", "insight", source="rumor")


class TestReinforce:
    def test_increments_and_verifies(self, knowledge: KnowledgeBase):
        knowledge.record("git", "Use git stash before switching branches")
        (entry,) = knowledge.reinforce("git", "git stash")
        assert entry.confidence == 6
        assert entry.verified

    def test_capped_at_max(self, knowledge: KnowledgeBase):
        knowledge.record("git", "Use git stash")
        for _ in range(20):
            updated = knowledge.reinforce("git", "stash")
        assert updated[0].confidence == 10

    def test_never_decreases(self, knowledge: KnowledgeBase):
        knowledge.record("git", "Use git stash")
        seen = []
        for _ in range(8):
            seen.append(knowledge.reinforce("git", "stash")[0].confidence)
        assert seen == sorted(seen)

    def test_no_match(self, knowledge: KnowledgeBase):
        knowledge.record("git", "Use git stash")
        assert knowledge.reinforce("git", "rebase") == []
        assert knowledge.reinforce("docker", "stash") == []

    def test_wildcards_match_literally(self, knowledge: KnowledgeBase):
        knowledge.record("general", "Set MAX_SIZE first")
        knowledge.record("general", "Set MAXISIZE first")
        updated = knowledge.reinforce("general", "MAX_SIZE")
        assert [k.insight for k in updated] == ["Set MAX_SIZE first"]


class TestFind:
    def test_matches_topic_or_insight(self, knowledge: KnowledgeBase):
        knowledge.record("docker", "Prune images weekly")
        knowledge.record("git", "docker images are not in git")
        knowledge.record("npm", "Use npm ci in CI")
        assert len(knowledge.find_by_topic("docker")) == 2

    def test_ordered_by_confidence(self, knowledge: KnowledgeBase):
        knowledge.record("git", "first tip")
        knowledge.record("git", "second tip")
        knowledge.reinforce("git", "second")
        results = knowledge.find_by_topic("git")
        assert [k.insight for k in results] == ["second tip", "first tip"]

    def test_relevant_needs_high_confidence(self, knowledge: KnowledgeBase):
        knowledge.record("git", "weak tip")
        knowledge.record("git", "strong tip")
        for _ in range(2):
            knowledge.reinforce("git", "strong")
        assert [k.insight for k in knowledge.relevant("git")] == ["strong tip"]


class TestTopics:
    def test_default_topic(self, knowledge: KnowledgeBase, session: SessionContext):
        assert knowledge.derive_topic(session) == "general"

    def test_mode_of_recent_types(self, knowledge: KnowledgeBase, session: SessionContext, add_command):
        add_command("git status")
        add_command("git add .")
        add_command("npm install")
        assert knowledge.derive_topic(session) == "version_control"

    def test_tie_goes_to_most_recent(self, knowledge: KnowledgeBase, session: SessionContext, add_command):
        add_command("git status")
        add_command("npm install")
        assert knowledge.derive_topic(session) == "package_management"

    def test_window_limits_history(self, db_conn, events, session: SessionContext, add_command):
        kb = KnowledgeBase(db_conn, events, Config(topic_window=2))
        for _ in range(3):
            add_command("git status")
        add_command("docker ps")
        add_command("docker ps")
        assert kb.derive_topic(session) == "containerization"

    def test_extract_uses_derived_topic(self, knowledge: KnowledgeBase, session: SessionContext, add_command):
        add_command("docker ps")
        entry = knowledge.extract(session, "Compose v2 is a plugin")
        assert entry.topic == "containerization"


class TestLearnFromResolution:
    def test_records_new_fix(self, knowledge: KnowledgeBase, session: SessionContext, add_command):
        add_command("cargo build", exit_code=1)
        (entry,) = knowledge.learn_from_resolution(session, "cargo update")
        assert entry.insight == "Error fixed by: cargo update"
        assert entry.topic == "building"
        assert entry.source == "error"

    def test_reinforces_known_fix(self, knowledge: KnowledgeBase, session: SessionContext, add_command):
        add_command("cargo build", exit_code=1)
        knowledge.learn_from_resolution(session, "cargo clean")
        (entry,) = knowledge.learn_from_resolution(session, "cargo clean")
        assert entry.confidence == 6
        assert len(knowledge.find_by_topic("cargo clean")) == 1

    def test_totals(self, knowledge: KnowledgeBase):
        knowledge.record("git", "a")
        knowledge.record("git", "b")
        knowledge.reinforce("git", "a")
        assert knowledge.totals() == {"total": 2, "verified": 1}
