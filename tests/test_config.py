"""Tests for termbrain.config."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

from termbrain.config import DEFAULT_DB_PATH, DEFAULT_IGNORED_DIRS, Config


class TestConfigDefaults:
    def test_default_values(self):
        config = Config()
        assert config.db_path == DEFAULT_DB_PATH
        assert config.sequence_min_frequency == 3
        assert config.time_min_frequency == 5
        assert config.time_window_days == 30
        assert config.error_fix_min_frequency == 2
        assert config.knowledge_baseline == 5
        assert config.knowledge_max == 10
        assert config.ignored_directories == list(DEFAULT_IGNORED_DIRS)

    def test_ignored_directories_are_independent_copies(self):
        c1 = Config()
        c2 = Config()
        c1.ignored_directories.append("secrets")
        assert "secrets" not in c2.ignored_directories

    def test_activity_log_defaults_next_to_db(self):
        config = Config(db_path=Path("/tmp/tb/termbrain.db"))
        assert config.activity_log_path == Path("/tmp/tb/termbrain-activity.jsonl")
        assert config.flow_state_path == Path("/tmp/tb/flow-state.json")

    def test_explicit_log_path(self):
        config = Config(log_path=Path("/tmp/log.jsonl"))
        assert config.activity_log_path == Path("/tmp/log.jsonl")


class TestConfigLoad:
    def test_load_from_env(self):
        env = {
            "TERMBRAIN_DB_PATH": "/tmp/test.db",
            "TERMBRAIN_SEQUENCE_MIN": "4",
            "TERMBRAIN_TIME_WINDOW_DAYS": "7",
            "TERMBRAIN_KNOWLEDGE_MAX": "20",
        }
        with patch.dict(os.environ, env, clear=False):
            config = Config.load()
        assert config.db_path == Path("/tmp/test.db")
        assert config.sequence_min_frequency == 4
        assert config.time_window_days == 7
        assert config.knowledge_max == 20

    def test_invalid_number_falls_back_to_default(self):
        with patch.dict(os.environ, {"TERMBRAIN_TIME_MIN": "lots"}, clear=False):
            config = Config.load()
        assert config.time_min_frequency == 5

    def test_ignored_dirs_parsing(self):
        with patch.dict(os.environ, {"TERMBRAIN_IGNORED_DIRS": ".ssh, .aws ,,vault"}, clear=False):
            config = Config.load()
        assert config.ignored_directories == [".ssh", ".aws", "vault"]

    def test_empty_ignored_dirs_disables_ignoring(self):
        with patch.dict(os.environ, {"TERMBRAIN_IGNORED_DIRS": ""}, clear=False):
            config = Config.load()
        assert config.ignored_directories == []


class TestConfigValidate:
    def test_valid_defaults(self):
        assert Config().validate() == []

    def test_threshold_below_one(self):
        issues = Config(sequence_min_frequency=0).validate()
        assert len(issues) == 1
        assert "TERMBRAIN_SEQUENCE_MIN" in issues[0]

    def test_baseline_above_max(self):
        issues = Config(knowledge_baseline=11, knowledge_max=10).validate()
        assert any("exceeds" in issue for issue in issues)

    def test_negative_baseline(self):
        issues = Config(knowledge_baseline=-1).validate()
        assert any("negative" in issue for issue in issues)
