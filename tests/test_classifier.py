"""Tests for termbrain.classification."""

from __future__ import annotations

from pathlib import Path

import pytest

from termbrain.classification.classifier import (
    MAX_COMPLEXITY,
    classify,
    complexity,
    intent,
    semantic_type,
)
from termbrain.classification.project import detect_project_type
from termbrain.classification.sensitivity import is_sensitive, redact, should_record


class TestSemanticType:
    @pytest.mark.parametrize(
        "command, expected",
        [
            ("git status", "version_control"),
            ("npm install react", "package_management"),
            ("docker compose up", "containerization"),
            ("pytest -q", "testing"),
            ("cat spec.txt", "testing"),
            ("prettier --write .", "code_quality"),
            ("eslint --fix src", "code_quality"),
            ("make all", "building"),
            ("cargo build --release", "building"),
            ("curl https://example.com", "http_request"),
            ("ssh prod-box", "remote_access"),
            ("vim README.md", "editing"),
            ("cd ~/src", "navigation"),
            ("psql -d app", "database"),
            ("python manage.py migrate", "code_execution"),
            ("tb stats", "termbrain"),
            ("echo hi", "general"),
        ],
    )
    def test_rules(self, command: str, expected: str):
        assert semantic_type(command) == expected

    def test_first_match_wins(self):
        # Package manager rule comes before the testing rule
        assert semantic_type("npm test") == "package_management"
        assert semantic_type("git commit -m 'add tests'") == "version_control"

    def test_leading_whitespace_ignored(self):
        assert semantic_type("   git log") == "version_control"

    def test_empty_command(self):
        assert semantic_type("") == "general"


class TestIntent:
    @pytest.mark.parametrize(
        "command, expected",
        [
            ("npm install react", "install"),
            ("poetry add httpx", "install"),
            ("apt remove vim", "remove"),
            ("cargo build", "build"),
            ("npm test", "test"),
            ("docker run nginx", "execute"),
            ("pkill node", "stop"),
            ("docker image list", "list"),
            ("grep -r TODO", "search"),
            ("git push", "deploy"),
            ("echo hi", "unknown"),
        ],
    )
    def test_rules(self, command: str, expected: str):
        assert intent(command) == expected


class TestComplexity:
    def test_plain_command(self):
        assert complexity("ls") == 1

    def test_pipes_and_redirects(self):
        assert complexity("cat a | grep b") == 2
        assert complexity("cat a | grep b > out") == 3

    def test_command_substitution(self):
        assert complexity("echo $(date)") == 2
        assert complexity("echo `date`") == 2

    def test_control_flow(self):
        assert complexity("for f in *; do echo $f; done") == 3

    def test_keywords_need_word_boundaries(self):
        assert complexity("git diff") == 1
        assert complexity("black --format") == 1

    def test_capped(self):
        command = "for x in a; do cat $x | sort | uniq > out; done"
        assert complexity(command) == MAX_COMPLEXITY

    def test_never_decreases_as_features_are_added(self):
        steps = [
            "cat app.log",
            "cat app.log | grep err",
            "cat app.log | grep err > errors.txt",
            "cat app.log | grep err > errors-$(date +%F).txt",
            "for f in *; do cat app.log | grep err > errors-$(date +%F).txt; done",
        ]
        scores = [complexity(command) for command in steps]
        assert scores == sorted(scores)
        assert all(1 <= score <= MAX_COMPLEXITY for score in scores)
        assert scores[0] == 1
        assert scores[-1] == MAX_COMPLEXITY


class TestClassify:
    def test_full_classification(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("{}")
        result = classify("npm install lodash", str(tmp_path))
        assert result.semantic_type == "package_management"
        assert result.project_type == "javascript"
        assert result.intent == "install"
        assert result.complexity == 1

    def test_same_input_same_result(self, tmp_path: Path):
        (tmp_path / "Cargo.toml").write_text("")
        command = "cargo test --release | tee out.txt"
        first = classify(command, str(tmp_path))
        assert classify(command, str(tmp_path)) == first
        assert first.project_type == "rust"


class TestProjectDetection:
    def test_typescript(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("{}")
        (tmp_path / "tsconfig.json").write_text("{}")
        assert detect_project_type(tmp_path) == "typescript"

    def test_package_json_takes_priority(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("{}")
        (tmp_path / "Cargo.toml").write_text("")
        assert detect_project_type(tmp_path) == "javascript"

    @pytest.mark.parametrize(
        "marker, expected",
        [
            ("Cargo.toml", "rust"),
            ("go.mod", "go"),
            ("pyproject.toml", "python"),
            ("requirements.txt", "python"),
            ("Gemfile", "ruby"),
            ("pom.xml", "java_maven"),
            ("build.gradle.kts", "java_gradle"),
            ("CMakeLists.txt", "cpp_cmake"),
            ("Dockerfile", "docker"),
        ],
    )
    def test_markers(self, tmp_path: Path, marker: str, expected: str):
        (tmp_path / marker).write_text("")
        assert detect_project_type(tmp_path) == expected

    def test_git_directory(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        assert detect_project_type(tmp_path) == "git_project"

    def test_unknown(self, tmp_path: Path):
        assert detect_project_type(tmp_path) == "unknown"

    def test_missing_directory(self, tmp_path: Path):
        assert detect_project_type(tmp_path / "nope") == "unknown"


class TestSensitivity:
    @pytest.mark.parametrize(
        "command",
        [
            "export API_KEY=abc123",
            "mysql -u root --password hunter2",
            "curl https://admin:pw@example.com/api",
            "curl -H 'Authorization: Bearer xyz'",
            "echo $GITHUB_TOKEN",
        ],
    )
    def test_sensitive(self, command: str):
        assert is_sensitive(command)

    @pytest.mark.parametrize("command", ["ls -la", "git status", "npm test"])
    def test_not_sensitive(self, command: str):
        assert not is_sensitive(command)

    def test_redact_key_value(self):
        assert redact("deploy token=abc123") == "deploy token=***REDACTED***"

    def test_redact_hex_blob(self):
        assert "HASH-REDACTED" in redact("checkout " + "a1" * 16)

    def test_should_record(self):
        assert should_record("git status", "/home/me/src", [".ssh"])

    def test_should_not_record_empty(self):
        assert not should_record("   ", "/home/me", [])

    def test_should_not_record_catastrophic(self):
        assert not should_record("sudo rm -rf /", "/home/me", [])

    def test_should_not_record_in_ignored_directory(self):
        assert not should_record("cat id_rsa", "/home/me/.ssh", [".ssh"])
