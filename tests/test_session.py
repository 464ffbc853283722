"""Tests for termbrain.session."""

from __future__ import annotations

from pathlib import Path

from termbrain.session import SessionContext, detect_git_branch


def _make_repo(root: Path, head: str) -> None:
    (root / ".git").mkdir(parents=True)
    (root / ".git" / "HEAD").write_text(head)


class TestGitBranch:
    def test_branch_from_parent(self, tmp_path: Path):
        _make_repo(tmp_path, "ref: refs/heads/feature/login\n")
        nested = tmp_path / "src" / "app"
        nested.mkdir(parents=True)
        assert detect_git_branch(nested) == "feature/login"

    def test_detached_head(self, tmp_path: Path):
        _make_repo(tmp_path, "3f2c1a9e\n")
        assert detect_git_branch(tmp_path) is None


class TestSessionContext:
    def test_create_generates_id(self, tmp_path: Path):
        ctx = SessionContext.create(directory=str(tmp_path))
        assert ctx.session_id.startswith("session-")
        assert ctx.directory == str(tmp_path)

    def test_create_keeps_given_id(self, tmp_path: Path):
        assert SessionContext.create("shell-42", str(tmp_path)).session_id == "shell-42"

    def test_in_directory(self, tmp_path: Path):
        repo = tmp_path / "repo"
        _make_repo(repo, "ref: refs/heads/main\n")
        ctx = SessionContext.create("shell-1", str(tmp_path))
        moved = ctx.in_directory(str(repo))
        assert moved.session_id == "shell-1"
        assert moved.git_branch == "main"
