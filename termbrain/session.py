"""Explicit per-shell session context.

The shell integration creates one SessionContext per shell process and passes
it into every termbrain call; termbrain itself keeps no ambient session state.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, replace
from pathlib import Path


def new_session_id() -> str:
    return f"session-{int(time.time())}-{os.getpid()}"


def detect_git_branch(directory: str | Path) -> str | None:
    """Read the current branch from .git/HEAD in ``directory`` or a parent."""
    current = Path(directory).resolve()
    for candidate in (current, *current.parents):
        head = candidate / ".git" / "HEAD"
        if not head.is_file():
            continue
        try:
            ref = head.read_text().strip()
        except OSError:
            return None
        if ref.startswith("ref: refs/heads/"):
            return ref[len("ref: refs/heads/"):]
        return None  # Detached HEAD
    return None


@dataclass(frozen=True)
class SessionContext:
    session_id: str
    directory: str
    git_branch: str | None = None

    @classmethod
    def create(cls, session_id: str | None = None, directory: str | None = None) -> SessionContext:
        directory = directory or os.getcwd()
        return cls(
            session_id=session_id or new_session_id(),
            directory=directory,
            git_branch=detect_git_branch(directory),
        )

    def in_directory(self, directory: str) -> SessionContext:
        """Same session, after a ``cd``."""
        return replace(self, directory=directory, git_branch=detect_git_branch(directory))
