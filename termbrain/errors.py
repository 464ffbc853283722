"""Exception hierarchy for termbrain."""

from __future__ import annotations


class TermbrainError(Exception):
    """Base class for every failure termbrain reports to its callers."""


class StoreError(TermbrainError):
    """The SQLite store could not be opened or is corrupt."""


class ValidationError(TermbrainError):
    """Input was rejected before anything was written."""


class DuplicateWorkflowError(ValidationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Workflow '{name}' already exists")
        self.name = name


class NotFoundError(TermbrainError):
    """A lookup by name or id had no match."""


class WorkflowNotFoundError(NotFoundError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Workflow '{name}' not found")
        self.name = name
