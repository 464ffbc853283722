"""Named multi-step command workflows.

A workflow is an ordered list of shell commands. Running it executes the
steps in order and stops at the first failure; nothing is rolled back and
nothing is retried. Each real run updates the workflow's usage statistics.
"""

from __future__ import annotations

import logging
import sqlite3
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

from termbrain.errors import DuplicateWorkflowError, ValidationError, WorkflowNotFoundError
from termbrain.models import Workflow
from termbrain.storage.db import from_db_time, to_db_time, transaction

logger = logging.getLogger(__name__)

Executor = Callable[[str], int]


def run_shell(command: str) -> int:
    """Default executor: run a step through the user's shell."""
    try:
        return subprocess.run(command, shell=True).returncode
    except OSError as e:
        logger.error(f"Could not start '{command}': {e}")
        return 127


class RunState(str, Enum):
    DEFINED = "defined"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class StepResult:
    position: int  # 1-based
    command: str
    exit_code: int | None  # None for a dry run

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@dataclass
class WorkflowRun:
    workflow: str
    dry_run: bool = False
    state: RunState = RunState.DEFINED
    steps: list[StepResult] = field(default_factory=list)
    failed_step: StepResult | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == RunState.COMPLETED


class WorkflowEngine:
    """Owns the workflows and workflow_steps tables."""

    def __init__(self, conn: sqlite3.Connection, executor: Executor | None = None) -> None:
        self._conn = conn
        self._executor = executor or run_shell

    def create(self, name: str, commands: list[str], description: str = "") -> Workflow:
        """Define a new workflow. Existing names are never overwritten."""
        name = name.strip()
        steps = self._validate(name, commands)
        if self._workflow_id(name) is not None:
            raise DuplicateWorkflowError(name)

        now = datetime.now()
        try:
            with transaction(self._conn):
                cursor = self._conn.execute(
                    """INSERT INTO workflows (name, description, times_used, success_rate, created_at, updated_at)
                    VALUES (?, ?, 0, 0.0, ?, ?)""",
                    (name, description, to_db_time(now), to_db_time(now)),
                )
                self._insert_steps(cursor.lastrowid, steps)
        except sqlite3.IntegrityError as e:
            raise DuplicateWorkflowError(name) from e

        logger.info(f"Created workflow '{name}' with {len(steps)} step(s)")
        return Workflow(
            id=cursor.lastrowid,
            name=name,
            commands=steps,
            description=description,
            created_at=now,
            updated_at=now,
        )

    def update_steps(self, name: str, commands: list[str]) -> Workflow:
        """Replace the steps of an existing workflow, keeping its statistics."""
        name = name.strip()
        steps = self._validate(name, commands)
        workflow_id = self._workflow_id(name)
        if workflow_id is None:
            raise WorkflowNotFoundError(name)

        with transaction(self._conn):
            self._conn.execute("DELETE FROM workflow_steps WHERE workflow_id = ?", (workflow_id,))
            self._insert_steps(workflow_id, steps)
            self._conn.execute(
                "UPDATE workflows SET updated_at = ? WHERE id = ?",
                (to_db_time(datetime.now()), workflow_id),
            )
        return self.get(name)

    def get(self, name: str) -> Workflow | None:
        name = name.strip()
        row = self._conn.execute("SELECT * FROM workflows WHERE name = ?", (name,)).fetchone()
        return self._row_to_workflow(row) if row else None

    def list(self) -> list[Workflow]:
        rows = self._conn.execute(
            "SELECT * FROM workflows ORDER BY times_used DESC, name"
        ).fetchall()
        return [self._row_to_workflow(row) for row in rows]

    def delete(self, name: str) -> bool:
        name = name.strip()
        cursor = self._conn.execute("DELETE FROM workflows WHERE name = ?", (name,))
        self._conn.commit()
        return cursor.rowcount == 1

    def run(self, name: str, dry_run: bool = False) -> WorkflowRun:
        """Execute a workflow's steps in order, stopping at the first failure."""
        name = name.strip()
        workflow = self.get(name)
        if workflow is None:
            raise WorkflowNotFoundError(name)

        run = WorkflowRun(workflow=name, dry_run=dry_run)
        if dry_run:
            run.steps = [
                StepResult(position=i, command=command, exit_code=None)
                for i, command in enumerate(workflow.commands, start=1)
            ]
            return run

        run.state = RunState.RUNNING
        for position, command in enumerate(workflow.commands, start=1):
            logger.info(f"[{name}] step {position}/{len(workflow.commands)}: {command}")
            step = StepResult(position=position, command=command, exit_code=self._executor(command))
            run.steps.append(step)
            if not step.succeeded:
                run.failed_step = step
                break

        run.state = RunState.FAILED if run.failed_step else RunState.COMPLETED
        self._record_run(workflow.id, run.succeeded)
        if run.failed_step:
            logger.warning(
                f"Workflow '{name}' failed at step {run.failed_step.position} "
                f"(exit {run.failed_step.exit_code})"
            )
        return run

    def _record_run(self, workflow_id: int, succeeded: bool) -> None:
        # success_rate uses the pre-increment times_used on the right-hand side
        self._conn.execute(
            """UPDATE workflows
            SET success_rate = (success_rate * times_used + ?) / (times_used + 1),
                times_used = times_used + 1,
                updated_at = ?
            WHERE id = ?""",
            (1.0 if succeeded else 0.0, to_db_time(datetime.now()), workflow_id),
        )
        self._conn.commit()

    def _validate(self, name: str, commands: list[str]) -> list[str]:
        if not name or not name.strip():
            raise ValidationError("Workflow name cannot be empty")
        steps = [command.strip() for command in commands if command and command.strip()]
        if not steps:
            raise ValidationError(f"Workflow '{name}' needs at least one command")
        return steps

    def _workflow_id(self, name: str) -> int | None:
        row = self._conn.execute("SELECT id FROM workflows WHERE name = ?", (name,)).fetchone()
        return row["id"] if row else None

    def _insert_steps(self, workflow_id: int, steps: list[str]) -> None:
        self._conn.executemany(
            "INSERT INTO workflow_steps (workflow_id, position, command) VALUES (?, ?, ?)",
            [(workflow_id, position, command) for position, command in enumerate(steps, start=1)],
        )

    def _row_to_workflow(self, row: sqlite3.Row) -> Workflow:
        steps = self._conn.execute(
            "SELECT command FROM workflow_steps WHERE workflow_id = ? ORDER BY position",
            (row["id"],),
        ).fetchall()
        return Workflow(
            id=row["id"],
            name=row["name"],
            commands=[step["command"] for step in steps],
            description=row["description"] or "",
            times_used=row["times_used"],
            success_rate=row["success_rate"],
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )
