"""Command capture: the pre-exec/post-exec pair the shell hook calls."""

from __future__ import annotations

import logging

from termbrain.classification.classifier import classify
from termbrain.classification.sensitivity import is_sensitive, should_record
from termbrain.config import Config
from termbrain.knowledge.base import KnowledgeBase
from termbrain.models import CommandEvent
from termbrain.session import SessionContext
from termbrain.storage.events import EventStore

logger = logging.getLogger(__name__)


class CommandRecorder:
    """Records commands as provisional events and finalizes them on exit."""

    def __init__(
        self,
        events: EventStore,
        knowledge: KnowledgeBase,
        config: Config | None = None,
    ) -> None:
        self._events = events
        self._knowledge = knowledge
        self._config = config or Config()

    def start(self, session: SessionContext, command: str) -> int | None:
        """Classify and store a command before it runs.

        Returns the provisional event id, or None when the command is not
        recorded at all.
        """
        if not should_record(command, session.directory, self._config.ignored_directories):
            logger.debug("Skipped recording a command")
            return None

        classification = classify(command, session.directory)
        event = CommandEvent(
            command=command,
            directory=session.directory,
            session_id=session.session_id,
            semantic_type=classification.semantic_type,
            intent=classification.intent,
            complexity=classification.complexity,
            project_type=classification.project_type,
            git_branch=session.git_branch,
            is_sensitive=is_sensitive(command),
        )
        return self._events.append(event)

    def finish(
        self,
        session: SessionContext,
        event_id: int,
        exit_code: int,
        duration_ms: int,
        error_output: str = "",
    ) -> bool:
        """Attach the outcome of a command and learn from error fixes.

        Returns False when the event was unknown or already finalized.
        """
        if not self._events.finalize(event_id, exit_code, duration_ms):
            logger.debug(f"Event #{event_id} was not provisional; ignoring outcome")
            return False

        if exit_code != 0:
            self._events.record_error(event_id, session.session_id, exit_code, error_output)
            return True

        error = self._events.latest_error(session.session_id)
        if error is None or error.solved:
            return True

        event = self._events.get(event_id)
        if event is None:
            return True
        self._events.resolve_error(error.id, event_id, event.command)
        if event.is_sensitive:
            logger.debug(f"Error #{error.id} solved by a sensitive command; not learning from it")
            return True
        self._knowledge.learn_from_resolution(session, event.command)
        return True
