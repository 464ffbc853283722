"""Activity logging for mining runs and advisor calls.

Appends one JSON object per line to a JSONL file so a user can see what
termbrain learned and what it warned about. Each line carries a timestamp,
an activity kind, its details, an optional error and the duration.

The log file lives alongside termbrain.db by default.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path

from termbrain.config import DEFAULT_DB_PATH

logger = logging.getLogger(__name__)

DETAIL_PREVIEW_LIMIT = 500


def _resolve_log_path() -> Path:
    """TERMBRAIN_LOG_PATH if set, else termbrain-activity.jsonl beside the database."""
    env_path = os.getenv("TERMBRAIN_LOG_PATH")
    if env_path:
        return Path(env_path)

    db_path = os.getenv("TERMBRAIN_DB_PATH", str(DEFAULT_DB_PATH))
    return Path(db_path).parent / "termbrain-activity.jsonl"


def _preview(value):
    if isinstance(value, str) and len(value) > DETAIL_PREVIEW_LIMIT:
        return value[:DETAIL_PREVIEW_LIMIT]
    return value


def log_activity(
    kind: str,
    details: dict,
    error: str | None = None,
    duration_ms: int = 0,
    log_path: Path | None = None,
) -> None:
    """Append an activity entry to the log. Never raises."""
    try:
        entry = {
            "timestamp": datetime.now().isoformat(),
            "kind": kind,
            "details": {key: _preview(value) for key, value in details.items()},
            "error": error,
            "duration_ms": duration_ms,
        }
        path = log_path or _resolve_log_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a") as f:
            f.write(json.dumps(entry, default=str) + "\n")
    except Exception as e:
        logger.debug(f"Could not write activity log: {e}")


def read_activity_log(
    limit: int = 20,
    kind: str | None = None,
    log_path: Path | None = None,
) -> list[dict]:
    """Return logged mining runs and advice, optionally of one kind.

    Newest entries come first; unreadable lines are skipped.
    """
    path = log_path or _resolve_log_path()
    if not path.exists():
        return []

    entries: list[dict] = []
    for line in path.read_text().splitlines():
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue

        if kind and entry.get("kind") != kind:
            continue

        entries.append(entry)

    entries.reverse()
    return entries[:limit]
