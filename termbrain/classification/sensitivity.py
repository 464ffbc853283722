"""Sensitive command detection, redaction and recording guards."""

from __future__ import annotations

import re
from pathlib import PurePath

SENSITIVE_PATTERNS = [
    re.compile(r"password|passwd|token|secret|credential|auth", re.IGNORECASE),
    re.compile(r"api[_-]?key|access[_-]?key|private[_-]?key", re.IGNORECASE),
    re.compile(r"\b(export|set)\b.*_(KEY|TOKEN|SECRET|PASSWORD|PASSWD)\b"),
    re.compile(r"https?://[^\s/@]+:[^\s/@]+@"),  # user:pass@host
    re.compile(r"Bearer\s", re.IGNORECASE),
]

# Never recorded at all, not even as a sensitive row.
UNRECORDABLE_FRAGMENTS = ("rm -rf /", "dd if=", ":(){ :|:& };:")

_REDACTIONS = [
    (re.compile(r"(password|token|key|secret)=\S+", re.IGNORECASE), r"\1=***REDACTED***"),
    (re.compile(r"[A-Za-z0-9+/]{40,}={0,2}"), "***BASE64-REDACTED***"),
    (re.compile(r"[0-9a-f]{32,}"), "***HASH-REDACTED***"),
]


def is_sensitive(command: str) -> bool:
    return any(pattern.search(command) for pattern in SENSITIVE_PATTERNS)


def redact(text: str) -> str:
    """Mask secrets in text before it is written anywhere outside the store."""
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def should_record(command: str, directory: str, ignored_directories: list[str]) -> bool:
    """Whether the capture layer should store this command at all."""
    if not command.strip():
        return False
    if any(fragment in command for fragment in UNRECORDABLE_FRAGMENTS):
        return False
    parts = set(PurePath(directory).parts)
    return not any(ignored in parts for ignored in ignored_directories)
