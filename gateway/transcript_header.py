"""Read the session identifier from the head of a transcript file.

Transcripts are JSONL. The writer records a session header first:

    {"type": "session", "id": "sess-42", ...}

Only a bounded prefix is read, since transcripts can grow arbitrarily large and
the header always comes first. Every failure here (missing file, permission
error, empty file, malformed line) means "not found" and returns None: these
are expected races with the writer, not errors.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

HEADER_READ_BYTES = 8 * 1024

_LINE_SPLIT = re.compile(r"\r?\n")


def read_session_id_from_transcript(
    session_file: str | Path, max_bytes: int = HEADER_READ_BYTES
) -> str | None:
    """Return the session identifier recorded at the start of a transcript.

    Args:
        session_file: Path to the transcript file
        max_bytes: Size of the prefix to inspect

    Returns:
        The first non-blank ``id`` of a ``"type": "session"`` record, or None
        if the prefix has none, cannot be read, or contains a line that is not
        valid JSON before the header is reached.
    """
    try:
        with open(session_file, "rb") as f:
            chunk = f.read(max_bytes)
    except OSError as e:
        logger.debug("Transcript header unreadable (%s): %s", session_file, e)
        return None

    if not chunk:
        return None

    text = chunk.decode("utf-8", errors="replace")
    for line in _LINE_SPLIT.split(text):
        stripped = line.strip()
        if not stripped:
            continue
        try:
            record = json.loads(stripped)
        except (json.JSONDecodeError, RecursionError):
            # Partially written, corrupt, or too deeply nested; a later update retries
            return None
        if not isinstance(record, dict) or record.get("type") != "session":
            continue
        session_id = record.get("id")
        if isinstance(session_id, str) and session_id.strip():
            return session_id.strip()

    return None
