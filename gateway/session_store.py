"""Session store snapshots and session key resolution.

A session store is a JSON file mapping session keys (the short handles clients
address sessions by) to session records:

    {
      "key-alpha": {"sessionId": "sess-42", "updatedAt": 1760600000000},
      "key-beta":  {"sessionId": "sess-43"}
    }

The gateway may read several store files and combine them. Reads and writes
are serialized with a sidecar ``<store>.lock`` file so a snapshot never sees a
half-written store.

Usage:
    from gateway.session_store import load_combined_session_store, resolve_session_key

    store = load_combined_session_store([Path("~/.relay/sessions.json").expanduser()])
    key = resolve_session_key(store, "sess-42")
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from filelock import FileLock
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0


class SessionStoreError(RuntimeError):
    """Raised when a store file exists but cannot be read as a store."""


class SessionEntry(BaseModel):
    """One registered session.

    Only the session identifier is interpreted here. Other fields written by
    the session owner (updatedAt, labels, ...) are carried through untouched.
    """

    model_config = ConfigDict(extra="allow")

    session_id: str | None = Field(default=None, alias="sessionId")


SessionStore = dict[str, SessionEntry]


def _lock_for(path: Path, timeout: float) -> FileLock:
    return FileLock(path.with_name(path.name + ".lock"), timeout=timeout)


def _parse_store(path: Path, data: Any) -> SessionStore:
    if not isinstance(data, dict):
        raise SessionStoreError(f"Session store is not a JSON object: {path}")

    store: SessionStore = {}
    for key, raw in data.items():
        if not isinstance(raw, dict):
            logger.debug("Skipping non-object store entry %r in %s", key, path)
            continue
        try:
            store[key] = SessionEntry.model_validate(raw)
        except ValidationError as e:
            logger.debug("Skipping invalid store entry %r in %s: %s", key, path, e)
    return store


def _read_store(path: Path) -> SessionStore:
    # Caller holds the store lock
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        raise SessionStoreError(f"Cannot read session store {path}: {e}") from e

    if not text.strip():
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SessionStoreError(f"Session store is not valid JSON {path}: {e}") from e
    return _parse_store(path, data)


def _write_store(path: Path, store: Mapping[str, SessionEntry]) -> None:
    # Caller holds the store lock. Atomic: temp file + rename.
    data = {
        key: entry.model_dump(by_alias=True, exclude_none=True)
        for key, entry in store.items()
    }
    fd, temp_path = tempfile.mkstemp(
        suffix=".tmp", prefix=path.stem + "_", dir=path.parent
    )
    temp = Path(temp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        temp.replace(path)
    except Exception:
        temp.unlink(missing_ok=True)
        raise


def load_session_store(
    path: Path, lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS
) -> SessionStore:
    """Load one store file.

    Args:
        path: Store file path
        lock_timeout: Seconds to wait for a concurrent writer

    Returns:
        Mapping of session key to entry, in file order. A missing file is an
        empty store.

    Raises:
        SessionStoreError: If the file is unreadable or not a JSON object
        filelock.Timeout: If the lock could not be acquired in time
    """
    if not path.exists():
        return {}
    with _lock_for(path, lock_timeout):
        return _read_store(path)


def load_combined_session_store(
    paths: Iterable[Path], lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS
) -> SessionStore:
    """Merge several store files. The first file that defines a key wins."""
    combined: SessionStore = {}
    for path in paths:
        for key, entry in load_session_store(path, lock_timeout).items():
            combined.setdefault(key, entry)
    return combined


def save_session_store(
    path: Path,
    store: Mapping[str, SessionEntry],
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
) -> None:
    """Replace a store file with the given entries."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with _lock_for(path, lock_timeout):
        _write_store(path, store)


def register_session(
    path: Path,
    session_key: str,
    session_id: str,
    updated_at: float | None = None,
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
) -> SessionEntry:
    """Insert or update one entry, keeping the rest of the store intact.

    The read-modify-write happens under a single lock acquisition.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with _lock_for(path, lock_timeout):
        store = _read_store(path)
        existing = store.get(session_key)
        extra = dict(existing.model_extra or {}) if existing is not None else {}
        if updated_at is not None:
            extra["updatedAt"] = updated_at
        entry = SessionEntry(sessionId=session_id, **extra)
        store[session_key] = entry
        _write_store(path, store)
    return entry


def resolve_session_key(store: Mapping[str, SessionEntry], session_id: str) -> str | None:
    """Find the key a session identifier is registered under.

    Linear scan over the whole store, comparing whitespace-trimmed identifiers.
    Identifiers are assumed unique across keys. If the store breaks that
    assumption, a warning names every matching key and the first one in store
    order is returned.
    """
    wanted = session_id.strip()
    if not wanted:
        return None

    matches = [
        key
        for key, entry in store.items()
        if entry.session_id is not None and entry.session_id.strip() == wanted
    ]
    if not matches:
        return None
    if len(matches) > 1:
        logger.warning(
            "Session id %s registered under multiple keys %s; using %s",
            wanted,
            matches,
            matches[0],
        )
    return matches[0]
