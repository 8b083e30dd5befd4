"""Transcript-to-chat bridge.

Turns transcript file updates into ``chat`` broadcasts addressed by session key.

Per update:
1. Fast path: file -> session key cache hit, emit immediately.
2. file -> session id (cache, else read the transcript header). No header: ignore.
3. session id -> session key (cache, else scan the session store). Unknown: warn, ignore.
4. Populate caches, emit.

A failed step caches nothing for itself, so a later update for the same file
retries it. A session id already read from the header stays cached when its
key lookup fails. Nothing raised while handling an update escapes the bridge.

Usage:
    from gateway.transcript_bridge import attach_transcript_chat_bridge

    detach = attach_transcript_chat_bridge(
        subscribe=hub.subscribe,
        broadcast=clients.broadcast,
        load_store=lambda: load_combined_session_store(config.session_stores),
    )
    ...
    detach()
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any

from gateway.broadcast import BroadcastFn, BroadcastOptions, ChatEventPayload, ChatState
from gateway.session_store import SessionEntry, resolve_session_key
from gateway.transcript_events import SubscribeFn, TranscriptUpdate, Unsubscribe
from gateway.transcript_header import HEADER_READ_BYTES, read_session_id_from_transcript
from gateway.ttl_cache import DEFAULT_TTL_SECONDS, TTLCache

logger = logging.getLogger(__name__)

CHAT_EVENT = "chat"

StoreLoader = Callable[[], Mapping[str, SessionEntry]]


class UpdateOutcome(StrEnum):
    EMITTED = "emitted"
    IGNORED = "ignored"


class TranscriptChatBridge:
    """Resolves transcript files to session keys and broadcasts chat events.

    The three caches belong to this instance and are dropped with it.
    """

    def __init__(
        self,
        broadcast: BroadcastFn,
        load_store: StoreLoader,
        log: logging.Logger | None = None,
        cache_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        cache_max_entries: int | None = None,
        header_read_bytes: int = HEADER_READ_BYTES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._broadcast = broadcast
        self._load_store = load_store
        self.log = log or logger
        self.header_read_bytes = header_read_bytes

        def new_cache() -> TTLCache[str]:
            return TTLCache(cache_ttl_seconds, clock=clock, max_entries=cache_max_entries)

        self.session_key_by_file = new_cache()
        self.session_id_by_file = new_cache()
        self.session_key_by_id = new_cache()

        self._unsubscribe: Unsubscribe | None = None
        self.counters = {"emitted": 0, "ignored": 0, "failed": 0}

    # --- Lifecycle ---

    def attach(self, subscribe: SubscribeFn) -> Unsubscribe:
        """Subscribe to transcript updates. Returns the teardown callable."""
        if self._unsubscribe is not None:
            raise RuntimeError("TranscriptChatBridge is already attached")
        self._unsubscribe = subscribe(self._on_update)
        return self.close

    def close(self) -> None:
        """Unsubscribe. In-flight handling finishes; caches are left as they are."""
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    def _on_update(self, update: TranscriptUpdate) -> None:
        self.handle_update(update.session_file)

    # --- Update handling ---

    def handle_update(self, session_file: str) -> UpdateOutcome:
        """Process one transcript update notification. Never raises."""
        session_file = (session_file or "").strip()
        if not session_file:
            return UpdateOutcome.IGNORED
        try:
            outcome = self._handle(session_file)
        except Exception:
            self.counters["failed"] += 1
            self.log.warning(
                "failed to handle transcript update (%s)", session_file, exc_info=True
            )
            return UpdateOutcome.IGNORED
        if outcome is UpdateOutcome.EMITTED:
            self.counters["emitted"] += 1
        else:
            self.counters["ignored"] += 1
        return outcome

    def _handle(self, session_file: str) -> UpdateOutcome:
        # 1. Fast path
        cached_key = self.session_key_by_file.get(session_file)
        if cached_key:
            self._emit(f"transcript-{uuid.uuid4()}", cached_key)
            return UpdateOutcome.EMITTED

        # 2. Session id for this file
        session_id = self.session_id_by_file.get(session_file)
        if not session_id:
            session_id = read_session_id_from_transcript(session_file, self.header_read_bytes)
            if not session_id:
                self.log.debug("Transcript has no session header yet: %s", session_file)
                return UpdateOutcome.IGNORED
            self.session_id_by_file.set(session_file, session_id)

        # 3. Session key for this id
        session_key = self.session_key_by_id.get(session_id)
        if not session_key:
            session_key = resolve_session_key(self._load_store(), session_id)
            if not session_key:
                self.log.warning(
                    "transcript update ignored; session key not found (%s)", session_id
                )
                return UpdateOutcome.IGNORED
            self.session_key_by_id.set(session_id, session_key)

        # 4. Remember the file, emit
        self.session_key_by_file.set(session_file, session_key)
        self._emit(f"transcript-{session_id}-{uuid.uuid4()}", session_key)
        return UpdateOutcome.EMITTED

    def _emit(self, run_id: str, session_key: str) -> None:
        payload = ChatEventPayload(run_id=run_id, session_key=session_key, state=ChatState.FINAL)
        self._broadcast(CHAT_EVENT, payload, BroadcastOptions(drop_if_slow=True))

    def stats(self) -> dict[str, Any]:
        """Resident cache sizes and outcome counters."""
        return {
            "session_key_by_file": len(self.session_key_by_file),
            "session_id_by_file": len(self.session_id_by_file),
            "session_key_by_id": len(self.session_key_by_id),
            **self.counters,
        }


def attach_transcript_chat_bridge(
    subscribe: SubscribeFn,
    broadcast: BroadcastFn,
    load_store: StoreLoader,
    log: logging.Logger | None = None,
    **options: Any,
) -> Unsubscribe:
    """Create a bridge, subscribe it, and return its teardown callable.

    Extra keyword arguments go to ``TranscriptChatBridge``.
    """
    bridge = TranscriptChatBridge(broadcast, load_store, log=log, **options)
    return bridge.attach(subscribe)
