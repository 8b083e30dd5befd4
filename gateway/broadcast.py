"""Chat event payloads and the client fan-out hub.

The bridge publishes through a ``BroadcastFn``:

    broadcast("chat", ChatEventPayload(...), BroadcastOptions(drop_if_slow=True))

``ClientHub.broadcast`` is the in-process implementation. Each connected
client owns a bounded queue. A droppable event is discarded for any client
whose queue is full instead of blocking the publisher.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import uuid
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_QUEUE_SIZE = 256


class ChatState(StrEnum):
    """Snapshot state of a chat event. Transcript updates are always final."""

    FINAL = "final"


class ChatEventPayload(BaseModel):
    """Payload of a ``chat`` event, serialized as ``{runId, sessionKey, state}``."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    run_id: str = Field(..., alias="runId")
    session_key: str = Field(..., alias="sessionKey")
    state: ChatState = ChatState.FINAL


class BroadcastOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    drop_if_slow: bool = False


BroadcastFn = Callable[[str, ChatEventPayload, BroadcastOptions], None]


class BroadcastMessage(BaseModel):
    """What a client receives: event name, wire payload, hub sequence number."""

    event: str
    payload: dict[str, Any]
    seq: int


class ClientConnection:
    """One subscriber of the hub, with its own bounded queue."""

    def __init__(self, client_id: str, queue_size: int):
        self.client_id = client_id
        self.queue: queue.Queue[BroadcastMessage] = queue.Queue(maxsize=queue_size)
        self.dropped = 0

    def get(self, timeout: float | None = None) -> BroadcastMessage | None:
        """Next message, or None if none arrives within timeout."""
        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[BroadcastMessage]:
        messages = []
        while True:
            try:
                messages.append(self.queue.get_nowait())
            except queue.Empty:
                return messages


class ClientHub:
    def __init__(self, queue_size: int = DEFAULT_CLIENT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._clients: dict[str, ClientConnection] = {}
        self._lock = threading.Lock()
        self._seq = itertools.count(1)

    def connect(self, client_id: str | None = None) -> ClientConnection:
        conn = ClientConnection(client_id or str(uuid.uuid4()), self.queue_size)
        with self._lock:
            self._clients[conn.client_id] = conn
        logger.debug("Client connected: %s", conn.client_id)
        return conn

    def disconnect(self, conn: ClientConnection) -> None:
        with self._lock:
            self._clients.pop(conn.client_id, None)
        logger.debug("Client disconnected: %s (dropped %d)", conn.client_id, conn.dropped)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def broadcast(
        self,
        event: str,
        payload: ChatEventPayload,
        options: BroadcastOptions | None = None,
    ) -> None:
        """Deliver an event to every connected client.

        Without ``drop_if_slow`` a full client queue blocks the caller until
        the client catches up.
        """
        options = options or BroadcastOptions()
        message = BroadcastMessage(
            event=event,
            payload=payload.model_dump(by_alias=True, mode="json"),
            seq=next(self._seq),
        )
        with self._lock:
            clients = list(self._clients.values())

        for conn in clients:
            if not options.drop_if_slow:
                conn.queue.put(message)
                continue
            try:
                conn.queue.put_nowait(message)
            except queue.Full:
                conn.dropped += 1
                logger.debug(
                    "Client %s queue full, dropping %s event %d",
                    conn.client_id,
                    event,
                    message.seq,
                )
