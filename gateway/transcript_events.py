"""Transcript update notifications.

Watchers call ``emit`` whenever a transcript file gains content; consumers
register with ``subscribe`` and receive a ``TranscriptUpdate`` per notification.
``subscribe`` returns a no-argument teardown callable.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class TranscriptUpdate(BaseModel):
    session_file: str


TranscriptListener = Callable[[TranscriptUpdate], None]
Unsubscribe = Callable[[], None]
SubscribeFn = Callable[[TranscriptListener], Unsubscribe]


class TranscriptUpdateHub:
    """Fan transcript updates out to subscribed listeners."""

    def __init__(self):
        self._listeners: list[TranscriptListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: TranscriptListener) -> Unsubscribe:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def emit(self, session_file: str) -> None:
        """Notify every listener that session_file changed.

        A failing listener is logged and does not stop delivery to the rest.
        """
        session_file = session_file.strip()
        if not session_file:
            return
        update = TranscriptUpdate(session_file=session_file)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(update)
            except Exception:
                logger.warning("Transcript listener failed for %s", session_file, exc_info=True)
