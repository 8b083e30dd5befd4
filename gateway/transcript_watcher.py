"""Polling watcher for transcript files.

Stats every transcript under a root directory on each poll and reports the
ones that are new or whose size or mtime changed. Reports are at-least-once:
a file touched without new content is reported again.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "*.jsonl"
DEFAULT_POLL_INTERVAL_SECONDS = 1.0


class PollingTranscriptWatcher:
    def __init__(
        self,
        root: Path,
        emit: Callable[[str], None],
        pattern: str = DEFAULT_PATTERN,
        interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ):
        self.root = root
        self.pattern = pattern
        self.interval = interval
        self._emit = emit
        # path -> (size, mtime_ns) at last report
        self._seen: dict[str, tuple[int, int]] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def _scan(self) -> dict[str, tuple[int, int]]:
        current: dict[str, tuple[int, int]] = {}
        if not self.root.is_dir():
            return current
        for path in self.root.rglob(self.pattern):
            try:
                st = path.stat()
            except OSError:
                # Deleted between listing and stat
                continue
            if path.is_file():
                current[str(path)] = (st.st_size, st.st_mtime_ns)
        return current

    def poll(self) -> list[str]:
        """Scan once and emit an update for each changed file.

        Returns:
            Paths reported in this poll, in sorted order
        """
        current = self._scan()
        changed = sorted(p for p, sig in current.items() if self._seen.get(p) != sig)
        self._seen = current
        for path in changed:
            self._emit(path)
        return changed

    # --- Background loop ---

    def _run(self) -> None:
        logger.info("Watching %s/**/%s every %.1fs", self.root, self.pattern, self.interval)
        # Always polls at least once, even if stop() was called right after start()
        while True:
            try:
                self.poll()
            except Exception:
                logger.warning("Transcript poll failed under %s", self.root, exc_info=True)
            if self._stop.wait(self.interval):
                break

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="transcript-watcher", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
