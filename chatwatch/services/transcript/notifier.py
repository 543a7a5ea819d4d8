"""Filesystem change notifier for the transcript.

The watchdog observer calls back on its own thread.  Callbacks never touch
driver state: they post a bare signal into the asyncio queue through
``loop.call_soon_threadsafe`` and return.  A full queue drops the signal;
the driver always re-reads the whole file, so one pending signal is enough.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class TranscriptChangeHandler(FileSystemEventHandler):
    """Fire ``notify`` for events that touch the watched file."""

    def __init__(self, path: str | Path, notify: Callable[[], None]) -> None:
        super().__init__()
        self.path = Path(path).resolve()
        self._notify = notify

    def _matches(self, raw_path: Any) -> bool:
        if not raw_path:
            return False
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode("utf-8", errors="replace")
        return Path(raw_path).resolve() == self.path

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._matches(event.src_path):
            self._notify()

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._matches(event.src_path):
            self._notify()

    def on_moved(self, event: FileSystemEvent) -> None:
        # editors that save via temp file + rename
        if not event.is_directory and self._matches(getattr(event, "dest_path", None)):
            self._notify()


class ChangeNotifier:
    def __init__(
        self,
        path: str | Path,
        queue: asyncio.Queue[None],
        loop: asyncio.AbstractEventLoop,
        *,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self.path = Path(path).resolve()
        self.queue = queue
        self.loop = loop
        self._observer_factory = observer_factory
        self._observer: Any = None
        self.handler = TranscriptChangeHandler(self.path, self.signal)

    def signal(self) -> None:
        """Thread-safe, non-blocking hand-off to the event loop."""
        try:
            self.loop.call_soon_threadsafe(self._enqueue)
        except RuntimeError:
            # loop already closed during shutdown
            logger.debug("detect: dropped change signal after loop shutdown")

    def _enqueue(self) -> None:
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            logger.debug("detect: change queue full, dropping signal")

    def start(self) -> None:
        observer = self._observer_factory()
        observer.schedule(self.handler, str(self.path.parent), recursive=False)
        observer.start()
        self._observer = observer
        logger.info("monitoring: watching %s", self.path)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
