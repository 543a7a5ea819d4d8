"""Single-consumer watch loop.

Waits for either the next change signal or a stop request, debounces
signals against the last *processed* one, and hands each surviving signal
to the driver.  A processing step that has started always runs to
completion before a stop request is honoured.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable

from .driver import ConversationDriver

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_S = 0.05


class WatchRuntime:
    def __init__(
        self,
        driver: ConversationDriver,
        queue: asyncio.Queue[None],
        *,
        debounce_s: float = DEFAULT_DEBOUNCE_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.driver = driver
        self.queue = queue
        self.debounce_s = debounce_s
        self._clock = clock
        self._stop = asyncio.Event()
        self._running = threading.Event()
        self._lock = threading.Lock()
        self._processed = 0
        self._dropped = 0

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    @property
    def processed_events(self) -> int:
        with self._lock:
            return self._processed

    @property
    def dropped_events(self) -> int:
        with self._lock:
            return self._dropped

    def counters(self) -> dict[str, int]:
        """Both counters read together, safe to call from another thread."""
        with self._lock:
            return {"processed_events": self._processed, "dropped_events": self._dropped}

    def request_stop(self) -> None:
        self._stop.set()

    async def _next_signal(self) -> bool:
        """Return True for a change signal, False once stop was requested."""
        get_task = asyncio.ensure_future(self.queue.get())
        stop_task = asyncio.ensure_future(self._stop.wait())
        try:
            done, _ = await asyncio.wait(
                {get_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (get_task, stop_task):
                if not task.done():
                    task.cancel()
        return stop_task not in done

    async def run(self) -> None:
        self._running.set()
        last_event_time: float | None = None
        try:
            while not self._stop.is_set():
                if not await self._next_signal():
                    break

                now = self._clock()
                if last_event_time is not None and now - last_event_time < self.debounce_s:
                    with self._lock:
                        self._dropped += 1
                    logger.debug("skip: debounced change signal")
                    continue
                last_event_time = now

                logger.info("detect: file change")
                try:
                    await self.driver.process_latest()
                except Exception:  # noqa: BLE001
                    logger.exception("error: unexpected failure while processing change")
                with self._lock:
                    self._processed += 1
        finally:
            self._running.clear()
            logger.info("Shutting down...")
