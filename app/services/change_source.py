"""
Change source: turns "something changed" signals into debounced broadcasts.

Signals come from the write path (notify() after a commit) or from StoreWatcher
observing an external file. Each signal restarts the debounce timer; when the
timer settles, one broadcast cycle runs and re-reads authoritative state.
Cycles never overlap: a cycle triggered while another runs waits for it, then
reads fresh state.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from watchfiles import awatch

logger = logging.getLogger("board.change")


class ChangeNotifier:
    def __init__(
        self,
        on_settled: Callable[[], Awaitable[Any]],
        debounce_sec: float = 0.1,
    ):
        self._on_settled = on_settled
        self._debounce_sec = debounce_sec
        self._timer: Optional[asyncio.TimerHandle] = None
        self._cycle_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False
        self.signals = 0
        self.cycles = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def notify(self) -> None:
        """Record a change; (re)starts the debounce timer. Must run on the event loop."""
        if self._closed:
            return
        self.signals += 1
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce_sec, self._fire)

    def _fire(self) -> None:
        self._timer = None
        task = asyncio.create_task(self._cycle(), name="board-broadcast")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _cycle(self) -> None:
        async with self._cycle_lock:
            self.cycles += 1
            try:
                await self._on_settled()
            except Exception:
                logger.exception("broadcast cycle failed")

    async def drain(self) -> None:
        """Wait for in-flight cycles (not for a pending timer)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self) -> None:
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for t in list(self._tasks):
            t.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


class StoreWatcher:
    """Watches a file or directory with watchfiles and feeds changes into a ChangeNotifier."""

    def __init__(self, path: str | Path, notifier: ChangeNotifier):
        self._path = Path(path)
        self._notifier = notifier
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._watch_loop(), name="board-watcher")
        logger.info("Watching %s for external changes", self._path)

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _watch_loop(self) -> None:
        async for changes in awatch(
            self._path, stop_event=self._stop_event, debounce=50, step=25
        ):
            logger.debug("external change: %d paths", len(changes))
            self._notifier.notify()
