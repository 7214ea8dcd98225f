"""
Subscriber registry for the live status stream.

Holds one SubscriberChannel per connected stream session. Structure is guarded
by a lock; iteration works on a point-in-time copy so channels can come and go
while a broadcast is running.
"""
import asyncio
import logging
import secrets
import threading
import time
from typing import Callable, Iterable

from app.core.errors import ChannelClosedError, RegistryFullError

logger = logging.getLogger("board.broadcast")


def new_subscriber_id() -> str:
    """Generation time plus a random tie-break."""
    return f"{time.time_ns()}-{secrets.token_hex(4)}"


class SubscriberChannel:
    """Bounded, non-blocking output channel for one stream session."""

    def __init__(self, maxsize: int = 32):
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, frame: str) -> None:
        """Enqueue a frame. Raises ChannelClosedError if closed or stalled (queue full)."""
        if self._closed:
            raise ChannelClosedError("channel closed")
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull as exc:
            raise ChannelClosedError("channel full") from exc

    async def receive(self) -> str | None:
        """Next frame, or None once the channel has been closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake a reader blocked in receive(); drop a stale frame if needed.
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self._queue.put_nowait(None)


class SubscriberRegistry:
    """Concurrency-safe set of active channels keyed by subscriber id."""

    def __init__(self, max_subscribers: int = 1000):
        self._channels: dict[str, SubscriberChannel] = {}
        self._lock = threading.Lock()
        self._max = max_subscribers

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._channels)

    @property
    def full(self) -> bool:
        with self._lock:
            return len(self._channels) >= self._max

    def register(self, channel: SubscriberChannel) -> str:
        with self._lock:
            if len(self._channels) >= self._max:
                raise RegistryFullError(
                    f"Subscriber limit reached ({self._max})"
                )
            sub_id = new_subscriber_id()
            self._channels[sub_id] = channel
        logger.debug("subscriber registered: %s", sub_id)
        return sub_id

    def unregister(self, sub_id: str) -> bool:
        """Idempotent; returns whether the id was present."""
        with self._lock:
            channel = self._channels.pop(sub_id, None)
        if channel is None:
            return False
        channel.close()
        logger.debug("subscriber unregistered: %s", sub_id)
        return True

    def unregister_many(self, sub_ids: Iterable[str]) -> int:
        """Remove several ids in one structural change; returns how many were present."""
        with self._lock:
            removed = [self._channels.pop(i) for i in set(sub_ids) if i in self._channels]
        for channel in removed:
            channel.close()
        return len(removed)

    def ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._channels)

    def for_each(self, fn: Callable[[str, SubscriberChannel], None]) -> None:
        """Call fn once per subscriber in a snapshot taken under the lock (fn runs unlocked)."""
        with self._lock:
            entries = list(self._channels.items())
        for sub_id, channel in entries:
            fn(sub_id, channel)
