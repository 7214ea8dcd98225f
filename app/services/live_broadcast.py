"""
In-process broadcast engine for the live status stream.

- broadcast_snapshot(): read the store, encode once, fan out to every subscriber.
- send_initial(): same encoding, delivered to one new session only.
- Heartbeat loop: comment frame to every subscriber on a fixed period.
Failed writes are collected during the pass and evicted together afterwards.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from app.core.errors import ChannelClosedError, FamilyBoardError
from app.db.schemas import StatusSnapshot
from app.services.registry import SubscriberChannel, SubscriberRegistry
from app.core.sse import HEARTBEAT_FRAME, encode_data

logger = logging.getLogger("board.broadcast")

SnapshotReader = Callable[[], Awaitable[StatusSnapshot]]


def encode_snapshot(snapshot: StatusSnapshot) -> str:
    return encode_data(snapshot.model_dump_json())


class LiveBroadcaster:
    """In-process fanout: broadcast_snapshot() sends the current state to all sessions."""

    def __init__(
        self,
        registry: SubscriberRegistry,
        read_snapshot: SnapshotReader,
        read_snapshot_fallback: Optional[SnapshotReader] = None,
        heartbeat_interval: float = 30.0,
    ):
        self._registry = registry
        self._read_snapshot = read_snapshot
        self._read_snapshot_fallback = read_snapshot_fallback or read_snapshot
        self._heartbeat_interval = heartbeat_interval
        self._heartbeat_task: Optional[asyncio.Task[None]] = None
        self.broadcasts = 0
        self.heartbeats = 0
        self.evicted = 0
        self.skipped = 0

    @property
    def registry(self) -> SubscriberRegistry:
        return self._registry

    def _fan_out(self, frame: str) -> int:
        """Write frame to every subscriber; evict failures after the pass. Returns deliveries."""
        failed: list[str] = []
        delivered = 0

        def deliver(sub_id: str, channel: SubscriberChannel) -> None:
            nonlocal delivered
            try:
                channel.send(frame)
                delivered += 1
            except ChannelClosedError as exc:
                logger.info("evicting subscriber %s: %s", sub_id, exc)
                failed.append(sub_id)

        self._registry.for_each(deliver)
        if failed:
            self.evicted += self._registry.unregister_many(failed)
        return delivered

    async def broadcast_snapshot(self) -> int:
        """Push the authoritative snapshot to all subscribers. Skips the cycle if the store read fails."""
        try:
            snapshot = await self._read_snapshot()
        except FamilyBoardError as exc:
            self.skipped += 1
            logger.warning("broadcast skipped, store read failed: %s", exc)
            return 0
        delivered = self._fan_out(encode_snapshot(snapshot))
        self.broadcasts += 1
        logger.debug(
            "broadcast %d members to %d subscribers", len(snapshot.members), delivered
        )
        return delivered

    async def send_initial(self, channel: SubscriberChannel) -> None:
        """Deliver the current snapshot to a single new session (fallback read allowed)."""
        snapshot = await self._read_snapshot_fallback()
        channel.send(encode_snapshot(snapshot))

    def send_heartbeat(self) -> int:
        delivered = self._fan_out(HEARTBEAT_FRAME)
        self.heartbeats += 1
        return delivered

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            self.send_heartbeat()

    def start(self) -> None:
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(
                self._heartbeat_loop(), name="board-heartbeat"
            )

    async def stop(self) -> None:
        """Stop heartbeats and close every subscriber channel so sessions end."""
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None
        self._registry.unregister_many(self._registry.ids())

    @property
    def subscriber_count(self) -> int:
        return self._registry.count
