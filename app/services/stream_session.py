"""
Server side of one long-lived status stream: HANDSHAKING -> STREAMING -> CLOSED.

The HTTP layer sends headers (STREAM_HEADERS) before iterating frames(), so the
client's handshake completes before any data exists. The session then queues
the current snapshot as its first frame, registers its channel, and relays
frames until the peer goes away or the channel is closed. Whatever the exit
path, close() unregisters the channel.
"""
import enum
import logging
from typing import AsyncIterator, Optional

from app.core.errors import FamilyBoardError
from app.services.live_broadcast import LiveBroadcaster
from app.services.registry import SubscriberChannel

logger = logging.getLogger("board.stream")


class SessionState(str, enum.Enum):
    HANDSHAKING = "handshaking"
    STREAMING = "streaming"
    CLOSED = "closed"


class StreamSession:
    def __init__(self, broadcaster: LiveBroadcaster, queue_size: int = 32):
        self._broadcaster = broadcaster
        self._channel = SubscriberChannel(maxsize=queue_size)
        self.state = SessionState.HANDSHAKING
        self.subscriber_id: Optional[str] = None

    @property
    def channel(self) -> SubscriberChannel:
        return self._channel

    async def open(self) -> None:
        """Initial snapshot first, then registration; a failure leaves nothing registered."""
        await self._broadcaster.send_initial(self._channel)
        self.subscriber_id = self._broadcaster.registry.register(self._channel)
        self.state = SessionState.STREAMING
        logger.info(
            "stream opened: %s (%d subscribers)",
            self.subscriber_id,
            self._broadcaster.subscriber_count,
        )

    def close(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        if self.subscriber_id is not None:
            self._broadcaster.registry.unregister(self.subscriber_id)
            logger.info("stream closed: %s", self.subscriber_id)
        self._channel.close()
        self.state = SessionState.CLOSED

    async def frames(self) -> AsyncIterator[str]:
        """Encoded frames for the response body. Ends on channel close; cleans up on cancel."""
        try:
            try:
                await self.open()
            except FamilyBoardError as exc:
                logger.warning("stream handshake failed: %s", exc)
                return
            while True:
                frame = await self._channel.receive()
                if frame is None:
                    break
                yield frame
        finally:
            self.close()
