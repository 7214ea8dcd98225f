"""
Client reconnection controller.

Keeps one logical status subscription across physical reconnects:

    IDLE -> CONNECTING -> CONNECTED -> RECONNECTING -> ... -> FALLEN_BACK

Errors schedule a retry after min(attempt * base_delay, max_delay); at most one
retry timer is pending. After max_attempts failures the controller switches to
periodic pulls for the rest of its life. Snapshots from either path go through
the same fingerprint check, so change notifications do not depend on transport.
"""
from __future__ import annotations

import asyncio
import enum
import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Optional, Protocol

import httpx

from app.core.errors import StreamTransportError
from app.core.sse import Frame

logger = logging.getLogger("board.client")

Member = dict[str, Any]

POLLING_MIN_SEC = 1.0
POLLING_MAX_SEC = 300.0

TRANSPORT_ERRORS = (httpx.HTTPError, StreamTransportError, OSError)


class StatusTransport(Protocol):
    supports_streaming: bool

    def open_stream(self) -> AsyncContextManager[AsyncIterator[Frame]]: ...

    async def fetch_snapshot(self) -> list[Member]: ...


class ConnectionState(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FALLEN_BACK = "fallen_back"
    CLOSED = "closed"


def backoff_delay(attempt: int, base: float = 3.0, cap: float = 30.0) -> float:
    """Linear-then-capped retry delay for the given 1-based attempt."""
    return min(attempt * base, cap)


def clamp_polling_interval(seconds: float) -> float:
    return max(POLLING_MIN_SEC, min(seconds, POLLING_MAX_SEC))


def fingerprint(members: list[Member]) -> str:
    """Digest of (name, activity, state) triples; timestamps and order are ignored."""
    triples = sorted(
        (
            str(m.get("name", "")),
            str(m.get("activity") or ""),
            str(m.get("state") or ""),
        )
        for m in members
    )
    return hashlib.sha256(
        json.dumps(triples, ensure_ascii=False).encode("utf-8")
    ).hexdigest()


def check_members(members: Any) -> list[Member]:
    """The snapshot's member list; TypeError unless it is a list of objects."""
    if not isinstance(members, list):
        raise TypeError("members is not a list")
    if not all(isinstance(m, dict) for m in members):
        raise TypeError("members entries must be objects")
    return members


def _parse_ts(raw: Any) -> datetime:
    if isinstance(raw, str) and raw:
        try:
            dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            pass
        else:
            return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return datetime.min.replace(tzinfo=timezone.utc)


def latest_member(members: list[Member]) -> Optional[Member]:
    """The member with the most recent timestamp (first one wins on ties)."""
    if not members:
        return None
    latest = members[0]
    for m in members[1:]:
        if _parse_ts(m.get("timestamp")) > _parse_ts(latest.get("timestamp")):
            latest = m
    return latest


class ReconnectController:
    def __init__(
        self,
        transport: StatusTransport,
        *,
        on_snapshot: Optional[Callable[[list[Member]], None]] = None,
        on_change: Optional[Callable[[Member], None]] = None,
        on_degraded: Optional[Callable[[], None]] = None,
        base_delay: float = 3.0,
        max_delay: float = 30.0,
        max_attempts: int = 10,
        polling_interval: float = 5.0,
    ):
        self._transport = transport
        self._on_snapshot = on_snapshot
        self._on_change = on_change
        self._on_degraded = on_degraded
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._max_attempts = max_attempts
        self._polling_interval = clamp_polling_interval(polling_interval)

        self.state = ConnectionState.IDLE
        self.attempts = 0
        self._fingerprint: Optional[str] = None
        self._stream_task: Optional[asyncio.Task[None]] = None
        self._retry_timer: Optional[asyncio.TimerHandle] = None
        self._poll_task: Optional[asyncio.Task[None]] = None
        self.stats = {
            "connects": 0,
            "errors": 0,
            "heartbeats": 0,
            "dropped_frames": 0,
            "pulls": 0,
            "pull_errors": 0,
        }

    # ── lifecycle ────────────────────────────────────────────

    @property
    def retry_pending(self) -> bool:
        return self._retry_timer is not None

    def start(self) -> None:
        if self.state is not ConnectionState.IDLE:
            return
        if getattr(self._transport, "supports_streaming", False):
            self._connect()
        else:
            logger.warning("Streaming not supported by transport, using polling")
            self._fall_back()

    async def aclose(self) -> None:
        """Stop everything: stream, pending retry, polling."""
        self.state = ConnectionState.CLOSED
        self._cancel_retry()
        tasks = [t for t in (self._stream_task, self._poll_task) if t is not None]
        self._stream_task = None
        self._poll_task = None
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ── streaming path ───────────────────────────────────────

    def _cancel_retry(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    def _connect(self) -> None:
        self._cancel_retry()
        if self._stream_task is not None and not self._stream_task.done():
            return
        self.state = ConnectionState.CONNECTING
        self._stream_task = asyncio.create_task(self._consume(), name="board-stream")

    async def _consume(self) -> None:
        try:
            async with self._transport.open_stream() as frames:
                self._on_open()
                async for frame in frames:
                    self._on_frame(frame)
            raise StreamTransportError("server closed the stream")
        except TRANSPORT_ERRORS as exc:
            self._on_error(exc)

    def _on_open(self) -> None:
        self.state = ConnectionState.CONNECTED
        self.attempts = 0
        self.stats["connects"] += 1
        self._cancel_retry()
        logger.info("Status stream connected")

    def _on_frame(self, frame: Frame) -> None:
        if frame.kind == "comment":
            self.stats["heartbeats"] += 1
            return
        try:
            members = check_members(json.loads(frame.data)["members"])
        except (ValueError, KeyError, TypeError) as exc:
            self.stats["dropped_frames"] += 1
            logger.warning("Dropping malformed frame: %s", exc)
            return
        self._apply_snapshot(members)

    def _on_error(self, exc: BaseException) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        # Called from inside the failed stream task; it is finishing on its own.
        self._stream_task = None
        self.attempts += 1
        self.stats["errors"] += 1
        if self.attempts < self._max_attempts:
            self.state = ConnectionState.RECONNECTING
            delay = backoff_delay(self.attempts, self._base_delay, self._max_delay)
            logger.warning(
                "Stream error (%s), retry %d in %.1fs", exc, self.attempts, delay
            )
            if self._retry_timer is None:
                loop = asyncio.get_running_loop()
                self._retry_timer = loop.call_later(delay, self._on_retry)
        else:
            logger.warning(
                "Stream failed %d times (%s), falling back to polling",
                self.attempts,
                exc,
            )
            self._fall_back()

    def _on_retry(self) -> None:
        self._retry_timer = None
        if self.state is ConnectionState.RECONNECTING:
            self._connect()

    # ── fallback path ────────────────────────────────────────

    def _fall_back(self) -> None:
        self._cancel_retry()
        stream = self._stream_task
        self._stream_task = None
        if stream is not None and stream is not asyncio.current_task():
            stream.cancel()
        self.state = ConnectionState.FALLEN_BACK
        if self._on_degraded is not None:
            self._on_degraded()
        self._poll_task = asyncio.create_task(self._poll_loop(), name="board-poll")

    async def _poll_loop(self) -> None:
        while True:
            await self.pull()
            await asyncio.sleep(self._polling_interval)

    async def pull(self) -> None:
        """Fetch the snapshot once; failures are logged and retried on the next tick."""
        self.stats["pulls"] += 1
        try:
            members = check_members(await self._transport.fetch_snapshot())
        except (*TRANSPORT_ERRORS, ValueError, TypeError) as exc:
            self.stats["pull_errors"] += 1
            logger.warning("Status pull failed: %s", exc)
            return
        self._apply_snapshot(members)

    # ── shared ───────────────────────────────────────────────

    def _apply_snapshot(self, members: list[Member]) -> None:
        current = fingerprint(members)
        if self._fingerprint is not None and current != self._fingerprint:
            member = latest_member(members)
            if member is not None and self._on_change is not None:
                self._on_change(member)
        self._fingerprint = current
        if self._on_snapshot is not None:
            self._on_snapshot(members)
