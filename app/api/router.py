"""
Family board API: current status, live stream, history, client config, stats.

- GET    /status           — full current snapshot (mirror fallback if the store is down)
- GET    /status/stream    — SSE stream: snapshot on connect, on change, heartbeats
- POST   /status           — upsert one member, append history, return snapshot
- DELETE /status/{name}    — remove a member (history cascades)
- GET    /history[/{name}] — paginated history, newest first
- GET    /config           — polling/reconnect tuning for clients
- GET    /stats            — live stream counters
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from app.core.config import Settings
from app.core.errors import RegistryFullError
from app.db.schemas import (
    ClientConfigOut,
    HistoryPage,
    ReconnectConfigOut,
    StatsOut,
    StatusSnapshot,
    StatusUpdateIn,
    StatusWriteOut,
)
from app.services.app_state import get_broadcaster, get_status_service
from app.services.live_broadcast import LiveBroadcaster
from app.core.sse import STREAM_HEADERS, STREAM_MEDIA_TYPE
from app.services.status_service import StatusService
from app.services.stream_session import StreamSession

router = APIRouter()


def get_settings(request: Request) -> Settings:
    """Settings the app was created with."""
    return request.app.state.settings


@router.get("/status", response_model=StatusSnapshot)
async def current_status(service: StatusService = Depends(get_status_service)):
    """Every member's current status."""
    return await service.current_snapshot()


@router.get("/status/stream", summary="Live status stream via Server-Sent Events")
async def status_stream(
    broadcaster: LiveBroadcaster = Depends(get_broadcaster),
    cfg: Settings = Depends(get_settings),
):
    """
    Full snapshot immediately, then on every change; ":heartbeat" comments keep
    idle connections open. Connect with EventSource or:
    curl -N http://localhost:8000/api/status/stream
    """
    if broadcaster.registry.full:
        raise RegistryFullError("Too many live connections, try again later")
    session = StreamSession(broadcaster, queue_size=cfg.SUBSCRIBER_QUEUE_SIZE)
    return StreamingResponse(
        session.frames(),
        media_type=STREAM_MEDIA_TYPE,
        headers=STREAM_HEADERS,
    )


@router.post("/status", response_model=StatusWriteOut)
async def update_status(
    body: StatusUpdateIn,
    service: StatusService = Depends(get_status_service),
):
    """Set a member's activity and/or state; omitted fields keep their previous value."""
    snapshot = await service.update_status(body.name, body.activity, body.state)
    return StatusWriteOut(members=snapshot.members)


@router.delete("/status/{name}", response_model=StatusWriteOut)
async def delete_status(name: str, service: StatusService = Depends(get_status_service)):
    snapshot = await service.delete_status(name)
    return StatusWriteOut(members=snapshot.members)


@router.get("/history", response_model=HistoryPage, summary="Status history, all members")
async def history(
    from_: Optional[datetime] = Query(None, alias="from"),
    to: Optional[datetime] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    service: StatusService = Depends(get_status_service),
):
    return await service.history(from_=from_, to=to, limit=limit, offset=offset)


@router.get("/history/{name}", response_model=HistoryPage, summary="Status history of one member")
async def member_history(
    name: str,
    from_: Optional[datetime] = Query(None, alias="from"),
    to: Optional[datetime] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    service: StatusService = Depends(get_status_service),
):
    return await service.history(
        name=name, from_=from_, to=to, limit=limit, offset=offset
    )


@router.get("/config", response_model=ClientConfigOut)
async def client_config(cfg: Settings = Depends(get_settings)):
    """Polling fallback interval and reconnect tuning for clients."""
    return ClientConfigOut(
        polling_interval=cfg.POLLING_INTERVAL_SEC,
        heartbeat_interval=cfg.HEARTBEAT_INTERVAL_SEC,
        reconnect=ReconnectConfigOut(
            base_delay=cfg.RECONNECT_BASE_DELAY_SEC,
            max_delay=cfg.RECONNECT_MAX_DELAY_SEC,
            max_attempts=cfg.RECONNECT_MAX_ATTEMPTS,
        ),
    )


@router.get("/stats", response_model=StatsOut)
async def stats(broadcaster: LiveBroadcaster = Depends(get_broadcaster)):
    """Live stream counters for this process."""
    return StatsOut(
        subscribers=broadcaster.subscriber_count,
        broadcasts=broadcaster.broadcasts,
        heartbeats=broadcaster.heartbeats,
        evicted=broadcaster.evicted,
        skipped=broadcaster.skipped,
    )
