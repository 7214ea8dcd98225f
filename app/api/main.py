"""
FastAPI application for the family status board.

- Health: /health/live, /health/ready
- API: /api/status, /api/status/stream, /api/history, /api/config, /api/stats
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import Settings, settings as default_settings
from app.core.errors import FamilyBoardError
from app.core.logging import setup_logging
from app.api.health import router as health_router
from app.api.router import router as api_router
from app.db import database
from app.db.repository import StatusRepository
from app.services.app_state import set_broadcaster, set_notifier, set_status_service
from app.services.change_source import ChangeNotifier, StoreWatcher
from app.services.live_broadcast import LiveBroadcaster
from app.services.mirror import StatusMirror
from app.services.registry import SubscriberRegistry
from app.services.status_service import StatusService

logger = logging.getLogger("board.api")


def create_app(cfg: Optional[Settings] = None) -> FastAPI:
    cfg = cfg or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(cfg.LOG_LEVEL)

        session_factory = database.configure(cfg.DATABASE_URL)
        await database.init_db()

        service = StatusService(
            StatusRepository(session_factory),
            StatusMirror(cfg.MIRROR_PATH),
            history_default_limit=cfg.HISTORY_DEFAULT_LIMIT,
            history_max_limit=cfg.HISTORY_MAX_LIMIT,
        )
        registry = SubscriberRegistry(max_subscribers=cfg.MAX_SUBSCRIBERS)
        broadcaster = LiveBroadcaster(
            registry,
            read_snapshot=service.read_snapshot_strict,
            read_snapshot_fallback=service.current_snapshot,
            heartbeat_interval=cfg.HEARTBEAT_INTERVAL_SEC,
        )
        notifier = ChangeNotifier(
            broadcaster.broadcast_snapshot, debounce_sec=cfg.debounce_sec
        )
        service.set_change_callback(notifier.notify)

        set_status_service(service)
        set_broadcaster(broadcaster)
        set_notifier(notifier)

        watcher = StoreWatcher(cfg.WATCH_PATH, notifier) if cfg.WATCH_PATH else None
        broadcaster.start()
        if watcher is not None:
            watcher.start()
        logger.info("Family board started — api prefix %s", cfg.API_PREFIX)

        yield

        if watcher is not None:
            await watcher.stop()
        await notifier.stop()
        await broadcaster.stop()
        await database.dispose()
        set_status_service(None)
        set_broadcaster(None)
        set_notifier(None)
        logger.info("Family board stopped")

    application = FastAPI(
        title="Family Board API",
        description="Member status board with a live Server-Sent Events stream",
        lifespan=lifespan,
    )
    application.state.settings = cfg
    application.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(FamilyBoardError)
    async def board_error_handler(request: Request, exc: FamilyBoardError):
        if exc.status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    application.include_router(health_router)
    application.include_router(api_router, prefix=cfg.API_PREFIX)
    return application


app = create_app()
