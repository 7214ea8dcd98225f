"""Pytest configuration and fixtures for the family board.

Every test gets its own SQLite file and JSON mirror under tmp_path. HTTP tests
run the real app factory (lifespan included) behind httpx's ASGITransport.
"""
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.main import create_app
from app.core.config import Settings
from app.db import database
from app.db.repository import StatusRepository
from app.services.app_state import get_broadcaster, get_notifier, get_status_service
from app.services.mirror import StatusMirror


@pytest.fixture
def board_settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'board.db'}",
        MIRROR_PATH=str(tmp_path / "family-status.json"),
        BROADCAST_DEBOUNCE_MS=20,
        HEARTBEAT_INTERVAL_SEC=3600,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
async def board_app(board_settings: Settings):
    """App with lifespan running (store, broadcaster, notifier wired)."""
    application = create_app(board_settings)
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def client(board_app) -> AsyncClient:
    """Async HTTP client against the FastAPI app (ASGI)."""
    transport = ASGITransport(app=board_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def broadcaster(board_app):
    return get_broadcaster()


@pytest.fixture
def notifier(board_app):
    return get_notifier()


@pytest.fixture
def status_service(board_app):
    return get_status_service()


@pytest.fixture
async def repository(tmp_path: Path):
    """Repository on a fresh store, without the HTTP app."""
    factory = database.configure(f"sqlite+aiosqlite:///{tmp_path / 'repo.db'}")
    await database.init_db()
    yield StatusRepository(factory)
    await database.dispose()


@pytest.fixture
def mirror(tmp_path: Path) -> StatusMirror:
    return StatusMirror(tmp_path / "mirror" / "family-status.json")
