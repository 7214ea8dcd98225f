"""
Async SQLAlchemy engine and session factory for the status store.

configure() builds the engine for a URL (called from the app lifespan, or from
tests with a temp file); init_db() creates the schema. SQLite foreign keys are
enabled per connection so history rows cascade with their member.
"""
import logging
from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings
from app.db.models import Base

logger = logging.getLogger("board.store")

engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker[AsyncSession]] = None


def _enable_sqlite_pragmas(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.close()


def configure(database_url: Optional[str] = None) -> async_sessionmaker[AsyncSession]:
    """Create the engine and session factory; replaces any previous one."""
    global engine, AsyncSessionLocal
    url = database_url or settings.DATABASE_URL
    engine = create_async_engine(url, future=True)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_pragmas)
    AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)
    return AsyncSessionLocal


async def init_db() -> None:
    """Create tables and indexes if they do not exist."""
    if engine is None:
        configure()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Store initialised at %s", engine.url.render_as_string(hide_password=True))


async def ping() -> None:
    """Round-trip to the database; raises on failure."""
    if AsyncSessionLocal is None:
        raise RuntimeError("Database not configured")
    async with AsyncSessionLocal() as session:
        await session.execute(text("SELECT 1"))


async def dispose() -> None:
    global engine, AsyncSessionLocal
    if engine is not None:
        await engine.dispose()
    engine = None
    AsyncSessionLocal = None
