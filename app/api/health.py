"""Health endpoints: liveness and readiness."""
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.db import database

router = APIRouter(tags=["health"])
logger = logging.getLogger("board.health")


@router.get("/health/live")
async def liveness():
    """Liveness: process is running. No dependencies checked."""
    return {"status": "ok"}


@router.get("/health/ready")
async def readiness():
    """Readiness: the status store is reachable."""
    try:
        await database.ping()
    except (SQLAlchemyError, RuntimeError) as e:
        logger.warning("DB readiness check failed: %s", e)
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "errors": ["database"]},
        )
    return {"status": "ok"}
