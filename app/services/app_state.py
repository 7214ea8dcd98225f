"""
Process-wide handles to the wired live-status services.

Set at app lifespan start; read by API routes through FastAPI dependencies.
"""
from __future__ import annotations

from typing import Optional

from app.services.change_source import ChangeNotifier
from app.services.live_broadcast import LiveBroadcaster
from app.services.status_service import StatusService

_broadcaster: Optional[LiveBroadcaster] = None
_notifier: Optional[ChangeNotifier] = None
_status_service: Optional[StatusService] = None


def set_broadcaster(b: Optional[LiveBroadcaster]) -> None:
    global _broadcaster
    _broadcaster = b


def get_broadcaster() -> LiveBroadcaster:
    if _broadcaster is None:
        raise RuntimeError("Live state not initialized")
    return _broadcaster


def set_notifier(n: Optional[ChangeNotifier]) -> None:
    global _notifier
    _notifier = n


def get_notifier() -> ChangeNotifier:
    if _notifier is None:
        raise RuntimeError("Live state not initialized")
    return _notifier


def set_status_service(s: Optional[StatusService]) -> None:
    global _status_service
    _status_service = s


def get_status_service() -> StatusService:
    if _status_service is None:
        raise RuntimeError("Live state not initialized")
    return _status_service
