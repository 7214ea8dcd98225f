from app.services.live_broadcast import LiveBroadcaster
from app.services.registry import SubscriberChannel, SubscriberRegistry
from app.services.change_source import ChangeNotifier, StoreWatcher
from app.services.status_service import StatusService
from app.services.app_state import (
    get_broadcaster,
    get_notifier,
    get_status_service,
    set_broadcaster,
    set_notifier,
    set_status_service,
)

__all__ = [
    "ChangeNotifier",
    "LiveBroadcaster",
    "StatusService",
    "StoreWatcher",
    "SubscriberChannel",
    "SubscriberRegistry",
    "get_broadcaster",
    "get_notifier",
    "get_status_service",
    "set_broadcaster",
    "set_notifier",
    "set_status_service",
]
