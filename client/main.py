"""
Console status watcher.

- Subscribes to the board's live stream through ReconnectController.
- Prints the board on every snapshot and a line per detected change.
- Falls back to polling GET /api/status after repeated stream failures.
"""
import asyncio
import logging
from typing import Any

from app.core.config import settings
from app.core.logging import setup_logging
from client.controller import ReconnectController
from client.transport import HttpStatusTransport

logger = logging.getLogger("board.client")


def _print_board(members: list[dict[str, Any]]) -> None:
    if not members:
        print("(nobody has posted a status yet)")
        return
    for m in members:
        parts = [p for p in (m.get("activity"), m.get("state")) if p]
        print(f"{m.get('name', '?'):<16} {' / '.join(parts) or '-':<32} {m.get('timestamp', '')}")


def _print_change(member: dict[str, Any]) -> None:
    parts = [p for p in (member.get("activity"), member.get("state")) if p]
    print(f"* {member.get('name')} updated: {' / '.join(parts) or 'status cleared'}")


def _print_degraded() -> None:
    print("! live connection unavailable; polling every "
          f"{settings.POLLING_INTERVAL_SEC}s")


async def run_client() -> None:
    setup_logging()
    transport = HttpStatusTransport(settings.STATUS_BASE_URL, settings.API_PREFIX)
    controller = ReconnectController(
        transport,
        on_snapshot=_print_board,
        on_change=_print_change,
        on_degraded=_print_degraded,
        base_delay=settings.RECONNECT_BASE_DELAY_SEC,
        max_delay=settings.RECONNECT_MAX_DELAY_SEC,
        max_attempts=settings.RECONNECT_MAX_ATTEMPTS,
        polling_interval=settings.POLLING_INTERVAL_SEC,
    )
    controller.start()
    logger.info("Watching %s", settings.STATUS_BASE_URL)
    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await controller.aclose()
        await transport.aclose()


def main() -> None:
    try:
        asyncio.run(run_client())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
