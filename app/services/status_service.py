"""
Status write path and read paths.

Write: store transaction (member + history) -> mirror -> change notification.
Read: store first; on StoreError the serving path falls back to the mirror.
The broadcast path uses the strict read so it never fans out mirror data.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from app.core.errors import MemberNotFoundError, StoreError, ValidationError
from app.db.repository import StatusRepository
from app.db.schemas import HistoryPage, StatusSnapshot
from app.services.mirror import StatusMirror

logger = logging.getLogger("board.store")


class StatusService:
    def __init__(
        self,
        repository: StatusRepository,
        mirror: StatusMirror,
        on_change: Optional[Callable[[], None]] = None,
        history_default_limit: int = 100,
        history_max_limit: int = 1000,
    ):
        self._repo = repository
        self._mirror = mirror
        self._on_change = on_change
        self._history_default_limit = history_default_limit
        self._history_max_limit = history_max_limit

    def set_change_callback(self, cb: Callable[[], None]) -> None:
        self._on_change = cb

    async def read_snapshot_strict(self) -> StatusSnapshot:
        return StatusSnapshot(members=await self._repo.list_members())

    async def current_snapshot(self) -> StatusSnapshot:
        try:
            return await self.read_snapshot_strict()
        except StoreError as exc:
            logger.warning("store unavailable, serving mirror: %s", exc)
            return self._mirror.read()

    async def _after_write(self) -> StatusSnapshot:
        try:
            snapshot = await self.read_snapshot_strict()
            self._mirror.write(snapshot)
            return snapshot
        finally:
            # The store changed whether or not the mirror kept up.
            if self._on_change is not None:
                self._on_change()

    async def update_status(
        self,
        name: Optional[str],
        activity: Optional[str] = None,
        state: Optional[str] = None,
    ) -> StatusSnapshot:
        """Upsert one member (empty fields keep prior values) and append history."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required")
        member = await self._repo.upsert_with_history(name, activity, state)
        logger.info(
            "status updated: %s activity=%r state=%r",
            member.name,
            member.activity,
            member.state,
        )
        return await self._after_write()

    async def delete_status(self, name: str) -> StatusSnapshot:
        if not await self._repo.delete_member(name):
            raise MemberNotFoundError(name)
        logger.info("status deleted: %s", name)
        return await self._after_write()

    def clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self._history_default_limit
        return max(1, min(limit, self._history_max_limit))

    async def history(
        self,
        *,
        name: Optional[str] = None,
        from_: Optional[datetime] = None,
        to: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> HistoryPage:
        if offset < 0:
            raise ValidationError("offset must be non-negative")
        limit = self.clamp_limit(limit)
        entries, total = await self._repo.history(
            name=name, from_=from_, to=to, limit=limit, offset=offset
        )
        return HistoryPage(history=entries, total=total, limit=limit, offset=offset)
