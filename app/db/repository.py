"""
Store operations for current status and history.

- Current status: one row per member, upserted by name (last write wins).
- History: one row appended per write, in the same transaction as the upsert.
- Every SQLAlchemy failure surfaces as StoreError.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import MemberNotFoundError, StoreError
from app.db.models import Member, StatusHistory
from app.db.schemas import HistoryEntryOut, MemberRef, MemberStatus

logger = logging.getLogger("board.store")


def _utc(dt: datetime) -> datetime:
    """Normalise to UTC; naive values are taken as UTC already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_status(m: Member) -> MemberStatus:
    return MemberStatus(
        name=m.name,
        activity=m.activity or "",
        state=m.state or "",
        timestamp=_utc(m.timestamp),
    )


class StatusRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_members(self) -> list[MemberStatus]:
        """All current statuses, most recently updated first."""
        try:
            async with self._session_factory() as s:
                rows = await s.scalars(
                    select(Member).order_by(Member.updated_at.desc(), Member.id.desc())
                )
                return [_to_status(m) for m in rows]
        except SQLAlchemyError as exc:
            logger.warning("list members failed: %s", exc)
            raise StoreError("Failed to read current status") from exc

    async def upsert_with_history(
        self,
        name: str,
        activity: Optional[str],
        state: Optional[str],
        timestamp: Optional[datetime] = None,
    ) -> MemberStatus:
        """
        Insert or update the member and append one history row atomically.
        Empty activity/state keep the member's prior value.
        """
        ts = _utc(timestamp) if timestamp else datetime.now(timezone.utc)
        try:
            try:
                return await self._upsert_once(name, activity, state, ts)
            except IntegrityError:
                # Another writer inserted the same name between our read and insert.
                return await self._upsert_once(name, activity, state, ts)
        except SQLAlchemyError as exc:
            logger.warning("upsert %r failed: %s", name, exc)
            raise StoreError("Failed to save status") from exc

    async def _upsert_once(
        self, name: str, activity: Optional[str], state: Optional[str], ts: datetime
    ) -> MemberStatus:
        async with self._session_factory() as s:
            async with s.begin():
                member = await s.scalar(select(Member).where(Member.name == name))
                if member is None:
                    member = Member(
                        name=name,
                        activity=activity or "",
                        state=state or "",
                        timestamp=ts,
                        updated_at=ts,
                    )
                    s.add(member)
                else:
                    member.activity = activity or member.activity or ""
                    member.state = state or member.state or ""
                    member.timestamp = ts
                    member.updated_at = ts
                await s.flush()
                s.add(
                    StatusHistory(
                        member_id=member.id,
                        activity=member.activity,
                        state=member.state,
                        changed_at=ts,
                    )
                )
            return _to_status(member)

    async def delete_member(self, name: str) -> bool:
        """Delete a member (history cascades). False if no such member."""
        try:
            async with self._session_factory() as s:
                async with s.begin():
                    result = await s.execute(delete(Member).where(Member.name == name))
                return (result.rowcount or 0) > 0
        except SQLAlchemyError as exc:
            logger.warning("delete %r failed: %s", name, exc)
            raise StoreError("Failed to delete status") from exc

    async def history(
        self,
        *,
        name: Optional[str] = None,
        from_: Optional[datetime] = None,
        to: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[HistoryEntryOut], int]:
        """History rows newest first plus the total matching count."""
        try:
            async with self._session_factory() as s:
                conditions = []
                if name is not None:
                    member_id = await s.scalar(select(Member.id).where(Member.name == name))
                    if member_id is None:
                        raise MemberNotFoundError(name)
                    conditions.append(StatusHistory.member_id == member_id)
                if from_ is not None:
                    conditions.append(StatusHistory.changed_at >= _utc(from_))
                if to is not None:
                    conditions.append(StatusHistory.changed_at <= _utc(to))

                total = await s.scalar(
                    select(func.count()).select_from(StatusHistory).where(*conditions)
                )
                rows = await s.execute(
                    select(StatusHistory, Member.name)
                    .join(Member, StatusHistory.member_id == Member.id)
                    .where(*conditions)
                    .order_by(StatusHistory.changed_at.desc(), StatusHistory.id.desc())
                    .limit(limit)
                    .offset(offset)
                )
                entries = [
                    HistoryEntryOut(
                        id=h.id,
                        member_id=h.member_id,
                        activity=h.activity or "",
                        state=h.state or "",
                        changed_at=_utc(h.changed_at),
                        member=MemberRef(name=member_name),
                    )
                    for h, member_name in rows
                ]
                return entries, total or 0
        except SQLAlchemyError as exc:
            logger.warning("history query failed: %s", exc)
            raise StoreError("Failed to read history") from exc
