from sqlalchemy import Column, ForeignKey, Integer, Text, DateTime, Index
from sqlalchemy.orm import DeclarativeBase, relationship
import datetime


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    pass


class Member(Base):
    """
    Current status — exactly one row per member name, last write wins.
    Deleting a member cascades to its history rows.
    """
    __tablename__ = "members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, unique=True, nullable=False)
    activity = Column(Text, nullable=False, default="")
    state = Column(Text, nullable=False, default="")
    timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    history = relationship(
        "StatusHistory",
        back_populates="member",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (Index("idx_members_name", "name"),)


class StatusHistory(Base):
    """Append-only log — one row per successful status write, never updated."""
    __tablename__ = "status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(
        Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    activity = Column(Text, nullable=False, default="")
    state = Column(Text, nullable=False, default="")
    changed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    member = relationship("Member", back_populates="history")

    __table_args__ = (
        Index("idx_history_member_time", "member_id", "changed_at"),
        Index("idx_history_date", "changed_at"),
    )
