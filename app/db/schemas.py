"""API request/response schemas."""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class MemberStatus(BaseModel):
    """One member's current status (also the legacy mirror row layout)."""
    model_config = ConfigDict(from_attributes=True)

    name: str
    activity: str = ""
    state: str = ""
    timestamp: datetime

    @field_serializer("timestamp")
    def _ser_timestamp(self, v: datetime) -> str:
        return _iso(v)


class StatusSnapshot(BaseModel):
    """Full current status of every member."""
    members: list[MemberStatus] = []


class StatusUpdateIn(BaseModel):
    """POST /status body. name is checked by the service, not here, so a
    missing name maps to the board's own 400 error body."""
    name: Optional[str] = None
    activity: Optional[str] = None
    state: Optional[str] = None


class StatusWriteOut(BaseModel):
    success: bool = True
    members: list[MemberStatus] = []


class MemberRef(BaseModel):
    name: str


class HistoryEntryOut(BaseModel):
    id: int
    member_id: int
    activity: str = ""
    state: str = ""
    changed_at: datetime
    member: MemberRef

    @field_serializer("changed_at")
    def _ser_changed_at(self, v: datetime) -> str:
        return _iso(v)


class HistoryPage(BaseModel):
    history: list[HistoryEntryOut] = []
    total: int = 0
    limit: int
    offset: int


class ReconnectConfigOut(BaseModel):
    base_delay: float
    max_delay: float
    max_attempts: int


class ClientConfigOut(BaseModel):
    """Client tuning published by the server."""
    polling_interval: int = Field(ge=1, le=300)
    heartbeat_interval: float
    reconnect: ReconnectConfigOut


class StatsOut(BaseModel):
    """Live stream counters (in-memory, per process)."""
    subscribers: int = 0
    broadcasts: int = 0
    heartbeats: int = 0
    evicted: int = 0
    skipped: int = 0
