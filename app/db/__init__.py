from app.db.models import Base, Member, StatusHistory
from app.db.repository import StatusRepository

__all__ = [
    "Base",
    "Member",
    "StatusHistory",
    "StatusRepository",
]
