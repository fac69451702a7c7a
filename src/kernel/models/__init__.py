"""
Kernel Data Models

SQLAlchemy models backing the identity store and its audit trail.
"""

from src.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow
from src.kernel.models.user import User, UserRole, AuthMethod, RefreshTokenReference
from src.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    "utcnow",
    # User
    "User",
    "UserRole",
    "AuthMethod",
    "RefreshTokenReference",
    # Event Log
    "EventLog",
    "EventType",
]
