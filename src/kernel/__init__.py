"""
Kernel Layer

Foundational components of the auth service:
- Identity Core (accounts, credentials, tokens, sessions)
- Immutable Event Log (account mutations logged in the same transaction)
"""

from src.kernel.models import (
    User,
    UserRole,
    AuthMethod,
    RefreshTokenReference,
    EventLog,
    EventType,
)

__all__ = [
    # User & Identity
    "User",
    "UserRole",
    "AuthMethod",
    "RefreshTokenReference",
    # Event Log
    "EventLog",
    "EventType",
]
