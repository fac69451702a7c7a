"""
Append-only audit logging of account activity.
"""

from src.kernel.events.event_store import EventStore

__all__ = ["EventStore"]
