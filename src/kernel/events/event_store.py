"""
Append-only audit trail for account activity.

Rows are added to the caller's session, so an audit entry lands in the same
transaction as the account mutation it records and rolls back with it.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.models.event_log import EventLog, EventType

ACCOUNT_ENTITY = "user"


def _jsonable(value: Any) -> Any:
    if isinstance(value, (uuid.UUID, Enum)):
        return str(getattr(value, "value", value))
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(item) for item in value]
    return value


class EventStore:
    """Writes and reads EventLog rows for one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        event_type: EventType,
        entity_id: uuid.UUID,
        *,
        user_id: Optional[uuid.UUID] = None,
        payload: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        entity_type: str = ACCOUNT_ENTITY,
    ) -> EventLog:
        """
        Stage an audit row; ``user_id`` is the actor, ``entity_id`` the account acted on.

        Nothing is flushed here. The request's unit of work commits it.
        """
        event = EventLog(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            payload=_jsonable(payload or {}),
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
        )
        self.session.add(event)
        return event

    async def get_user_activity(
        self,
        account_id: uuid.UUID,
        event_types: Optional[List[EventType]] = None,
        limit: int = 100,
    ) -> List[EventLog]:
        """Events recorded against an account, newest first, including staged ones."""
        await self.session.flush()
        query = select(EventLog).where(
            EventLog.entity_type == ACCOUNT_ENTITY,
            EventLog.entity_id == account_id,
        )
        if event_types:
            query = query.where(EventLog.event_type.in_([t.value for t in event_types]))

        result = await self.session.execute(
            query.order_by(desc(EventLog.created_at)).limit(limit)
        )
        return list(result.scalars().all())
