"""
Event log: append-only audit trail of match changes

Events are added to the caller's session and committed together with the
mutation they describe, so the log never disagrees with the match row.
"""
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from models import EventType, MatchEvent


def record_event(
    db: Session,
    match_id: UUID,
    event_type: EventType,
    data: Optional[Dict[str, Any]] = None
) -> MatchEvent:
    event = MatchEvent(
        match_id=match_id,
        event_type=event_type,
        data=data or {}
    )
    db.add(event)
    return event
