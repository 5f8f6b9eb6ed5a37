import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.models.event import Event, EventStatus

logger = logging.getLogger(__name__)


def log_event(
    db: Session,
    event_type: str,
    subject_id: Optional[str],
    payload: Dict[str, Any],
    status: EventStatus = EventStatus.PROCESSED,
    error_message: Optional[str] = None,
) -> Event:
    """Append an event to the audit log. Caller owns the commit."""
    event = Event(
        type=event_type,
        subject_id=subject_id,
        payload=payload,
        status=status,
        error_message=error_message,
    )
    db.add(event)
    db.flush()
    return event
