"""Audit trail of mutating actions.

Mutations publish an :class:`ActivityEvent` on :data:`activity_bus` after
their own transaction has committed. Subscribers run in registration
order; a subscriber that raises is logged and skipped, so recording the
audit trail can never fail the request that triggered it.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .core import get_settings
from .schemas import BulkAction

logger = logging.getLogger(__name__)


class ActivityAction(str, Enum):
    """Closed vocabulary of audit log actions."""

    CREATE_CONTACT = "CREATE_CONTACT"
    UPDATE_CONTACT = "UPDATE_CONTACT"
    DELETE_CONTACT = "DELETE_CONTACT"
    ADD_TO_GROUP = "ADD_TO_GROUP"
    REMOVE_FROM_GROUP = "REMOVE_FROM_GROUP"
    STARRED = "STARRED"
    UNSTARRED = "UNSTARRED"
    EXPORT = "EXPORT"
    BULK_DELETE = "BULK_DELETE"
    BULK_UPDATE = "BULK_UPDATE"
    BULK_STAR = "BULK_STAR"
    BULK_UNSTAR = "BULK_UNSTAR"
    BULK_CHANGE_STATUS = "BULK_CHANGE_STATUS"


BULK_ACTIVITY = {
    BulkAction.DELETE: ActivityAction.BULK_DELETE,
    BulkAction.UPDATE: ActivityAction.BULK_UPDATE,
    BulkAction.STAR: ActivityAction.BULK_STAR,
    BulkAction.UNSTAR: ActivityAction.BULK_UNSTAR,
    BulkAction.CHANGE_STATUS: ActivityAction.BULK_CHANGE_STATUS,
}


@dataclass(frozen=True)
class RequestContext:
    """Who triggered an action and from where."""

    performed_by: str = "System"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class ActivityEvent:
    action: ActivityAction
    entity_id: Optional[int]
    entity_name: str
    changes: Dict[str, Any] = field(default_factory=dict)
    context: RequestContext = field(default_factory=RequestContext)
    entity_type: str = "Contact"


Subscriber = Callable[[Session, ActivityEvent], None]


class ActivityBus:
    """Fan-out of activity events to registered subscribers."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Subscriber:
        self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber):
        self._subscribers.remove(subscriber)

    def publish(self, db: Session, event: ActivityEvent):
        for subscriber in list(self._subscribers):
            try:
                subscriber(db, event)
            except Exception:
                logger.exception(
                    "Failed to record activity %s for %s %s",
                    event.action.value,
                    event.entity_type,
                    event.entity_id,
                )


activity_bus = ActivityBus()


@activity_bus.subscribe
def persist_activity(db: Session, event: ActivityEvent):
    """Write the event to the ``activity_logs`` table in its own commit."""
    entry = models.ActivityLog(
        action=event.action.value,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        entity_name=event.entity_name,
        changes=event.changes,
        performed_by=event.context.performed_by,
        ip_address=event.context.ip_address,
        user_agent=event.context.user_agent,
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise


def get_request_context(request: Request) -> RequestContext:
    """FastAPI dependency describing the caller of the current request."""
    return RequestContext(
        performed_by=get_settings().ACTIVITY_ACTOR,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
