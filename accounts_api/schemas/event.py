import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    ADMIN_CREATED = "ADMIN_CREATED"
    ADMIN_ASSISTANT_CREATED = "ADMIN_ASSISTANT_CREATED"
    PARTNER_CREATED = "PARTNER_CREATED"
    CLIENT_CREATED = "CLIENT_CREATED"
    DRIVER_CREATED = "DRIVER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    USER_DELETION_FAILED = "USER_DELETION_FAILED"
    CRITICAL_ERROR = "CRITICAL_ERROR"
    PARTNER_VALIDATED = "PARTNER_VALIDATED"
    PARTNER_INVALIDATED = "PARTNER_INVALIDATED"
    USER_LOGGED_IN = "USER_LOGGED_IN"


def routing_key_for(event_type: str) -> str:
    """Topic routing key of an event type, e.g. PARTNER_CREATED -> user.partner_created."""
    return f"user.{str(getattr(event_type, 'value', event_type)).lower()}"


class DomainEvent(BaseModel):
    """Envelope published to the broker for every completed state transition."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str
    routing_key: str
    payload: dict[str, Any]
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def create(cls, event_type: EventType | str, payload: dict[str, Any]) -> "DomainEvent":
        name = str(getattr(event_type, "value", event_type))
        return cls(
            event_type=name,
            routing_key=routing_key_for(name),
            payload=payload,
        )
