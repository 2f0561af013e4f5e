# /src/boardchat/events/envelope.py
# EventEnvelope - the outbox record for a domain event

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .types import DeliveryStatus, EventType
from ..models import utcnow


@dataclass
class EventEnvelope:
    """Durable record of one domain event awaiting fan-out.

    Properties:
    - Written once by the operation that caused it
    - Dispatched by the outbox relay, at least once
    - JSON serializable apart from its datetimes
    """
    event_id: str
    event_type: EventType
    timestamp: datetime
    correlation_id: str
    organization_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    causation_id: Optional[str] = None
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None

    @classmethod
    def create(
        cls,
        event_type: EventType,
        correlation_id: str,
        payload: Dict[str, Any],
        organization_id: Optional[str] = None,
        causation_id: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> "EventEnvelope":
        """Factory method to create a new EventEnvelope with auto-generated ID and timestamp."""
        return cls(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            timestamp=timestamp or utcnow(),
            correlation_id=correlation_id,
            organization_id=organization_id,
            payload=payload,
            causation_id=causation_id
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a store document."""
        return {
            "id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "correlation_id": self.correlation_id,
            "organization_id": self.organization_id,
            "payload": self.payload,
            "causation_id": self.causation_id,
            "status": self.status.value,
            "attempts": self.attempts,
            "last_error": self.last_error
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventEnvelope":
        """Deserialize from a store document."""
        return cls(
            event_id=data["id"],
            event_type=EventType(data["event_type"]),
            timestamp=data["timestamp"],
            correlation_id=data["correlation_id"],
            organization_id=data.get("organization_id"),
            payload=data.get("payload", {}),
            causation_id=data.get("causation_id"),
            status=DeliveryStatus(data.get("status", "pending")),
            attempts=data.get("attempts", 0),
            last_error=data.get("last_error")
        )
