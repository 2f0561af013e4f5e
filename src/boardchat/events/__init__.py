# /src/boardchat/events/__init__.py
# Domain events recorded in the outbox

from .types import EventType, DeliveryStatus
from .envelope import EventEnvelope

__all__ = [
    "EventType",
    "DeliveryStatus",
    "EventEnvelope",
]
