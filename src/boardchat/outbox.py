# /src/boardchat/outbox.py
# Outbox - durable domain events and their at-least-once dispatch

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .errors import ErrorSink
from .events.envelope import EventEnvelope
from .events.types import DeliveryStatus, EventType
from .fanout import FanoutRules
from .models import as_utc, utcnow
from .storage.base import ASCENDING, DocumentStore

OUTBOX = "outbox"


class Outbox:
    """Records domain events and relays them to the fan-out rules.

    ``publish`` writes the event as pending and dispatches it right away.
    An event whose dispatch raised (or never ran because the process died)
    stays pending, and ``drain`` picks it up again later. Delivery is
    therefore at least once: a re-dispatched event may repeat notifications
    that were already written.

    Nothing in here raises into the caller: publishing is a side effect of
    an operation that has already been persisted.
    """

    def __init__(
        self,
        store: DocumentStore,
        rules: FanoutRules,
        error_sink: ErrorSink,
        clock: Callable[[], datetime] = utcnow
    ):
        self._store = store
        self._rules = rules
        self._sink = error_sink
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    async def record(
        self,
        event_type: EventType,
        correlation_id: str,
        payload: Dict[str, Any],
        organization_id: Optional[str] = None,
        causation_id: Optional[str] = None
    ) -> EventEnvelope:
        """Persist a pending event without dispatching it."""
        event = EventEnvelope.create(
            event_type=event_type,
            correlation_id=correlation_id,
            payload=payload,
            organization_id=organization_id,
            causation_id=causation_id,
            timestamp=self._clock()
        )
        await self._store.insert(OUTBOX, event.to_dict())
        self._logger.debug(f"Recorded event: {event.event_id} ({event.event_type.value})")
        return event

    async def publish(
        self,
        event_type: EventType,
        correlation_id: str,
        payload: Dict[str, Any],
        organization_id: Optional[str] = None
    ) -> List[str]:
        """Record an event and dispatch it immediately.

        Returns:
            Ids of the notifications written (empty if anything failed)
        """
        event = None
        async with self._sink.guard("outbox.record", event_type=event_type.value, correlation_id=correlation_id):
            event = await self.record(event_type, correlation_id, payload, organization_id)
        if event is None:
            return []
        return await self.dispatch(event)

    async def dispatch(self, event: EventEnvelope) -> List[str]:
        """Run the fan-out rules for one event and mark it dispatched."""
        written = await self._try_dispatch(event)
        return written if written is not None else []

    async def _try_dispatch(self, event: EventEnvelope) -> Optional[List[str]]:
        try:
            written = await self._rules.dispatch(event)
        except Exception as e:
            self._sink.report("outbox.dispatch", e, event_id=event.event_id)
            async with self._sink.guard("outbox.mark_failed", event_id=event.event_id):
                await self._store.update(OUTBOX, event.event_id, {
                    "attempts": event.attempts + 1,
                    "last_error": repr(e),
                })
            return None

        async with self._sink.guard("outbox.mark_dispatched", event_id=event.event_id):
            await self._store.update(OUTBOX, event.event_id, {
                "status": DeliveryStatus.DISPATCHED.value,
                "attempts": event.attempts + 1,
                "last_error": None,
            })
        return written

    async def pending(
        self,
        limit: Optional[int] = None,
        max_attempts: Optional[int] = None
    ) -> List[EventEnvelope]:
        """Pending events, oldest first.

        With ``max_attempts``, events that already failed that many times are
        left out before the limit is applied.
        """
        filters: Dict[str, Any] = {"status": DeliveryStatus.PENDING.value}
        if max_attempts is not None:
            filters["attempts"] = {"$lt": max_attempts}
        docs = await self._store.find(
            OUTBOX,
            filters,
            sort=[("timestamp", ASCENDING)],
            limit=limit
        )
        return [EventEnvelope.from_dict(doc) for doc in docs]

    async def drain(self, limit: int = 100, max_attempts: Optional[int] = None) -> int:
        """Re-dispatch pending events.

        Args:
            limit: Maximum number of events to process in this pass
            max_attempts: Skip events that already failed this many times

        Returns:
            Number of events dispatched successfully
        """
        dispatched = 0
        for event in await self.pending(limit, max_attempts=max_attempts):
            if await self._try_dispatch(event) is not None:
                dispatched += 1
        if dispatched:
            self._logger.info(f"Drained {dispatched} pending events")
        return dispatched

    async def purge_dispatched(self, before: datetime) -> int:
        """Delete dispatched events older than ``before``."""
        return await self._store.delete_many(OUTBOX, {
            "status": DeliveryStatus.DISPATCHED.value,
            "timestamp": {"$lt": as_utc(before)},
        })
