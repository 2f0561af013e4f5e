# /src/boardchat/subscriptions.py
# Live subscriptions - push full ordered snapshots on every change

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from .messages import HISTORY_LIMIT, MESSAGES
from .models import Message, Notification
from .notifications import FEED_LIMIT, NOTIFICATIONS
from .storage.base import DESCENDING, Change, DocumentStore, Filters, Sort, matches

T = TypeVar("T")

# Type alias for snapshot callbacks
SnapshotCallback = Callable[[List[T]], Awaitable[None]]


@dataclass
class LiveQuery(Generic[T]):
    """What a subscription watches and how each snapshot is built."""
    collection: str
    filters: Filters
    sort: Sort
    limit: int
    decode: Callable[[Dict[str, Any]], T]
    reverse: bool = False


class Subscription(Generic[T]):
    """One independent consumer of a live query.

    Every relevant change re-runs the query and hands the callback the whole
    result, not a delta. Snapshots of one subscription are delivered one at
    a time and in order. Once ``unsubscribe()`` has been called the callback
    never runs again, even for a snapshot that was already being built.
    """

    def __init__(self, store: DocumentStore, query: LiveQuery[T], callback: SnapshotCallback):
        self._store = store
        self._query = query
        self._callback = callback
        self._lock = asyncio.Lock()
        self._listener_id: Optional[str] = None
        self._closed = False
        self._dirty = False
        self._logger = logging.getLogger(__name__)

    @property
    def active(self) -> bool:
        return not self._closed

    async def start(self) -> None:
        self._listener_id = self._store.add_listener(self._query.collection, self._on_change)
        self._dirty = True
        await self._refresh()

    def unsubscribe(self) -> None:
        """Detach immediately. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._listener_id is not None:
            self._store.remove_listener(self._listener_id)
            self._logger.debug(f"Unsubscribed: {self._listener_id}")

    __call__ = unsubscribe

    async def _on_change(self, change: Change) -> None:
        if self._closed:
            return
        # Deletes from change streams carry no document; re-query to be safe
        if change.document is not None and not matches(change.document, self._query.filters):
            return
        self._dirty = True
        # A refresh already in flight picks the change up before it releases
        if self._lock.locked():
            return
        await self._refresh()

    async def _refresh(self) -> None:
        async with self._lock:
            while self._dirty and not self._closed:
                self._dirty = False
                docs = await self._store.find(
                    self._query.collection,
                    self._query.filters,
                    sort=self._query.sort,
                    limit=self._query.limit
                )
                items = [self._query.decode(doc) for doc in docs]
                if self._query.reverse:
                    items.reverse()
                if self._closed:
                    return
                try:
                    await self._callback(items)
                except Exception as e:
                    self._logger.error(f"Subscription {self._listener_id} callback failed: {e}")


class SubscriptionLayer:
    """Opens live subscriptions on chat channels and notification feeds.

    Subscriptions are push-driven by the store's change listeners; there is
    no polling, no buffering and no shared queue between subscribers.
    """

    def __init__(self, store: DocumentStore):
        self._store = store
        self._subscriptions: List[Subscription] = []
        self._logger = logging.getLogger(__name__)

    async def subscribe(self, query: LiveQuery[T], callback: SnapshotCallback) -> Subscription[T]:
        """Open a live query. The first snapshot is delivered before returning."""
        subscription = Subscription(self._store, query, callback)
        self._subscriptions = [s for s in self._subscriptions if s.active]
        self._subscriptions.append(subscription)
        await subscription.start()
        return subscription

    async def subscribe_to_messages(
        self,
        channel_id: str,
        callback: SnapshotCallback[Message]
    ) -> Subscription[Message]:
        """The 100 most recent messages of a channel, ascending by (timestamp, id)."""
        query = LiveQuery(
            collection=MESSAGES,
            filters={"channel_id": channel_id},
            sort=[("timestamp", DESCENDING), ("id", DESCENDING)],
            limit=HISTORY_LIMIT,
            decode=Message.from_dict,
            reverse=True
        )
        return await self.subscribe(query, callback)

    async def subscribe_to_notifications(
        self,
        user_id: str,
        callback: SnapshotCallback[Notification]
    ) -> Subscription[Notification]:
        """The 20 most recent notifications of a user, newest first."""
        query = LiveQuery(
            collection=NOTIFICATIONS,
            filters={"user_id": user_id},
            sort=[("created_at", DESCENDING), ("id", DESCENDING)],
            limit=FEED_LIMIT,
            decode=Notification.from_dict
        )
        return await self.subscribe(query, callback)

    def close(self) -> None:
        """Unsubscribe everything."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
