# /src/boardchat/storage/base.py
# Abstract DocumentStore base class

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from ..errors import NotFoundError

ASCENDING = 1
DESCENDING = -1

Filters = Dict[str, Any]
Sort = Sequence[Tuple[str, int]]


@dataclass
class Change:
    """A single committed write, as seen by change listeners."""
    collection: str
    doc_id: str
    operation: str  # "insert", "update" or "delete"
    document: Optional[Dict[str, Any]] = None


ChangeListener = Callable[[Change], Awaitable[None]]


def _compare(value: Any, op: str, operand: Any) -> bool:
    if op == "$eq":
        return value == operand
    if op == "$ne":
        return value != operand
    if op == "$in":
        return value in operand
    if value is None:
        return False
    if op == "$lt":
        return value < operand
    if op == "$lte":
        return value <= operand
    if op == "$gt":
        return value > operand
    if op == "$gte":
        return value >= operand
    raise ValueError(f"Unsupported filter operator: {op}")


def matches(document: Dict[str, Any], filters: Optional[Filters]) -> bool:
    """Evaluate a MongoDB-style filter against a plain document.

    Supports field equality and the operators $eq, $ne, $in, $lt, $lte,
    $gt and $gte on top-level fields.
    """
    if not filters:
        return True
    for key, condition in filters.items():
        value = document.get(key)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            if not all(_compare(value, op, operand) for op, operand in condition.items()):
                return False
        elif value != condition:
            return False
    return True


def sort_documents(documents: List[Dict[str, Any]], sort: Optional[Sort]) -> List[Dict[str, Any]]:
    """Stable multi-key sort, applied least significant key first."""
    result = list(documents)
    for key, direction in reversed(list(sort or [])):
        result.sort(key=lambda d: _sort_value(d.get(key)), reverse=direction == DESCENDING)
    return result


def _sort_value(value: Any) -> Tuple[int, Any]:
    # None sorts before every value, like MongoDB's missing fields
    return (0, 0) if value is None else (1, value)


class DocumentStore(ABC):
    """Abstract base class for the document database.

    Documents are plain dicts grouped into named collections and keyed by
    their ``id`` field. Every write is atomic per document; nothing spans
    documents. Committed writes are announced to change listeners, which is
    what live subscriptions are built on.
    """

    def __init__(self):
        self._listeners: Dict[str, Tuple[str, ChangeListener]] = {}
        self._logger = logging.getLogger(__name__)

    # ========== Lifecycle ==========

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the store (create tables, indexes, connections)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the store and release resources."""
        pass

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ========== Reads ==========

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document by id, or None."""
        pass

    @abstractmethod
    async def find(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Query a collection with filter, sort and limit."""
        pass

    async def count(self, collection: str, filters: Optional[Filters] = None) -> int:
        return len(await self.find(collection, filters))

    # ========== Writes ==========

    @abstractmethod
    async def insert(self, collection: str, document: Dict[str, Any]) -> str:
        """Insert a document, assigning a random id when it has none.

        Returns:
            The document id
        """
        pass

    @abstractmethod
    async def create_if_absent(self, collection: str, doc_id: str, document: Dict[str, Any]) -> bool:
        """Write the document only if no document with this id exists.

        Returns:
            True if this call created the document, False if it already existed
        """
        pass

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Set top-level fields. Raises NotFoundError if the document is missing."""
        pass

    @abstractmethod
    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        expected: Dict[str, Any],
        fields: Dict[str, Any]
    ) -> bool:
        """Set fields only if the stored values still equal ``expected``.

        Returns:
            True if the write was applied, False if a concurrent writer got there first
        """
        pass

    @abstractmethod
    async def array_append(self, collection: str, doc_id: str, field: str, value: Any) -> None:
        """Append a value to a list field."""
        pass

    @abstractmethod
    async def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> None:
        """Atomically add to a numeric field."""
        pass

    @abstractmethod
    async def delete_many(self, collection: str, filters: Filters) -> int:
        """Delete every matching document and return how many were removed."""
        pass

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    # ========== Change listeners ==========

    def add_listener(self, collection: str, callback: ChangeListener) -> str:
        """Register a callback for committed writes to a collection.

        Returns:
            Listener ID (use to remove the listener)
        """
        listener_id = str(uuid.uuid4())
        self._listeners[listener_id] = (collection, callback)
        self._logger.debug(f"New change listener on {collection}: {listener_id}")
        return listener_id

    def remove_listener(self, listener_id: str) -> bool:
        if listener_id in self._listeners:
            del self._listeners[listener_id]
            return True
        return False

    async def _emit(self, change: Change) -> None:
        """Deliver a change to every listener of its collection."""
        targets = [
            (listener_id, callback)
            for listener_id, (collection, callback) in list(self._listeners.items())
            if collection == change.collection
        ]
        if targets:
            await asyncio.gather(*(self._safe_callback(lid, cb, change) for lid, cb in targets))

    async def _safe_callback(self, listener_id: str, callback: ChangeListener, change: Change) -> None:
        try:
            await callback(change)
        except Exception as e:
            self._logger.error(f"Change listener {listener_id} failed: {e}")

    @staticmethod
    def _missing(collection: str, doc_id: str) -> NotFoundError:
        return NotFoundError(collection, doc_id)
