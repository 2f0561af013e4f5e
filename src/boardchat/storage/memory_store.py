# /src/boardchat/storage/memory_store.py
# In-memory DocumentStore implementation (async)

import copy
from typing import Any, Dict, List, Optional

from .base import Change, DocumentStore, Filters, Sort, matches, sort_documents


class MemoryDocumentStore(DocumentStore):
    """In-memory document store for testing and development.

    Documents are kept in dicts and lost when the process exits. Each write
    runs without awaiting until it is committed, so it is atomic with respect
    to other coroutines on the same event loop. Reads and writes copy
    documents so callers never share state with the store.
    """

    def __init__(self):
        super().__init__()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize the store (no-op for memory)."""
        self._initialized = True

    async def close(self) -> None:
        """Close the store (no-op for memory)."""
        self._listeners.clear()

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _require(self, collection: str, doc_id: str) -> Dict[str, Any]:
        doc = self._collection(collection).get(doc_id)
        if doc is None:
            raise self._missing(collection, doc_id)
        return doc

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def find(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        docs = [d for d in self._collection(collection).values() if matches(d, filters)]
        docs = sort_documents(docs, sort)
        if limit is not None:
            docs = docs[:limit]
        return copy.deepcopy(docs)

    async def insert(self, collection: str, document: Dict[str, Any]) -> str:
        doc = copy.deepcopy(document)
        doc_id = doc.get("id") or self.new_id()
        if doc_id in self._collection(collection):
            raise ValueError(f"Duplicate id in {collection}: {doc_id}")
        doc["id"] = doc_id
        self._collection(collection)[doc_id] = doc
        await self._emit(Change(collection, doc_id, "insert", copy.deepcopy(doc)))
        return doc_id

    async def create_if_absent(self, collection: str, doc_id: str, document: Dict[str, Any]) -> bool:
        if doc_id in self._collection(collection):
            return False
        doc = copy.deepcopy(document)
        doc["id"] = doc_id
        self._collection(collection)[doc_id] = doc
        await self._emit(Change(collection, doc_id, "insert", copy.deepcopy(doc)))
        return True

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        doc = self._require(collection, doc_id)
        doc.update(copy.deepcopy(fields))
        await self._emit(Change(collection, doc_id, "update", copy.deepcopy(doc)))

    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        expected: Dict[str, Any],
        fields: Dict[str, Any]
    ) -> bool:
        doc = self._require(collection, doc_id)
        if not matches(doc, expected):
            return False
        doc.update(copy.deepcopy(fields))
        await self._emit(Change(collection, doc_id, "update", copy.deepcopy(doc)))
        return True

    async def array_append(self, collection: str, doc_id: str, field: str, value: Any) -> None:
        doc = self._require(collection, doc_id)
        doc.setdefault(field, []).append(copy.deepcopy(value))
        await self._emit(Change(collection, doc_id, "update", copy.deepcopy(doc)))

    async def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> None:
        doc = self._require(collection, doc_id)
        doc[field] = doc.get(field, 0) + amount
        await self._emit(Change(collection, doc_id, "update", copy.deepcopy(doc)))

    async def delete_many(self, collection: str, filters: Filters) -> int:
        docs = self._collection(collection)
        doomed = [doc_id for doc_id, doc in docs.items() if matches(doc, filters)]
        removed = [docs.pop(doc_id) for doc_id in doomed]
        for doc in removed:
            await self._emit(Change(collection, doc["id"], "delete", doc))
        return len(removed)

    def clear(self) -> None:
        """Clear all documents (for testing)."""
        self._collections.clear()
