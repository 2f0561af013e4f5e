# /src/boardchat/storage/mongodb_store.py
# MongoDB-based DocumentStore implementation (async with Motor)

import asyncio
from typing import Any, Dict, List, Optional

try:
    from motor.motor_asyncio import AsyncIOMotorClient
    from pymongo.errors import DuplicateKeyError, PyMongoError
    HAS_MOTOR = True
except ImportError:
    HAS_MOTOR = False

from .base import Change, DocumentStore, Filters, Sort

_OPERATIONS = {"insert": "insert", "replace": "update", "update": "update", "delete": "delete"}

# Upper bound of the change stream reconnect backoff, in seconds
MAX_RETRY_DELAY = 30.0


class MongoDBDocumentStore(DocumentStore):
    """MongoDB-based document store using Motor (async driver).

    Each collection maps to a MongoDB collection with ``_id`` equal to the
    document id. Conditional writes map onto single-document operations:
    ``$setOnInsert`` upserts for create-if-absent and filtered
    ``update_one`` calls for compare-and-set.

    Change listeners are fed from a database change stream, so every
    process sharing the database sees every write. Change streams need a
    replica set; pass ``watch_changes=False`` against a standalone server.

    Requires: motor (pip install motor)
    """

    def __init__(
        self,
        connection_string: str = "mongodb://localhost:27017",
        database_name: str = "boardchat",
        watch_changes: bool = True,
        retry_delay: float = 1.0
    ):
        if not HAS_MOTOR:
            raise ImportError("motor is required for MongoDBDocumentStore. Install with: pip install motor")
        super().__init__()
        self._connection_string = connection_string
        self._database_name = database_name
        self._watch_changes = watch_changes
        self._retry_delay = retry_delay
        self._client = None
        self._db = None
        self._watch_task: Optional[asyncio.Task] = None

    async def initialize(self) -> None:
        """Connect to MongoDB, create indexes and start the change stream."""
        self._client = AsyncIOMotorClient(self._connection_string, tz_aware=True)
        self._db = self._client[self._database_name]

        await self._db["channels"].create_index([("project_id", 1), ("organization_id", 1)])
        await self._db["messages"].create_index([("channel_id", 1), ("timestamp", 1), ("id", 1)])
        await self._db["notifications"].create_index([("user_id", 1), ("created_at", -1)])
        await self._db["notifications"].create_index("expires_at")
        await self._db["outbox"].create_index([("status", 1), ("timestamp", 1)])

        if self._watch_changes:
            self._watch_task = asyncio.create_task(self._watch())
            self._watch_task.add_done_callback(self._on_watch_done)

    async def close(self) -> None:
        """Stop the change stream and close the MongoDB connection."""
        self._listeners.clear()
        if self._watch_task:
            self._watch_task.cancel()
            try:
                await self._watch_task
            except asyncio.CancelledError:
                pass
            self._watch_task = None
        if self._client:
            self._client.close()
            self._client = None
            self._db = None

    async def _watch(self) -> None:
        """Feed the change stream to the listeners, reconnecting after errors."""
        resume_token = None
        failures = 0
        while True:
            try:
                async with self._db.watch(full_document="updateLookup", resume_after=resume_token) as stream:
                    failures = 0
                    async for event in stream:
                        resume_token = stream.resume_token
                        await self._dispatch_change(event)
            except PyMongoError as e:
                failures += 1
                delay = min(self._retry_delay * 2 ** (failures - 1), MAX_RETRY_DELAY)
                self._logger.error(f"Change stream failed ({failures} in a row), retrying in {delay:.1f}s: {e}")
                await asyncio.sleep(delay)

    def _on_watch_done(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            self._logger.error(f"Change stream stopped, live subscriptions will not update: {task.exception()!r}")

    async def _dispatch_change(self, event: Dict[str, Any]) -> None:
        operation = _OPERATIONS.get(event.get("operationType"))
        if operation is None:
            return
        doc = event.get("fullDocument")
        await self._emit(Change(
            collection=event["ns"]["coll"],
            doc_id=str(event["documentKey"]["_id"]),
            operation=operation,
            document=self._strip(doc) if doc else None
        ))

    @staticmethod
    def _strip(doc: Dict[str, Any]) -> Dict[str, Any]:
        doc.pop("_id", None)
        return doc

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = await self._db[collection].find_one({"_id": doc_id})
        return self._strip(doc) if doc else None

    async def find(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        cursor = self._db[collection].find(filters or {})
        if sort:
            cursor = cursor.sort(list(sort))
        if limit is not None:
            cursor = cursor.limit(limit)
        docs = await cursor.to_list(length=None)
        return [self._strip(doc) for doc in docs]

    async def count(self, collection: str, filters: Optional[Filters] = None) -> int:
        return await self._db[collection].count_documents(filters or {})

    async def insert(self, collection: str, document: Dict[str, Any]) -> str:
        doc = dict(document)
        doc["id"] = doc.get("id") or self.new_id()
        doc["_id"] = doc["id"]
        try:
            await self._db[collection].insert_one(doc)
        except DuplicateKeyError:
            raise ValueError(f"Duplicate id in {collection}: {doc['id']}")
        return doc["id"]

    async def create_if_absent(self, collection: str, doc_id: str, document: Dict[str, Any]) -> bool:
        doc = dict(document)
        doc["id"] = doc_id
        result = await self._db[collection].update_one(
            {"_id": doc_id},
            {"$setOnInsert": doc},
            upsert=True
        )
        return result.upserted_id is not None

    async def _check_matched(self, collection: str, doc_id: str, result) -> None:
        if result.matched_count == 0:
            raise self._missing(collection, doc_id)

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        result = await self._db[collection].update_one({"_id": doc_id}, {"$set": fields})
        await self._check_matched(collection, doc_id, result)

    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        expected: Dict[str, Any],
        fields: Dict[str, Any]
    ) -> bool:
        result = await self._db[collection].update_one(
            {"_id": doc_id, **expected},
            {"$set": fields}
        )
        if result.matched_count:
            return True
        if await self._db[collection].count_documents({"_id": doc_id}, limit=1) == 0:
            raise self._missing(collection, doc_id)
        return False

    async def array_append(self, collection: str, doc_id: str, field: str, value: Any) -> None:
        result = await self._db[collection].update_one({"_id": doc_id}, {"$push": {field: value}})
        await self._check_matched(collection, doc_id, result)

    async def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> None:
        result = await self._db[collection].update_one({"_id": doc_id}, {"$inc": {field: amount}})
        await self._check_matched(collection, doc_id, result)

    async def delete_many(self, collection: str, filters: Filters) -> int:
        result = await self._db[collection].delete_many(filters)
        return result.deleted_count
