# /src/boardchat/storage/sqlite_store.py
# SQLite-based DocumentStore implementation (async with aiosqlite)

import asyncio
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

try:
    import aiosqlite
    HAS_AIOSQLITE = True
except ImportError:
    HAS_AIOSQLITE = False

from .base import Change, DocumentStore, Filters, Sort, matches, sort_documents


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$date": value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode(obj: Dict[str, Any]) -> Any:
    if len(obj) == 1 and "$date" in obj:
        return datetime.fromisoformat(obj["$date"])
    return obj


def dumps(document: Dict[str, Any]) -> str:
    return json.dumps(document, default=_encode)


def loads(body: str) -> Dict[str, Any]:
    return json.loads(body, object_hook=_decode)


class SQLiteDocumentStore(DocumentStore):
    """SQLite-based document store.

    Each document is one JSON row in a ``documents`` table keyed by
    (collection, id). Datetimes survive the round trip as tagged values.
    Filtering and sorting happen in Python after loading the collection,
    which is fine for single-node deployments and tests.

    Read-modify-write operations hold an asyncio lock so they are atomic
    with respect to other coroutines sharing this store.

    Requires: aiosqlite (pip install aiosqlite)
    """

    def __init__(self, db_path: str = "./boardchat.db"):
        if not HAS_AIOSQLITE:
            raise ImportError("aiosqlite is required for SQLiteDocumentStore. Install with: pip install aiosqlite")
        super().__init__()
        self._db_path = db_path
        self._db = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create database and tables if they don't exist."""
        self._db = await aiosqlite.connect(self._db_path)
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                body TEXT NOT NULL,
                PRIMARY KEY (collection, id)
            )
        """)
        await self._db.execute("CREATE INDEX IF NOT EXISTS idx_collection ON documents(collection)")
        await self._db.commit()

    async def close(self) -> None:
        """Close the database connection."""
        self._listeners.clear()
        if self._db:
            await self._db.close()
            self._db = None

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        cursor = await self._db.execute(
            "SELECT body FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id)
        )
        row = await cursor.fetchone()
        return loads(row[0]) if row else None

    async def _require(self, collection: str, doc_id: str) -> Dict[str, Any]:
        doc = await self.get(collection, doc_id)
        if doc is None:
            raise self._missing(collection, doc_id)
        return doc

    async def find(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        cursor = await self._db.execute(
            "SELECT body FROM documents WHERE collection = ?",
            (collection,)
        )
        rows = await cursor.fetchall()
        docs = [doc for doc in (loads(row[0]) for row in rows) if matches(doc, filters)]
        docs = sort_documents(docs, sort)
        return docs[:limit] if limit is not None else docs

    async def _write(self, collection: str, doc: Dict[str, Any]) -> None:
        await self._db.execute(
            "UPDATE documents SET body = ? WHERE collection = ? AND id = ?",
            (dumps(doc), collection, doc["id"])
        )
        await self._db.commit()

    async def insert(self, collection: str, document: Dict[str, Any]) -> str:
        doc = dict(document)
        doc["id"] = doc.get("id") or self.new_id()
        try:
            await self._db.execute(
                "INSERT INTO documents (collection, id, body) VALUES (?, ?, ?)",
                (collection, doc["id"], dumps(doc))
            )
        except aiosqlite.IntegrityError:
            raise ValueError(f"Duplicate id in {collection}: {doc['id']}")
        await self._db.commit()
        await self._emit(Change(collection, doc["id"], "insert", doc))
        return doc["id"]

    async def create_if_absent(self, collection: str, doc_id: str, document: Dict[str, Any]) -> bool:
        doc = dict(document)
        doc["id"] = doc_id
        cursor = await self._db.execute(
            "INSERT OR IGNORE INTO documents (collection, id, body) VALUES (?, ?, ?)",
            (collection, doc_id, dumps(doc))
        )
        await self._db.commit()
        if cursor.rowcount == 0:
            return False
        await self._emit(Change(collection, doc_id, "insert", doc))
        return True

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        async with self._write_lock:
            doc = await self._require(collection, doc_id)
            doc.update(fields)
            await self._write(collection, doc)
        await self._emit(Change(collection, doc_id, "update", doc))

    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        expected: Dict[str, Any],
        fields: Dict[str, Any]
    ) -> bool:
        async with self._write_lock:
            doc = await self._require(collection, doc_id)
            if not matches(doc, expected):
                return False
            doc.update(fields)
            await self._write(collection, doc)
        await self._emit(Change(collection, doc_id, "update", doc))
        return True

    async def array_append(self, collection: str, doc_id: str, field: str, value: Any) -> None:
        async with self._write_lock:
            doc = await self._require(collection, doc_id)
            doc.setdefault(field, []).append(value)
            await self._write(collection, doc)
        await self._emit(Change(collection, doc_id, "update", doc))

    async def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> None:
        async with self._write_lock:
            doc = await self._require(collection, doc_id)
            doc[field] = doc.get(field, 0) + amount
            await self._write(collection, doc)
        await self._emit(Change(collection, doc_id, "update", doc))

    async def delete_many(self, collection: str, filters: Filters) -> int:
        async with self._write_lock:
            doomed = await self.find(collection, filters)
            if doomed:
                await self._db.executemany(
                    "DELETE FROM documents WHERE collection = ? AND id = ?",
                    [(collection, doc["id"]) for doc in doomed]
                )
                await self._db.commit()
        for doc in doomed:
            await self._emit(Change(collection, doc["id"], "delete", doc))
        return len(doomed)
