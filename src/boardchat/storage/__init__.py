# /src/boardchat/storage/__init__.py
# Document storage implementations

from .base import ASCENDING, DESCENDING, Change, DocumentStore, matches
from .memory_store import MemoryDocumentStore
from .sqlite_store import SQLiteDocumentStore
from .mongodb_store import MongoDBDocumentStore

__all__ = [
    "ASCENDING",
    "DESCENDING",
    "Change",
    "DocumentStore",
    "matches",
    "MemoryDocumentStore",
    "SQLiteDocumentStore",
    "MongoDBDocumentStore",
]
