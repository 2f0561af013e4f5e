# /src/boardchat/config.py
# Settings loaded from the environment (.env supported)

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError
from .mailer import ResendEmailSender
from .storage.base import DocumentStore
from .storage.memory_store import MemoryDocumentStore
from .storage.mongodb_store import MongoDBDocumentStore
from .storage.sqlite_store import SQLiteDocumentStore


class StoreBackend(str, Enum):
    """Supported document store backends"""
    MEMORY = "memory"
    SQLITE = "sqlite"
    MONGODB = "mongodb"


@dataclass
class Settings:
    store_backend: StoreBackend = StoreBackend.MEMORY
    sqlite_path: str = "./boardchat.db"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "boardchat"
    mongodb_watch_changes: bool = True
    resend_api_key: Optional[str] = None
    email_from: str = "BoardR <onboarding@resend.dev>"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """Read settings from environment variables, loading .env first."""
        if dotenv:
            load_dotenv()
        backend = os.getenv("BOARDCHAT_STORE_BACKEND", "memory").lower()
        try:
            store_backend = StoreBackend(backend)
        except ValueError:
            raise ConfigurationError(f"Unknown BOARDCHAT_STORE_BACKEND: {backend}") from None
        return cls(
            store_backend=store_backend,
            sqlite_path=os.getenv("BOARDCHAT_SQLITE_PATH", "./boardchat.db"),
            mongodb_uri=os.getenv("BOARDCHAT_MONGODB_URI", "mongodb://localhost:27017"),
            mongodb_database=os.getenv("BOARDCHAT_MONGODB_DATABASE", "boardchat"),
            mongodb_watch_changes=os.getenv("BOARDCHAT_MONGODB_WATCH", "true").lower() in ("1", "true", "yes", "on"),
            resend_api_key=os.getenv("RESEND_API_KEY") or None,
            email_from=os.getenv("BOARDCHAT_EMAIL_FROM", "BoardR <onboarding@resend.dev>"),
            log_level=os.getenv("BOARDCHAT_LOG_LEVEL", "INFO").upper(),
        )


def create_store(settings: Settings) -> DocumentStore:
    if settings.store_backend == StoreBackend.MEMORY:
        return MemoryDocumentStore()
    elif settings.store_backend == StoreBackend.SQLITE:
        return SQLiteDocumentStore(db_path=settings.sqlite_path)
    elif settings.store_backend == StoreBackend.MONGODB:
        return MongoDBDocumentStore(
            connection_string=settings.mongodb_uri,
            database_name=settings.mongodb_database,
            watch_changes=settings.mongodb_watch_changes
        )
    else:
        raise ValueError(f"Unsupported store backend: {settings.store_backend}")


def create_mailer(settings: Settings) -> ResendEmailSender:
    """E-mail sender; without an API key it degrades to failed results."""
    return ResendEmailSender(api_key=settings.resend_api_key, sender=settings.email_from)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
