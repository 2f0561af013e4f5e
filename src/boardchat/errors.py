# /src/boardchat/errors.py
# Error taxonomy and the best-effort error sink

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import utcnow


class BoardChatError(Exception):
    """Base class for all BoardChat errors."""


class NotFoundError(BoardChatError):
    """A referenced project, user, channel or entity does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class ConfigurationError(BoardChatError):
    """Required external configuration (API keys, backends) is missing or invalid."""


class ConcurrentUpdateError(BoardChatError):
    """A conditional write lost against a concurrent writer."""


class InvalidStateError(BoardChatError):
    """The operation is not allowed in the entity's current state."""


@dataclass
class SinkRecord:
    """A secondary-path failure that was caught and logged."""
    operation: str
    error: BaseException
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)


class ErrorSink:
    """Central home of the swallow-and-log policy for side effects.

    Notification writes, preview updates and e-mails are best effort: the
    triggering operation must still succeed when they fail. Wrap them in
    ``guard()`` so failures are logged and kept in ``records`` instead of
    propagating.

    Usage:
        async with sink.guard("notify", user_id=uid):
            await notifications.notify(...)
    """

    def __init__(self, logger: Optional[logging.Logger] = None, keep: int = 1000):
        self._logger = logger or logging.getLogger(__name__)
        self._keep = keep
        self.records: List[SinkRecord] = []

    def report(self, operation: str, error: BaseException, **context: Any) -> None:
        """Log a caught failure and remember it."""
        self._logger.error(f"{operation} failed: {error!r} {context or ''}".rstrip())
        self.records.append(SinkRecord(operation=operation, error=error, context=context))
        if len(self.records) > self._keep:
            del self.records[: len(self.records) - self._keep]

    @asynccontextmanager
    async def guard(self, operation: str, **context: Any):
        try:
            yield
        except Exception as e:
            self.report(operation, e, **context)

    def clear(self) -> None:
        self.records.clear()
