# /src/boardchat/notifications.py
# Notification primitive and lifecycle (create, read flag, TTL cleanup)

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

from .directory import ProjectDirectory
from .errors import NotFoundError
from .models import (
    NOTIFICATION_TTL,
    UNKNOWN_PROJECT,
    Correlation,
    Notification,
    as_utc,
    utcnow,
)
from .storage.base import DESCENDING, DocumentStore

NOTIFICATIONS = "notifications"
FEED_LIMIT = 20

Clock = Callable[[], datetime]


class NotificationService:
    """Writes and maintains notification records.

    ``notify`` is the single primitive every fan-out rule converges on. It is
    not idempotent: two calls with the same arguments create two records.
    """

    def __init__(self, store: DocumentStore, projects: ProjectDirectory, clock: Clock = utcnow):
        self._store = store
        self._projects = projects
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    async def notify(
        self,
        user_id: str,
        message: str,
        correlation: Optional[Correlation] = None,
        project_id: Optional[str] = None,
        project_name: Optional[str] = None
    ) -> str:
        """Create one unread notification for one recipient.

        Args:
            user_id: The recipient
            message: Human-readable notification text
            correlation: Links to the ticket/proposal/invoice/report/chat involved
            project_id: Project the notification belongs to (optional)
            project_name: Denormalized project name; looked up when omitted

        Returns:
            The new notification id
        """
        if project_id and not project_name:
            project_name = await self.resolve_project_name(project_id)

        created_at = self._clock()
        notification = Notification(
            id=self._store.new_id(),
            user_id=user_id,
            message=message,
            created_at=created_at,
            expires_at=created_at + NOTIFICATION_TTL,
            correlation=correlation or Correlation(),
            project_id=project_id,
            project_name=project_name
        )
        notification_id = await self._store.insert(NOTIFICATIONS, notification.to_dict())
        self._logger.debug(f"Created notification {notification_id} for {user_id}")
        return notification_id

    async def resolve_project_name(self, project_id: str) -> str:
        """Project name for display; "Unknown Project" when missing or unreachable."""
        try:
            project = await self._projects.get_project(project_id)
        except Exception as e:
            self._logger.error(f"Could not fetch project name for notification: {e}")
            return UNKNOWN_PROJECT
        return project.name if project else UNKNOWN_PROJECT

    async def get(self, notification_id: str) -> Notification:
        doc = await self._store.get(NOTIFICATIONS, notification_id)
        if doc is None:
            raise NotFoundError("notification", notification_id)
        return Notification.from_dict(doc)

    async def list_notifications(self, user_id: str, limit: int = FEED_LIMIT) -> List[Notification]:
        """Most recent notifications of a user, newest first."""
        docs = await self._store.find(
            NOTIFICATIONS,
            {"user_id": user_id},
            sort=[("created_at", DESCENDING), ("id", DESCENDING)],
            limit=limit
        )
        return [Notification.from_dict(doc) for doc in docs]

    async def unread_count(self, user_id: str) -> int:
        return await self._store.count(NOTIFICATIONS, {"user_id": user_id, "read": False})

    async def mark_read(self, notification_id: str) -> None:
        """Mark a notification read. Marking an already-read one is a no-op.

        Raises:
            NotFoundError: if the notification does not exist
        """
        changed = await self._store.compare_and_set(
            NOTIFICATIONS, notification_id, {"read": False}, {"read": True}
        )
        if changed:
            self._logger.debug(f"Marked notification {notification_id} read")

    async def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification of a user read.

        Returns:
            Number of notifications that changed
        """
        unread = await self._store.find(NOTIFICATIONS, {"user_id": user_id, "read": False})
        if not unread:
            return 0
        results = await asyncio.gather(*(
            self._store.compare_and_set(NOTIFICATIONS, doc["id"], {"read": False}, {"read": True})
            for doc in unread
        ))
        return sum(1 for changed in results if changed)

    async def delete_expired(self, now: Optional[datetime] = None) -> int:
        """Bulk cleanup sweep: delete notifications whose expiry has passed.

        Returns:
            Number of notifications deleted
        """
        now = as_utc(now) if now is not None else self._clock()
        count = await self._store.delete_many(NOTIFICATIONS, {"expires_at": {"$lt": now}})
        self._logger.info(f"Deleted {count} expired notifications")
        return count
