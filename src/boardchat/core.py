# /src/boardchat/core.py
# BoardChat facade - wires the chat and notification core together

import logging
from datetime import datetime
from typing import Callable, List, Optional

from .channels import ChannelResolver
from .directory import (
    ProjectDirectory,
    StoreProjectDirectory,
    StoreUserDirectory,
    UserDirectory,
)
from .errors import ErrorSink
from .fanout import FanoutRules
from .mailer import EmailSender
from .messages import MessagePipeline
from .models import Correlation, Message, Notification, Sender, utcnow
from .notifications import NotificationService
from .outbox import Outbox
from .storage.base import DocumentStore
from .subscriptions import SnapshotCallback, Subscription, SubscriptionLayer
from .workflows import InvoiceWorkflow, ProposalWorkflow, ReportWorkflow, TicketWorkflow


class BoardChat:
    """Entry point of the chat + notification fan-out core.

    Everything flows through here:
    - Channel resolution and message posting
    - Notification creation, read flags and cleanup
    - Live subscriptions on channels and notification feeds
    - Ticket/proposal/invoice/report handlers that trigger notifications

    Users and projects default to the ``users`` and ``projects`` collections
    of the same store; pass directories to read them from elsewhere.
    """

    def __init__(
        self,
        store: DocumentStore,
        users: Optional[UserDirectory] = None,
        projects: Optional[ProjectDirectory] = None,
        mailer: Optional[EmailSender] = None,
        error_sink: Optional[ErrorSink] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self._store = store
        self._logger = logging.getLogger(__name__)
        self.users = users or StoreUserDirectory(store)
        self.projects = projects or StoreProjectDirectory(store)
        self.mailer = mailer
        self.error_sink = error_sink or ErrorSink()

        self.notifications = NotificationService(store, self.projects, clock=clock)
        self.channels = ChannelResolver(store, self.users, self.projects, clock=clock)
        self.rules = FanoutRules(
            self.notifications, self.channels, self.users,
            self.error_sink, mailer=mailer
        )
        self.outbox = Outbox(store, self.rules, self.error_sink, clock=clock)
        self.messages = MessagePipeline(store, self.outbox, self.error_sink, clock=clock)
        self.subscriptions = SubscriptionLayer(store)

        self.tickets = TicketWorkflow(store, self.outbox, clock=clock)
        self.proposals = ProposalWorkflow(store, self.outbox, clock=clock)
        self.invoices = InvoiceWorkflow(store, self.outbox, clock=clock)
        self.reports = ReportWorkflow(store, self.outbox, clock=clock)

    @property
    def store(self) -> DocumentStore:
        """Access the underlying document store."""
        return self._store

    # ========== Chat ==========

    async def get_or_create_channel(self, project_id: str, organization_id: str) -> str:
        return await self.channels.get_or_create_channel(project_id, organization_id)

    async def post_message(self, channel_id: str, sender: Sender, text: str) -> Message:
        return await self.messages.post_message(channel_id, sender, text)

    async def subscribe_to_messages(
        self,
        channel_id: str,
        on_change: SnapshotCallback[Message]
    ) -> Subscription[Message]:
        """Returns the subscription; call it (or its ``unsubscribe``) to detach."""
        return await self.subscriptions.subscribe_to_messages(channel_id, on_change)

    # ========== Notifications ==========

    async def notify(
        self,
        user_id: str,
        message: str,
        correlation: Optional[Correlation] = None,
        project_id: Optional[str] = None,
        project_name: Optional[str] = None
    ) -> str:
        return await self.notifications.notify(
            user_id, message, correlation=correlation,
            project_id=project_id, project_name=project_name
        )

    async def subscribe_to_notifications(
        self,
        user_id: str,
        on_change: SnapshotCallback[Notification]
    ) -> Subscription[Notification]:
        return await self.subscriptions.subscribe_to_notifications(user_id, on_change)

    async def list_notifications(self, user_id: str) -> List[Notification]:
        return await self.notifications.list_notifications(user_id)

    async def mark_notification_read(self, notification_id: str) -> None:
        await self.notifications.mark_read(notification_id)

    async def mark_all_notifications_read(self, user_id: str) -> int:
        return await self.notifications.mark_all_read(user_id)

    async def delete_expired_notifications(self, now: Optional[datetime] = None) -> int:
        return await self.notifications.delete_expired(now)

    # ========== Lifecycle ==========

    async def initialize(self) -> None:
        """Initialize the underlying store."""
        await self._store.initialize()

    async def close(self) -> None:
        """Close subscriptions, the mailer and the underlying store."""
        self.subscriptions.close()
        if self.mailer is not None:
            await self.mailer.close()
        await self._store.close()

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
