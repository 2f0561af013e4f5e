# /src/boardchat/fanout.py
# Recipient selection rules - turn one domain event into N notifications

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from .channels import ChannelResolver
from .directory import UserDirectory
from .errors import ErrorSink
from .events.envelope import EventEnvelope
from .events.types import EventType
from .mailer import EmailSender, ticket_assignment_email
from .models import Correlation
from .notifications import NotificationService

# Status transitions announced to the client and to the tenant's admins
CLIENT_FACING_STATUSES = {"sent"}
ADMIN_FACING_STATUSES = {"accepted", "declined", "paid"}

Rule = Callable[[EventEnvelope], Awaitable[List["Delivery"]]]
Hook = Callable[[EventEnvelope], Awaitable[None]]


@dataclass
class Delivery:
    """One notification to write."""
    user_id: str
    message: str
    correlation: Correlation
    project_id: Optional[str] = None
    project_name: Optional[str] = None


class FanoutRules:
    """Computes recipients for each domain event and writes their notifications.

    Every notification write runs concurrently and inside the error sink:
    a failed write is logged and dropped, never retried and never raised.
    Extra side effects (the assignment e-mail) run only once the
    notifications are written, so an event whose recipients could not be
    computed sends nothing until it is drained successfully.
    """

    def __init__(
        self,
        notifications: NotificationService,
        channels: ChannelResolver,
        users: UserDirectory,
        error_sink: ErrorSink,
        mailer: Optional[EmailSender] = None
    ):
        self._notifications = notifications
        self._channels = channels
        self._users = users
        self._sink = error_sink
        self._mailer = mailer
        self._logger = logging.getLogger(__name__)
        self._rules: Dict[EventType, Rule] = {
            EventType.MESSAGE_POSTED: self._message_posted,
            EventType.TICKET_ASSIGNED: self._ticket_assigned,
            EventType.PROPOSAL_STATUS_CHANGED: self._status_changed,
            EventType.INVOICE_STATUS_CHANGED: self._status_changed,
            EventType.FEEDBACK_SUBMITTED: self._feedback_submitted,
            EventType.REPORT_SUBMITTED: self._report_submitted,
        }
        self._after_delivery: Dict[EventType, Hook] = {
            EventType.TICKET_ASSIGNED: self._send_assignment_email,
        }

    async def dispatch(self, event: EventEnvelope) -> List[str]:
        """Fan an event out to its recipients.

        Errors while computing recipients propagate so the outbox keeps the
        event pending. Errors while writing individual notifications do not.

        Returns:
            Ids of the notifications that were written
        """
        rule = self._rules.get(event.event_type)
        if rule is None:
            raise ValueError(f"No fan-out rule for event type: {event.event_type}")

        deliveries = await rule(event)
        results = await asyncio.gather(*(self._deliver(event, d) for d in deliveries))
        written = [notification_id for notification_id in results if notification_id]
        self._logger.debug(
            f"Fan-out {event.event_type.value} {event.correlation_id}: "
            f"{len(written)}/{len(deliveries)} notifications"
        )

        hook = self._after_delivery.get(event.event_type)
        if hook is not None:
            await hook(event)
        return written

    async def _deliver(self, event: EventEnvelope, delivery: Delivery) -> Optional[str]:
        async with self._sink.guard("notify", event_id=event.event_id, user_id=delivery.user_id):
            return await self._notifications.notify(
                delivery.user_id,
                delivery.message,
                correlation=delivery.correlation,
                project_id=delivery.project_id,
                project_name=delivery.project_name
            )
        return None

    async def _admin_ids(self, organization_id: Optional[str]) -> List[str]:
        if not organization_id:
            return []
        return [admin.id for admin in await self._users.get_admins(organization_id)]

    # ========== Rules ==========

    async def _message_posted(self, event: EventEnvelope) -> List[Delivery]:
        """All channel members except the sender."""
        payload = event.payload
        channel = await self._channels.get_channel(payload["channel_id"])
        project_name = await self._notifications.resolve_project_name(channel.project_id)

        recipients = [uid for uid in channel.user_ids if uid != payload["sender_id"]]
        message = f'New message from {payload["sender_name"]} in "{project_name}"'
        return [
            Delivery(
                user_id=uid,
                message=message,
                correlation=Correlation(chat_id=channel.id),
                project_id=channel.project_id,
                project_name=project_name
            )
            for uid in recipients
        ]

    async def _ticket_assigned(self, event: EventEnvelope) -> List[Delivery]:
        """The new assignee only. The handler only emits on a real change."""
        payload = event.payload
        return [Delivery(
            user_id=payload["assignee_id"],
            message=f'You have been assigned to ticket "{payload["ticket_title"]}"',
            correlation=Correlation(ticket_id=event.correlation_id),
            project_id=payload.get("project_id")
        )]

    async def _send_assignment_email(self, event: EventEnvelope) -> None:
        if self._mailer is None:
            return
        user_id = event.payload["assignee_id"]
        async with self._sink.guard("assignment_email", event_id=event.event_id, user_id=user_id):
            user = await self._users.get_user(user_id)
            if user is None or not user.email:
                return
            subject, html = ticket_assignment_email(user.name, event.payload["ticket_title"])
            result = await self._mailer.send_email(user.email, subject, html)
            if not result.success:
                self._sink.report("assignment_email", RuntimeError(result.error), user_id=user_id)

    async def _status_changed(self, event: EventEnvelope) -> List[Delivery]:
        """``sent`` goes to the client; accepted/declined/paid go to the admins."""
        payload = event.payload
        kind = payload["kind"]
        status = payload["status"]
        title = payload["title"]
        project_name = payload.get("project_name")
        correlation = (
            Correlation(invoice_id=event.correlation_id)
            if kind == "invoice"
            else Correlation(proposal_id=event.correlation_id)
        )

        if status in CLIENT_FACING_STATUSES:
            if kind == "invoice":
                message = f'You have received a new invoice for "{project_name or title}"'
            else:
                message = f'You have received a new proposal: "{title}"'
            recipients = [payload["client_id"]]
        elif status in ADMIN_FACING_STATUSES:
            actor = payload.get("actor_name") or payload.get("client_name") or "A client"
            if status == "paid":
                message = f'{actor} marked invoice "{title}" as paid'
            else:
                message = f'{actor} {status} the {kind} "{title}"'
            recipients = await self._admin_ids(event.organization_id)
        else:
            return []

        return [
            Delivery(
                user_id=uid,
                message=message,
                correlation=correlation,
                project_id=payload.get("project_id"),
                project_name=project_name
            )
            for uid in recipients
        ]

    async def _feedback_submitted(self, event: EventEnvelope) -> List[Delivery]:
        """All admins of the tenant."""
        payload = event.payload
        kind = payload["kind"]
        correlation = (
            Correlation(invoice_id=event.correlation_id)
            if kind == "invoice"
            else Correlation(proposal_id=event.correlation_id)
        )
        message = f'{payload["author_name"]} requested changes on the {kind} "{payload["title"]}"'
        return [
            Delivery(
                user_id=uid,
                message=message,
                correlation=correlation,
                project_id=payload.get("project_id"),
                project_name=payload.get("project_name")
            )
            for uid in await self._admin_ids(event.organization_id)
        ]

    async def _report_submitted(self, event: EventEnvelope) -> List[Delivery]:
        """All admins of the tenant."""
        payload = event.payload
        message = f'New report submitted by {payload["client_name"]} for "{payload["project_name"]}"'
        return [
            Delivery(
                user_id=uid,
                message=message,
                correlation=Correlation(report_id=event.correlation_id),
                project_id=payload.get("project_id"),
                project_name=payload.get("project_name")
            )
            for uid in await self._admin_ids(event.organization_id)
        ]
