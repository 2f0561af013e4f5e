# /src/boardchat/workflows.py
# Ticket, proposal, invoice and client-report mutations that trigger notifications

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Generic, Optional, Type, TypeVar, Union

from .errors import ConcurrentUpdateError, InvalidStateError, NotFoundError
from .events.types import EventType
from .models import (
    ClientReport,
    CommentAuthor,
    FeedbackComment,
    Invoice,
    InvoiceStatus,
    Proposal,
    ProposalStatus,
    Ticket,
    User,
    utcnow,
)
from .outbox import Outbox
from .storage.base import DocumentStore

TICKETS = "tickets"
PROPOSALS = "proposals"
INVOICES = "invoices"
CLIENT_REPORTS = "client_reports"

CHANGES_REQUESTED = "changes-requested"

Clock = Callable[[], datetime]


class TicketWorkflow:
    """Ticket assignment. Only a genuine change of assignee notifies."""

    def __init__(self, store: DocumentStore, outbox: Outbox, clock: Clock = utcnow):
        self._store = store
        self._outbox = outbox
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    async def create_ticket(
        self,
        title: str,
        project_id: str,
        organization_id: str,
        assigned_to: Optional[str] = None,
        status: str = "backlog"
    ) -> Ticket:
        ticket = Ticket(
            id=self._store.new_id(),
            title=title,
            project_id=project_id,
            organization_id=organization_id,
            status=status,
            assigned_to=assigned_to
        )
        await self._store.insert(TICKETS, ticket.to_dict())
        if assigned_to:
            await self._publish_assignment(ticket, assigned_to)
        return ticket

    async def get_ticket(self, ticket_id: str) -> Ticket:
        doc = await self._store.get(TICKETS, ticket_id)
        if doc is None:
            raise NotFoundError("ticket", ticket_id)
        return Ticket.from_dict(doc)

    async def assign_ticket(self, ticket_id: str, assignee_id: Optional[str]) -> bool:
        """Assign (or unassign, with None) a ticket.

        Returns:
            True if the assignee changed, False for a same-user re-assignment

        Raises:
            NotFoundError: if the ticket does not exist
            ConcurrentUpdateError: if the assignee changed between read and write
        """
        ticket = await self.get_ticket(ticket_id)
        if ticket.assigned_to == assignee_id:
            return False

        applied = await self._store.compare_and_set(
            TICKETS, ticket_id,
            {"assigned_to": ticket.assigned_to},
            {"assigned_to": assignee_id}
        )
        if not applied:
            raise ConcurrentUpdateError(f"Ticket {ticket_id} was reassigned concurrently")

        self._logger.info(f"Ticket {ticket_id} assigned to {assignee_id}")
        if assignee_id:
            await self._publish_assignment(ticket, assignee_id)
        return True

    async def update_status(self, ticket_id: str, status: str) -> None:
        await self._store.update(TICKETS, ticket_id, {"status": status})

    async def _publish_assignment(self, ticket: Ticket, assignee_id: str) -> None:
        await self._outbox.publish(
            EventType.TICKET_ASSIGNED,
            correlation_id=ticket.id,
            payload={
                "assignee_id": assignee_id,
                "ticket_title": ticket.title,
                "project_id": ticket.project_id,
            },
            organization_id=ticket.organization_id
        )


E = TypeVar("E", Proposal, Invoice)


class _ReviewableWorkflow(Generic[E]):
    """Shared status and feedback handling of proposals and invoices.

    Status changes are compare-and-set on the stored status, so a
    notification is emitted exactly for the writer whose transition landed.
    """

    collection: str
    kind: str
    model: Type[E]
    status_type: Type[Any]
    status_event: EventType

    def __init__(self, store: DocumentStore, outbox: Outbox, clock: Clock = utcnow):
        self._store = store
        self._outbox = outbox
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    async def get(self, entity_id: str) -> E:
        doc = await self._store.get(self.collection, entity_id)
        if doc is None:
            raise NotFoundError(self.kind, entity_id)
        return self.model.from_dict(doc)

    async def _create(self, entity: E) -> E:
        entity.created_at = entity.updated_at = self._clock()
        await self._store.insert(self.collection, entity.to_dict())
        if entity.status.value == "sent":
            await self._publish_status(entity, previous=None, actor=None)
        return entity

    async def update_status(self, entity_id: str, status: Any, actor: Optional[User] = None) -> bool:
        """Move an entity to a new status.

        Args:
            entity_id: The proposal or invoice
            status: New status (enum member or its string value)
            actor: The user performing the change, named in admin notifications

        Returns:
            True if the status changed, False if it already had this status

        Raises:
            NotFoundError: if the entity does not exist
            ConcurrentUpdateError: if another writer changed the status first
        """
        new_status = self.status_type(status)
        current = await self.get(entity_id)
        if current.status == new_status:
            return False

        updated_at = self._clock()
        applied = await self._store.compare_and_set(
            self.collection, entity_id,
            {"status": current.status.value},
            {"status": new_status.value, "updated_at": updated_at}
        )
        if not applied:
            raise ConcurrentUpdateError(f"{self.kind} {entity_id} changed status concurrently")

        self._logger.info(f"{self.kind} {entity_id}: {current.status.value} -> {new_status.value}")
        previous = current.status
        current.status = new_status
        current.updated_at = updated_at
        await self._publish_status(current, previous=previous, actor=actor)
        return True

    async def submit_feedback(
        self,
        entity_id: str,
        author: Union[User, CommentAuthor],
        message: str
    ) -> FeedbackComment:
        """Append a feedback comment and force the status to changes-requested.

        Raises:
            NotFoundError: if the entity does not exist
            InvalidStateError: if the entity is still a draft
        """
        current = await self.get(entity_id)
        if current.status.value == "draft":
            raise InvalidStateError(f"Cannot submit feedback on draft {self.kind} {entity_id}")

        if isinstance(author, User):
            author = CommentAuthor(id=author.id, name=author.name, avatar_url=author.avatar_url)
        comment = FeedbackComment(user=author, message=message, timestamp=self._clock())

        await self._store.array_append(self.collection, entity_id, "feedback", comment.to_dict())
        await self._store.update(self.collection, entity_id, {
            "status": CHANGES_REQUESTED,
            "updated_at": self._clock(),
        })

        await self._outbox.publish(
            EventType.FEEDBACK_SUBMITTED,
            correlation_id=entity_id,
            payload={
                "kind": self.kind,
                "title": current.title,
                "author_name": author.name,
                "project_id": current.project_id,
                "project_name": current.project_name,
            },
            organization_id=current.organization_id
        )
        return comment

    async def _publish_status(self, entity: E, previous: Optional[Any], actor: Optional[User]) -> None:
        payload: Dict[str, Any] = {
            "kind": self.kind,
            "title": entity.title,
            "status": entity.status.value,
            "previous_status": previous.value if previous is not None else None,
            "client_id": entity.client_id,
            "client_name": entity.client_name,
            "actor_name": actor.name if actor else None,
            "project_id": entity.project_id,
            "project_name": entity.project_name,
        }
        await self._outbox.publish(
            self.status_event,
            correlation_id=entity.id,
            payload=payload,
            organization_id=entity.organization_id
        )


class ProposalWorkflow(_ReviewableWorkflow[Proposal]):
    collection = PROPOSALS
    kind = "proposal"
    model = Proposal
    status_type = ProposalStatus
    status_event = EventType.PROPOSAL_STATUS_CHANGED

    async def create_proposal(
        self,
        title: str,
        client: User,
        project_id: str,
        organization_id: str,
        project_name: Optional[str] = None
    ) -> Proposal:
        """New proposals always start as drafts."""
        proposal = Proposal(
            id=self._store.new_id(),
            title=title,
            client_id=client.id,
            client_name=client.name,
            project_id=project_id,
            organization_id=organization_id,
            project_name=project_name
        )
        return await self._create(proposal)


class InvoiceWorkflow(_ReviewableWorkflow[Invoice]):
    collection = INVOICES
    kind = "invoice"
    model = Invoice
    status_type = InvoiceStatus
    status_event = EventType.INVOICE_STATUS_CHANGED

    async def create_invoice(
        self,
        title: str,
        client: User,
        project_id: str,
        project_name: str,
        organization_id: str,
        total_amount: float = 0.0,
        status: InvoiceStatus = InvoiceStatus.DRAFT
    ) -> Invoice:
        """Create an invoice. One created directly as sent notifies the client."""
        invoice = Invoice(
            id=self._store.new_id(),
            title=title,
            client_id=client.id,
            client_name=client.name,
            project_id=project_id,
            project_name=project_name,
            organization_id=organization_id,
            total_amount=total_amount,
            status=InvoiceStatus(status)
        )
        return await self._create(invoice)


class ReportWorkflow:
    """Client reports submitted from the client portal."""

    def __init__(self, store: DocumentStore, outbox: Outbox, clock: Clock = utcnow):
        self._store = store
        self._outbox = outbox
        self._clock = clock

    async def submit_report(
        self,
        client: User,
        project_id: str,
        project_name: str,
        message: str
    ) -> ClientReport:
        report = ClientReport(
            id=self._store.new_id(),
            organization_id=client.organization_id,
            project_id=project_id,
            project_name=project_name,
            client_id=client.id,
            client_name=client.name,
            message=message,
            created_at=self._clock()
        )
        await self._store.insert(CLIENT_REPORTS, report.to_dict())
        await self._outbox.publish(
            EventType.REPORT_SUBMITTED,
            correlation_id=report.id,
            payload={
                "client_name": client.name,
                "project_id": project_id,
                "project_name": project_name,
            },
            organization_id=client.organization_id
        )
        return report
