# /src/boardchat/events/types.py
# Domain event type definitions

from enum import Enum


class EventType(str, Enum):
    """Domain events that trigger notification fan-out.

    Each event names the fact that happened; recipient selection for it
    lives in ``FanoutRules``.
    """

    # Chat
    MESSAGE_POSTED = "chat.message_posted"

    # Board
    TICKET_ASSIGNED = "ticket.assigned"

    # Proposals and invoices
    PROPOSAL_STATUS_CHANGED = "proposal.status_changed"
    INVOICE_STATUS_CHANGED = "invoice.status_changed"
    FEEDBACK_SUBMITTED = "feedback.submitted"

    # Client portal
    REPORT_SUBMITTED = "report.submitted"


class DeliveryStatus(str, Enum):
    """Outbox delivery state of an event."""
    PENDING = "pending"
    DISPATCHED = "dispatched"
