# /src/boardchat/models.py
# Domain records and their document representation

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# Fixed notification lifetime. Not configurable per tenant or per record.
NOTIFICATION_TTL = timedelta(days=7)

UNKNOWN_PROJECT = "Unknown Project"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UserRole(str, Enum):
    """Roles a tenant user can hold."""
    ADMIN = "admin"
    USER = "user"
    CLIENT = "client"


class ProposalStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CHANGES_REQUESTED = "changes-requested"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    EXPIRED = "expired"
    CHANGES_REQUESTED = "changes-requested"


@dataclass
class User:
    id: str
    name: str
    email: str
    role: UserRole
    organization_id: str
    avatar_url: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "organization_id": self.organization_id,
            "avatar_url": self.avatar_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            name=data["name"],
            email=data.get("email", ""),
            role=UserRole(data.get("role", "user")),
            organization_id=data["organization_id"],
            avatar_url=data.get("avatar_url"),
        )


@dataclass
class Project:
    id: str
    name: str
    organization_id: str
    description: str = ""
    client_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "organization_id": self.organization_id,
            "description": self.description,
            "client_ids": list(self.client_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=data["id"],
            name=data["name"],
            organization_id=data["organization_id"],
            description=data.get("description", ""),
            client_ids=list(data.get("client_ids") or []),
        )


@dataclass
class Sender:
    """Snapshot of the author of a chat message, captured at send time."""
    id: str
    name: str
    role: UserRole
    avatar_url: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "Sender":
        return cls(id=user.id, name=user.name, role=user.role, avatar_url=user.avatar_url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "avatar_url": self.avatar_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sender":
        return cls(
            id=data["id"],
            name=data["name"],
            role=UserRole(data.get("role", "user")),
            avatar_url=data.get("avatar_url"),
        )


@dataclass
class ChannelPreview:
    text: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChannelPreview":
        return cls(text=data["text"], timestamp=data["timestamp"])


@dataclass
class Channel:
    """The single chat space bound to one project within one organization.

    Membership is frozen when the channel is created; later changes to the
    project's clients or the tenant's admins are not reflected.
    """
    id: str
    project_id: str
    organization_id: str
    user_ids: List[str]
    created_at: datetime
    last_message: Optional[ChannelPreview] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "organization_id": self.organization_id,
            "user_ids": list(self.user_ids),
            "created_at": self.created_at,
            "last_message": self.last_message.to_dict() if self.last_message else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Channel":
        preview = data.get("last_message")
        return cls(
            id=data["id"],
            project_id=data["project_id"],
            organization_id=data["organization_id"],
            user_ids=list(data.get("user_ids") or []),
            created_at=data["created_at"],
            last_message=ChannelPreview.from_dict(preview) if preview else None,
        )


@dataclass
class Message:
    """A chat message. Immutable once written."""
    id: str
    channel_id: str
    sender: Sender
    text: str
    timestamp: datetime

    @property
    def sort_key(self):
        return (self.timestamp, self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "channel_id": self.channel_id,
            "sender": self.sender.to_dict(),
            "text": self.text,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            id=data["id"],
            channel_id=data["channel_id"],
            sender=Sender.from_dict(data["sender"]),
            text=data["text"],
            timestamp=data["timestamp"],
        )


@dataclass
class Correlation:
    """Optional links from a notification back to the entity that caused it."""
    ticket_id: Optional[str] = None
    proposal_id: Optional[str] = None
    invoice_id: Optional[str] = None
    report_id: Optional[str] = None
    chat_id: Optional[str] = None
    support_ticket_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            key: value
            for key, value in (
                ("ticket_id", self.ticket_id),
                ("proposal_id", self.proposal_id),
                ("invoice_id", self.invoice_id),
                ("report_id", self.report_id),
                ("chat_id", self.chat_id),
                ("support_ticket_id", self.support_ticket_id),
            )
            if value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Correlation":
        return cls(
            ticket_id=data.get("ticket_id"),
            proposal_id=data.get("proposal_id"),
            invoice_id=data.get("invoice_id"),
            report_id=data.get("report_id"),
            chat_id=data.get("chat_id"),
            support_ticket_id=data.get("support_ticket_id"),
        )


@dataclass
class Notification:
    """A fact record addressed to exactly one recipient."""
    id: str
    user_id: str
    message: str
    created_at: datetime
    expires_at: datetime
    read: bool = False
    correlation: Correlation = field(default_factory=Correlation)
    project_id: Optional[str] = None
    project_name: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < as_utc(now)

    def to_dict(self) -> Dict[str, Any]:
        # Optional fields are left out rather than stored as None
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "message": self.message,
            "read": self.read,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }
        data.update(self.correlation.to_dict())
        if self.project_id:
            data["project_id"] = self.project_id
        if self.project_name:
            data["project_name"] = self.project_name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Notification":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            message=data["message"],
            created_at=data["created_at"],
            expires_at=data["expires_at"],
            read=bool(data.get("read", False)),
            correlation=Correlation.from_dict(data),
            project_id=data.get("project_id"),
            project_name=data.get("project_name"),
        )


@dataclass
class CommentAuthor:
    id: str
    name: str
    avatar_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "avatar_url": self.avatar_url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommentAuthor":
        return cls(id=data["id"], name=data["name"], avatar_url=data.get("avatar_url"))


@dataclass
class FeedbackComment:
    user: CommentAuthor
    message: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": self.user.to_dict(),
            "message": self.message,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedbackComment":
        return cls(
            user=CommentAuthor.from_dict(data["user"]),
            message=data["message"],
            timestamp=data["timestamp"],
        )


@dataclass
class Ticket:
    id: str
    title: str
    project_id: str
    organization_id: str
    status: str = "backlog"
    assigned_to: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "project_id": self.project_id,
            "organization_id": self.organization_id,
            "status": self.status,
            "assigned_to": self.assigned_to,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ticket":
        return cls(
            id=data["id"],
            title=data["title"],
            project_id=data["project_id"],
            organization_id=data["organization_id"],
            status=data.get("status", "backlog"),
            assigned_to=data.get("assigned_to"),
        )


@dataclass
class Proposal:
    id: str
    title: str
    client_id: str
    client_name: str
    project_id: str
    organization_id: str
    status: ProposalStatus = ProposalStatus.DRAFT
    feedback: List[FeedbackComment] = field(default_factory=list)
    project_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "project_id": self.project_id,
            "organization_id": self.organization_id,
            "status": self.status.value,
            "feedback": [comment.to_dict() for comment in self.feedback],
            "project_name": self.project_name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Proposal":
        return cls(
            id=data["id"],
            title=data["title"],
            client_id=data["client_id"],
            client_name=data.get("client_name", ""),
            project_id=data["project_id"],
            organization_id=data["organization_id"],
            status=ProposalStatus(data.get("status", "draft")),
            feedback=[FeedbackComment.from_dict(c) for c in data.get("feedback") or []],
            project_name=data.get("project_name"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class Invoice:
    id: str
    title: str
    client_id: str
    client_name: str
    project_id: str
    project_name: str
    organization_id: str
    total_amount: float = 0.0
    status: InvoiceStatus = InvoiceStatus.DRAFT
    feedback: List[FeedbackComment] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "project_id": self.project_id,
            "project_name": self.project_name,
            "organization_id": self.organization_id,
            "total_amount": self.total_amount,
            "status": self.status.value,
            "feedback": [comment.to_dict() for comment in self.feedback],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Invoice":
        return cls(
            id=data["id"],
            title=data["title"],
            client_id=data["client_id"],
            client_name=data.get("client_name", ""),
            project_id=data["project_id"],
            project_name=data.get("project_name", ""),
            organization_id=data["organization_id"],
            total_amount=float(data.get("total_amount", 0.0)),
            status=InvoiceStatus(data.get("status", "draft")),
            feedback=[FeedbackComment.from_dict(c) for c in data.get("feedback") or []],
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class ClientReport:
    id: str
    organization_id: str
    project_id: str
    project_name: str
    client_id: str
    client_name: str
    message: str
    created_at: datetime
    status: str = "new"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "project_id": self.project_id,
            "project_name": self.project_name,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "message": self.message,
            "created_at": self.created_at,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientReport":
        return cls(
            id=data["id"],
            organization_id=data["organization_id"],
            project_id=data["project_id"],
            project_name=data.get("project_name", ""),
            client_id=data["client_id"],
            client_name=data.get("client_name", ""),
            message=data.get("message", ""),
            created_at=data["created_at"],
            status=data.get("status", "new"),
        )
