# /src/boardchat/__init__.py
# BoardChat - chat channels and notification fan-out for project workspaces

from .core import BoardChat

# Domain records
from .models import (
    NOTIFICATION_TTL,
    Channel,
    ChannelPreview,
    ClientReport,
    CommentAuthor,
    Correlation,
    FeedbackComment,
    Invoice,
    InvoiceStatus,
    Message,
    Notification,
    Project,
    Proposal,
    ProposalStatus,
    Sender,
    Ticket,
    User,
    UserRole,
)

# Errors
from .errors import (
    BoardChatError,
    ConcurrentUpdateError,
    ConfigurationError,
    ErrorSink,
    InvalidStateError,
    NotFoundError,
)

# Events
from .events import EventEnvelope, EventType, DeliveryStatus

# Storage
from .storage import (
    DocumentStore,
    MemoryDocumentStore,
    SQLiteDocumentStore,
    MongoDBDocumentStore,
)

# Components
from .channels import ChannelResolver, channel_id_for
from .directory import ProjectDirectory, UserDirectory
from .mailer import EmailResult, EmailSender, ResendEmailSender
from .messages import MessagePipeline
from .notifications import NotificationService
from .outbox import Outbox
from .subscriptions import Subscription, SubscriptionLayer
from .config import Settings, StoreBackend, create_store

__version__ = "1.0.0"

__all__ = [
    # Core
    "BoardChat",
    # Models
    "NOTIFICATION_TTL",
    "Channel",
    "ChannelPreview",
    "ClientReport",
    "CommentAuthor",
    "Correlation",
    "FeedbackComment",
    "Invoice",
    "InvoiceStatus",
    "Message",
    "Notification",
    "Project",
    "Proposal",
    "ProposalStatus",
    "Sender",
    "Ticket",
    "User",
    "UserRole",
    # Errors
    "BoardChatError",
    "ConcurrentUpdateError",
    "ConfigurationError",
    "ErrorSink",
    "InvalidStateError",
    "NotFoundError",
    # Events
    "EventEnvelope",
    "EventType",
    "DeliveryStatus",
    # Storage
    "DocumentStore",
    "MemoryDocumentStore",
    "SQLiteDocumentStore",
    "MongoDBDocumentStore",
    # Components
    "ChannelResolver",
    "channel_id_for",
    "ProjectDirectory",
    "UserDirectory",
    "EmailResult",
    "EmailSender",
    "ResendEmailSender",
    "MessagePipeline",
    "NotificationService",
    "Outbox",
    "Subscription",
    "SubscriptionLayer",
    "Settings",
    "StoreBackend",
    "create_store",
]
