# /src/boardchat/messages.py
# Message pipeline - append, refresh the channel preview, fan out

import logging
from datetime import datetime
from typing import Callable, List

from .channels import CHANNELS
from .errors import ErrorSink, NotFoundError
from .events.types import EventType
from .models import ChannelPreview, Message, Sender, utcnow
from .outbox import Outbox
from .storage.base import DESCENDING, DocumentStore

MESSAGES = "messages"
HISTORY_LIMIT = 100


class MessagePipeline:
    """Posts chat messages.

    Only the append is must-succeed. The preview update and the notification
    fan-out are side effects: a failure there is logged through the error
    sink and the message still counts as sent.
    """

    def __init__(
        self,
        store: DocumentStore,
        outbox: Outbox,
        error_sink: ErrorSink,
        clock: Callable[[], datetime] = utcnow
    ):
        self._store = store
        self._outbox = outbox
        self._sink = error_sink
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    async def post_message(self, channel_id: str, sender: Sender, text: str) -> Message:
        """Append a message to a channel and notify every other member.

        Args:
            channel_id: Target channel
            sender: Snapshot of the author (stored as-is, not as a live reference)
            text: Message body

        Returns:
            The stored Message

        Raises:
            NotFoundError: if the channel does not exist
            ValueError: if the text is empty
        """
        if not text or not text.strip():
            raise ValueError("Message text must not be empty")
        if await self._store.get(CHANNELS, channel_id) is None:
            raise NotFoundError("channel", channel_id)

        message = Message(
            id=self._store.new_id(),
            channel_id=channel_id,
            sender=sender,
            text=text,
            timestamp=self._clock()
        )
        await self._store.insert(MESSAGES, message.to_dict())
        self._logger.debug(f"Posted message {message.id} to {channel_id}")

        async with self._sink.guard("channel_preview", channel_id=channel_id):
            preview = ChannelPreview(text=text, timestamp=message.timestamp)
            await self._store.update(CHANNELS, channel_id, {"last_message": preview.to_dict()})

        await self._outbox.publish(
            EventType.MESSAGE_POSTED,
            correlation_id=message.id,
            payload={
                "channel_id": channel_id,
                "sender_id": sender.id,
                "sender_name": sender.name,
            }
        )
        return message

    async def get_messages(self, channel_id: str, limit: int = HISTORY_LIMIT) -> List[Message]:
        """The most recent messages of a channel, oldest first."""
        docs = await self._store.find(
            MESSAGES,
            {"channel_id": channel_id},
            sort=[("timestamp", DESCENDING), ("id", DESCENDING)],
            limit=limit
        )
        messages = [Message.from_dict(doc) for doc in docs]
        messages.reverse()
        return messages

    async def count_messages(self, channel_id: str) -> int:
        return await self._store.count(MESSAGES, {"channel_id": channel_id})

