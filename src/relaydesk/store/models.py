"""Normalized message records written to the message log."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from relaydesk.platforms.models import IncomingMessage, SentMessage, utcnow


class NormalizedMessage(BaseModel):
    """One message in the platform-independent shape the log stores.

    Field names match the ``messages`` table the dashboard reads.
    """

    platform: str
    platform_message_id: Optional[str] = None
    user_id: Optional[str] = None
    username: Optional[str] = None
    message_text: Optional[str] = None
    message_type: Literal["user", "bot"] = "user"
    chat_id: Optional[str] = None
    thread_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    raw_data: dict[str, Any] = Field(default_factory=dict)


class StoredMessage(NormalizedMessage):
    """A normalized message after the log accepted it."""

    id: int


def normalize_incoming(message: IncomingMessage) -> NormalizedMessage:
    """Build the log record for a message received from a platform."""
    user = message.user
    return NormalizedMessage(
        platform=message.platform.value,
        platform_message_id=message.message_id or None,
        user_id=user.platform_user_id if user else None,
        username=(user.username or user.display_name) if user else None,
        message_text=message.content or None,
        message_type="bot" if message.is_bot else "user",
        chat_id=message.chat_id,
        thread_id=message.thread_id,
        created_at=message.timestamp,
        raw_data=message.raw,
    )


def normalize_sent(sent: SentMessage) -> NormalizedMessage:
    """Build the log record for a message the bot delivered to a user."""
    return NormalizedMessage(
        platform=sent.platform.value,
        platform_message_id=sent.message_id,
        user_id=sent.author_id,
        username=sent.author_name,
        message_text=sent.content or None,
        message_type="bot",
        chat_id=sent.chat_id,
        thread_id=sent.thread_id,
        created_at=sent.timestamp,
        raw_data=sent.raw,
    )
