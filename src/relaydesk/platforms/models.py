"""Data models for platform messaging."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current time, used as the default timestamp everywhere."""
    return datetime.now(timezone.utc)


class PlatformType(str, Enum):
    """Supported messaging platforms."""

    TELEGRAM = "telegram"
    DISCORD = "discord"


class EventKind(str, Enum):
    """Kinds of events an adapter delivers."""

    MESSAGE = "message"
    UNIT_CREATED = "unit_created"
    CONNECTION_ERROR = "connection_error"


class MessageOrigin(str, Enum):
    """Where a message was written, from the relay's point of view."""

    EXTERNAL = "external"  # an end user talking to the bot
    MANAGEMENT = "management"  # the operator's management chat/guild
    PUBLIC = "public"  # a shared space that is neither, e.g. another Discord guild


class PlatformUser(BaseModel):
    """Represents a user on a specific platform."""

    platform: PlatformType
    platform_user_id: str  # Platform-specific user identifier
    username: Optional[str] = None
    display_name: Optional[str] = None
    is_bot: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def label(self) -> str:
        """Name shown to the operator."""
        return self.username or self.display_name or "Unknown"

    def __str__(self) -> str:
        """String representation for logging."""
        return f"{self.platform.value}:{self.platform_user_id}"


class PlatformCapabilities(BaseModel):
    """Describes what features a platform supports and how its chat reads."""

    supports_units: bool = False  # topics / threads per user
    supports_reactions: bool = False
    supports_threaded_replies: bool = False
    supports_user_commands: bool = False  # /start, /help from end users
    max_message_length: Optional[int] = None

    # Management surface vocabulary
    command_prefix: str = "/"
    reply_sigil: str = "r"
    unit_term: str = "topic"
    surface_term: str = "chat"


class OrganizationalUnit(BaseModel):
    """A per-user sub-scope of the management surface (forum topic, thread)."""

    platform: PlatformType
    unit_id: str
    owner_id: Optional[str] = None
    label: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    def __str__(self) -> str:
        """String representation for logging."""
        return f"{self.platform.value}:unit:{self.unit_id}"


class IncomingMessage(BaseModel):
    """Represents an event received from a platform, normalized."""

    platform: PlatformType
    kind: EventKind = EventKind.MESSAGE
    user: Optional[PlatformUser] = None
    content: Optional[str] = None
    message_id: str = ""  # Platform-specific message identifier
    chat_id: Optional[str] = None
    guild_id: Optional[str] = None
    thread_id: Optional[str] = None  # Topic / thread the message was written in
    reply_to_message_id: Optional[str] = None
    origin: MessageOrigin = MessageOrigin.EXTERNAL
    mentions_bot: bool = False
    unit: Optional[OrganizationalUnit] = None  # For UNIT_CREATED events
    error: Optional[str] = None  # For CONNECTION_ERROR events
    timestamp: datetime = Field(default_factory=utcnow)
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        """Message text, empty when the message carries none."""
        return self.content or ""

    @property
    def is_bot(self) -> bool:
        """Whether the author is a bot account."""
        return self.user.is_bot if self.user else False

    def __str__(self) -> str:
        """String representation for logging."""
        who = self.user or "system"
        return f"[{self.platform.value}] {who}: {self.text[:50]}"


class OutgoingMessage(BaseModel):
    """Represents a message to be sent to a platform."""

    content: str
    format: str = "plain"  # "plain", "markdown"
    thread_id: Optional[str] = None
    reply_to_message_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SentMessage(BaseModel):
    """Handle for a message the bot delivered."""

    platform: PlatformType
    message_id: str
    chat_id: str
    thread_id: Optional[str] = None
    content: Optional[str] = None
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
    raw: dict[str, Any] = Field(default_factory=dict)
    # Ids of all delivered parts of a split message, first one included
    part_ids: list[str] = Field(default_factory=list)
