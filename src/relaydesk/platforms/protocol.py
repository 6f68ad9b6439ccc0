"""Platform adapter protocol definition."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Optional

from relaydesk.platforms.exceptions import PlatformSendError
from relaydesk.platforms.models import (
    IncomingMessage,
    OrganizationalUnit,
    OutgoingMessage,
    PlatformCapabilities,
    PlatformType,
    SentMessage,
)


class PlatformAdapter(ABC):
    """Abstract base class for platform adapters.

    Each platform (Telegram, Discord) implements this protocol to give the
    routing engine a unified view of:

    - the event stream coming from the platform,
    - sending to an end user or into the operator's management surface,
    - creating per-user units (topics, threads) and checking they still exist.

    Implementations translate every platform library error into the
    exceptions in ``relaydesk.platforms.exceptions``.
    """

    def __init__(self) -> None:
        """Initialize the platform adapter."""
        self._running = False

    @property
    @abstractmethod
    def platform_type(self) -> PlatformType:
        """The type of platform this adapter handles."""
        ...

    @property
    @abstractmethod
    def capabilities(self) -> PlatformCapabilities:
        """The capabilities supported by this platform."""
        ...

    @property
    @abstractmethod
    def management_chat_id(self) -> Optional[str]:
        """Chat/channel id of the management surface, None until configured."""
        ...

    @property
    def is_running(self) -> bool:
        """Check if the adapter is currently running."""
        return self._running

    @abstractmethod
    async def start(self) -> None:
        """Connect to the platform and begin queueing incoming events."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect from the platform."""
        ...

    @abstractmethod
    async def receive_messages(self) -> AsyncIterator[IncomingMessage]:
        """Receive events from the platform.

        Yields:
            IncomingMessage objects as they arrive. The stream is infinite
            while the adapter runs and has a single consumer.
        """
        ...

    @abstractmethod
    async def send_message(self, user_id: str, message: OutgoingMessage) -> SentMessage:
        """Send a message to an end user.

        Args:
            user_id: Platform user id of the recipient
            message: The message to send

        Returns:
            Handle of the delivered message

        Raises:
            PlatformSendError: If sending fails
        """
        ...

    @abstractmethod
    async def send_to_chat(self, chat_id: str, message: OutgoingMessage) -> SentMessage:
        """Send a message into a chat or channel.

        ``message.thread_id`` scopes the message to a unit inside that chat.
        Content over the platform limit goes out in several parts; the
        returned handle is the first part and lists every part in ``part_ids``.

        Raises:
            PlatformSendError: If sending fails; ``unit_missing`` is set when
                the platform reports the thread gone.
        """
        ...

    @abstractmethod
    async def create_unit(self, label: str, owner_id: str) -> OrganizationalUnit:
        """Create a unit for one user inside the management surface.

        Args:
            label: Human readable unit name
            owner_id: Platform user id the unit is dedicated to

        Raises:
            PlatformPermissionError: The bot is not allowed to create units
            PlatformCapabilityError: The surface does not support units
            PlatformError: Any other failure
        """
        ...

    @abstractmethod
    async def verify_unit_live(self, unit_id: str) -> bool:
        """Best-effort check that a unit still exists.

        Reporting a deleted unit as live is acceptable; the mistake surfaces
        later as a non-fatal send failure.
        """
        ...

    @abstractmethod
    def can_register_management(self, message: IncomingMessage) -> bool:
        """Whether ``message`` was written somewhere usable as the management surface."""
        ...

    @abstractmethod
    def register_management(self, message: IncomingMessage) -> str:
        """Adopt the chat ``message`` was written in as the management surface.

        Returns:
            Human readable description of the registered surface, including
            the ids to persist in configuration.
        """
        ...

    async def post_to_management(self, message: OutgoingMessage) -> SentMessage:
        """Send a message into the management surface.

        Raises:
            PlatformSendError: If no surface is configured or sending fails
        """
        if self.management_chat_id is None:
            raise PlatformSendError(
                "management surface is not configured", self.platform_type.value
            )
        return await self.send_to_chat(self.management_chat_id, message)

    async def add_reaction(self, chat_id: str, message_id: str, emoji: str) -> bool:
        """React to a message (if supported).

        Returns:
            True if the reaction was placed. The default implementation does
            nothing and returns False.
        """
        return False

    async def health_check(self) -> bool:
        """Check if the platform connection is healthy.

        Default implementation returns whether the adapter is running.
        """
        return self._running


def split_message(content: str, limit: Optional[int]) -> list[str]:
    """Split content into chunks no longer than the platform limit.

    Splits on the last newline inside the limit when there is one.
    """
    if not limit or len(content) <= limit:
        return [content]

    chunks = []
    rest = content
    while len(rest) > limit:
        cut = rest.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(rest[:cut])
        rest = rest[cut:].lstrip("\n")
    if rest:
        chunks.append(rest)
    return chunks
