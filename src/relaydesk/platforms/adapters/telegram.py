"""Telegram bot platform adapter using long polling."""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any, Optional

from relaydesk.platforms.exceptions import (
    PlatformCapabilityError,
    PlatformError,
    PlatformPermissionError,
    PlatformSendError,
)
from relaydesk.platforms.models import (
    EventKind,
    IncomingMessage,
    MessageOrigin,
    OrganizationalUnit,
    OutgoingMessage,
    PlatformCapabilities,
    PlatformType,
    PlatformUser,
    SentMessage,
)
from relaydesk.platforms.protocol import PlatformAdapter, split_message

logger = logging.getLogger(__name__)

try:
    from telegram import Bot, Message, ReplyParameters, Update
    from telegram.constants import ParseMode
    from telegram.error import BadRequest, Forbidden, TelegramError
    from telegram.ext import Application, ContextTypes, MessageHandler, filters

    TELEGRAM_AVAILABLE = True
except ImportError:
    TELEGRAM_AVAILABLE = False
    logger.warning(
        "python-telegram-bot not installed. "
        "Install with: pip install python-telegram-bot"
    )

# Telegram limits forum topic names to 128 characters
MAX_TOPIC_NAME_LENGTH = 128


class TelegramAdapter(PlatformAdapter):
    """Telegram bot adapter using long polling.

    Uses python-telegram-bot library with polling mode.

    The management surface is one chat (private chat or group). With topics
    enabled it must be a forum supergroup, and each user gets a forum topic.
    Messages in any other chat come from end users.

    Configuration:
        - bot_token: Telegram bot token from @BotFather
        - management_chat_id: Chat that receives forwarded messages
          (None = setup mode, the first chat that writes is adopted)
        - polling_interval: Seconds between poll requests (default: 1)
    """

    def __init__(
        self,
        bot_token: str,
        management_chat_id: Optional[str] = None,
        polling_interval: float = 1.0,
    ):
        """Initialize Telegram adapter.

        Args:
            bot_token: Bot token from @BotFather
            management_chat_id: Management chat ID
            polling_interval: Polling interval in seconds
        """
        if not TELEGRAM_AVAILABLE:
            raise ImportError(
                "python-telegram-bot is required for Telegram adapter. "
                "Install with: pip install python-telegram-bot"
            )

        super().__init__()

        self._bot_token = bot_token
        self._management_chat_id = str(management_chat_id) if management_chat_id else None
        self._polling_interval = polling_interval

        self._application: Optional[Application] = None
        self._message_queue: asyncio.Queue[IncomingMessage] = asyncio.Queue()
        self._bot: Optional[Bot] = None

        self._capabilities = PlatformCapabilities(
            supports_units=True,
            supports_reactions=False,
            supports_threaded_replies=True,
            supports_user_commands=True,
            max_message_length=4096,
            command_prefix="/",
            reply_sigil="r",
            unit_term="topic",
            surface_term="chat",
        )

    @property
    def platform_type(self) -> PlatformType:
        """The type of platform this adapter handles."""
        return PlatformType.TELEGRAM

    @property
    def capabilities(self) -> PlatformCapabilities:
        """The capabilities supported by this platform."""
        return self._capabilities

    @property
    def management_chat_id(self) -> Optional[str]:
        """ID of the management chat."""
        return self._management_chat_id

    async def start(self) -> None:
        """Start the Telegram bot with long polling."""
        if self._running:
            logger.warning("Telegram adapter already running")
            return

        logger.info("Starting Telegram bot adapter (polling mode)")

        self._application = Application.builder().token(self._bot_token).build()
        self._bot = self._application.bot

        self._application.add_handler(
            MessageHandler(filters.UpdateType.MESSAGE, self._handle_message)
        )
        self._application.add_error_handler(self._handle_error)

        await self._application.initialize()
        await self._application.start()
        await self._application.updater.start_polling(
            poll_interval=self._polling_interval,
            allowed_updates=[Update.MESSAGE],
            error_callback=self._handle_polling_error,
        )

        self._running = True
        logger.info("Telegram bot started successfully")

    async def stop(self) -> None:
        """Stop the Telegram bot."""
        if not self._running:
            logger.warning("Telegram adapter not running")
            return

        logger.info("Stopping Telegram bot adapter")

        if self._application:
            await self._application.updater.stop()
            await self._application.stop()
            await self._application.shutdown()

        self._running = False
        logger.info("Telegram bot stopped")

    async def _handle_message(self, update: "Update", context: Any) -> None:
        """Queue an incoming Telegram message.

        Args:
            update: Telegram update object
            context: Telegram context
        """
        message = update.message
        if not message:
            return

        # Topic ids are only unique within one chat
        if (
            message.forum_topic_created is not None
            and str(message.chat.id) != self._management_chat_id
        ):
            logger.debug(f"Ignoring topic created in non-management chat {message.chat.id}")
            return

        await self._message_queue.put(self.to_incoming(message))

    async def _handle_error(self, update: object, context: "ContextTypes.DEFAULT_TYPE") -> None:
        """Surface errors raised while processing updates."""
        logger.error(f"Telegram bot error: {context.error}")
        await self._message_queue.put(self._connection_error(context.error))

    def _handle_polling_error(self, error: "TelegramError") -> None:
        """Surface network errors raised by the polling loop."""
        logger.error(f"Telegram polling error: {error}")
        self._message_queue.put_nowait(self._connection_error(error))

    def _connection_error(self, error: Optional[BaseException]) -> IncomingMessage:
        return IncomingMessage(
            platform=PlatformType.TELEGRAM,
            kind=EventKind.CONNECTION_ERROR,
            error=str(error),
        )

    def to_incoming(self, message: "Message") -> IncomingMessage:
        """Normalize a Telegram message.

        Args:
            message: Telegram message object

        Returns:
            The normalized event
        """
        chat_id = str(message.chat.id)
        origin = (
            MessageOrigin.MANAGEMENT
            if chat_id == self._management_chat_id
            else MessageOrigin.EXTERNAL
        )
        thread_id = str(message.message_thread_id) if message.is_topic_message else None

        if message.forum_topic_created is not None:
            return IncomingMessage(
                platform=PlatformType.TELEGRAM,
                kind=EventKind.UNIT_CREATED,
                message_id=str(message.message_id),
                chat_id=chat_id,
                thread_id=thread_id,
                origin=origin,
                unit=OrganizationalUnit(
                    platform=PlatformType.TELEGRAM,
                    unit_id=str(message.message_thread_id),
                    label=message.forum_topic_created.name,
                ),
            )

        user = None
        if message.from_user is not None:
            user = PlatformUser(
                platform=PlatformType.TELEGRAM,
                platform_user_id=str(message.from_user.id),
                username=message.from_user.username,
                display_name=message.from_user.first_name,
                is_bot=message.from_user.is_bot,
            )

        # Inside a topic every message replies to the topic's creation
        # message unless the sender picked another message to reply to
        reply = message.reply_to_message
        reply_to_message_id = None
        if reply is not None and reply.forum_topic_created is None:
            if not (message.is_topic_message and reply.message_id == message.message_thread_id):
                reply_to_message_id = str(reply.message_id)

        return IncomingMessage(
            platform=PlatformType.TELEGRAM,
            user=user,
            content=message.text or message.caption,
            message_id=str(message.message_id),
            chat_id=chat_id,
            thread_id=thread_id,
            reply_to_message_id=reply_to_message_id,
            origin=origin,
            raw=message.to_dict(),
        )

    async def receive_messages(self) -> AsyncIterator[IncomingMessage]:
        """Receive events from Telegram.

        Yields:
            IncomingMessage objects as they arrive
        """
        while self._running:
            try:
                # Wait for message with timeout to allow checking _running
                message = await asyncio.wait_for(
                    self._message_queue.get(),
                    timeout=1.0,
                )
                yield message
            except asyncio.TimeoutError:
                continue

    async def send_message(self, user_id: str, message: OutgoingMessage) -> SentMessage:
        """Send a message to a Telegram user.

        The user's private chat ID equals the user ID.
        """
        return await self.send_to_chat(user_id, message)

    async def send_to_chat(self, chat_id: str, message: OutgoingMessage) -> SentMessage:
        """Send a message to a Telegram chat, optionally inside a forum topic.

        Long messages are split; the first part carries the reply reference
        and is the one returned, with the ids of all parts in ``part_ids``.

        Raises:
            PlatformSendError: If sending fails
        """
        if not self._bot:
            raise PlatformSendError("Bot not initialized", PlatformType.TELEGRAM.value)

        parse_mode = ParseMode.MARKDOWN if message.format == "markdown" else None
        thread_id = int(message.thread_id) if message.thread_id else None

        first: Optional[Message] = None
        part_ids: list[str] = []
        try:
            for chunk in split_message(message.content, self._capabilities.max_message_length):
                reply_parameters = None
                if first is None and message.reply_to_message_id:
                    reply_parameters = ReplyParameters(
                        message_id=int(message.reply_to_message_id),
                        allow_sending_without_reply=True,
                    )
                sent = await self._bot.send_message(
                    chat_id=chat_id,
                    text=chunk,
                    parse_mode=parse_mode,
                    message_thread_id=thread_id,
                    reply_parameters=reply_parameters,
                )
                part_ids.append(str(sent.message_id))
                if first is None:
                    first = sent
        except TelegramError as e:
            logger.error(f"Failed to send Telegram message to {chat_id}: {e}")
            raise PlatformSendError(
                str(e),
                PlatformType.TELEGRAM.value,
                unit_missing="thread not found" in str(e).lower(),
            ) from e

        return self._to_sent(first, part_ids)

    def _to_sent(self, message: "Message", part_ids: list[str]) -> SentMessage:
        author = message.from_user
        return SentMessage(
            platform=PlatformType.TELEGRAM,
            message_id=str(message.message_id),
            chat_id=str(message.chat.id),
            thread_id=str(message.message_thread_id) if message.is_topic_message else None,
            content=message.text,
            author_id=str(author.id) if author else None,
            author_name=(author.username or author.first_name) if author else None,
            raw=message.to_dict(),
            part_ids=part_ids,
        )

    async def create_unit(self, label: str, owner_id: str) -> OrganizationalUnit:
        """Create a forum topic in the management chat.

        Raises:
            PlatformPermissionError: The bot may not manage topics
            PlatformCapabilityError: The chat is not a forum
            PlatformError: Any other failure
        """
        platform = PlatformType.TELEGRAM.value
        if not self._bot or self._management_chat_id is None:
            raise PlatformCapabilityError("management chat is not configured", platform)

        try:
            topic = await self._bot.create_forum_topic(
                chat_id=self._management_chat_id,
                name=label[:MAX_TOPIC_NAME_LENGTH],
            )
        except Forbidden as e:
            raise PlatformPermissionError(str(e), platform) from e
        except BadRequest as e:
            raise classify_topic_error(str(e)) from e
        except TelegramError as e:
            raise PlatformError(str(e), platform) from e

        return OrganizationalUnit(
            platform=PlatformType.TELEGRAM,
            unit_id=str(topic.message_thread_id),
            owner_id=owner_id,
            label=topic.name,
        )

    async def verify_unit_live(self, unit_id: str) -> bool:
        """The Bot API cannot look up topics; deleted topics surface on send."""
        return True

    def can_register_management(self, message: IncomingMessage) -> bool:
        """Any chat can serve as the management chat."""
        return message.kind == EventKind.MESSAGE and message.chat_id is not None

    def register_management(self, message: IncomingMessage) -> str:
        """Adopt the chat of ``message`` as the management chat."""
        self._management_chat_id = message.chat_id
        chat_type = message.raw.get("chat", {}).get("type", "private")
        kind = "group" if chat_type in ("group", "supergroup") else "personal"
        return (
            f"{kind} chat ID {message.chat_id} "
            f"(set MANAGEMENT_CHAT_ID={message.chat_id}"
            + (" and USE_TOPICS=true with Topics enabled in the group" if kind == "group" else "")
            + ")"
        )

    async def health_check(self) -> bool:
        """Check if the Telegram bot connection is healthy.

        Returns:
            True if healthy, False otherwise
        """
        if not self._running or not self._bot:
            return False

        try:
            await self._bot.get_me()
            return True
        except TelegramError as e:
            logger.error(f"Telegram health check failed: {e}")
            return False


def classify_topic_error(description: str) -> PlatformError:
    """Map a failed createForumTopic description to a platform exception."""
    platform = PlatformType.TELEGRAM.value
    text = description.lower()
    if "not enough rights" in text:
        return PlatformPermissionError(description, platform)
    if "forum" in text or "not found" in text:
        return PlatformCapabilityError(description, platform)
    return PlatformError(description, platform)
