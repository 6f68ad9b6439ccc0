"""Discord bot platform adapter using Gateway WebSocket."""

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
    import discord
    from discord.ext import commands

    DISCORD_AVAILABLE = True
except ImportError:
    DISCORD_AVAILABLE = False
    logger.warning("discord.py not installed. Install with: pip install discord.py")

# Archive idle threads after 7 days
THREAD_AUTO_ARCHIVE_MINUTES = 10080
MAX_THREAD_NAME_LENGTH = 100
PRESENCE_TEXT = "forwarding conversations 📬"


class DiscordAdapter(PlatformAdapter):
    """Discord bot adapter using Gateway WebSocket.

    Uses discord.py library with Gateway connection (standard for Discord bots).

    Direct messages come from end users. The management guild is the
    operator's server; forwarded messages go to the management channel,
    each user in their own thread when thread mode is on. Messages in any
    other guild are public and only answered when they mention the bot.

    Configuration:
        - bot_token: Discord bot token
        - management_guild_id: Guild (server) ID of the management server
        - management_channel_id: Text channel receiving forwarded messages
    """

    def __init__(
        self,
        bot_token: str,
        management_guild_id: Optional[str] = None,
        management_channel_id: Optional[str] = None,
    ):
        """Initialize Discord adapter.

        Args:
            bot_token: Discord bot token
            management_guild_id: Management guild ID
            management_channel_id: Management channel ID
        """
        if not DISCORD_AVAILABLE:
            raise ImportError(
                "discord.py is required for Discord adapter. "
                "Install with: pip install discord.py"
            )

        super().__init__()

        self._bot_token = bot_token
        self._management_guild_id = str(management_guild_id) if management_guild_id else None
        self._management_channel_id = (
            str(management_channel_id) if management_channel_id else None
        )

        # Message content is a privileged intent; DMs need dm_messages
        intents = discord.Intents.default()
        intents.message_content = True
        intents.messages = True
        intents.dm_messages = True
        intents.guilds = True

        self._bot = commands.Bot(command_prefix="!", intents=intents, help_command=None)
        self._message_queue: asyncio.Queue[IncomingMessage] = asyncio.Queue()
        self._ready_event = asyncio.Event()
        self._bot_task: Optional[asyncio.Task] = None

        self._bot.add_listener(self._on_ready, "on_ready")
        self._bot.add_listener(self._on_message, "on_message")
        self._bot.add_listener(self._on_thread_create, "on_thread_create")
        self._bot.add_listener(self._on_disconnect, "on_disconnect")

        self._capabilities = PlatformCapabilities(
            supports_units=True,
            supports_reactions=True,
            supports_threaded_replies=True,
            supports_user_commands=False,
            max_message_length=2000,
            command_prefix="!",
            reply_sigil="@",
            unit_term="thread",
            surface_term="channel",
        )

    @property
    def platform_type(self) -> PlatformType:
        """The type of platform this adapter handles."""
        return PlatformType.DISCORD

    @property
    def capabilities(self) -> PlatformCapabilities:
        """The capabilities supported by this platform."""
        return self._capabilities

    @property
    def management_chat_id(self) -> Optional[str]:
        """ID of the management channel, None unless guild and channel are set."""
        if self._management_guild_id is None:
            return None
        return self._management_channel_id

    async def start(self) -> None:
        """Start the Discord bot with Gateway connection.

        Raises:
            PlatformError: If the bot stops before it becomes ready
        """
        if self._running:
            logger.warning("Discord adapter already running")
            return

        logger.info("Starting Discord bot adapter (Gateway WebSocket)")

        self._bot_task = asyncio.create_task(self._run_bot(), name="discord-gateway")
        ready = asyncio.create_task(self._ready_event.wait())

        done, _ = await asyncio.wait(
            {ready, self._bot_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if ready not in done:
            ready.cancel()
            raise PlatformError(
                "Discord bot stopped before becoming ready", PlatformType.DISCORD.value
            )

        self._running = True
        logger.info("Discord bot started successfully")

    async def stop(self) -> None:
        """Stop the Discord bot."""
        if not self._running:
            logger.warning("Discord adapter not running")
            return

        logger.info("Stopping Discord bot adapter")

        await self._bot.close()
        if self._bot_task is not None:
            await asyncio.gather(self._bot_task, return_exceptions=True)

        self._running = False
        logger.info("Discord bot stopped")

    async def _run_bot(self) -> None:
        """Run the Discord bot (internal task)."""
        try:
            await self._bot.start(self._bot_token)
        except discord.DiscordException as e:
            logger.error(f"Discord bot error: {e}", exc_info=True)
            await self._message_queue.put(self._connection_error(str(e)))

    async def _on_ready(self) -> None:
        """Called when bot is ready."""
        logger.info(f"Discord bot logged in as {self._bot.user}")
        await self._bot.change_presence(
            status=discord.Status.online,
            activity=discord.Activity(type=discord.ActivityType.watching, name=PRESENCE_TEXT),
        )
        if self.management_chat_id is None:
            logger.warning("Discord management server/channel not configured")
        self._ready_event.set()

    async def _on_message(self, message: "discord.Message") -> None:
        """Queue an incoming Discord message."""
        await self._message_queue.put(self.to_incoming(message))

    async def _on_thread_create(self, thread: "discord.Thread") -> None:
        """Queue threads created in the management channel."""
        if self._management_channel_id is None:
            return
        if str(thread.parent_id) != self._management_channel_id:
            return

        await self._message_queue.put(
            IncomingMessage(
                platform=PlatformType.DISCORD,
                kind=EventKind.UNIT_CREATED,
                chat_id=str(thread.parent_id),
                guild_id=str(thread.guild.id),
                thread_id=str(thread.id),
                origin=MessageOrigin.MANAGEMENT,
                unit=OrganizationalUnit(
                    platform=PlatformType.DISCORD,
                    unit_id=str(thread.id),
                    owner_id=None,
                    label=thread.name,
                ),
            )
        )

    async def _on_disconnect(self) -> None:
        """Gateway connection lost; discord.py reconnects on its own."""
        logger.warning("Discord gateway disconnected")
        await self._message_queue.put(self._connection_error("gateway disconnected"))

    def _connection_error(self, error: str) -> IncomingMessage:
        return IncomingMessage(
            platform=PlatformType.DISCORD,
            kind=EventKind.CONNECTION_ERROR,
            error=error,
        )

    def to_incoming(self, message: "discord.Message") -> IncomingMessage:
        """Normalize a Discord message.

        Args:
            message: Discord message object

        Returns:
            The normalized event
        """
        guild_id = str(message.guild.id) if message.guild else None
        if guild_id is None:
            origin = MessageOrigin.EXTERNAL
        elif guild_id == self._management_guild_id:
            origin = MessageOrigin.MANAGEMENT
        else:
            origin = MessageOrigin.PUBLIC

        thread_id = None
        if isinstance(message.channel, discord.Thread):
            thread_id = str(message.channel.id)

        me = self._bot.user
        mentions_bot = me is not None and any(m.id == me.id for m in message.mentions)

        reply_to_message_id = None
        if message.reference is not None and message.reference.message_id is not None:
            reply_to_message_id = str(message.reference.message_id)

        author = message.author
        return IncomingMessage(
            platform=PlatformType.DISCORD,
            user=PlatformUser(
                platform=PlatformType.DISCORD,
                platform_user_id=str(author.id),
                username=author.name,
                display_name=author.display_name,
                is_bot=author.bot,
            ),
            content=message.content,
            message_id=str(message.id),
            chat_id=str(message.channel.id),
            guild_id=guild_id,
            thread_id=thread_id,
            reply_to_message_id=reply_to_message_id,
            origin=origin,
            mentions_bot=mentions_bot,
            raw=self._raw(message),
        )

    def _raw(self, message: "discord.Message") -> dict[str, Any]:
        return {
            "id": str(message.id),
            "content": message.content,
            "author": {
                "id": str(message.author.id),
                "username": message.author.name,
                "bot": message.author.bot,
            },
            "channel": {"id": str(message.channel.id)},
            "guild_id": str(message.guild.id) if message.guild else None,
            "created_at": message.created_at.isoformat(),
        }

    async def receive_messages(self) -> AsyncIterator[IncomingMessage]:
        """Receive events from Discord.

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

    async def _resolve_channel(self, channel_id: str) -> Any:
        channel = self._bot.get_channel(int(channel_id))
        if channel is None:
            channel = await self._bot.fetch_channel(int(channel_id))
        return channel

    async def _send_chunks(
        self,
        target: Any,
        message: OutgoingMessage,
        reference: Optional["discord.MessageReference"] = None,
    ) -> list["discord.Message"]:
        sent: list["discord.Message"] = []
        for chunk in split_message(message.content, self._capabilities.max_message_length):
            sent.append(await target.send(chunk, reference=None if sent else reference))
        return sent

    async def send_message(self, user_id: str, message: OutgoingMessage) -> SentMessage:
        """Send a direct message to a Discord user.

        Raises:
            PlatformSendError: If sending fails
        """
        try:
            user = self._bot.get_user(int(user_id))
            if user is None:
                user = await self._bot.fetch_user(int(user_id))
            sent = await self._send_chunks(user, message)
        except (discord.HTTPException, ValueError) as e:
            logger.error(f"Failed to send Discord DM to {user_id}: {e}")
            raise PlatformSendError(str(e), PlatformType.DISCORD.value) from e

        return self._to_sent(sent)

    async def send_to_chat(self, chat_id: str, message: OutgoingMessage) -> SentMessage:
        """Send a message to a channel, or to the thread in ``message.thread_id``.

        Raises:
            PlatformSendError: If sending fails; ``unit_missing`` is set when
                the thread no longer exists.
        """
        target_id = message.thread_id or chat_id
        reference = None
        if message.reply_to_message_id:
            reference = discord.MessageReference(
                message_id=int(message.reply_to_message_id),
                channel_id=int(target_id),
                fail_if_not_exists=False,
            )

        try:
            channel = await self._resolve_channel(target_id)
            sent = await self._send_chunks(channel, message, reference)
        except discord.NotFound as e:
            logger.error(f"Discord channel {target_id} not found: {e}")
            raise PlatformSendError(
                str(e), PlatformType.DISCORD.value, unit_missing=message.thread_id is not None
            ) from e
        except discord.HTTPException as e:
            logger.error(f"Failed to send Discord message to {target_id}: {e}")
            raise PlatformSendError(str(e), PlatformType.DISCORD.value) from e

        return self._to_sent(sent)

    def _to_sent(self, parts: list["discord.Message"]) -> SentMessage:
        message = parts[0]
        thread_id = None
        if isinstance(message.channel, discord.Thread):
            thread_id = str(message.channel.id)
        return SentMessage(
            platform=PlatformType.DISCORD,
            message_id=str(message.id),
            chat_id=str(message.channel.id),
            thread_id=thread_id,
            content=message.content,
            author_id=str(message.author.id),
            author_name=message.author.name,
            raw=self._raw(message),
            part_ids=[str(part.id) for part in parts],
        )

    async def create_unit(self, label: str, owner_id: str) -> OrganizationalUnit:
        """Create a public thread in the management channel.

        Raises:
            PlatformPermissionError: The bot may not create threads
            PlatformCapabilityError: The management channel cannot hold threads
            PlatformError: Any other failure
        """
        platform = PlatformType.DISCORD.value
        if self.management_chat_id is None:
            raise PlatformCapabilityError("management channel is not configured", platform)

        try:
            channel = await self._resolve_channel(self.management_chat_id)
            if not isinstance(channel, discord.TextChannel):
                raise PlatformCapabilityError(
                    f"management channel {self.management_chat_id} does not support threads",
                    platform,
                )
            thread = await channel.create_thread(
                name=label[:MAX_THREAD_NAME_LENGTH],
                auto_archive_duration=THREAD_AUTO_ARCHIVE_MINUTES,
                type=discord.ChannelType.public_thread,
                reason=f"Conversation thread for user {owner_id}",
            )
        except discord.Forbidden as e:
            raise PlatformPermissionError(str(e), platform) from e
        except discord.HTTPException as e:
            raise PlatformError(str(e), platform) from e

        return OrganizationalUnit(
            platform=PlatformType.DISCORD,
            unit_id=str(thread.id),
            owner_id=owner_id,
            label=thread.name,
        )

    async def verify_unit_live(self, unit_id: str) -> bool:
        """Fetch the thread; only a definite not-found or forbidden counts as gone."""
        try:
            await self._resolve_channel(unit_id)
        except (discord.NotFound, discord.Forbidden):
            return False
        except discord.HTTPException as e:
            logger.debug(f"Could not verify thread {unit_id}: {e}")
        return True

    def can_register_management(self, message: IncomingMessage) -> bool:
        """A guild text channel (not a thread) can serve as the management channel."""
        return (
            message.kind == EventKind.MESSAGE
            and message.guild_id is not None
            and message.thread_id is None
        )

    def register_management(self, message: IncomingMessage) -> str:
        """Adopt the guild and channel of ``message`` as the management surface."""
        self._management_guild_id = message.guild_id
        self._management_channel_id = message.chat_id
        return (
            f"server ID {message.guild_id}, channel ID {message.chat_id} "
            f"(set MANAGEMENT_GUILD_ID={message.guild_id} "
            f"and MANAGEMENT_CHANNEL_ID={message.chat_id})"
        )

    async def add_reaction(self, chat_id: str, message_id: str, emoji: str) -> bool:
        """React to a message in a channel or thread.

        Raises:
            PlatformSendError: If the reaction cannot be added
        """
        try:
            channel = await self._resolve_channel(chat_id)
            await channel.get_partial_message(int(message_id)).add_reaction(emoji)
        except discord.HTTPException as e:
            raise PlatformSendError(str(e), PlatformType.DISCORD.value) from e
        return True

    async def health_check(self) -> bool:
        """Check if the Discord bot connection is healthy.

        Returns:
            True if healthy, False otherwise
        """
        if not self._running:
            return False

        return self._bot.is_ready() and not self._bot.is_closed()
