"""Routing engine: forwards user messages to the operator and replies back."""

import logging
import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from relaydesk.platforms.exceptions import (
    MappingStaleError,
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
    PlatformUser,
    SentMessage,
)
from relaydesk.platforms.protocol import PlatformAdapter
from relaydesk.relay import notices
from relaydesk.relay.commands import ManagementCommands
from relaydesk.relay.state import ForwardRecord, RoutingState
from relaydesk.store.message_log import MessageLog, StoreError
from relaydesk.store.models import NormalizedMessage, normalize_incoming, normalize_sent

logger = logging.getLogger(__name__)

# Label of a unit created by hand for a user, e.g. "💬 alice (123456)"
UNIT_LABEL_PATTERN = re.compile(r"\((\d+)\)\s*$")

MENTION_KEYWORDS = ("what", "who", "help")


class RelaySettings(BaseModel):
    """Per-platform routing behavior."""

    use_units: bool = False
    repeat_fallback_notice: bool = False


class ReplyStrategy(str, Enum):
    """How the target of an operator message was found."""

    UNIT = "unit"
    FORWARDED_REPLY = "forwarded_reply"
    UNIT_FALLBACK = "unit_fallback"
    LEGACY = "legacy"


class ReplyTarget(BaseModel):
    """The external user an operator message is addressed to."""

    user_id: str
    body: str
    strategy: ReplyStrategy
    unit_id: Optional[str] = None


class ReplyResult(BaseModel):
    """Outcome of delivering an operator reply."""

    target: ReplyTarget
    success: bool
    sent: Optional[SentMessage] = None
    error: Optional[str] = None


class RoutingEngine:
    """Routes events of one platform adapter.

    The engine:
    1. Logs every message from an end user, then forwards it to the
       management surface (inside the user's unit when unit mode is on)
    2. Works out which user an operator message is meant for and delivers it
    3. Creates, verifies and links per-user units
    4. Runs management commands

    Events must be handled one at a time per engine; the per-user lock only
    protects unit resolution against concurrent callers.
    """

    def __init__(
        self,
        adapter: PlatformAdapter,
        message_log: Optional[MessageLog] = None,
        settings: Optional[RelaySettings] = None,
        state: Optional[RoutingState] = None,
    ) -> None:
        """Initialize the routing engine.

        Args:
            adapter: Platform adapter to route for
            message_log: Durable log of user messages and replies (None disables logging)
            settings: Routing behavior
            state: Mapping tables (a fresh, empty state by default)
        """
        self.adapter = adapter
        self.message_log = message_log
        self.settings = settings or RelaySettings()
        self.state = state or RoutingState()
        self.commands = ManagementCommands(self)
        self._management_verified = False

        sigil = re.escape(adapter.capabilities.reply_sigil)
        self._legacy_pattern = re.compile(rf"^{sigil}(\d+)\s+(.+)$", re.DOTALL)

    @property
    def platform(self) -> str:
        """Platform name, for logging."""
        return self.adapter.platform_type.value

    @property
    def management_verified(self) -> bool:
        """Whether the last post to the management surface succeeded."""
        return self._management_verified

    # Dispatch

    async def handle(self, event: IncomingMessage) -> None:
        """Handle one event from the adapter stream.

        Args:
            event: Normalized platform event
        """
        if event.kind == EventKind.UNIT_CREATED:
            await self._on_unit_created(event)
            return

        if event.kind == EventKind.CONNECTION_ERROR:
            logger.warning(f"{self.platform} connection error: {event.error}")
            return

        if event.user is None or event.is_bot:
            return

        if self.adapter.management_chat_id is None and self.adapter.can_register_management(
            event
        ):
            await self.register_management(event)
            return

        if event.origin == MessageOrigin.MANAGEMENT:
            await self.handle_management(event)
        elif event.origin == MessageOrigin.EXTERNAL:
            await self.handle_external(event)
        elif event.mentions_bot:
            await self.handle_mention(event)

    async def handle_external(self, event: IncomingMessage) -> None:
        """Log a message from an end user, then answer or forward it."""
        self._log(normalize_incoming(event))
        logger.info(f"New {self.platform} message from {event.user.label}")

        command = self._user_command(event.text)
        if command is not None:
            await self._answer_user_command(event, command)
            return

        await self.forward_inbound(event)

    async def handle_management(self, event: IncomingMessage) -> None:
        """Run a management command or deliver an operator reply.

        Operator messages are not logged; only what reaches the user is.
        """
        if await self.commands.dispatch(event):
            return

        if not event.text:
            logger.debug(f"Ignoring management message {event.message_id} without text")
            return

        target = self.resolve_reply_target(event)
        if target is None:
            logger.debug(f"No reply target for management message {event.message_id}")
            return

        await self.send_operator_reply(target, event)

    async def handle_mention(self, event: IncomingMessage) -> None:
        """Answer a public mention asking what the bot is."""
        content = event.text.lower()
        if not any(word in content for word in MENTION_KEYWORDS):
            return

        self._log(normalize_incoming(event))
        reply = OutgoingMessage(
            content=notices.mention_about(),
            thread_id=event.thread_id,
            reply_to_message_id=event.message_id,
        )
        try:
            sent = await self.adapter.send_to_chat(event.chat_id, reply)
        except PlatformSendError as e:
            logger.error(f"Failed to answer mention from {event.user.label}: {e}")
            return

        self._log(normalize_sent(sent))
        logger.info(f"Sent mention response to {event.user.label}")

    # Management surface

    async def verify_management(self) -> bool:
        """Post the setup notice to the management surface.

        Returns:
            True if the surface accepted the message
        """
        if self.adapter.management_chat_id is None:
            logger.warning(
                f"{self.platform} management surface not configured - setup mode enabled"
            )
            self._management_verified = False
            return False

        notice = notices.setup_complete(self.adapter.capabilities, self.settings.use_units)
        try:
            await self.adapter.post_to_management(OutgoingMessage(content=notice))
        except PlatformSendError as e:
            logger.error(f"Failed to reach {self.platform} management surface: {e}")
            self._management_verified = False
            return False

        logger.info(f"{self.platform} management surface connection successful")
        self._management_verified = True
        return True

    async def register_management(self, event: IncomingMessage) -> str:
        """Adopt the chat of ``event`` as the management surface.

        Returns:
            Description of the registered surface
        """
        description = self.adapter.register_management(event)
        logger.info(f"Registered {self.platform} management surface: {description}")

        notice = OutgoingMessage(
            content=notices.self_setup(description, self.adapter.capabilities),
            thread_id=event.thread_id,
        )
        try:
            await self.adapter.send_to_chat(event.chat_id, notice)
            self._management_verified = True
        except PlatformSendError as e:
            logger.error(f"Failed to send setup message: {e}")

        return description

    async def _ensure_management(self) -> bool:
        if self.adapter.management_chat_id is None:
            logger.warning(f"{self.platform} management surface not set - cannot forward")
            return False
        if self._management_verified:
            return True
        logger.warning(f"{self.platform} management surface not verified - testing connection")
        return await self.verify_management()

    # Inbound

    async def forward_inbound(self, event: IncomingMessage) -> Optional[ForwardRecord]:
        """Forward a user message to the management surface.

        Never raises: failures are logged and the forward is dropped.

        Returns:
            The new ForwardRecord, or None if nothing was forwarded
        """
        user = event.user
        if not await self._ensure_management():
            return None

        unit = await self.resolve_or_create_unit(user)
        text = event.content or notices.NO_TEXT
        message = OutgoingMessage(
            content=notices.forward_payload(user.label, text, in_unit=unit is not None),
            thread_id=unit.unit_id if unit else None,
        )

        try:
            forwarded = await self.adapter.post_to_management(message)
        except PlatformSendError as e:
            if unit is not None and e.unit_missing:
                self.state.evict_unit(user.platform_user_id)
                logger.warning(f"{unit} of {user.label} is gone; it will be recreated")
            else:
                self._management_verified = False
            logger.error(f"Failed to forward message from {user.label}: {e}")
            return None

        record = ForwardRecord(
            user_id=user.platform_user_id,
            username=user.label,
            last_message=text,
            forwarded_message_id=forwarded.message_id,
            unit_id=unit.unit_id if unit else None,
        )
        self.state.record_forward(record)
        for message_id in forwarded.part_ids or [forwarded.message_id]:
            self.state.index_forward(message_id, user.platform_user_id)

        unit_term = self.adapter.capabilities.unit_term
        location = f'{unit_term} "{user.label}"' if unit else "management surface"
        logger.info(
            f"Forwarded message from {user.label} to {location} (msg ID: {forwarded.message_id})"
        )
        return record

    async def resolve_or_create_unit(self, user: PlatformUser) -> Optional[OrganizationalUnit]:
        """Get the live unit of a user, creating one if needed.

        Returns:
            The unit, or None when unit mode is off or no unit is available
        """
        if not self.settings.use_units:
            return None

        user_id = user.platform_user_id
        async with self.state.locked(user_id):
            unit = self.state.unit_of(user_id)
            if unit is not None:
                try:
                    await self._check_live(unit)
                    return unit
                except MappingStaleError as e:
                    self.state.evict_unit(user_id)
                    logger.info(f"{e}; evicted mapping of {user.label}")

            if self.state.is_creation_blocked(user_id):
                if self.settings.repeat_fallback_notice:
                    await self._post_fallback_notice(user)
                return None

            return await self._create_unit(user)

    async def _check_live(self, unit: OrganizationalUnit) -> None:
        """Raise MappingStaleError if the platform says the unit is gone."""
        try:
            live = await self.adapter.verify_unit_live(unit.unit_id)
        except PlatformError as e:
            logger.debug(f"Could not verify {unit}, assuming live: {e}")
            return
        if not live:
            raise MappingStaleError(f"{unit} no longer exists", unit.unit_id, self.platform)

    async def _create_unit(self, user: PlatformUser) -> Optional[OrganizationalUnit]:
        user_id = user.platform_user_id
        label = notices.unit_label(user.label, user_id)
        try:
            unit = await self.adapter.create_unit(label, user_id)
        except (PlatformPermissionError, PlatformCapabilityError) as e:
            self.state.block_creation(user_id)
            logger.warning(f"Cannot create a unit for {user.label}: {e}")
            await self._post_fallback_notice(user)
            return None
        except PlatformError as e:
            logger.error(f"Failed to create a unit for {user.label}: {e}")
            return None

        self.state.bind_unit(user_id, unit)
        logger.info(f"Created {unit} for {user.label}: {label}")

        welcome = OutgoingMessage(
            content=notices.unit_welcome(user.label, user_id, self.adapter.capabilities),
            thread_id=unit.unit_id,
        )
        try:
            await self.adapter.post_to_management(welcome)
        except PlatformSendError as e:
            logger.warning(f"Failed to post welcome notice in {unit}: {e}")

        return unit

    async def _post_fallback_notice(self, user: PlatformUser) -> None:
        notice = notices.unit_fallback(
            user.label, user.platform_user_id, self.adapter.capabilities
        )
        try:
            await self.adapter.post_to_management(OutgoingMessage(content=notice))
        except PlatformSendError as e:
            logger.error(f"Failed to post fallback notice: {e}")

    async def _on_unit_created(self, event: IncomingMessage) -> None:
        """Link a unit created by hand whose label names a user id."""
        unit = event.unit
        if unit is None or event.origin != MessageOrigin.MANAGEMENT:
            return

        match = UNIT_LABEL_PATTERN.search(unit.label)
        if match is None:
            return

        user_id = match.group(1)
        current = self.state.unit_of(user_id)
        if current is not None and current.unit_id == unit.unit_id:
            return

        await self.link_unit(user_id, unit.unit_id, label=unit.label)
        logger.info(f"Detected {unit} for user {user_id}")

    async def link_unit(
        self, user_id: str, unit_id: str, label: str = ""
    ) -> OrganizationalUnit:
        """Map a user to an existing unit, replacing any previous mapping.

        The unit is not checked for existence. Unit creation is allowed
        again for the user.
        """
        unit = OrganizationalUnit(
            platform=self.adapter.platform_type,
            unit_id=unit_id,
            owner_id=user_id,
            label=label,
        )
        async with self.state.locked(user_id):
            self.state.bind_unit(user_id, unit)
            self.state.unblock_creation(user_id)
        logger.info(f"Linked {unit} to user {user_id}")
        return unit

    # Outbound

    def resolve_reply_target(self, event: IncomingMessage) -> Optional[ReplyTarget]:
        """Work out which user an operator message is addressed to.

        Strategies, first match wins:
        1. a plain message inside a user's unit
        2. a reply to a forwarded message
        3. a reply inside a user's unit whose original is unknown
        4. legacy addressing, e.g. ``r123 hello``
        """
        unit_owner = self.state.identity_of(event.thread_id) if event.thread_id else None

        if unit_owner is not None and event.reply_to_message_id is None:
            return ReplyTarget(
                user_id=unit_owner,
                body=event.text,
                strategy=ReplyStrategy.UNIT,
                unit_id=event.thread_id,
            )

        if event.reply_to_message_id is not None:
            user_id = self.state.identity_for_forwarded(event.reply_to_message_id)
            if user_id is not None:
                return ReplyTarget(
                    user_id=user_id,
                    body=event.text,
                    strategy=ReplyStrategy.FORWARDED_REPLY,
                    unit_id=event.thread_id,
                )

        if unit_owner is not None:
            return ReplyTarget(
                user_id=unit_owner,
                body=event.text,
                strategy=ReplyStrategy.UNIT_FALLBACK,
                unit_id=event.thread_id,
            )

        match = self._legacy_pattern.match(event.text)
        if match is not None:
            return ReplyTarget(
                user_id=match.group(1),
                body=match.group(2),
                strategy=ReplyStrategy.LEGACY,
            )

        return None

    async def send_operator_reply(
        self, target: ReplyTarget, event: IncomingMessage
    ) -> ReplyResult:
        """Deliver an operator message to its target and acknowledge it.

        Failures are reported in the surface the operator wrote in; the
        reply is not retried and no mapping is evicted.
        """
        try:
            sent = await self.adapter.send_message(
                target.user_id, OutgoingMessage(content=target.body)
            )
        except PlatformSendError as e:
            logger.error(f"Failed to send reply to {self.platform} user {target.user_id}: {e}")
            await self._acknowledge(event, target, error=str(e))
            return ReplyResult(target=target, success=False, error=str(e))

        self._log(normalize_sent(sent))
        await self._acknowledge(event, target)
        logger.info(
            f"Sent reply to {self.platform} user {target.user_id} via {target.strategy.value}"
        )
        return ReplyResult(target=target, success=True, sent=sent)

    async def _acknowledge(
        self, event: IncomingMessage, target: ReplyTarget, error: Optional[str] = None
    ) -> None:
        """React to the operator message, or answer it when reactions are unsupported."""
        caps = self.adapter.capabilities
        reacted = False
        if caps.supports_reactions:
            emoji = "❌" if error else "✅"
            try:
                reacted = await self.adapter.add_reaction(event.chat_id, event.message_id, emoji)
            except PlatformError as e:
                logger.warning(f"Failed to react to {event.message_id}: {e}")

        if error is None and reacted:
            return

        if error is not None:
            content = notices.send_failed(error)
        else:
            record = self.state.forward_record(target.user_id)
            username = record.username if record else None
            body = target.body if target.strategy == ReplyStrategy.LEGACY else None
            content = notices.reply_sent(username, body)

        reply = OutgoingMessage(
            content=content,
            thread_id=event.thread_id,
            reply_to_message_id=event.message_id if caps.supports_threaded_replies else None,
        )
        try:
            await self.adapter.send_to_chat(event.chat_id, reply)
        except PlatformSendError as e:
            logger.error(f"Failed to acknowledge operator message: {e}")

    # End user commands

    def _user_command(self, text: str) -> Optional[str]:
        if not self.adapter.capabilities.supports_user_commands:
            return None
        command = text.strip().split(maxsplit=1)[0].lower() if text.strip() else ""
        command = command.split("@", 1)[0]
        if command in ("/start", "/help"):
            return command[1:]
        return None

    async def _answer_user_command(self, event: IncomingMessage, command: str) -> None:
        content = notices.user_welcome() if command == "start" else notices.user_about()
        try:
            sent = await self.adapter.send_message(
                event.user.platform_user_id, OutgoingMessage(content=content)
            )
        except PlatformSendError as e:
            logger.error(f"Error handling /{command} from {event.user.label}: {e}")
            return

        self._log(normalize_sent(sent))
        logger.info(f"Answered /{command} from {event.user.label}")

    # Persistence

    def _log(self, message: NormalizedMessage) -> None:
        if self.message_log is None:
            return
        try:
            self.message_log.record(self.platform, message)
        except StoreError as e:
            logger.error(f"Failed to log {self.platform} message: {e}")

    # Listing

    def list_units(self) -> list[tuple[str, str, OrganizationalUnit]]:
        """All mapped units as (user id, username, unit)."""
        entries = []
        for user_id, unit in self.state.units():
            record = self.state.forward_record(user_id)
            entries.append((user_id, record.username if record else "Unknown", unit))
        return entries
