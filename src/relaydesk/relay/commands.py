"""Management commands typed by the operator in the management surface."""

import logging
from typing import TYPE_CHECKING, Optional

from relaydesk.platforms.exceptions import PlatformSendError
from relaydesk.platforms.models import IncomingMessage, OutgoingMessage
from relaydesk.relay import notices

if TYPE_CHECKING:
    from relaydesk.relay.engine import RoutingEngine

logger = logging.getLogger(__name__)


class ManagementCommands:
    """Parses and runs operator commands.

    Commands use the platform's prefix (``/`` on Telegram, ``!`` on Discord)
    and the platform's unit term, so Telegram has ``/topics`` and
    ``/link_topic`` while Discord has ``!threads`` and ``!link_thread``.
    """

    def __init__(self, engine: "RoutingEngine") -> None:
        """Initialize the command handler.

        Args:
            engine: Routing engine the commands read and modify
        """
        self.engine = engine

    @property
    def names(self) -> list[str]:
        """Recognized command names, without prefix."""
        unit = self.engine.adapter.capabilities.unit_term
        return ["test", "help", "info", f"{unit}s", f"link_{unit}"]

    def parse(self, text: str) -> Optional[tuple[str, list[str]]]:
        """Split a command into name and arguments.

        Returns:
            (name, args), or None if ``text`` is not a recognized command
        """
        prefix = self.engine.adapter.capabilities.command_prefix
        text = text.strip()
        if not text.startswith(prefix):
            return None

        parts = text[len(prefix) :].split()
        if not parts:
            return None

        # Telegram appends the bot name in groups: /test@relay_bot
        name = parts[0].split("@", 1)[0].lower()
        if name not in self.names:
            return None
        return name, parts[1:]

    async def dispatch(self, event: IncomingMessage) -> bool:
        """Run the command in ``event`` if it is one.

        Returns:
            True if a command was recognized and handled
        """
        parsed = self.parse(event.text)
        if parsed is None:
            return False

        name, args = parsed
        unit = self.engine.adapter.capabilities.unit_term
        logger.info(f"Management command on {self.engine.platform}: {name} {args}")

        if name == "test":
            await self._reply(event, notices.management_ok())
        elif name == "help":
            await self._reply(
                event,
                notices.management_help(
                    self.engine.adapter.capabilities, self.engine.settings.use_units
                ),
            )
        elif name == "info":
            await self._info(event, args)
        elif name == f"{unit}s":
            await self._list_units(event)
        elif name == f"link_{unit}":
            await self._link(event, args)
        return True

    async def _info(self, event: IncomingMessage, args: list[str]) -> None:
        caps = self.engine.adapter.capabilities
        if len(args) != 1:
            await self._reply(event, notices.usage("info", "[userId]", caps))
            return

        record = self.engine.state.forward_record(args[0])
        if record is None:
            await self._reply(event, notices.user_info_missing(args[0]))
        else:
            await self._reply(event, notices.user_info(record, caps))

    async def _list_units(self, event: IncomingMessage) -> None:
        caps = self.engine.adapter.capabilities
        entries = self.engine.list_units()
        if entries:
            await self._reply(event, notices.units_list(entries, caps))
        else:
            await self._reply(event, notices.no_units(self.engine.state.forward_records(), caps))

    async def _link(self, event: IncomingMessage, args: list[str]) -> None:
        caps = self.engine.adapter.capabilities
        unit = caps.unit_term
        if len(args) != 2 or not args[0].isdigit() or not args[1].isdigit():
            await self._reply(
                event, notices.usage(f"link_{unit}", f"[userId] [{unit}Id]", caps)
            )
            return

        user_id, unit_id = args
        await self.engine.link_unit(user_id, unit_id)
        await self._reply(event, notices.unit_linked(user_id, unit_id, caps))

    async def _reply(self, event: IncomingMessage, content: str) -> None:
        caps = self.engine.adapter.capabilities
        message = OutgoingMessage(
            content=content,
            thread_id=event.thread_id,
            reply_to_message_id=event.message_id if caps.supports_threaded_replies else None,
        )
        try:
            await self.engine.adapter.send_to_chat(event.chat_id, message)
        except PlatformSendError as e:
            logger.error(f"Failed to answer management command: {e}")
