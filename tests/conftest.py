"""
Pytest configuration and fixtures for relaydesk tests.
"""

import asyncio
import os
import tempfile
from collections.abc import AsyncIterator, Callable, Generator
from pathlib import Path
from typing import Optional

import pytest
from typer.testing import CliRunner

from relaydesk.config import clear_config_cache
from relaydesk.platforms.exceptions import PlatformSendError
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
from relaydesk.relay.engine import RelaySettings, RoutingEngine
from relaydesk.store.message_log import MessageLog

MANAGEMENT_CHAT = "-100777"
BOT_ID = "999"


class FakeAdapter(PlatformAdapter):
    """In-memory adapter that records everything the engine asks it to do.

    Set ``create_error``, ``send_errors`` or ``chat_error`` to make the
    corresponding calls fail; put unit ids in ``dead_units`` to have them
    reported gone by ``verify_unit_live``.
    """

    def __init__(
        self,
        platform: PlatformType = PlatformType.TELEGRAM,
        management_chat_id: Optional[str] = MANAGEMENT_CHAT,
        capabilities: Optional[PlatformCapabilities] = None,
    ):
        super().__init__()
        self._platform = platform
        self._management_chat_id = management_chat_id
        self._capabilities = capabilities or PlatformCapabilities(
            supports_units=True,
            supports_threaded_replies=True,
            supports_user_commands=True,
        )
        self.events: asyncio.Queue[IncomingMessage] = asyncio.Queue()

        self.dms: list[tuple[str, OutgoingMessage]] = []
        self.chat_posts: list[tuple[str, OutgoingMessage]] = []
        self.created_units: list[OrganizationalUnit] = []
        self.reactions: list[tuple[str, str, str]] = []
        self.verified_units: list[str] = []

        self.create_error: Optional[Exception] = None
        self.send_errors: dict[str, Exception] = {}
        self.chat_error: Optional[Exception] = None
        self.dead_units: set[str] = set()
        self.unit_ids: list[str] = []
        self.create_attempts = 0

        self._next_message_id = 1
        self._next_unit_id = 1

    @property
    def platform_type(self) -> PlatformType:
        return self._platform

    @property
    def capabilities(self) -> PlatformCapabilities:
        return self._capabilities

    @property
    def management_chat_id(self) -> Optional[str]:
        return self._management_chat_id

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    async def receive_messages(self) -> AsyncIterator[IncomingMessage]:
        while self._running:
            try:
                yield await asyncio.wait_for(self.events.get(), timeout=0.05)
            except asyncio.TimeoutError:
                continue

    def _sent(self, chat_id: str, message: OutgoingMessage) -> SentMessage:
        parts = split_message(message.content, self._capabilities.max_message_length)
        part_ids = [f"F{self._next_message_id + n}" for n in range(len(parts))]
        self._next_message_id += len(parts)
        return SentMessage(
            platform=self._platform,
            message_id=part_ids[0],
            part_ids=part_ids,
            chat_id=chat_id,
            thread_id=message.thread_id,
            content=message.content,
            author_id=BOT_ID,
            author_name="relay_bot",
        )

    async def send_message(self, user_id: str, message: OutgoingMessage) -> SentMessage:
        if user_id in self.send_errors:
            raise self.send_errors[user_id]
        self.dms.append((user_id, message))
        return self._sent(user_id, message)

    async def send_to_chat(self, chat_id: str, message: OutgoingMessage) -> SentMessage:
        if self.chat_error is not None:
            raise self.chat_error
        if message.thread_id is not None and message.thread_id in self.dead_units:
            raise PlatformSendError(
                "Bad Request: message thread not found", self._platform.value, unit_missing=True
            )
        self.chat_posts.append((chat_id, message))
        return self._sent(chat_id, message)

    async def create_unit(self, label: str, owner_id: str) -> OrganizationalUnit:
        self.create_attempts += 1
        if self.create_error is not None:
            raise self.create_error
        if self.unit_ids:
            unit_id = self.unit_ids.pop(0)
        else:
            unit_id = f"T{self._next_unit_id}"
            self._next_unit_id += 1
        unit = OrganizationalUnit(
            platform=self._platform, unit_id=unit_id, owner_id=owner_id, label=label
        )
        self.created_units.append(unit)
        return unit

    async def verify_unit_live(self, unit_id: str) -> bool:
        self.verified_units.append(unit_id)
        return unit_id not in self.dead_units

    def can_register_management(self, message: IncomingMessage) -> bool:
        return message.chat_id is not None

    def register_management(self, message: IncomingMessage) -> str:
        self._management_chat_id = message.chat_id
        return f"chat ID {message.chat_id}"

    async def add_reaction(self, chat_id: str, message_id: str, emoji: str) -> bool:
        if not self._capabilities.supports_reactions:
            return False
        self.reactions.append((chat_id, message_id, emoji))
        return True


def make_user(user_id: str, username: Optional[str] = None, **kwargs) -> PlatformUser:
    """Build an end user."""
    return PlatformUser(
        platform=kwargs.pop("platform", PlatformType.TELEGRAM),
        platform_user_id=user_id,
        username=username if username is not None else f"user{user_id}",
        **kwargs,
    )


def inbound(
    user_id: str,
    text: Optional[str] = "hello",
    message_id: str = "m1",
    username: Optional[str] = None,
    platform: PlatformType = PlatformType.TELEGRAM,
) -> IncomingMessage:
    """Build a message from an end user."""
    return IncomingMessage(
        platform=platform,
        user=make_user(user_id, username, platform=platform),
        content=text,
        message_id=message_id,
        chat_id=user_id,
        origin=MessageOrigin.EXTERNAL,
    )


def operator(
    text: str,
    message_id: str = "op1",
    thread_id: Optional[str] = None,
    reply_to: Optional[str] = None,
    platform: PlatformType = PlatformType.TELEGRAM,
    chat_id: str = MANAGEMENT_CHAT,
) -> IncomingMessage:
    """Build a message the operator typed in the management surface."""
    return IncomingMessage(
        platform=platform,
        user=make_user("1", "operator", platform=platform),
        content=text,
        message_id=message_id,
        chat_id=chat_id,
        thread_id=thread_id,
        reply_to_message_id=reply_to,
        origin=MessageOrigin.MANAGEMENT,
    )


def unit_created(
    unit_id: str,
    label: str,
    chat_id: str = MANAGEMENT_CHAT,
    origin: MessageOrigin = MessageOrigin.MANAGEMENT,
) -> IncomingMessage:
    """Build a unit-created event."""
    return IncomingMessage(
        platform=PlatformType.TELEGRAM,
        kind=EventKind.UNIT_CREATED,
        chat_id=chat_id,
        thread_id=unit_id,
        origin=origin,
        unit=OrganizationalUnit(platform=PlatformType.TELEGRAM, unit_id=unit_id, label=label),
    )


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mock_relaydesk_home(temp_dir: Path, monkeypatch) -> Generator[Path, None, None]:
    """Provide an isolated ~/.relaydesk directory with no stray env overrides."""
    relaydesk_home = temp_dir / ".relaydesk"
    relaydesk_home.mkdir()
    monkeypatch.setenv("RELAYDESK_HOME", str(relaydesk_home))
    for name in (
        "TELEGRAM_BOT_TOKEN",
        "PERSONAL_TELEGRAM_ID",
        "MANAGEMENT_CHAT_ID",
        "USE_TOPICS",
        "DISCORD_BOT_TOKEN",
        "MANAGEMENT_GUILD_ID",
        "MANAGEMENT_CHANNEL_ID",
        "USE_THREADS",
    ):
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("RELAYDESK_") and name != "RELAYDESK_HOME":
            monkeypatch.delenv(name)
    monkeypatch.chdir(temp_dir)
    clear_config_cache()

    yield relaydesk_home

    clear_config_cache()


@pytest.fixture
def message_log(temp_dir: Path) -> MessageLog:
    """Provide a message log writing to a temporary file."""
    return MessageLog(log_path=temp_dir / "messages.jsonl", rotation="none")


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    """Provide a Telegram-like fake adapter with a configured management chat."""
    return FakeAdapter()


@pytest.fixture
def make_engine(
    fake_adapter: FakeAdapter, message_log: MessageLog
) -> Callable[..., RoutingEngine]:
    """Build a routing engine around the fake adapter."""

    def _make(use_units: bool = False, repeat_fallback_notice: bool = False) -> RoutingEngine:
        return RoutingEngine(
            fake_adapter,
            message_log=message_log,
            settings=RelaySettings(
                use_units=use_units, repeat_fallback_notice=repeat_fallback_notice
            ),
        )

    return _make
