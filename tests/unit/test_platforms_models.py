"""Unit tests for platform models."""

import pytest

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
)
from relaydesk.platforms.protocol import split_message


class TestPlatformUser:
    """Tests for PlatformUser model."""

    def test_create_user(self):
        user = PlatformUser(
            platform=PlatformType.TELEGRAM,
            platform_user_id="123456",
            username="alice",
            display_name="Alice",
        )

        assert user.platform == PlatformType.TELEGRAM
        assert user.is_bot is False
        assert str(user) == "telegram:123456"

    def test_label_prefers_username(self):
        user = PlatformUser(
            platform=PlatformType.DISCORD,
            platform_user_id="1",
            username="alice",
            display_name="Alice",
        )

        assert user.label == "alice"

    def test_label_falls_back(self):
        user = PlatformUser(platform=PlatformType.TELEGRAM, platform_user_id="1", display_name="A")
        nameless = PlatformUser(platform=PlatformType.TELEGRAM, platform_user_id="2")

        assert user.label == "A"
        assert nameless.label == "Unknown"


class TestCapabilities:
    def test_defaults(self):
        caps = PlatformCapabilities()

        assert caps.supports_units is False
        assert caps.supports_reactions is False
        assert caps.command_prefix == "/"
        assert caps.reply_sigil == "r"
        assert caps.unit_term == "topic"
        assert caps.surface_term == "chat"


class TestIncomingMessage:
    """Tests for IncomingMessage model."""

    def test_defaults(self):
        message = IncomingMessage(platform=PlatformType.TELEGRAM)

        assert message.kind == EventKind.MESSAGE
        assert message.origin == MessageOrigin.EXTERNAL
        assert message.text == ""
        assert message.is_bot is False
        assert message.timestamp.tzinfo is not None

    def test_bot_author(self):
        message = IncomingMessage(
            platform=PlatformType.DISCORD,
            user=PlatformUser(platform=PlatformType.DISCORD, platform_user_id="9", is_bot=True),
            content="beep",
        )

        assert message.is_bot is True

    def test_str_truncates(self):
        message = IncomingMessage(
            platform=PlatformType.TELEGRAM,
            user=PlatformUser(platform=PlatformType.TELEGRAM, platform_user_id="1"),
            content="x" * 80,
        )

        assert str(message) == "[telegram] telegram:1: " + "x" * 50

    def test_unit_event(self):
        unit = OrganizationalUnit(platform=PlatformType.TELEGRAM, unit_id="5", label="💬 a (1)")
        event = IncomingMessage(
            platform=PlatformType.TELEGRAM, kind=EventKind.UNIT_CREATED, unit=unit
        )

        assert event.user is None
        assert str(event.unit) == "telegram:unit:5"


class TestOutgoingMessage:
    def test_defaults(self):
        message = OutgoingMessage(content="hi")

        assert message.format == "plain"
        assert message.thread_id is None
        assert message.reply_to_message_id is None


class TestSplitMessage:
    """Tests for splitting long messages."""

    def test_short_message_unchanged(self):
        assert split_message("hello", 10) == ["hello"]

    def test_no_limit(self):
        assert split_message("x" * 5000, None) == ["x" * 5000]

    def test_split_on_newline(self):
        content = "first line\nsecond line"

        assert split_message(content, 15) == ["first line", "second line"]

    def test_hard_split_without_newline(self):
        chunks = split_message("a" * 25, 10)

        assert chunks == ["a" * 10, "a" * 10, "a" * 5]

    def test_chunks_respect_limit(self):
        content = "\n".join(f"line {i}" for i in range(500))

        chunks = split_message(content, 100)

        assert all(len(chunk) <= 100 for chunk in chunks)
        assert "\n".join(chunks) == content


class TestExceptions:
    def test_send_error(self):
        error = PlatformSendError("thread not found", "telegram", unit_missing=True)

        assert str(error) == "thread not found"
        assert error.platform == "telegram"
        assert error.unit_missing is True

    def test_send_error_default(self):
        with pytest.raises(PlatformSendError) as exc_info:
            raise PlatformSendError("Forbidden")

        assert exc_info.value.unit_missing is False
        assert exc_info.value.platform is None
