"""Tests for message normalization."""

from relaydesk.platforms.models import (
    IncomingMessage,
    PlatformType,
    PlatformUser,
    SentMessage,
)
from relaydesk.store.models import normalize_incoming, normalize_sent


class TestNormalizeIncoming:
    def test_user_message(self):
        message = IncomingMessage(
            platform=PlatformType.TELEGRAM,
            user=PlatformUser(
                platform=PlatformType.TELEGRAM, platform_user_id="123", username="alice"
            ),
            content="hello",
            message_id="42",
            chat_id="123",
            raw={"message_id": 42},
        )

        normalized = normalize_incoming(message)

        assert normalized.platform == "telegram"
        assert normalized.platform_message_id == "42"
        assert normalized.user_id == "123"
        assert normalized.username == "alice"
        assert normalized.message_text == "hello"
        assert normalized.message_type == "user"
        assert normalized.chat_id == "123"
        assert normalized.raw_data == {"message_id": 42}

    def test_display_name_and_no_text(self):
        message = IncomingMessage(
            platform=PlatformType.DISCORD,
            user=PlatformUser(
                platform=PlatformType.DISCORD, platform_user_id="7", display_name="Bob"
            ),
            content=None,
            message_id="m",
        )

        normalized = normalize_incoming(message)

        assert normalized.username == "Bob"
        assert normalized.message_text is None

    def test_bot_author(self):
        message = IncomingMessage(
            platform=PlatformType.DISCORD,
            user=PlatformUser(platform=PlatformType.DISCORD, platform_user_id="9", is_bot=True),
            content="beep",
        )

        assert normalize_incoming(message).message_type == "bot"


class TestNormalizeSent:
    def test_sent_message(self):
        sent = SentMessage(
            platform=PlatformType.TELEGRAM,
            message_id="77",
            chat_id="123",
            content="hi back",
            author_id="999",
            author_name="relay_bot",
        )

        normalized = normalize_sent(sent)

        assert normalized.message_type == "bot"
        assert normalized.user_id == "999"
        assert normalized.username == "relay_bot"
        assert normalized.chat_id == "123"
        assert normalized.message_text == "hi back"
        assert normalized.created_at == sent.timestamp
