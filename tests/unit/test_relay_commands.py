"""Unit tests for management commands."""

import pytest
from conftest import FakeAdapter, inbound, operator

from relaydesk.platforms.models import PlatformCapabilities, PlatformType
from relaydesk.relay.engine import RelaySettings, RoutingEngine


def last_reply(adapter: FakeAdapter) -> str:
    return adapter.chat_posts[-1][1].content


@pytest.fixture
def discord_engine() -> RoutingEngine:
    adapter = FakeAdapter(
        PlatformType.DISCORD,
        capabilities=PlatformCapabilities(
            supports_units=True,
            supports_reactions=True,
            supports_threaded_replies=True,
            command_prefix="!",
            reply_sigil="@",
            unit_term="thread",
            surface_term="channel",
        ),
    )
    return RoutingEngine(adapter, settings=RelaySettings(use_units=True))


class TestParse:
    """Tests for command parsing."""

    def test_names_follow_unit_term(self, make_engine, discord_engine):
        assert make_engine().commands.names == ["test", "help", "info", "topics", "link_topic"]
        assert discord_engine.commands.names == [
            "test",
            "help",
            "info",
            "threads",
            "link_thread",
        ]

    def test_parse_with_args(self, make_engine):
        assert make_engine().commands.parse("/info 123") == ("info", ["123"])

    def test_parse_strips_bot_name(self, make_engine):
        assert make_engine().commands.parse("/test@relay_bot") == ("test", [])

    def test_parse_case_insensitive(self, make_engine):
        assert make_engine().commands.parse("/HELP") == ("help", [])

    def test_unknown_command(self, make_engine):
        assert make_engine().commands.parse("/weather") is None

    def test_not_a_command(self, make_engine):
        commands = make_engine().commands

        assert commands.parse("hello") is None
        assert commands.parse("/") is None

    def test_other_platform_prefix(self, discord_engine):
        assert discord_engine.commands.parse("!threads") == ("threads", [])
        assert discord_engine.commands.parse("/threads") is None


class TestDispatch:
    """Tests for running commands."""

    @pytest.mark.asyncio
    async def test_test_command(self, fake_adapter, make_engine):
        engine = make_engine()

        handled = await engine.commands.dispatch(operator("/test", message_id="op3"))

        assert handled
        assert last_reply(fake_adapter).startswith("✅ Management connection is working!")
        assert fake_adapter.chat_posts[-1][1].reply_to_message_id == "op3"

    @pytest.mark.asyncio
    async def test_help_command(self, fake_adapter, make_engine):
        engine = make_engine(use_units=True)

        await engine.handle(operator("/help"))

        reply = last_reply(fake_adapter)
        assert reply.startswith("🔧 Management Chat Commands:")
        assert "Topic Mode (ENABLED)" in reply
        assert "r[userId] your message here" in reply

    @pytest.mark.asyncio
    async def test_help_in_discord_terms(self, discord_engine):
        await discord_engine.handle(operator("!help", platform=PlatformType.DISCORD))

        reply = last_reply(discord_engine.adapter)
        assert reply.startswith("🔧 Management Channel Commands:")
        assert "!link_thread [userId] [threadId]" in reply
        assert "@[userId] your message here" in reply

    @pytest.mark.asyncio
    async def test_info_known_user(self, fake_adapter, make_engine):
        engine = make_engine()
        await engine.handle(inbound("123", "need help", username="alice"))

        await engine.handle(operator("/info 123"))

        reply = last_reply(fake_adapter)
        assert "👤 User Info for ID: 123" in reply
        assert "📝 Username: alice" in reply
        assert '💬 Last Message: "need help"' in reply
        assert "💡 Reply with: r123" in reply

    @pytest.mark.asyncio
    async def test_info_unknown_user(self, fake_adapter, make_engine):
        engine = make_engine()

        await engine.handle(operator("/info 404"))

        assert last_reply(fake_adapter) == "❌ No conversation found for user ID: 404"

    @pytest.mark.asyncio
    async def test_info_usage(self, fake_adapter, make_engine):
        engine = make_engine()

        await engine.handle(operator("/info"))

        assert last_reply(fake_adapter) == "Usage: /info [userId]"

    @pytest.mark.asyncio
    async def test_list_units(self, fake_adapter, make_engine):
        engine = make_engine(use_units=True)
        await engine.handle(inbound("456", "hi", username="carol"))

        await engine.handle(operator("/topics"))

        reply = last_reply(fake_adapter)
        assert reply.startswith("🧵 Active User Topics:")
        assert "• carol (456) - Topic ID: T1" in reply

    @pytest.mark.asyncio
    async def test_list_units_empty(self, fake_adapter, make_engine):
        engine = make_engine()

        await engine.handle(operator("/topics"))

        reply = last_reply(fake_adapter)
        assert reply.startswith("📝 No user topics created yet")
        assert reply.endswith("• No recent users")

    @pytest.mark.asyncio
    async def test_list_units_empty_shows_recent_users(self, fake_adapter, make_engine):
        engine = make_engine()
        await engine.handle(inbound("123", "hello", username="alice"))

        await engine.handle(operator("/topics"))

        assert last_reply(fake_adapter).endswith("• alice (123)")

    @pytest.mark.asyncio
    async def test_link(self, fake_adapter, make_engine):
        engine = make_engine(use_units=True)
        engine.state.block_creation("789")

        await engine.handle(operator("/link_topic 789 55"))

        assert engine.state.unit_of("789").unit_id == "55"
        assert engine.state.identity_of("55") == "789"
        assert not engine.state.is_creation_blocked("789")
        assert last_reply(fake_adapter).startswith("✅ Topic linked successfully!")

    @pytest.mark.asyncio
    async def test_link_usage(self, fake_adapter, make_engine):
        engine = make_engine(use_units=True)

        await engine.handle(operator("/link_topic 789 general"))

        assert engine.state.unit_of("789") is None
        assert last_reply(fake_adapter) == "Usage: /link_topic [userId] [topicId]"

    @pytest.mark.asyncio
    async def test_command_replies_in_unit(self, fake_adapter, make_engine):
        engine = make_engine(use_units=True)

        await engine.handle(operator("/test", thread_id="T5"))

        assert fake_adapter.chat_posts[-1][1].thread_id == "T5"

    @pytest.mark.asyncio
    async def test_command_inside_unit_not_sent_to_user(self, fake_adapter, make_engine):
        """Commands typed in a user's unit are run, not delivered."""
        engine = make_engine(use_units=True)
        await engine.link_unit("456", "T1")

        await engine.handle(operator("/test", thread_id="T1"))

        assert fake_adapter.dms == []

    @pytest.mark.asyncio
    async def test_unknown_command_falls_through(self, fake_adapter, make_engine):
        """Unrecognized prefixed text is treated as a reply."""
        engine = make_engine(use_units=True)
        await engine.link_unit("456", "T1")

        await engine.handle(operator("/shrug", thread_id="T1"))

        assert fake_adapter.dms[-1][1].content == "/shrug"
