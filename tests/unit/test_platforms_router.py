"""Unit tests for platform message router."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from conftest import FakeAdapter, inbound

from relaydesk.platforms.exceptions import PlatformError
from relaydesk.platforms.models import PlatformType
from relaydesk.platforms.router import MessageRouter
from relaydesk.relay.engine import RoutingEngine


async def wait_until(condition, timeout: float = 2.0) -> None:
    """Poll until condition() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def router():
    """Create a message router."""
    return MessageRouter()


class TestMessageRouter:
    """Tests for MessageRouter."""

    def test_register(self, router):
        engine = RoutingEngine(FakeAdapter(PlatformType.TELEGRAM))

        router.register(engine)

        assert router.active_platforms == ["telegram"]
        assert router.get_engine("telegram") is engine
        assert router.get_adapter("telegram") is engine.adapter

    def test_register_duplicate(self, router):
        router.register(RoutingEngine(FakeAdapter(PlatformType.TELEGRAM)))

        with pytest.raises(ValueError, match="already registered"):
            router.register(RoutingEngine(FakeAdapter(PlatformType.TELEGRAM)))

    def test_unregister(self, router):
        router.register(RoutingEngine(FakeAdapter(PlatformType.TELEGRAM)))

        router.unregister("telegram")

        assert router.active_platforms == []
        assert router.get_adapter("telegram") is None

    @pytest.mark.asyncio
    async def test_start_and_stop(self, router):
        """Test starting verifies the surface and stopping stops the adapters."""
        engine = RoutingEngine(FakeAdapter(PlatformType.TELEGRAM))
        router.register(engine)

        started = await router.start()

        assert started == ["telegram"]
        assert router.is_running
        assert engine.adapter.is_running
        assert engine.management_verified

        await router.stop()

        assert not router.is_running
        assert not engine.adapter.is_running

    @pytest.mark.asyncio
    async def test_events_routed(self, router):
        """Test that queued events reach the engine."""
        adapter = FakeAdapter(PlatformType.TELEGRAM)
        engine = RoutingEngine(adapter)
        router.register(engine)
        await router.start()

        await adapter.events.put(inbound("123", "hello"))
        await wait_until(lambda: engine.state.forward_record("123") is not None)

        await router.stop()

    @pytest.mark.asyncio
    async def test_platforms_run_independently(self, router):
        """Test that each platform gets its own engine."""
        telegram = RoutingEngine(FakeAdapter(PlatformType.TELEGRAM))
        discord = RoutingEngine(FakeAdapter(PlatformType.DISCORD))
        router.register(telegram)
        router.register(discord)
        await router.start()

        await discord.adapter.events.put(inbound("1", "hi", platform=PlatformType.DISCORD))
        await wait_until(lambda: discord.state.forward_record("1") is not None)

        assert telegram.state.forward_record("1") is None
        await router.stop()

    @pytest.mark.asyncio
    async def test_failed_adapter_skipped(self, router):
        """Test that one adapter failing to start does not stop the others."""
        broken = FakeAdapter(PlatformType.DISCORD)
        broken.start = AsyncMock(side_effect=PlatformError("Improper token has been passed."))
        router.register(RoutingEngine(broken))
        router.register(RoutingEngine(FakeAdapter(PlatformType.TELEGRAM)))

        started = await router.start()

        assert started == ["telegram"]
        await router.stop()

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_listener(self, router):
        """Test that an error on one event does not end the stream."""
        adapter = FakeAdapter(PlatformType.TELEGRAM)
        engine = RoutingEngine(adapter)
        engine.handle = AsyncMock(side_effect=[RuntimeError("boom"), None])
        router.register(engine)
        await router.start()

        await adapter.events.put(inbound("1", "one"))
        await adapter.events.put(inbound("1", "two"))
        await wait_until(lambda: engine.handle.await_count == 2)

        await router.stop()

    @pytest.mark.asyncio
    async def test_stop_closes_message_log(self, router):
        message_log = Mock()
        router.register(RoutingEngine(FakeAdapter(PlatformType.TELEGRAM), message_log=message_log))
        await router.start()

        await router.stop()

        message_log.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self, router):
        await router.stop()

        assert not router.is_running

    @pytest.mark.asyncio
    async def test_health_check(self, router):
        healthy = FakeAdapter(PlatformType.TELEGRAM)
        failing = FakeAdapter(PlatformType.DISCORD)
        failing.health_check = AsyncMock(side_effect=RuntimeError("gateway closed"))
        router.register(RoutingEngine(healthy))
        router.register(RoutingEngine(failing))
        await router.start()

        health = await router.health_check()

        assert health == {"telegram": True, "discord": False}
        await router.stop()
