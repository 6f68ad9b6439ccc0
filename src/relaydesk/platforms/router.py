"""Message router service running one routing engine per platform."""

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from relaydesk.platforms.protocol import PlatformAdapter

if TYPE_CHECKING:
    from relaydesk.relay.engine import RoutingEngine

logger = logging.getLogger(__name__)


class MessageRouter:
    """Feeds platform events to their routing engines.

    The router:
    1. Starts every registered adapter and checks its management surface
    2. Runs one listener task per adapter
    3. Hands events to the adapter's engine one at a time, so each platform
       is processed serially while the platforms run concurrently
    """

    def __init__(self) -> None:
        """Initialize the message router."""
        self._engines: dict[str, "RoutingEngine"] = {}
        self._tasks: set[asyncio.Task] = set()
        self._running = False

    def register(self, engine: "RoutingEngine") -> None:
        """Register a routing engine and its adapter.

        Raises:
            ValueError: If an engine for this platform is already registered
        """
        platform_name = engine.adapter.platform_type.value
        if platform_name in self._engines:
            raise ValueError(f"Adapter for {platform_name} already registered")

        self._engines[platform_name] = engine
        logger.info(f"Registered adapter for platform: {platform_name}")

    def unregister(self, platform_name: str) -> None:
        """Unregister a platform."""
        if platform_name in self._engines:
            del self._engines[platform_name]
            logger.info(f"Unregistered adapter for platform: {platform_name}")

    async def start(self) -> list[str]:
        """Start all registered adapters and their listeners.

        An adapter that fails to start is logged and skipped.

        Returns:
            Names of the platforms that started
        """
        if self._running:
            logger.warning("Router is already running")
            return self.active_platforms

        self._running = True
        logger.info("Starting message router")

        started = []
        for platform_name, engine in self._engines.items():
            try:
                await engine.adapter.start()
            except Exception as e:
                logger.error(f"Failed to start adapter for {platform_name}: {e}")
                continue

            await engine.verify_management()

            task = asyncio.create_task(self._listen(engine), name=f"listen-{platform_name}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            started.append(platform_name)
            logger.info(f"Started adapter for {platform_name}")

        logger.info(f"Message router started with {len(started)} adapters")
        return started

    async def wait(self) -> None:
        """Block until every listener has finished."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def stop(self) -> None:
        """Stop the listeners and all registered adapters."""
        if not self._running:
            logger.warning("Router is not running")
            return

        logger.info("Stopping message router")
        self._running = False

        for task in self._tasks:
            task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        for platform_name, engine in self._engines.items():
            try:
                if engine.adapter.is_running:
                    await engine.adapter.stop()
                    logger.info(f"Stopped adapter for {platform_name}")
            except Exception as e:
                logger.error(f"Failed to stop adapter for {platform_name}: {e}")

            if engine.message_log is not None:
                engine.message_log.close()

        logger.info("Message router stopped")

    async def _listen(self, engine: "RoutingEngine") -> None:
        """Consume one adapter's events, awaiting the engine for each."""
        platform_name = engine.adapter.platform_type.value
        logger.info(f"Listening for messages from {platform_name}")

        try:
            async for event in engine.adapter.receive_messages():
                if not self._running:
                    break

                try:
                    await engine.handle(event)
                except Exception as e:
                    logger.error(f"Failed to process {platform_name} event: {e}", exc_info=True)

        except asyncio.CancelledError:
            logger.info(f"Stopped listening to {platform_name}")

    def get_adapter(self, platform_name: str) -> Optional[PlatformAdapter]:
        """Get an adapter by platform name."""
        engine = self._engines.get(platform_name)
        return engine.adapter if engine else None

    def get_engine(self, platform_name: str) -> Optional["RoutingEngine"]:
        """Get a routing engine by platform name."""
        return self._engines.get(platform_name)

    @property
    def is_running(self) -> bool:
        """Check if the router is running."""
        return self._running

    @property
    def active_platforms(self) -> list[str]:
        """Get list of registered platform names."""
        return list(self._engines.keys())

    async def health_check(self) -> dict[str, bool]:
        """Check health of all adapters.

        Returns:
            Dict mapping platform names to health status
        """
        health = {}
        for platform_name, engine in self._engines.items():
            try:
                health[platform_name] = await engine.adapter.health_check()
            except Exception as e:
                logger.error(f"Health check failed for {platform_name}: {e}")
                health[platform_name] = False
        return health
