"""Assembles adapters, engines and the router from configuration."""

import logging
from typing import Optional

from relaydesk.config.loader import ConfigurationError, check_platform_config
from relaydesk.config.schema import Config
from relaydesk.platforms.protocol import PlatformAdapter
from relaydesk.platforms.router import MessageRouter
from relaydesk.relay.engine import RelaySettings, RoutingEngine
from relaydesk.store.message_log import MessageLog

logger = logging.getLogger(__name__)

PLATFORM_NAMES = ("telegram", "discord")


def create_adapter(name: str, config: Config) -> PlatformAdapter:
    """Create the adapter for one platform.

    Raises:
        ConfigurationError: Unknown platform, or enabled without a token
        ImportError: The platform library is not installed
    """
    if name == "telegram":
        telegram = config.platforms.telegram
        check_platform_config(name, telegram)
        from relaydesk.platforms.adapters.telegram import TelegramAdapter

        return TelegramAdapter(
            bot_token=telegram.bot_token,
            management_chat_id=telegram.management_chat_id,
            polling_interval=telegram.polling_interval,
        )

    if name == "discord":
        discord_config = config.platforms.discord
        check_platform_config(name, discord_config)
        from relaydesk.platforms.adapters.discord import DiscordAdapter

        return DiscordAdapter(
            bot_token=discord_config.bot_token,
            management_guild_id=discord_config.management_guild_id,
            management_channel_id=discord_config.management_channel_id,
        )

    raise ConfigurationError(f"Unknown platform: {name}")


def relay_settings(name: str, config: Config) -> RelaySettings:
    """Routing behavior configured for one platform."""
    if name == "telegram":
        telegram = config.platforms.telegram
        return RelaySettings(
            use_units=telegram.use_topics,
            repeat_fallback_notice=telegram.repeat_fallback_notice,
        )
    if name == "discord":
        discord_config = config.platforms.discord
        return RelaySettings(
            use_units=discord_config.use_threads,
            repeat_fallback_notice=discord_config.repeat_fallback_notice,
        )
    raise ConfigurationError(f"Unknown platform: {name}")


def build_router(
    config: Config,
    message_log: Optional[MessageLog] = None,
    platform_filter: Optional[str] = None,
) -> tuple[MessageRouter, dict[str, str]]:
    """Create a router with one engine per enabled platform.

    A platform whose adapter cannot be created is left out; the other
    platforms are unaffected.

    Returns:
        The router, and the reason each enabled platform was left out
    """
    router = MessageRouter()
    skipped: dict[str, str] = {}

    for name in config.enabled_platforms():
        if platform_filter and name != platform_filter:
            continue
        try:
            adapter = create_adapter(name, config)
        except (ConfigurationError, ImportError) as e:
            logger.error(f"Cannot start {name}: {e}")
            skipped[name] = str(e)
            continue

        router.register(
            RoutingEngine(
                adapter,
                message_log=message_log,
                settings=relay_settings(name, config),
            )
        )

    return router, skipped
