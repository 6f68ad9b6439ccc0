"""Platform adapters for different messaging platforms."""

from relaydesk.platforms.adapters.discord import DiscordAdapter
from relaydesk.platforms.adapters.telegram import TelegramAdapter

__all__ = [
    "DiscordAdapter",
    "TelegramAdapter",
]
