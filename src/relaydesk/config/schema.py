"""
Pydantic configuration schema for relaydesk.

This module defines all configuration models with validation.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Platform Configuration
# =============================================================================


class PlatformAdapterConfig(BaseModel):
    """Base configuration for platform adapters."""

    # Chat ids are often written unquoted in YAML
    model_config = ConfigDict(coerce_numbers_to_str=True)

    enable: bool = False
    bot_token: str = ""

    # Re-send the "create a unit manually" notice on every message from an
    # identity whose unit creation was refused, instead of only once.
    repeat_fallback_notice: bool = False


class TelegramConfig(PlatformAdapterConfig):
    """Telegram bot configuration.

    Uses long polling. The management chat can be a private chat with the
    operator or a group; with ``use_topics`` the group must be a forum and the
    bot an admin allowed to manage topics.
    """

    management_chat_id: str | None = None
    use_topics: bool = False
    polling_interval: float = Field(default=1.0, ge=0.0)


class DiscordConfig(PlatformAdapterConfig):
    """Discord bot configuration.

    Uses the Gateway WebSocket. Users DM the bot; the operator works in one
    channel of a management guild, optionally with one thread per user.
    """

    management_guild_id: str | None = None
    management_channel_id: str | None = None
    use_threads: bool = True


class PlatformsConfig(BaseModel):
    """Chat platform configuration."""

    model_config = ConfigDict(extra="allow")

    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    discord: DiscordConfig = Field(default_factory=DiscordConfig)


# =============================================================================
# Message Log Configuration
# =============================================================================


class MessageLogConfig(BaseModel):
    """Durable message log configuration."""

    enable: bool = True
    path: str = "~/.relaydesk/messages.jsonl"
    rotation: Literal["daily", "weekly", "size", "none"] = "daily"
    max_size_mb: int = 100
    retention_days: int = Field(default=365, ge=1, le=3650)
    compress_old: bool = True
    buffer_size: int = Field(default=1, ge=1)
    flush_interval_seconds: int = 5


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Process logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    rich: bool = True
    file: str | None = None


# =============================================================================
# Root Configuration Model
# =============================================================================


class Config(BaseModel):
    """
    Root configuration model for relaydesk.

    Configuration can be loaded from YAML files and environment variables,
    merged in order of priority.
    """

    model_config = ConfigDict(extra="allow")

    platforms: PlatformsConfig = Field(default_factory=PlatformsConfig)
    message_log: MessageLogConfig = Field(default_factory=MessageLogConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def enabled_platforms(self) -> list[str]:
        """Names of the platforms switched on in this configuration."""
        return [
            name
            for name, platform_config in (
                ("telegram", self.platforms.telegram),
                ("discord", self.platforms.discord),
            )
            if platform_config.enable
        ]
