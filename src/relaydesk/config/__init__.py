"""
Configuration management for relaydesk.

Loads YAML configuration, applies environment overrides and validates the
result against the Pydantic schema.
"""

from relaydesk.config.loader import (
    ConfigurationError,
    check_platform_config,
    clear_config_cache,
    get_config,
    get_config_sources,
    load_config,
    load_yaml_file,
    save_yaml_file,
)
from relaydesk.config.merger import deep_merge, get_nested_value, set_nested_value
from relaydesk.config.schema import (
    Config,
    DiscordConfig,
    LoggingConfig,
    MessageLogConfig,
    PlatformsConfig,
    TelegramConfig,
)

__all__ = [
    "Config",
    "ConfigurationError",
    "DiscordConfig",
    "LoggingConfig",
    "MessageLogConfig",
    "PlatformsConfig",
    "TelegramConfig",
    "check_platform_config",
    "clear_config_cache",
    "deep_merge",
    "get_config",
    "get_config_sources",
    "get_nested_value",
    "load_config",
    "load_yaml_file",
    "save_yaml_file",
    "set_nested_value",
]
