"""
Configuration loader for relaydesk.

Loads and merges configuration from multiple sources:
1. Default values
2. Global config (~/.relaydesk/config.yaml)
3. Project config (./.relaydesk/project.yaml)
4. Environment variables (RELAYDESK_* and the legacy deployment names)
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from relaydesk.config.merger import deep_merge, get_nested_value, resolve_key_path, set_nested_value
from relaydesk.config.schema import Config, PlatformAdapterConfig
from relaydesk.storage.paths import find_project_config, get_global_config_path


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


# Variable names used by earlier .env based deployments
LEGACY_ENV_ALIASES: dict[str, str] = {
    "TELEGRAM_BOT_TOKEN": "platforms.telegram.bot_token",
    "PERSONAL_TELEGRAM_ID": "platforms.telegram.management_chat_id",
    "MANAGEMENT_CHAT_ID": "platforms.telegram.management_chat_id",
    "USE_TOPICS": "platforms.telegram.use_topics",
    "DISCORD_BOT_TOKEN": "platforms.discord.bot_token",
    "MANAGEMENT_GUILD_ID": "platforms.discord.management_guild_id",
    "MANAGEMENT_CHANNEL_ID": "platforms.discord.management_channel_id",
    "USE_THREADS": "platforms.discord.use_threads",
}

_ENV_REFERENCE = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed configuration dictionary.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    try:
        with open(path, encoding="utf-8") as f:
            content = yaml.safe_load(f)
            return content if content else {}
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e


def save_yaml_file(path: Path, config: dict[str, Any]) -> None:
    """
    Save a configuration dictionary to a YAML file.

    Args:
        path: Path to the YAML file.
        config: Configuration dictionary to save.

    Raises:
        ConfigurationError: If the file cannot be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(config, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
    except OSError as e:
        raise ConfigurationError(f"Cannot write {path}: {e}") from e


def apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Environment variables follow the pattern:
    RELAYDESK_<SECTION>_<KEY>=<value>
    RELAYDESK_<SECTION>_<NESTED>_<KEY>=<value>

    Names are resolved against the existing configuration keys, so
    RELAYDESK_PLATFORMS_TELEGRAM_BOT_TOKEN sets platforms.telegram.bot_token.
    Legacy names (TELEGRAM_BOT_TOKEN, MANAGEMENT_CHAT_ID, ...) are applied
    first so the prefixed form wins when both are set.

    Args:
        config: Configuration dictionary to modify.

    Returns:
        Configuration with environment overrides applied.
    """
    for env_name, key_path in LEGACY_ENV_ALIASES.items():
        value = os.environ.get(env_name)
        if value:
            current = get_nested_value(config, key_path)
            config = set_nested_value(config, key_path, _parse_env_value(value, current))

    prefix = "RELAYDESK_"

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        # RELAYDESK_HOME is handled by storage.paths
        if key == "RELAYDESK_HOME":
            continue

        parts = key[len(prefix) :].lower().split("_")
        key_path = resolve_key_path(config, parts) or ".".join(parts)
        current = get_nested_value(config, key_path)
        config = set_nested_value(config, key_path, _parse_env_value(value, current))

    return config


def _parse_env_value(value: str, current: Any = None) -> Any:
    """
    Parse an environment variable value to the type of the value it replaces.

    Values replacing strings (or unset optional strings such as chat ids) are
    kept verbatim, so "-100123" stays a string.

    Args:
        value: String value from environment.
        current: The value currently at that key, used as a type hint.

    Returns:
        Parsed value (bool, int, float, list or string).
    """
    if isinstance(current, str) or current is None:
        return value

    if isinstance(current, bool):
        if value.lower() in ("true", "yes", "1", "on"):
            return True
        if value.lower() in ("false", "no", "0", "off"):
            return False
        return value

    if isinstance(current, int) and re.match(r"^-?\d+$", value):
        return int(value)

    if isinstance(current, float) and re.match(r"^-?\d+(\.\d+)?$", value):
        return float(value)

    if isinstance(current, list):
        return [item.strip() for item in value.split(",") if item.strip()]

    return value


def resolve_env_references(config: dict[str, Any]) -> dict[str, Any]:
    """
    Replace "${NAME}" string values with the named environment variable.

    Unset variables resolve to an empty string so a missing token is reported
    as missing rather than as the literal placeholder.
    """
    resolved: dict[str, Any] = {}
    for key, value in config.items():
        if isinstance(value, dict):
            resolved[key] = resolve_env_references(value)
        elif isinstance(value, str):
            match = _ENV_REFERENCE.match(value)
            resolved[key] = os.environ.get(match.group(1), "") if match else value
        else:
            resolved[key] = value
    return resolved


def load_config(
    project_path: Path | None = None,
    skip_project: bool = False,
    skip_env: bool = False,
) -> Config:
    """
    Load and merge configuration from all sources.

    Loading order (later overrides earlier):
    1. Default values from Config model
    2. Global config (~/.relaydesk/config.yaml)
    3. Project config (./.relaydesk/project.yaml) if found
    4. Environment variables

    Args:
        project_path: Starting path to search for project config. Defaults to cwd.
        skip_project: Skip loading project configuration.
        skip_env: Skip environment variable overrides.

    Returns:
        Merged and validated Config object.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    config_dict = Config().model_dump()

    global_path = get_global_config_path()
    if global_path.exists():
        config_dict = deep_merge(config_dict, load_yaml_file(global_path))

    if not skip_project:
        project_config_path = find_project_config(project_path)
        if project_config_path and project_config_path.exists():
            config_dict = deep_merge(config_dict, load_yaml_file(project_config_path))

    if not skip_env:
        config_dict = apply_env_overrides(config_dict)

    config_dict = resolve_env_references(config_dict)

    try:
        return Config.model_validate(config_dict)

    except Exception as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def get_config_sources() -> dict[str, Path | None]:
    """
    Get paths to all configuration sources.

    Returns:
        Dictionary mapping source names to paths (None if not found).
    """
    global_path = get_global_config_path()
    project_path = find_project_config()

    return {
        "global": global_path if global_path.exists() else None,
        "project": project_path if project_path and project_path.exists() else None,
    }


def check_platform_config(name: str, platform_config: PlatformAdapterConfig) -> None:
    """
    Validate that an enabled platform has what it needs to start.

    Args:
        name: Platform name, used in the error message.
        platform_config: The platform's configuration section.

    Raises:
        ConfigurationError: If the platform is enabled but has no bot token.
    """
    if platform_config.enable and not platform_config.bot_token:
        raise ConfigurationError(f"{name} is enabled but bot_token is not configured")


# Singleton for cached config
_cached_config: Config | None = None


def get_config(reload: bool = False) -> Config:
    """
    Get the global configuration instance.

    Uses a cached instance. Use reload=True to force refresh.

    Args:
        reload: Force reload configuration from disk.

    Returns:
        Config instance.
    """
    global _cached_config

    if _cached_config is None or reload:
        _cached_config = load_config()

    return _cached_config


def clear_config_cache() -> None:
    """Clear the cached configuration."""
    global _cached_config
    _cached_config = None
