"""Storage path utilities for relaydesk."""

from relaydesk.storage.paths import (
    ensure_directory,
    expand_path,
    find_project_config,
    get_global_config_path,
    get_relaydesk_home,
)

__all__ = [
    "ensure_directory",
    "expand_path",
    "find_project_config",
    "get_global_config_path",
    "get_relaydesk_home",
]
