"""
Configuration merging for relaydesk.

YAML layers are merged key by key; the helpers here also read and write
values addressed by dotted key paths such as ``platforms.telegram.use_topics``.
"""

from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Merge ``override`` into a copy of ``base``.

    Nested sections merge recursively, any other value replaces the base
    value, and an explicit null removes the key so a project file can drop
    a setting made in the global file.

    Args:
        base: Lower-priority configuration.
        override: Higher-priority configuration.

    Returns:
        The merged dictionary. Neither argument is modified.
    """
    merged = dict(base)

    for key, value in override.items():
        if value is None:
            merged.pop(key, None)
            continue

        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value

    return merged


def get_nested_value(config: dict[str, Any], key_path: str) -> Any:
    """Return the value at a dotted key path, or None if any part is missing."""
    node: Any = config
    for key in key_path.split("."):
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node


def set_nested_value(config: dict[str, Any], key_path: str, value: Any) -> dict[str, Any]:
    """
    Set the value at a dotted key path, creating missing sections.

    A non-dict value standing where a section is needed is replaced.

    Returns:
        ``config``, modified in place.
    """
    *parents, leaf = key_path.split(".")
    node = config
    for key in parents:
        if not isinstance(node.get(key), dict):
            node[key] = {}
        node = node[key]

    node[leaf] = value
    return config


def resolve_key_path(config: dict[str, Any], parts: list[str]) -> str | None:
    """
    Resolve underscore-split name parts against the keys of a config dict.

    Environment variable names lose the distinction between nesting and
    underscores inside key names, so ``PLATFORMS_TELEGRAM_BOT_TOKEN`` has to be
    matched against the existing tree. At each level the longest run of parts
    that names an existing key wins.

    Args:
        config: Configuration dictionary to resolve against.
        parts: Lower-cased name parts, e.g. ["platforms", "telegram", "bot", "token"].

    Returns:
        Dot-separated key path, or None if the parts do not name an existing key.

    Examples:
        >>> resolve_key_path({"a": {"bot_token": ""}}, ["a", "bot", "token"])
        "a.bot_token"
    """
    if not parts:
        return None

    for end in range(len(parts), 0, -1):
        key = "_".join(parts[:end])
        if key not in config:
            continue

        rest = parts[end:]
        if not rest:
            return key

        child = config[key]
        if isinstance(child, dict):
            child_path = resolve_key_path(child, rest)
            if child_path is not None:
                return f"{key}.{child_path}"

    return None
