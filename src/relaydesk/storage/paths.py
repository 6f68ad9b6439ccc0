"""
Path resolution for relaydesk.

The home directory (``~/.relaydesk`` unless ``RELAYDESK_HOME`` is set) holds
the global ``config.yaml``. A project can carry its own settings in
``.relaydesk/project.yaml`` anywhere above the working directory.
"""

import os
from pathlib import Path

PROJECT_CONFIG = Path(".relaydesk") / "project.yaml"


def get_relaydesk_home() -> Path:
    """Return the relaydesk home directory."""
    env_home = os.environ.get("RELAYDESK_HOME")
    if env_home:
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".relaydesk"


def get_global_config_path() -> Path:
    """Return the path of the global ``config.yaml``."""
    return get_relaydesk_home() / "config.yaml"


def find_project_config(start_path: Path | None = None) -> Path | None:
    """
    Find the nearest project configuration file.

    Checks ``start_path`` (default: the working directory) and each of its
    parents, up to and including the filesystem root.

    Returns:
        Path to ``.relaydesk/project.yaml``, or None if no directory has one.
    """
    start = Path(start_path).resolve() if start_path is not None else Path.cwd()

    for directory in (start, *start.parents):
        candidate = directory / PROJECT_CONFIG
        if candidate.is_file():
            return candidate
    return None


def expand_path(path: str | Path) -> Path:
    """Expand ``~`` and ``$VARS`` in a configured path and make it absolute."""
    return Path(os.path.expandvars(os.path.expanduser(str(path)))).resolve()


def ensure_directory(path: Path) -> Path:
    """Create ``path`` and its parents if missing, returning it."""
    path.mkdir(parents=True, exist_ok=True)
    return path
