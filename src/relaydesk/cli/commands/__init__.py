"""CLI command modules."""

from relaydesk.cli.commands import config, platforms

__all__ = ["config", "platforms"]
