"""
Routing engine for relaydesk.

This package holds the identity mapping tables, the engine that forwards
user messages and delivers operator replies, and the management commands.
"""

from relaydesk.relay.commands import ManagementCommands
from relaydesk.relay.engine import (
    RelaySettings,
    ReplyResult,
    ReplyStrategy,
    ReplyTarget,
    RoutingEngine,
)
from relaydesk.relay.state import ForwardRecord, RoutingState

__all__ = [
    "ForwardRecord",
    "ManagementCommands",
    "RelaySettings",
    "ReplyResult",
    "ReplyStrategy",
    "ReplyTarget",
    "RoutingEngine",
    "RoutingState",
]
