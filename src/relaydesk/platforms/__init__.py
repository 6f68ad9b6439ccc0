"""Telegram and Discord integration for relaydesk.

This module provides the platform adapter protocol, the normalized message
models shared by both platforms, and the router that feeds adapter events to
the routing engines.

Architecture:
    Platform Adapters → Message Router → Routing Engine → Message Log

Key Components:
    - PlatformAdapter: Abstract protocol for platform implementations
    - MessageRouter: Runs one serial listener per adapter
"""

from relaydesk.platforms.exceptions import (
    MappingStaleError,
    PlatformCapabilityError,
    PlatformError,
    PlatformPermissionError,
    PlatformSendError,
)
from relaydesk.platforms.models import (
    EventKind,
    IncomingMessage,
    MessageOrigin,
    OrganizationalUnit,
    OutgoingMessage,
    PlatformCapabilities,
    PlatformType,
    PlatformUser,
    SentMessage,
)
from relaydesk.platforms.protocol import PlatformAdapter

__all__ = [
    "EventKind",
    "IncomingMessage",
    "MappingStaleError",
    "MessageOrigin",
    "OrganizationalUnit",
    "OutgoingMessage",
    "PlatformAdapter",
    "PlatformCapabilities",
    "PlatformCapabilityError",
    "PlatformError",
    "PlatformPermissionError",
    "PlatformSendError",
    "PlatformType",
    "PlatformUser",
    "SentMessage",
]
