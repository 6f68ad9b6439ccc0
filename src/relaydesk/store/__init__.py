"""
Durable message storage for relaydesk.

This package provides the JSON Lines message log and the normalized record
shape shared by both platforms.
"""

from relaydesk.store.message_log import MessageLog, StoreError, get_message_log
from relaydesk.store.models import (
    NormalizedMessage,
    StoredMessage,
    normalize_incoming,
    normalize_sent,
)

__all__ = [
    "MessageLog",
    "NormalizedMessage",
    "StoreError",
    "StoredMessage",
    "get_message_log",
    "normalize_incoming",
    "normalize_sent",
]
