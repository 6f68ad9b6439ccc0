"""
relaydesk - human-in-the-loop chat relay

Forwards messages from Telegram and Discord users to an operator's
management chat, routes the operator's replies back to the right user,
and logs every message to a durable store.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("relaydesk")
except PackageNotFoundError:
    __version__ = "0.4.0"

__all__ = [
    "__version__",
]
