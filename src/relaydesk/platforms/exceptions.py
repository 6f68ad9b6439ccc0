"""
Platform exceptions for relaydesk.

Every platform library error is translated into one of these at the adapter
boundary, so the routing engine never sees Telegram or Discord exceptions.
"""


class PlatformError(Exception):
    """Base exception for platform errors."""

    def __init__(self, message: str, platform: str | None = None):
        super().__init__(message)
        self.platform = platform


class PlatformSendError(PlatformError):
    """Sending a message failed.

    The message is the platform's own error text, so it can be shown to the
    operator verbatim.
    """

    def __init__(
        self,
        message: str,
        platform: str | None = None,
        unit_missing: bool = False,
    ):
        super().__init__(message, platform)
        self.unit_missing = unit_missing


class PlatformPermissionError(PlatformError):
    """The bot lacks the rights for an operation (e.g. managing topics)."""

    pass


class PlatformCapabilityError(PlatformError):
    """The platform or surface does not support the operation at all."""

    pass


class MappingStaleError(PlatformError):
    """A mapped unit no longer exists on the platform."""

    def __init__(self, message: str, unit_id: str, platform: str | None = None):
        super().__init__(message, platform)
        self.unit_id = unit_id
