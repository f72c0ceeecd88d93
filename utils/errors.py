"""
Custom exception classes for the Discord bot.

These provide a hierarchy of typed exceptions for better error handling.
"""


class BotError(Exception):
    """Base exception for bot-related errors."""

    pass


class ConfigurationError(BotError):
    """Raised when configuration makes an operation impossible (e.g. empty name catalog)."""

    pass


class PlatformError(BotError):
    """A call against the chat platform failed."""

    pass


class MissingPermissionsError(PlatformError):
    """The bot lacks the permissions required for a platform call."""

    pass


class NotFoundError(PlatformError):
    """The channel or member vanished before the call could complete."""

    pass


class RateLimitError(PlatformError):
    """The platform rate limited the call and retries were exhausted."""

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after
