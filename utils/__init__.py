"""
Utilities Package

Common utilities shared by the bot, its cogs and services.
"""

from .errors import (
    BotError,
    ConfigurationError,
    MissingPermissionsError,
    NotFoundError,
    PlatformError,
    RateLimitError,
)
from .logging import get_logger, setup_logging
from .tasks import spawn

__all__ = [
    "BotError",
    "ConfigurationError",
    "MissingPermissionsError",
    "NotFoundError",
    "PlatformError",
    "RateLimitError",
    "get_logger",
    "setup_logging",
    "spawn",
]
