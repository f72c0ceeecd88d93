# helpers/retry.py

"""
Retry with exponential backoff for Discord API calls.

Rate limits, 5xx responses and network hiccups are retried; everything
else (403, 404, ...) is raised immediately so callers can react to it.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import aiohttp
import discord

from utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 16.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    def calculate_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Calculate delay for given attempt number (0-indexed)."""
        delay = self.base_delay * (self.exponential_base**attempt)
        if retry_after is not None:
            delay = max(delay, retry_after)
        delay = min(delay, self.max_delay)

        if self.jitter:
            # +/-25% jitter to prevent thundering herd
            jitter_range = delay * 0.25
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0, delay)


DISCORD_API_RETRY = RetryConfig()


def is_retryable_error(error: BaseException) -> bool:
    """Determine if an error is worth retrying."""
    if isinstance(error, discord.HTTPException):
        return error.status == 429 or 500 <= error.status < 600

    if isinstance(error, aiohttp.ClientError | asyncio.TimeoutError):
        return True

    if isinstance(error, ConnectionError):
        return True

    return False


def _retry_after(error: BaseException) -> float | None:
    value = getattr(error, "retry_after", None)
    return float(value) if isinstance(value, int | float) else None


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    **kwargs: Any,
) -> T:
    """
    Retry an async function with exponential backoff.

    Raises:
        The last exception if all retries are exhausted, or the first
        non-retryable exception.
    """
    config = config or DISCORD_API_RETRY
    name = getattr(func, "__name__", repr(func))

    for attempt in range(config.max_attempts):
        try:
            result = await func(*args, **kwargs)
            if attempt > 0:
                logger.info(f"{name} succeeded on attempt {attempt + 1}")
            return result
        except Exception as e:
            if not is_retryable_error(e) or attempt == config.max_attempts - 1:
                raise

            delay = config.calculate_delay(attempt, _retry_after(e))
            logger.warning(
                f"Attempt {attempt + 1}/{config.max_attempts} failed for {name}: "
                f"{type(e).__name__}: {e}; retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)

    raise RuntimeError("unreachable")  # pragma: no cover
