"""
Helpers for fire-and-forget asyncio tasks.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from utils.logging import get_logger

logger = get_logger(__name__)


def spawn(coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
    """
    Run ``coro`` as a background task whose failure is logged, not lost.

    Callers that need to await or cancel the task later must keep the
    returned reference.
    """
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(_log_task_exception)
    return task


def _log_task_exception(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        logger.debug(f"Task {task.get_name()} cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Task {task.get_name()} failed", exc_info=exc)
