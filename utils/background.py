"""Fire-and-forget side effects (push sends, post-fire rescheduling).

The caller never awaits these; failures are logged against the description they were
spawned with and never reach the caller.
"""

import asyncio
from typing import Awaitable, Set

from logging_config import get_logger

logger = get_logger("background")

_pending: Set[asyncio.Task] = set()


def _on_done(task: asyncio.Task) -> None:
    _pending.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            f"Background task failed: {task.get_name()}",
            exc_info=(type(exc), exc, exc.__traceback__),
        )


def spawn(coro: Awaitable, description: str) -> asyncio.Task:
    """Schedule `coro` on the running loop without waiting for it."""
    task = asyncio.ensure_future(coro)
    task.set_name(description)
    # The loop only keeps weak references to tasks
    _pending.add(task)
    task.add_done_callback(_on_done)
    return task


def pending_count() -> int:
    return len(_pending)


async def drain() -> None:
    """Wait for every background task spawned so far, including ones they spawn."""
    while _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)
