"""Detached background operations with a logging error sink."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Coroutine

logger = logging.getLogger("chat_relay.relay.tasks")

# Strong references so pending tasks are not garbage collected mid-flight.
_BACKGROUND_TASKS: set[asyncio.Task[Any]] = set()


def _log_task_outcome(task: asyncio.Task[Any]) -> None:
    _BACKGROUND_TASKS.discard(task)
    if task.cancelled():
        logger.warning("Background task %s was cancelled", task.get_name())
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed", task.get_name(), exc_info=exc)


def run_in_background(coro: Coroutine[Any, Any, Any], *, label: str) -> None:
    """Start ``coro`` detached from the caller.

    Returns nothing on purpose: the caller cannot await or cancel the work, and
    any failure is reported only through this module's logger.
    """
    task = asyncio.create_task(coro, name=label)
    _BACKGROUND_TASKS.add(task)
    task.add_done_callback(_log_task_outcome)


def pending_background_tasks() -> int:
    """Return the number of detached tasks still running."""
    return len(_BACKGROUND_TASKS)


async def wait_for_background_tasks(timeout: float | None = None) -> None:
    """Wait until every detached task (including ones spawned meanwhile) has finished."""
    loop = asyncio.get_running_loop()
    deadline = None if timeout is None else loop.time() + timeout
    while _BACKGROUND_TASKS:
        remaining = None if deadline is None else max(deadline - loop.time(), 0)
        _done, pending = await asyncio.wait(set(_BACKGROUND_TASKS), timeout=remaining)
        if pending and deadline is not None and loop.time() >= deadline:
            logger.warning("%d background task(s) still running after %.1fs", len(pending), timeout)
            return
