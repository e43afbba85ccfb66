"""Shared helpers for background tasks and reconnect backoff."""

import asyncio
import logging
import random

logger = logging.getLogger(__name__)

RECONNECT_BASE_S = 5
RECONNECT_MAX_S = 60


def log_task_exception(task: asyncio.Task) -> None:
    """Done callback that logs unhandled exceptions from fire-and-forget tasks.

    Attach via ``task.add_done_callback(log_task_exception)`` so a crashed
    listener or dispatcher never dies silently.
    """
    if not task.cancelled() and task.exception():
        logger.error(
            "Unhandled exception in task %s",
            task.get_name(),
            exc_info=task.exception(),
        )


def jittered_delay(base: float) -> float:
    """Return ``base`` with ±25% jitter applied."""
    return base + base * random.uniform(-0.25, 0.25)


def next_retry_delay(current: float) -> float:
    """Double the reconnect delay, capped at RECONNECT_MAX_S."""
    return min(current * 2, RECONNECT_MAX_S)
