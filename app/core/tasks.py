from __future__ import annotations

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any

from app.core.logging import get_logger, sanitize_error

logger = get_logger("core.tasks")

Scheduler = Callable[..., Any]


def best_effort(func: Callable[..., Awaitable[Any]], *, name: str) -> Callable[..., Awaitable[None]]:
    """Wrap a coroutine function so its failures are logged and never raised.

    The wrapped callable is meant to be handed to a scheduler such as
    ``BackgroundTasks.add_task``; whoever scheduled it has already answered.
    """

    @wraps(func)
    async def runner(*args: Any, **kwargs: Any) -> None:
        try:
            await func(*args, **kwargs)
        except Exception as exc:
            logger.warning(
                "tasks.best_effort_failed",
                extra={
                    "component": "tasks",
                    "task": name,
                    "error_type": type(exc).__name__,
                    "error": sanitize_error(exc, default_message="best-effort task failed"),
                },
            )
            return
        logger.info("tasks.best_effort_done", extra={"component": "tasks", "task": name})

    return runner
