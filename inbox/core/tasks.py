"""
Helpers for background asyncio tasks.

Background work (syncs triggered by a request, AI auto-reply passes) runs
detached from the request/response cycle: the result is discarded and any
failure goes to the log, never back to the caller.
"""
import asyncio
import logging
from typing import Coroutine, Any, Optional, Callable

logger = logging.getLogger(__name__)

# Failure counter per task name
_task_failures: dict[str, int] = {}

# Strong references to in-flight fire-and-forget tasks; the event loop only
# keeps weak ones.
_background_tasks: set[asyncio.Task] = set()


async def _safe_wrapper(
    coro: Coroutine,
    task_name: str,
    on_error: Optional[Callable[[Exception], None]] = None
) -> Any:
    """
    Run a coroutine, logging and counting any exception.

    Args:
        coro: Coroutine to run
        task_name: Name used in logs and counters
        on_error: Optional error callback
    """
    try:
        return await coro
    except asyncio.CancelledError:
        logger.debug(f"Task cancelled: {task_name}")
        raise
    except Exception as e:
        _task_failures[task_name] = _task_failures.get(task_name, 0) + 1

        logger.error(
            f"Error in background task '{task_name}': {e}",
            exc_info=True,
            extra={
                "task_name": task_name,
                "error_type": type(e).__name__,
                "total_failures": _task_failures[task_name]
            }
        )

        if on_error:
            try:
                on_error(e)
            except Exception as callback_error:
                logger.error(f"Error in on_error callback: {callback_error}")

        return None


def safe_create_task(
    coro: Coroutine,
    name: Optional[str] = None,
    on_error: Optional[Callable[[Exception], None]] = None
) -> asyncio.Task:
    """
    Create a task whose exceptions are logged instead of lost.

    Usage:
        safe_create_task(sync_service.sync_messages(), name="facebook_sync")

    Args:
        coro: Coroutine to run
        name: Task name (for logging)
        on_error: Optional callback for failures

    Returns:
        asyncio.Task wrapping the coroutine
    """
    task_name = name or (coro.__qualname__ if hasattr(coro, '__qualname__') else "unknown")
    wrapped = _safe_wrapper(coro, task_name, on_error)
    return asyncio.create_task(wrapped, name=task_name)


def fire_and_forget(
    coro: Coroutine,
    name: Optional[str] = None,
    on_error: Optional[Callable[[Exception], None]] = None
) -> asyncio.Task:
    """
    Submit a coroutine to run in the background and discard its result.

    The caller never awaits the returned task. Failures are routed to the
    logger. A reference is held until the task finishes so it cannot be
    garbage collected mid-flight.

    Usage:
        fire_and_forget(container.instagram_sync.sync_messages(), name="instagram_sync")
    """
    task = safe_create_task(coro, name=name, on_error=on_error)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


def pending_background_tasks() -> int:
    """Number of fire-and-forget tasks still running."""
    return len(_background_tasks)


def get_task_failure_counts() -> dict[str, int]:
    """Failure count per task name."""
    return _task_failures.copy()


def reset_task_failure_counts():
    """Reset counters (for tests)."""
    global _task_failures
    _task_failures = {}


async def safe_gather(*coros, return_exceptions: bool = True) -> list:
    """
    Settle-all wrapper around asyncio.gather.

    Unlike safe_create_task, this waits for every coroutine. A failing
    coroutine yields None in its slot and the others still complete.
    """
    tasks = [
        _safe_wrapper(coro, f"gather_task_{i}", None)
        for i, coro in enumerate(coros)
    ]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)
