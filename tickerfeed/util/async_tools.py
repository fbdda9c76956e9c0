"""
Async Hygiene Tools
Supervised task management and timeouts for the feed runner and transport shutdown.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Dict, TypeVar

logger = logging.getLogger(__name__)

# Global registry for supervised tasks
_supervised_tasks: Dict[str, asyncio.Task] = {}

T = TypeVar('T')

class AsyncTimeoutError(Exception):
    """Raised when an async operation times out."""
    pass

def create_supervised_task(
    coro: Awaitable[T],
    *,
    name: str,
) -> asyncio.Task[T]:
    """
    Create a supervised task that will be cancelled on shutdown.

    Args:
        coro: The coroutine to run
        name: Unique name for the task (used for tracking)

    Returns:
        The created task

    Raises:
        ValueError: If a live task with the same name already exists
    """
    existing = _supervised_tasks.get(name)
    if existing is not None and not existing.done():
        raise ValueError(f"Task '{name}' already exists")

    async def _supervised_wrapper():
        try:
            return await coro
        except asyncio.CancelledError:
            logger.info(f"[async_tools] Task '{name}' cancelled")
            raise
        except Exception as e:
            logger.error(f"[async_tools] Task '{name}' failed: {e}")
            raise

    def _close_unstarted(t: asyncio.Task) -> None:
        # Cancelled before its first step: the wrapper never awaited coro
        if t.cancelled() and inspect.iscoroutine(coro) and \
                inspect.getcoroutinestate(coro) == inspect.CORO_CREATED:
            coro.close()

    task = asyncio.create_task(_supervised_wrapper(), name=name)
    task.add_done_callback(_close_unstarted)
    _supervised_tasks[name] = task
    return task

async def timeout(awaitable: Awaitable[T], seconds: float) -> T:
    """
    Add a timeout to an awaitable.

    Raises:
        AsyncTimeoutError: If the operation times out
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        raise AsyncTimeoutError(f"Operation timed out after {seconds}s")

async def shutdown_supervised_tasks():
    """Cancel all supervised tasks and wait for them to complete."""
    if not _supervised_tasks:
        return

    logger.info(f"[async_tools] Shutting down {len(_supervised_tasks)} supervised tasks")

    for task in _supervised_tasks.values():
        if not task.done():
            task.cancel()

    await asyncio.gather(*_supervised_tasks.values(), return_exceptions=True)

    _supervised_tasks.clear()
    logger.info("[async_tools] All supervised tasks shut down")

def get_supervised_tasks() -> Dict[str, asyncio.Task]:
    """Get the current supervised tasks registry."""
    return _supervised_tasks.copy()
