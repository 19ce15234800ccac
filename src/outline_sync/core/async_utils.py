"""Async utilities for running blocking parse and apply work off the event loop."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Module-level semaphore, initialized at server startup
_semaphore: asyncio.Semaphore | None = None


def init_semaphore(max_parallel: int = 2) -> None:
    """Initialize the concurrency semaphore. Call once at server startup."""
    global _semaphore
    _semaphore = asyncio.Semaphore(max_parallel)
    logger.info(
        "Import semaphore initialized: max_parallel=%d",
        max_parallel,
    )


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Cancelling the awaiting task abandons the result; the thread itself
    runs to completion.  Work that writes goes through ``run_sync_shielded``,
    which builds on this.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool, bounded by the concurrency semaphore.

    Falls back to unbounded if semaphore not initialized.
    """
    if _semaphore is None:
        return await run_sync(func, *args, **kwargs)
    async with _semaphore:
        return await run_sync(func, *args, **kwargs)


async def run_sync_shielded(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function that must not be interrupted mid-way.

    If the awaiting task is cancelled, the cancellation is deferred until
    the function has finished (successfully or not) and is then re-raised,
    so callers never observe a half-done write.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    task = asyncio.ensure_future(run_sync(func, *args, **kwargs))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        logger.info("Cancellation deferred until %s completes", getattr(func, "__name__", func))
        try:
            await task
        except Exception:
            logger.exception("Shielded call failed after cancellation")
        raise
