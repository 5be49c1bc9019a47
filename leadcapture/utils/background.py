"""
Detached background tasks with their own error boundary.

Notification work (emails, webhook fan-out) runs here so the HTTP response to
the submitter never waits on it. Each task is wrapped so an exception is
logged and discarded instead of surfacing as an unhandled task exception.
Strong references are held until the task finishes (the event loop only
keeps weak ones).
"""
import asyncio
import logging
from typing import Coroutine, Any

logger = logging.getLogger(__name__)

_background_tasks: set[asyncio.Task] = set()


async def _guarded(coro: Coroutine[Any, Any, Any], name: str) -> None:
    try:
        await coro
    except asyncio.CancelledError:
        logger.info("Background task %s cancelled", name)
        raise
    except Exception as e:
        logger.error("Background task %s failed: %s", name, str(e), exc_info=True)


def spawn(coro: Coroutine[Any, Any, Any], name: str) -> None:
    """Schedule `coro` on the running loop and return immediately."""
    task = asyncio.create_task(_guarded(coro, name), name=name)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


def pending_count() -> int:
    return len(_background_tasks)


async def drain(timeout: float = 10.0) -> int:
    """
    Wait for outstanding background tasks, including any they spawn.
    Tasks still running after `timeout` are cancelled. Returns how many were cancelled.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while _background_tasks:
        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        await asyncio.wait(set(_background_tasks), timeout=remaining)

    pending = set(_background_tasks)
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
    return len(pending)
