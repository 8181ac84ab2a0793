"""Run provider coroutines from synchronous event handlers.

Protean event handlers are synchronous. When one of them needs to call a
provider (e.g. cancel at Uber Direct after the order was cancelled) the
coroutine is scheduled on the running loop if there is one, and run to
completion otherwise.
"""

import asyncio
from collections.abc import Coroutine

import structlog

logger = structlog.get_logger(__name__)

# Strong references so scheduled tasks are not garbage collected mid-flight
_pending: set[asyncio.Task] = set()


def _finished(description: str):
    def callback(task: asyncio.Task) -> None:
        _pending.discard(task)
        if task.cancelled():
            logger.warning("Background provider call cancelled", call=description)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background provider call failed", call=description, error=str(exc))

    return callback


def run_coroutine(coro: Coroutine, description: str):
    """Run ``coro`` now, or schedule it when called from inside an event loop."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    task = loop.create_task(coro)
    _pending.add(task)
    task.add_done_callback(_finished(description))
    return task


async def drain() -> None:
    """Wait for every scheduled provider call; failures were already logged."""
    while _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)
