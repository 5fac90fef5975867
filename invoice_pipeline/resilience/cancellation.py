"""Cooperative cancellation for in-flight fetches and model calls.

Callers pass an ``asyncio.Event``; setting it aborts whatever request or
stream is currently awaited. Plain task cancellation keeps working as
usual and is never converted.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class CancelledByCaller(Exception):
    """The caller's cancel event fired before the operation completed."""


async def run_cancellable(
    awaitable: Awaitable[T], cancel_event: Optional[asyncio.Event] = None
) -> T:
    """Await ``awaitable``, aborting it as soon as ``cancel_event`` is set.

    Raises:
        CancelledByCaller: The event fired first; the operation was cancelled.
    """
    if cancel_event is None:
        return await awaitable
    if cancel_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise CancelledByCaller("Cancelled before start")

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait(
            {work, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        waiter.cancel()
        if not work.done():
            work.cancel()

    if work in done:
        return work.result()

    # Wait for the cancelled operation to unwind (closes sockets/streams)
    await asyncio.wait({work})
    raise CancelledByCaller("Cancelled by caller")
