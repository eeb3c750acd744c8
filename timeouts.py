"""Bounded waits for storage and notification calls."""

import asyncio
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


async def bounded(
    awaitable: Awaitable[T],
    timeout: float,
    on_timeout: Callable[[], Exception],
) -> T:
    """Await ``awaitable`` for at most ``timeout`` seconds.

    On expiry the exception built by ``on_timeout`` is raised instead of
    asyncio.TimeoutError, so callers only see the service's error types.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        raise on_timeout() from None
