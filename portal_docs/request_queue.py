"""
Request queue with concurrency limiting.

Every retrieval the engine issues goes through one RequestQueue so the portal
never sees more than max_concurrent requests from this process at a time.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from .logger import get_module_logger

logger = get_module_logger("request_queue")

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_MAX_CONCURRENT = 3


class RequestQueue:
    """Fixed-size concurrency limiter for coroutine functions."""

    def __init__(self, max_concurrent: int = DEFAULT_MAX_CONCURRENT):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self.active = 0
        self.peak = 0

    async def run(self, fn: Callable[..., Awaitable[R]], *args) -> R:
        """Await fn(*args) once a slot is free."""
        async with self._semaphore:
            self.active += 1
            self.peak = max(self.peak, self.active)
            try:
                return await fn(*args)
            finally:
                self.active -= 1

    async def map(
        self,
        items: Iterable[T],
        fn: Callable[[T], Awaitable[R]],
        return_exceptions: bool = False
    ) -> list:
        """
        Run fn over items concurrently under the queue's limit.

        Results keep the input order. With return_exceptions=True a failing
        item yields its exception instead of cancelling the batch.
        """
        return await asyncio.gather(
            *(self.run(fn, item) for item in items),
            return_exceptions=return_exceptions,
        )


# Process-wide queue shared by every engine that is not given its own
_default_queue: Optional[RequestQueue] = None


def get_default_queue(max_concurrent: int = DEFAULT_MAX_CONCURRENT) -> RequestQueue:
    """
    Get or create the default request queue.

    max_concurrent only applies when the queue is first created.
    """
    global _default_queue
    if _default_queue is None:
        _default_queue = RequestQueue(max_concurrent)
    return _default_queue
