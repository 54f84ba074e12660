"""Supervised polling primitives used while a round is being prepared."""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPoller(Generic[T]):
    """
    Call ``fetch`` until it returns something other than ``None``.

    Waits between attempts grow exponentially from ``initial_delay`` and are
    capped at ``max_delay``. Polling stops on the first result, after
    ``max_attempts`` calls, or when ``cancel()`` is called.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Optional[T]]],
        initial_delay: float = 1.0,
        max_delay: float = 8.0,
        max_attempts: int = 10,
    ):
        self._fetch = fetch
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.attempts = 0
        self.delays: list[float] = []
        self._cancelled = False
        self._task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def run(self) -> Optional[T]:
        delay = self.initial_delay
        while not self._cancelled and self.attempts < self.max_attempts:
            self.attempts += 1
            result = await self._fetch()
            if result is not None:
                return result
            if self.attempts >= self.max_attempts:
                break
            self.delays.append(delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_delay)

        logger.debug("Polling gave up after %d attempts", self.attempts)
        return None

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run())
        return self._task

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


class ThrottledFetcher(Generic[T]):
    """
    Rate-limit a fetch function.

    Calls closer than ``min_interval`` apart are delayed. Calls arriving while
    a fetch is in flight, or within ``debounce_window`` of the last one
    finishing, share that fetch instead of starting a new one.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        min_interval: float = 0.5,
        debounce_window: float = 0.25,
    ):
        self._fetch = fetch
        self.min_interval = min_interval
        self.debounce_window = debounce_window
        self.fetch_count = 0
        self._pending: Optional[asyncio.Task] = None
        self._last_started: Optional[float] = None
        self._last_finished: Optional[float] = None

    async def request(self) -> T:
        now = time.monotonic()
        if self._pending is not None:
            recent = (
                self._last_finished is not None
                and now - self._last_finished <= self.debounce_window
            )
            if not self._pending.done() or recent:
                return await asyncio.shield(self._pending)

        self._pending = asyncio.create_task(self._throttled_fetch())
        return await asyncio.shield(self._pending)

    async def _throttled_fetch(self) -> T:
        if self._last_started is not None:
            wait = self.min_interval - (time.monotonic() - self._last_started)
            if wait > 0:
                await asyncio.sleep(wait)
        self._last_started = time.monotonic()
        self.fetch_count += 1
        try:
            return await self._fetch()
        finally:
            self._last_finished = time.monotonic()
