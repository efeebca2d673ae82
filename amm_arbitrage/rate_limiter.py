"""
Rate limiting and retry for RPC read calls.

RateLimiter admits queued calls strictly FIFO through a single dispatch
loop, enforcing both a sliding window (max_requests per time_window) and a
minimum spacing between consecutive dispatches. RetryHandler wraps a single
call with exponential backoff and retries only faults tagged as transient.
"""

import asyncio
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple, TypeVar

from .exceptions import AccessError
from .utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RateLimiter:
    """
    Sliding-window rate limiter with minimum inter-request spacing.

    Calls submitted through execute() are queued and dispatched one at a time
    by a dispatch loop that is started on demand and exits once the queue is
    drained. The loop awaits each call before admitting the next, so at most
    one call is in flight per limiter.

    Args:
        max_requests: Maximum dispatches within any time_window
        time_window: Window length in seconds
        min_interval: Minimum seconds between consecutive dispatches
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        max_requests: int,
        time_window: float,
        min_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests <= 0:
            raise ValueError(f"max_requests must be positive: {max_requests}")
        if time_window <= 0:
            raise ValueError(f"time_window must be positive: {time_window}")
        if min_interval < 0:
            raise ValueError(f"min_interval must be non-negative: {min_interval}")

        self.max_requests = max_requests
        self.time_window = time_window
        self.min_interval = min_interval
        self._clock = clock

        self._requests: Deque[float] = deque()
        self._queue: Deque[Tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        self._processing = False
        self._last_request_time: Optional[float] = None
        self._worker: Optional[asyncio.Task] = None

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Queue fn and wait for its result once the limiter admits it."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._queue.append((fn, future))

        if not self._processing:
            self._processing = True
            self._worker = loop.create_task(self._process_queue())

        return await future

    async def _process_queue(self) -> None:
        try:
            while self._queue:
                if not self._can_make_request():
                    wait_time = self._get_wait_time()
                    logger.debug(f"Rate limiter: waiting {wait_time * 1000:.0f}ms")
                    await asyncio.sleep(wait_time)
                    continue

                fn, future = self._queue.popleft()
                if future.cancelled():
                    continue

                self._record_request()
                logger.debug(
                    f"Rate limiter: executing request. Queue length: "
                    f"{len(self._queue)}, Current requests: {len(self._requests)}"
                )

                try:
                    result = await fn()
                except Exception as e:
                    if not future.cancelled():
                        future.set_exception(e)
                else:
                    if not future.cancelled():
                        future.set_result(result)
        finally:
            self._processing = False

    def _can_make_request(self) -> bool:
        self._clean_old_requests()
        if len(self._requests) >= self.max_requests:
            return False
        if self._last_request_time is not None:
            if self._clock() - self._last_request_time < self.min_interval:
                return False
        return True

    def _get_wait_time(self) -> float:
        """Seconds until both the window and spacing constraints allow a dispatch."""
        self._clean_old_requests()
        now = self._clock()

        until_window = 0.0
        if len(self._requests) >= self.max_requests:
            until_window = self._requests[0] + self.time_window - now

        until_interval = 0.0
        if self._last_request_time is not None:
            until_interval = self._last_request_time + self.min_interval - now

        return max(until_window, until_interval, 0.0)

    def _record_request(self) -> None:
        now = self._clock()
        self._requests.append(now)
        self._last_request_time = now

    def _clean_old_requests(self) -> None:
        cutoff = self._clock() - self.time_window
        while self._requests and self._requests[0] <= cutoff:
            self._requests.popleft()

    def get_queue_length(self) -> int:
        """Calls waiting for admission."""
        return len(self._queue)

    def get_current_request_count(self) -> int:
        """Dispatches inside the current window."""
        self._clean_old_requests()
        return len(self._requests)


def is_retryable_error(error: BaseException) -> bool:
    """Only tagged transient access faults are retried."""
    return isinstance(error, AccessError) and error.is_retryable


class RetryHandler:
    """Exponential backoff retry for async calls."""

    DEFAULT_MAX_RETRIES = 3
    DEFAULT_BASE_DELAY = 1.0
    DEFAULT_MAX_DELAY = 10.0

    @staticmethod
    async def with_exponential_backoff(
        fn: Callable[[], Awaitable[T]],
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        should_retry: Callable[[BaseException], bool] = is_retryable_error,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> T:
        """
        Call fn, retrying transient failures with exponential backoff.

        Delay before retry n (0-based) is min(base_delay * 2**n, max_delay).
        Non-retryable errors propagate on first occurrence without consuming
        a retry; after max_retries retries the last error propagates.

        Args:
            fn: Zero-argument coroutine function
            max_retries: Retries after the first attempt
            base_delay: Delay before the first retry, in seconds
            max_delay: Upper bound on any single delay
            should_retry: Classification predicate
            sleep: Awaitable sleep, injectable for tests

        Returns:
            Result of the first successful attempt
        """
        attempt = 0
        while True:
            try:
                return await fn()
            except Exception as e:
                if attempt >= max_retries or not should_retry(e):
                    raise

                delay = min(base_delay * (2**attempt), max_delay)
                logger.warning(
                    f"Attempt {attempt + 1} failed, retrying in {delay:.2f}s: {e}"
                )
                await sleep(delay)
                attempt += 1
