"""
Unit tests for the FIFO rate limiter and exponential backoff retry.
"""

import asyncio
import time

import pytest

from amm_arbitrage.exceptions import AccessError, AccessFaultKind
from amm_arbitrage.rate_limiter import RateLimiter, RetryHandler, is_retryable_error

TOLERANCE = 0.01


class TestRateLimiter:
    """Test admission order and spacing"""

    def test_rejects_invalid_parameters(self):
        with pytest.raises(ValueError):
            RateLimiter(max_requests=0, time_window=1.0)
        with pytest.raises(ValueError):
            RateLimiter(max_requests=1, time_window=0)
        with pytest.raises(ValueError):
            RateLimiter(max_requests=1, time_window=1.0, min_interval=-0.1)

    @pytest.mark.asyncio
    async def test_window_limits_dispatches(self):
        """No more than max_requests dispatches within any window."""
        limiter = RateLimiter(max_requests=3, time_window=0.2)
        dispatched = []

        async def request():
            dispatched.append(time.monotonic())

        await asyncio.gather(*[limiter.execute(request) for _ in range(5)])

        assert len(dispatched) == 5
        assert dispatched[3] - dispatched[0] >= 0.2 - TOLERANCE
        assert dispatched[4] - dispatched[1] >= 0.2 - TOLERANCE

    @pytest.mark.asyncio
    async def test_min_interval_spacing(self):
        limiter = RateLimiter(max_requests=100, time_window=1.0, min_interval=0.05)
        dispatched = []

        async def request():
            dispatched.append(time.monotonic())

        await asyncio.gather(*[limiter.execute(request) for _ in range(4)])

        gaps = [b - a for a, b in zip(dispatched, dispatched[1:])]
        assert all(gap >= 0.05 - TOLERANCE for gap in gaps)

    @pytest.mark.asyncio
    async def test_fifo_order_and_results(self):
        limiter = RateLimiter(max_requests=100, time_window=1.0)
        order = []

        def make_request(i):
            async def request():
                order.append(i)
                return i * 10

            return request

        results = await asyncio.gather(*[limiter.execute(make_request(i)) for i in range(6)])

        assert order == list(range(6))
        assert results == [0, 10, 20, 30, 40, 50]

    @pytest.mark.asyncio
    async def test_one_call_in_flight(self):
        limiter = RateLimiter(max_requests=100, time_window=1.0)
        in_flight = 0
        peak = 0

        async def request():
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1

        await asyncio.gather(*[limiter.execute(request) for _ in range(4)])

        assert peak == 1

    @pytest.mark.asyncio
    async def test_error_reaches_caller_and_queue_continues(self):
        limiter = RateLimiter(max_requests=100, time_window=1.0)

        async def failing():
            raise ValueError("boom")

        async def succeeding():
            return "ok"

        results = await asyncio.gather(
            limiter.execute(failing), limiter.execute(succeeding), return_exceptions=True
        )

        assert isinstance(results[0], ValueError)
        assert results[1] == "ok"

    @pytest.mark.asyncio
    async def test_stats(self):
        limiter = RateLimiter(max_requests=100, time_window=5.0)

        async def request():
            return None

        for _ in range(3):
            await limiter.execute(request)

        assert limiter.get_queue_length() == 0
        assert limiter.get_current_request_count() == 3

    def test_old_requests_expire(self):
        now = [100.0]
        limiter = RateLimiter(max_requests=2, time_window=10.0, clock=lambda: now[0])

        limiter._record_request()
        limiter._record_request()
        assert not limiter._can_make_request()
        assert limiter._get_wait_time() == pytest.approx(10.0)

        now[0] = 110.0
        assert limiter._can_make_request()
        assert limiter.get_current_request_count() == 0

    def test_wait_time_takes_larger_constraint(self):
        now = [0.0]
        limiter = RateLimiter(
            max_requests=1, time_window=1.0, min_interval=3.0, clock=lambda: now[0]
        )
        limiter._record_request()

        now[0] = 0.5
        assert limiter._get_wait_time() == pytest.approx(2.5)


def flaky(errors, result="done"):
    """Coroutine function raising each of errors in turn, then returning result."""
    attempts = []

    async def call():
        attempts.append(len(attempts))
        if len(attempts) <= len(errors):
            raise errors[len(attempts) - 1]
        return result

    call.attempts = attempts
    return call


class TestRetryHandler:
    """Test backoff classification and delays"""

    def test_retryable_classification(self):
        assert is_retryable_error(AccessError("x", kind=AccessFaultKind.RATE_LIMITED))
        assert is_retryable_error(AccessError("x", kind=AccessFaultKind.NETWORK_FAILURE))
        assert is_retryable_error(AccessError("x", kind=AccessFaultKind.SERVER_FAULT))
        assert not is_retryable_error(AccessError("x", kind=AccessFaultKind.PERMANENT_FAULT))
        assert not is_retryable_error(ValueError("rate limit"))

    @pytest.mark.asyncio
    async def test_permanent_error_attempted_once(self, recording_sleep):
        call = flaky([AccessError("reverted", kind=AccessFaultKind.PERMANENT_FAULT)])

        with pytest.raises(AccessError):
            await RetryHandler.with_exponential_backoff(call, max_retries=3, sleep=recording_sleep)

        assert len(call.attempts) == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_untagged_error_attempted_once(self, recording_sleep):
        call = flaky([KeyError("missing")])

        with pytest.raises(KeyError):
            await RetryHandler.with_exponential_backoff(call, sleep=recording_sleep)

        assert len(call.attempts) == 1

    @pytest.mark.asyncio
    async def test_transient_errors_retried(self, recording_sleep):
        call = flaky(
            [
                AccessError("429", kind=AccessFaultKind.RATE_LIMITED),
                AccessError("timeout", kind=AccessFaultKind.NETWORK_FAILURE),
            ]
        )

        result = await RetryHandler.with_exponential_backoff(
            call, max_retries=3, base_delay=1.0, sleep=recording_sleep
        )

        assert result == "done"
        assert len(call.attempts) == 3
        assert recording_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, recording_sleep):
        error = AccessError("502", kind=AccessFaultKind.SERVER_FAULT)
        call = flaky([error] * 10)

        with pytest.raises(AccessError) as exc_info:
            await RetryHandler.with_exponential_backoff(
                call, max_retries=3, base_delay=1.0, max_delay=10.0, sleep=recording_sleep
            )

        assert exc_info.value is error
        assert len(call.attempts) == 4
        assert recording_sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_delay_capped(self, recording_sleep):
        call = flaky([AccessError("x", kind=AccessFaultKind.RATE_LIMITED)] * 10)

        with pytest.raises(AccessError):
            await RetryHandler.with_exponential_backoff(
                call, max_retries=4, base_delay=1.0, max_delay=3.0, sleep=recording_sleep
            )

        assert recording_sleep.delays == [1.0, 2.0, 3.0, 3.0]

    @pytest.mark.asyncio
    async def test_zero_retries(self, recording_sleep):
        call = flaky([AccessError("x", kind=AccessFaultKind.RATE_LIMITED)])

        with pytest.raises(AccessError):
            await RetryHandler.with_exponential_backoff(call, max_retries=0, sleep=recording_sleep)

        assert len(call.attempts) == 1

    @pytest.mark.asyncio
    async def test_custom_predicate(self, recording_sleep):
        call = flaky([ValueError("retry me")])

        result = await RetryHandler.with_exponential_backoff(
            call, should_retry=lambda e: isinstance(e, ValueError), sleep=recording_sleep
        )

        assert result == "done"
        assert recording_sleep.delays == [1.0]
