"""Unit tests for with_retry and RateLimiter."""

import pytest

from docsync.services.rate_limiter import RateLimiter
from docsync.utils.retry import RetryConfig, with_retry


class RecordingSleep:
    def __init__(self, clock=None):
        self.delays = []
        self.clock = clock

    async def __call__(self, seconds):
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.advance(int(seconds * 1000))


class Flaky:
    def __init__(self, failures, result="ok"):
        self.failures = failures
        self.result = result
        self.attempts = 0

    async def __call__(self):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError(f"attempt {self.attempts} failed")
        return self.result


class TestWithRetry:
    """Test cases for with_retry."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt_does_not_sleep(self):
        sleep = RecordingSleep()
        fn = Flaky(failures=0)

        assert await with_retry(fn, RetryConfig(), sleep=sleep) == "ok"
        assert fn.attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_exponential_backoff_sequence(self):
        """Two failures sleep 1s then 2s before the third attempt succeeds."""
        sleep = RecordingSleep()
        fn = Flaky(failures=2)

        result = await with_retry(fn, RetryConfig(max_retries=3, delay_ms=1000), sleep=sleep)

        assert result == "ok"
        assert fn.attempts == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_fixed_backoff(self):
        sleep = RecordingSleep()
        fn = Flaky(failures=2)

        await with_retry(fn, RetryConfig(max_retries=3, delay_ms=250, exponential_backoff=False), sleep=sleep)

        assert sleep.delays == [0.25, 0.25]

    @pytest.mark.asyncio
    async def test_exhausted_retries_reraise_last_error(self):
        """No sleep follows the final attempt and the original error surfaces."""
        sleep = RecordingSleep()
        fn = Flaky(failures=10)

        with pytest.raises(ConnectionError, match="attempt 3 failed"):
            await with_retry(fn, RetryConfig(max_retries=3, delay_ms=1000), sleep=sleep)

        assert fn.attempts == 3
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_single_attempt_config(self):
        fn = Flaky(failures=1)

        with pytest.raises(ConnectionError):
            await with_retry(fn, RetryConfig(max_retries=1), sleep=RecordingSleep())
        assert fn.attempts == 1

    @pytest.mark.asyncio
    async def test_rejects_zero_retries(self):
        with pytest.raises(ValueError):
            await with_retry(Flaky(0), RetryConfig(max_retries=0))


class TestRateLimiter:
    """Test cases for the sliding-window RateLimiter."""

    @pytest.mark.asyncio
    async def test_allows_requests_under_limit(self, clock):
        sleep = RecordingSleep(clock)
        limiter = RateLimiter(max_requests=3, window_ms=1000, clock=clock.ms, sleep=sleep)

        for _ in range(3):
            await limiter.wait_if_needed()

        assert sleep.delays == []
        assert limiter.remaining_requests() == 0
        assert limiter.usage_percentage() == 100

    @pytest.mark.asyncio
    async def test_blocks_until_window_frees(self, clock):
        """The fourth call waits for the oldest request to leave the window."""
        sleep = RecordingSleep(clock)
        limiter = RateLimiter(max_requests=3, window_ms=1000, clock=clock.ms, sleep=sleep)

        for _ in range(3):
            await limiter.wait_if_needed()
            clock.advance(100)
        await limiter.wait_if_needed()

        assert sleep.delays == [0.7]
        assert limiter.remaining_requests() == 0

    @pytest.mark.asyncio
    async def test_window_expiry_restores_capacity(self, clock):
        limiter = RateLimiter(max_requests=2, window_ms=1000, clock=clock.ms, sleep=RecordingSleep(clock))

        await limiter.wait_if_needed()
        await limiter.wait_if_needed()
        clock.advance(1000)

        assert limiter.remaining_requests() == 2
        assert limiter.usage_percentage() == 0

    @pytest.mark.asyncio
    async def test_reset(self, clock):
        limiter = RateLimiter(max_requests=2, window_ms=1000, clock=clock.ms)
        await limiter.wait_if_needed()

        limiter.reset()

        assert limiter.remaining_requests() == 2

    def test_factories(self):
        assert RateLimiter.for_openai().max_requests == 5000
        assert RateLimiter.for_openai().window_ms == 60_000
        assert RateLimiter.for_drive().max_requests == 900
        assert RateLimiter.for_drive().window_ms == 100_000
        assert RateLimiter.for_qdrant().max_requests == 1000

    @pytest.mark.parametrize("max_requests,window_ms", [(0, 1000), (5, 0)])
    def test_invalid_configuration(self, max_requests, window_ms):
        with pytest.raises(ValueError):
            RateLimiter(max_requests=max_requests, window_ms=window_ms)
