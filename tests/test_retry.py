"""Tests for retry module."""

import time

import pytest

from tweetvault.core.exceptions import (
    ExtractorError,
    ExtractorUnavailableError,
    MediaFetchError,
)
from tweetvault.core.retry import compute_delay, retry_async


class TestComputeDelay:
    def test_fixed_delay_with_unit_backoff(self):
        delays = [compute_delay(n, 5.0, 60.0, 1.0, False) for n in range(1, 5)]
        assert delays == [5.0, 5.0, 5.0, 5.0]

    def test_exponential_delay(self):
        delays = [compute_delay(n, 1.0, 60.0, 2.0, False) for n in range(1, 5)]
        assert delays == [1.0, 2.0, 4.0, 8.0]

    def test_max_delay_caps(self):
        assert compute_delay(10, 1.0, 30.0, 2.0, False) == 30.0

    def test_jitter_stays_within_bounds(self):
        for _ in range(50):
            delay = compute_delay(1, 1.0, 60.0, 2.0, True)
            assert 0.5 <= delay <= 1.5


class TestRetrySucceeds:
    """Tests for successful attempts."""

    @pytest.mark.asyncio
    async def test_returns_result_on_success(self):
        call_count = 0

        async def successful_func() -> str:
            nonlocal call_count
            call_count += 1
            return "success"

        result = await retry_async(successful_func)

        assert result == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_passes_args_and_kwargs(self):
        """Correctly passes arguments to function."""

        async def func_with_args(a: int, b: int, multiplier: int = 1) -> int:
            return (a + b) * multiplier

        result = await retry_async(func_with_args, 3, 4, multiplier=2, base_delay=0)

        assert result == 14

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        call_count = 0

        async def fail_then_succeed() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise MediaFetchError("HTTP 503", status_code=503)
            return "eventual success"

        result = await retry_async(fail_then_succeed, base_delay=0.01)

        assert result == "eventual success"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_fixed_delay_timing(self):
        """backoff_factor=1.0 and no jitter keep every gap at base_delay."""
        timestamps: list[float] = []

        async def record_timestamps() -> str:
            timestamps.append(time.monotonic())
            if len(timestamps) < 3:
                raise ExtractorError("exit 1")
            return "done"

        await retry_async(
            record_timestamps, base_delay=0.1, backoff_factor=1.0, jitter=False
        )

        gaps = [b - a for a, b in zip(timestamps, timestamps[1:])]
        assert len(gaps) == 2
        assert all(0.08 <= gap < 0.19 for gap in gaps)


class TestRetryMaxAttempts:
    @pytest.mark.asyncio
    async def test_raises_last_error_after_max_attempts(self):
        call_count = 0

        async def always_fails() -> str:
            nonlocal call_count
            call_count += 1
            raise MediaFetchError(f"failure {call_count}")

        with pytest.raises(MediaFetchError, match="failure 4"):
            await retry_async(always_fails, max_attempts=4, base_delay=0)

        assert call_count == 4

    @pytest.mark.asyncio
    async def test_on_retry_called_between_attempts(self):
        retries: list[int] = []

        async def always_fails() -> str:
            raise MediaFetchError("nope")

        with pytest.raises(MediaFetchError):
            await retry_async(
                always_fails,
                max_attempts=4,
                base_delay=0,
                on_retry=lambda attempt, exc: retries.append(attempt),
            )

        assert retries == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self):
        async def noop() -> None:
            return None

        with pytest.raises(ValueError):
            await retry_async(noop, max_attempts=0)


class TestRetryNonRetryableErrors:
    """Tests for non-retryable error handling."""

    @pytest.mark.asyncio
    async def test_unavailable_extractor_raised_immediately(self):
        call_count = 0

        async def missing_binary() -> str:
            nonlocal call_count
            call_count += 1
            raise ExtractorUnavailableError("yt-dlp not found")

        with pytest.raises(ExtractorUnavailableError):
            await retry_async(missing_binary, max_attempts=5, base_delay=0.01)

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retryable_overridden_to_false(self):
        call_count = 0

        async def no_retry() -> str:
            nonlocal call_count
            call_count += 1
            raise MediaFetchError("HTTP 400", status_code=400, retryable=False)

        with pytest.raises(MediaFetchError):
            await retry_async(no_retry, max_attempts=5, base_delay=0.01)

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_plain_exception_is_retried(self):
        call_count = 0

        async def flaky() -> str:
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise OSError("disk hiccup")
            return "ok"

        assert await retry_async(flaky, base_delay=0) == "ok"
        assert call_count == 2
