"""
Retry executor tests.

Backoff sleeps are injected as AsyncMock so nothing actually waits.
"""
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from graph.errors import ErrorCode, ProviderError
from graph.retry import MAX_BACKOFF_MS, calculate_backoff, execute_with_retry, is_retryable_error


class TestExecuteWithRetry:

    @pytest.mark.asyncio
    async def test_rate_limited_is_attempted_three_times(self):
        err = ProviderError("openrouter rate limited", ErrorCode.RATE_LIMITED, 429, "openrouter")
        op = AsyncMock(side_effect=err)
        sleep = AsyncMock()

        with pytest.raises(ProviderError) as exc_info:
            await execute_with_retry(op, max_attempts=3, sleep=sleep)

        assert op.await_count == 3
        assert exc_info.value is err
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_authentication_error_is_not_retried(self):
        err = ProviderError("auth failed", ErrorCode.AUTHENTICATION_ERROR, 401, "groq")
        op = AsyncMock(side_effect=err)
        sleep = AsyncMock()

        with pytest.raises(ProviderError) as exc_info:
            await execute_with_retry(op, max_attempts=3, sleep=sleep)

        assert op.await_count == 1
        assert exc_info.value is err
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_response_is_not_retried(self):
        op = AsyncMock(side_effect=ProviderError("Empty response", ErrorCode.INVALID_RESPONSE, 200))
        with pytest.raises(ProviderError):
            await execute_with_retry(op, sleep=AsyncMock())
        assert op.await_count == 1

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self):
        op = AsyncMock(side_effect=[
            ProviderError("boom", ErrorCode.UNKNOWN, 503),
            "ok",
        ])
        sleep = AsyncMock()

        result = await execute_with_retry(op, max_attempts=3, sleep=sleep)

        assert result == "ok"
        assert op.await_count == 2
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_backoff_delays_double(self):
        op = AsyncMock(side_effect=ProviderError("timeout", ErrorCode.TIMEOUT))
        sleep = AsyncMock()

        with patch("graph.retry.random.random", return_value=0.5):  # zero jitter
            with pytest.raises(ProviderError):
                await execute_with_retry(op, max_attempts=3, initial_backoff_ms=1000, sleep=sleep)

        delays = [c.args[0] for c in sleep.await_args_list]
        assert delays == pytest.approx([1.0, 2.0])


class TestBackoff:

    def test_jitter_bounds(self):
        for attempt in (1, 2, 3):
            base = 1000 * 2 ** (attempt - 1)
            for _ in range(50):
                d = calculate_backoff(attempt, 1000)
                assert base * 0.8 <= d <= base * 1.2

    def test_capped(self):
        assert calculate_backoff(20, 1000) == MAX_BACKOFF_MS


class TestRetryableClassification:

    @pytest.mark.parametrize("err,expected", [
        (ProviderError("x", ErrorCode.RATE_LIMITED, 429), True),
        (ProviderError("x", ErrorCode.TIMEOUT), True),
        (ProviderError("x", ErrorCode.NETWORK_ERROR), True),
        (ProviderError("x", ErrorCode.UNKNOWN, 500), True),
        (ProviderError("x", ErrorCode.UNKNOWN, 502), True),
        (ProviderError("x", ErrorCode.UNKNOWN, 400), False),
        (ProviderError("x", ErrorCode.UNKNOWN, 404), False),
        (ProviderError("x", ErrorCode.AUTHENTICATION_ERROR, 401), False),
        (ProviderError("x", ErrorCode.AUTHENTICATION_ERROR, 403), False),
        (ProviderError("x", ErrorCode.INVALID_RESPONSE, 200), False),
        (httpx.ConnectError("refused"), True),
        (httpx.ReadTimeout("slow"), True),
        (ValueError("nope"), False),
    ])
    def test_classification(self, err, expected):
        assert is_retryable_error(err) is expected
