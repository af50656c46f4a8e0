"""
Tests for engine error handling.

Tests cover:
- Error classification
- Retry logic
- Backoff calculation
"""

import asyncio
import pytest
import requests
from unittest.mock import AsyncMock, patch

from src.api.errors import (
    EngineError,
    TransientError,
    ProviderError,
    RateLimitError,
    ProviderTimeoutError,
    DataInsufficiencyError,
    ValidationError,
    InvariantViolation,
    InvalidSellAmountError,
    InsufficientBalanceError,
    ErrorCategory,
    ErrorSeverity,
    RetryConfig,
    calculate_backoff,
    is_retryable,
    retry_async,
    with_async_retry,
)


class TestErrorClassification:
    """Tests for the error taxonomy."""

    def test_transient_errors_are_retryable(self):
        assert TransientError("boom").retryable
        assert ProviderError("500", status_code=500).retryable
        assert RateLimitError("429", status_code=429).retryable
        assert ProviderTimeoutError("slow").retryable

    def test_non_transient_errors_are_not_retryable(self):
        assert not DataInsufficiencyError("short").retryable
        assert not ValidationError("bad").retryable
        assert not InvalidSellAmountError(0).retryable

    def test_categories(self):
        assert RateLimitError("x").category == ErrorCategory.RATE_LIMIT
        assert ProviderTimeoutError("x").category == ErrorCategory.TIMEOUT
        assert InsufficientBalanceError(2, 1).category == ErrorCategory.INVARIANT
        assert DataInsufficiencyError("x").severity == ErrorSeverity.LOW

    def test_invalid_sell_amount_message(self):
        error = InvalidSellAmountError(-1)
        assert isinstance(error, InvariantViolation)
        assert error.message == "Invalid sell amount"
        assert error.details == {"amount": "-1"}

    def test_insufficient_balance_details(self):
        error = InsufficientBalanceError(150, 100)
        assert error.message == "Insufficient balance"
        assert error.details == {"amount": "150", "balance": "100"}

    def test_to_dict(self):
        error = ProviderError("Bad gateway", status_code=502, details={"url": "/x"})
        data = error.to_dict()

        assert data["error"] == "ProviderError"
        assert data["category"] == "provider"
        assert data["severity"] == "MEDIUM"
        assert data["details"] == {"url": "/x"}
        assert error.status_code == 502


class TestIsRetryable:
    """Tests for is_retryable."""

    def test_engine_errors_use_flag(self):
        assert is_retryable(TransientError("x"))
        assert not is_retryable(InvariantViolation("x"))

    def test_network_exceptions(self):
        assert is_retryable(requests.ConnectionError())
        assert is_retryable(requests.Timeout())
        assert is_retryable(asyncio.TimeoutError())

    def test_other_exceptions(self):
        assert not is_retryable(ValueError("x"))
        assert not is_retryable(KeyError("x"))


class TestBackoffCalculation:
    """Tests for calculate_backoff."""

    def test_exponential_backoff(self):
        config = RetryConfig(base_delay=1.0, exponential_base=2.0, jitter=False)

        assert calculate_backoff(0, config) == 1.0
        assert calculate_backoff(1, config) == 2.0
        assert calculate_backoff(2, config) == 4.0

    def test_max_delay_cap(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)
        assert calculate_backoff(10, config) == 5.0

    def test_jitter_adds_at_most_quarter(self):
        config = RetryConfig(base_delay=4.0, jitter=True)
        for _ in range(20):
            delay = calculate_backoff(0, config)
            assert 4.0 <= delay <= 5.0


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        operation = AsyncMock(return_value="ok")

        result = await retry_async(operation, RetryConfig())

        assert result == "ok"
        assert operation.call_count == 1

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        operation = AsyncMock(side_effect=[TransientError("1"), TransientError("2"), "ok"])

        with patch("src.api.errors.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await retry_async(operation, RetryConfig(max_retries=3))

        assert result == "ok"
        assert operation.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        operation = AsyncMock(side_effect=ProviderError("down"))

        with patch("src.api.errors.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(ProviderError):
                await retry_async(operation, RetryConfig(max_retries=3))

        assert operation.call_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        operation = AsyncMock(side_effect=ValueError("bad"))

        with patch("src.api.errors.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ValueError):
                await retry_async(operation, RetryConfig(max_retries=3))

        assert operation.call_count == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_decorator(self):
        calls = []

        @with_async_retry(RetryConfig(max_retries=2))
        async def flaky(value):
            calls.append(value)
            if len(calls) == 1:
                raise RateLimitError("slow down")
            return value * 2

        with patch("src.api.errors.asyncio.sleep", new_callable=AsyncMock):
            assert await flaky(21) == 42

        assert calls == [21, 21]
