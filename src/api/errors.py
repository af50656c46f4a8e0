"""
Engine Error Handling.

Error taxonomy and retry helpers shared by providers and the engine:
- Error classification and severity
- Retry logic with exponential backoff
- Rate limit handling

Taxonomy:
- TransientError: timeouts, HTTP errors, rate limits (retried, then degraded)
- DataInsufficiencyError: too-short history or missing metadata
- ValidationError: asset rejected by liquidity/volume/verification checks
- InvariantViolation: invalid sell amount, insufficient balance (never retried)
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum, auto
from functools import wraps
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

import requests

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    LOW = auto()       # Informational, can continue
    MEDIUM = auto()    # Warning, may need attention
    HIGH = auto()      # Error, operation failed
    CRITICAL = auto()  # Critical, pause trading


class ErrorCategory(Enum):
    """Categories of engine errors."""
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    TIMEOUT = "timeout"
    PROVIDER = "provider"
    DATA_INSUFFICIENT = "data_insufficient"
    VALIDATION = "validation"
    INVARIANT = "invariant"
    UNKNOWN = "unknown"


class EngineError(Exception):
    """Base exception for the risk engine."""

    category = ErrorCategory.UNKNOWN
    severity = ErrorSeverity.HIGH
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging and result payloads."""
        return {
            "error": type(self).__name__,
            "category": self.category.value,
            "severity": self.severity.name,
            "message": self.message,
            "details": self.details,
        }


class TransientError(EngineError):
    """Temporary I/O failure; safe to retry."""
    category = ErrorCategory.NETWORK
    severity = ErrorSeverity.MEDIUM
    retryable = True


class ProviderError(TransientError):
    """Upstream API returned an error response."""
    category = ErrorCategory.PROVIDER

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        super().__init__(message, details)


class RateLimitError(ProviderError):
    """Upstream API rate limit hit."""
    category = ErrorCategory.RATE_LIMIT


class ProviderTimeoutError(TransientError):
    """Upstream API did not answer in time."""
    category = ErrorCategory.TIMEOUT


class DataInsufficiencyError(EngineError):
    """Not enough data to compute a metric."""
    category = ErrorCategory.DATA_INSUFFICIENT
    severity = ErrorSeverity.LOW


class ValidationError(EngineError):
    """Asset failed a pre-trade validation check."""
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.LOW


class InvariantViolation(EngineError):
    """Request would break a trading invariant; rejected before submission."""
    category = ErrorCategory.INVARIANT


class InvalidSellAmountError(InvariantViolation):
    """Sell amount is missing, zero or negative."""

    def __init__(self, amount: Any):
        super().__init__("Invalid sell amount", {"amount": str(amount)})


class InsufficientBalanceError(InvariantViolation):
    """Sell amount exceeds the available balance."""

    def __init__(self, amount: Any, balance: Any):
        super().__init__(
            "Insufficient balance",
            {"amount": str(amount), "balance": str(balance)},
        )


T = TypeVar("T")

# Network exceptions from the HTTP stack that are treated as transient
RETRYABLE_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    TransientError,
    requests.ConnectionError,
    requests.Timeout,
    asyncio.TimeoutError,
)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3  # Total attempts
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = False  # Add randomness to prevent thundering herd


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """
    Calculate backoff time for retry.

    Args:
        attempt: Current attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Seconds to wait before retry (base * exponential_base ** attempt)
    """
    delay = config.base_delay * (config.exponential_base ** attempt)
    delay = min(delay, config.max_delay)

    # Add jitter (up to 25% of delay)
    if config.jitter and delay > 0:
        delay += delay * 0.25 * random.random()

    return delay


def is_retryable(error: BaseException) -> bool:
    """Check whether an exception should be retried."""
    if isinstance(error, EngineError):
        return error.retryable
    return isinstance(error, RETRYABLE_EXCEPTIONS)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    description: str = "operation",
) -> T:
    """
    Run an async operation with bounded exponential-backoff retry.

    Non-retryable errors propagate immediately. After the final attempt
    the last error propagates to the caller, which degrades to a default.

    Args:
        operation: Zero-argument coroutine factory
        config: Retry configuration
        description: Name used in log messages

    Returns:
        Result of the first successful attempt
    """
    if config is None:
        config = RetryConfig()

    attempts = max(1, config.max_retries)
    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e) or attempt >= attempts - 1:
                raise

            backoff = calculate_backoff(attempt, config)
            logger.warning(
                f"Retry {attempt + 1}/{attempts} for {description} "
                f"after {type(e).__name__}: {e}, waiting {backoff:.1f}s"
            )
            await asyncio.sleep(backoff)

    raise RuntimeError(f"Retry failed for {description}")


def with_async_retry(
    config: Optional[RetryConfig] = None,
) -> Callable:
    """
    Decorator for async functions with automatic retry on transient errors.

    Usage:
        @with_async_retry(RetryConfig(max_retries=5))
        async def api_call():
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await retry_async(
                lambda: func(*args, **kwargs),
                config,
                description=func.__name__,
            )

        return wrapper
    return decorator
