"""
Provider API Module.

Provides clients and contracts for external collaborators:
- Error taxonomy and bounded exponential-backoff retry
- Request pacing for rate-limited HTTP APIs
- Collaborator interfaces (market data, quotes, execution, wallet, feeds)
- Birdeye market data client
- Jupiter quote client

Usage:
    from src.api import BirdeyeClient, JupiterQuoteClient

    birdeye = BirdeyeClient(config.birdeye)
    market = await birdeye.get_market_data(token_address)

    jupiter = JupiterQuoteClient(config.jupiter)
    quote = await jupiter.get_quote(SOL_MINT, token_address, lamports, 100)
"""

# Errors and retry
from .errors import (
    ErrorSeverity,
    ErrorCategory,
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
    RetryConfig,
    calculate_backoff,
    is_retryable,
    retry_async,
    with_async_retry,
)

# Rate limiting
from .rate_limiter import RequestRateLimiter

# Collaborator interfaces
from .interfaces import (
    TradeDirection,
    Quote,
    ExecutionResult,
    MarketDataProvider,
    QuoteProvider,
    Executor,
    Wallet,
    SignalFeed,
)

# Provider clients
from .birdeye import BirdeyeClient
from .jupiter import JupiterQuoteClient

__all__ = [
    # Errors
    "ErrorSeverity",
    "ErrorCategory",
    "EngineError",
    "TransientError",
    "ProviderError",
    "RateLimitError",
    "ProviderTimeoutError",
    "DataInsufficiencyError",
    "ValidationError",
    "InvariantViolation",
    "InvalidSellAmountError",
    "InsufficientBalanceError",
    "RetryConfig",
    "calculate_backoff",
    "is_retryable",
    "retry_async",
    "with_async_retry",
    # Rate limiting
    "RequestRateLimiter",
    # Interfaces
    "TradeDirection",
    "Quote",
    "ExecutionResult",
    "MarketDataProvider",
    "QuoteProvider",
    "Executor",
    "Wallet",
    "SignalFeed",
    # Clients
    "BirdeyeClient",
    "JupiterQuoteClient",
]
