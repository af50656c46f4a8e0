"""Configuration module for the Degen Trader risk engine."""

from .settings import (
    SOL_MINT,
    IntervalsConfig,
    ThresholdsConfig,
    RiskLimitsConfig,
    SlippageSettings,
    TradingConfig,
    BirdeyeConfig,
    JupiterConfig,
    CircuitBreakerConfig,
    DataQualityConfig,
    StateStoreConfig,
    NotificationConfig,
    LoggingConfig,
    EngineConfig,
    validate_trading_config,
)

__all__ = [
    "SOL_MINT",
    "IntervalsConfig",
    "ThresholdsConfig",
    "RiskLimitsConfig",
    "SlippageSettings",
    "TradingConfig",
    "BirdeyeConfig",
    "JupiterConfig",
    "CircuitBreakerConfig",
    "DataQualityConfig",
    "StateStoreConfig",
    "NotificationConfig",
    "LoggingConfig",
    "EngineConfig",
    "validate_trading_config",
]
