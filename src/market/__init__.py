"""
Market Data Module.

Provides:
- Candidate, snapshot and metadata models
- TTL cache for market data, prices and metadata
- Pure indicator functions (RSI, EMA, MACD, volume profile, volatility)
- TechnicalAnalyzer producing TechnicalSignals from price/volume history

The MarketDataService facade and the signal feeds are imported from
src.market.market_data and src.market.feeds.
"""

from .models import (
    VolumeTrend,
    MACDResult,
    VolumeProfile,
    TechnicalSignals,
    SocialMetrics,
    CMCMetrics,
    TokenSignal,
    MarketData,
    TokenMetadata,
)
from .cache import (
    CacheKeyClass,
    CacheEntry,
    MarketDataCache,
)
from . import indicators
from .technical import TechnicalAnalyzer

__all__ = [
    # Models
    "VolumeTrend",
    "MACDResult",
    "VolumeProfile",
    "TechnicalSignals",
    "SocialMetrics",
    "CMCMetrics",
    "TokenSignal",
    "MarketData",
    "TokenMetadata",
    # Cache
    "CacheKeyClass",
    "CacheEntry",
    "MarketDataCache",
    # Analysis
    "indicators",
    "TechnicalAnalyzer",
]
