"""
Technical analysis over a price/volume history.

Provides:
- TechnicalAnalyzer: composes RSI, MACD, volume profile and volatility
  into a TechnicalSignals snapshot
"""

import logging
from typing import Optional, Sequence

from src.market import indicators
from src.market.models import MarketData, TechnicalSignals

logger = logging.getLogger(__name__)


class TechnicalAnalyzer:
    """
    Computes the technical snapshot used by scoring and exit logic.

    Usage:
        analyzer = TechnicalAnalyzer()
        signals = analyzer.analyze(prices, volumes)
    """

    def __init__(self, rsi_period: int = indicators.RSI_PERIOD, rolling_macd_signal: bool = False):
        """
        Args:
            rsi_period: RSI lookback
            rolling_macd_signal: Use a 9-period rolling MACD signal line
                instead of the single-value signal (histogram always 0)
        """
        self.rsi_period = rsi_period
        self.rolling_macd_signal = rolling_macd_signal

    def rsi(self, prices: Sequence[float]) -> float:
        return indicators.rsi(prices, self.rsi_period)

    def analyze(
        self,
        prices: Optional[Sequence[float]],
        volumes: Optional[Sequence[float]] = None,
    ) -> TechnicalSignals:
        """
        Build a TechnicalSignals snapshot.

        Args:
            prices: Price history, oldest first
            volumes: Volume history, oldest first

        Returns:
            TechnicalSignals; neutral values for short or empty input
        """
        prices = list(prices or [])
        volumes = list(volumes or [])

        return TechnicalSignals(
            rsi=indicators.rsi(prices, self.rsi_period),
            macd=indicators.macd(prices, rolling_signal=self.rolling_macd_signal),
            volume_profile=indicators.volume_profile(volumes),
            volatility=indicators.volatility(prices),
        )

    def analyze_market_data(self, market: Optional[MarketData]) -> TechnicalSignals:
        """Analyze the history attached to a market snapshot."""
        if market is None:
            return TechnicalSignals()
        return self.analyze(market.price_history, market.volume_history)
