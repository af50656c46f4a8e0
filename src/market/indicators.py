"""
Core technical indicators for token analysis.

Implements the indicators used for signal scoring and exit decisions:
- RSI (Relative Strength Index) - Momentum oscillator
- EMA (Exponential Moving Average) - SMA-seeded smoothing
- MACD (Moving Average Convergence Divergence) - Trend momentum
- Volume profile - Volume trend and spike detection
- Volatility - Standard deviation of simple returns

All functions take plain sequences of floats (oldest first) and return
scalars. Short or empty input yields neutral defaults, never an exception.
"""

from typing import Sequence

import numpy as np
import pandas as pd

from src.market.models import MACDResult, VolumeProfile, VolumeTrend

# Default periods
RSI_PERIOD = 14
MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9

# Volume trend thresholds (percent change vs window mean)
VOLUME_TREND_THRESHOLD = 20.0
VOLUME_SPIKE_STD = 2.0


def rsi(prices: Sequence[float], period: int = RSI_PERIOD) -> float:
    """
    Calculate Relative Strength Index (RSI).

    RSI measures the speed and magnitude of price changes:
    - RSI > 70: Overbought
    - RSI < 30: Oversold

    Uses Wilder's smoothing. A zero change counts as a gain.

    Args:
        prices: Price series
        period: Lookback period (default: 14)

    Returns:
        RSI value (0-100); 50 when there is not enough data
    """
    if len(prices) < period + 1:
        return 50.0

    changes = np.diff(np.asarray(prices, dtype=float))

    initial = changes[:period]
    avg_gain = initial[initial >= 0].sum() / period
    avg_loss = -initial[initial < 0].sum() / period

    for change in changes[period:]:
        gain = change if change >= 0 else 0.0
        loss = -change if change < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        # Flat series is neutral, pure gains are maximally overbought
        return 50.0 if avg_gain == 0 else 100.0

    rs = avg_gain / avg_loss
    return float(100 - 100 / (1 + rs))


def ema(series: Sequence[float], period: int) -> float:
    """
    Calculate the final Exponential Moving Average value.

    Seeds with the SMA of the first `period` values, then applies
    `value * k + prev * (1 - k)` with `k = 2 / (period + 1)`.

    Args:
        series: Input values
        period: EMA period

    Returns:
        Final EMA; the last element when shorter than `period`; 0.0 when empty
    """
    if len(series) == 0:
        return 0.0
    if len(series) < period:
        return float(series[-1])

    values = np.asarray(series, dtype=float)
    seed = values[:period].mean()
    seeded = pd.Series(np.concatenate(([seed], values[period:])))

    k = 2 / (period + 1)
    return float(seeded.ewm(alpha=k, adjust=False).mean().iloc[-1])


def macd(prices: Sequence[float], rolling_signal: bool = False) -> MACDResult:
    """
    Calculate MACD (Moving Average Convergence Divergence).

    MACD consists of:
    - MACD Line: Fast EMA - Slow EMA
    - Signal Line: EMA of MACD Line
    - Histogram: MACD Line - Signal Line

    By default the signal line is the EMA of the single latest MACD value,
    which equals the MACD value itself (histogram always 0). With
    `rolling_signal=True` the signal is a 9-period EMA over the MACD series.

    Args:
        prices: Price series
        rolling_signal: Use a conventional rolling signal line

    Returns:
        MACDResult; zeros when fewer than 26 prices
    """
    if len(prices) < MACD_SLOW:
        return MACDResult()

    value = ema(prices, MACD_FAST) - ema(prices, MACD_SLOW)

    if not rolling_signal:
        signal = ema([value], MACD_SIGNAL)
        return MACDResult(value=value, signal=signal, histogram=value - signal)

    close = pd.Series(np.asarray(prices, dtype=float))
    fast = close.ewm(span=MACD_FAST, adjust=False).mean()
    slow = close.ewm(span=MACD_SLOW, adjust=False).mean()
    macd_line = (fast - slow).iloc[MACD_SLOW - 1:]
    signal_line = macd_line.ewm(span=MACD_SIGNAL, adjust=False).mean()

    signal = float(signal_line.iloc[-1])
    return MACDResult(value=value, signal=signal, histogram=value - signal)


def volume_profile(volumes: Sequence[float]) -> VolumeProfile:
    """
    Classify the latest volume against the window mean.

    Args:
        volumes: Volume series

    Returns:
        VolumeProfile with trend, spike flag and confidence (0-100)
    """
    if len(volumes) < 2:
        return VolumeProfile()

    values = np.asarray(volumes, dtype=float)
    mean = values.mean()
    std = values.std()  # Population std
    recent = values[-1]

    if mean == 0:
        return VolumeProfile(
            trend=VolumeTrend.STABLE,
            unusual_activity=bool(abs(recent - mean) > VOLUME_SPIKE_STD * std),
            confidence=0.0,
        )

    change = (recent - mean) / mean * 100

    if change > VOLUME_TREND_THRESHOLD:
        trend = VolumeTrend.INCREASING
    elif change < -VOLUME_TREND_THRESHOLD:
        trend = VolumeTrend.DECREASING
    else:
        trend = VolumeTrend.STABLE

    return VolumeProfile(
        trend=trend,
        unusual_activity=bool(abs(recent - mean) > VOLUME_SPIKE_STD * std),
        confidence=float(min(100.0, abs(change))),
    )


def volatility(prices: Sequence[float]) -> float:
    """
    Calculate price volatility as the std of simple returns.

    Returns whose previous price is zero are skipped.

    Args:
        prices: Price series

    Returns:
        Population standard deviation of returns; 0.0 with fewer than 2 prices
    """
    if len(prices) < 2:
        return 0.0

    values = np.asarray(prices, dtype=float)
    previous = values[:-1]
    valid = previous != 0
    if not valid.any():
        return 0.0

    returns = (values[1:][valid] - previous[valid]) / previous[valid]
    return float(returns.std())
