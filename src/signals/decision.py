"""
Technical trading decisions.

Provides:
- decide: buy/sell/hold from RSI, MACD momentum and volume support
- sell_amount_for_confidence: map decision confidence to a sell fraction
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Union

from src.market.models import TechnicalSignals, VolumeTrend


class DecisionAction(Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class Confidence(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


SELL_FRACTIONS = {
    Confidence.HIGH: Decimal("1.0"),
    Confidence.MEDIUM: Decimal("0.5"),
    Confidence.LOW: Decimal("0.25"),
}
DEFAULT_SELL_FRACTION = Decimal("0.1")

HIGH_VOLATILITY = 0.2
VOLUME_MARKET_CAP_SUPPORT = 0.1


@dataclass
class TradingDecision:
    """Decision with explanation."""

    should_act: bool = False
    action: DecisionAction = DecisionAction.HOLD
    confidence: Confidence = Confidence.LOW
    reason: str = "No clear signals"


def decide(
    technical: TechnicalSignals,
    volume_market_cap_ratio: float,
    volatility: float,
) -> TradingDecision:
    """
    Decide whether to buy, sell or hold.

    Buy: oversold, MACD histogram positive and meaningful relative to the
    signal line, increasing volume with volume/market cap above 0.1.
    Sell: overbought with a negative histogram.
    Confidence is medium under high volatility (> 0.2), else high.
    """
    overbought = technical.rsi > 70
    oversold = technical.rsi < 30

    macd = technical.macd
    crossover = macd.histogram > 0 and abs(macd.histogram) > abs(macd.signal) * 0.1

    volume_support = (
        technical.volume_profile.trend == VolumeTrend.INCREASING
        and volume_market_cap_ratio > VOLUME_MARKET_CAP_SUPPORT
    )

    confidence = Confidence.MEDIUM if volatility > HIGH_VOLATILITY else Confidence.HIGH

    if oversold and crossover and volume_support:
        return TradingDecision(
            should_act=True,
            action=DecisionAction.BUY,
            confidence=confidence,
            reason="Oversold with positive momentum and volume support",
        )

    if overbought and macd.histogram < 0:
        return TradingDecision(
            should_act=True,
            action=DecisionAction.SELL,
            confidence=confidence,
            reason="Overbought with negative momentum",
        )

    return TradingDecision()


def sell_amount_for_confidence(
    balance: Union[Decimal, float, str],
    confidence: Union[Confidence, str, None],
) -> Decimal:
    """Balance fraction to sell: high 100%, medium 50%, low 25%, otherwise 10%."""
    if isinstance(confidence, str):
        try:
            confidence = Confidence(confidence)
        except ValueError:
            confidence = None

    fraction = SELL_FRACTIONS.get(confidence, DEFAULT_SELL_FRACTION)
    return Decimal(str(balance)) * fraction
