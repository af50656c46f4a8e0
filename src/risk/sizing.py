"""
Position sizing under portfolio risk limits.

Provides:
- MarketCondition: bullish / neutral / bearish regime of the reference asset
- assess_market_condition: classify from price change and RSI
- RiskSizer: size a buy from balance, drawdown, score, volatility and liquidity

Sizing formula:
    available = balance * (1 - drawdown / max_drawdown)
    pct = min(score / 200, max_position_size)
          * max(0.5, 1 - volatility)      (when volatility is known)
          * 0.5                           (bearish market)
    size = max(min_trade_size, min(available * pct, liquidity * 0.02))
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Union

from config.settings import SOL_MINT, RiskLimitsConfig
from src.market.market_data import MarketDataService
from src.market.models import TokenSignal
from src.market.technical import TechnicalAnalyzer

logger = logging.getLogger(__name__)

Number = Union[float, int, Decimal]

MIN_TRADE_SIZE = 0.05  # SOL
MAX_LIQUIDITY_IMPACT = 0.02  # Max 2% of pool liquidity
BEARISH_SIZE_FACTOR = 0.5
MIN_VOLATILITY_FACTOR = 0.5

MARKET_CONDITION_MIN_HISTORY = 24
BULLISH_CHANGE_PERCENT = 5.0
BEARISH_CHANGE_PERCENT = -5.0
OVERBOUGHT_RSI = 70.0


class MarketCondition(Enum):
    """Broad market regime."""

    BULLISH = "bullish"
    NEUTRAL = "neutral"
    BEARISH = "bearish"


@dataclass
class SizingResult:
    """Result of a sizing calculation. amount == 0 means no trade."""

    amount: float
    reason: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def should_trade(self) -> bool:
        return self.amount > 0


def assess_market_condition(
    price: Number,
    price_history: Sequence[Number],
    analyzer: Optional[TechnicalAnalyzer] = None,
) -> MarketCondition:
    """
    Classify the market from a reference asset's 24h change and RSI.

    Args:
        price: Current price
        price_history: Hourly history, oldest first
        analyzer: RSI provider

    Returns:
        MarketCondition; NEUTRAL with fewer than 24 points or on error
    """
    try:
        if len(price_history) < MARKET_CONDITION_MIN_HISTORY:
            return MarketCondition.NEUTRAL

        analyzer = analyzer or TechnicalAnalyzer()
        previous = float(price_history[0])
        change = (float(price) - previous) / previous * 100
        rsi = analyzer.rsi([float(p) for p in price_history])

        if change > BULLISH_CHANGE_PERCENT and rsi < OVERBOUGHT_RSI:
            return MarketCondition.BULLISH
        if change < BEARISH_CHANGE_PERCENT or rsi > OVERBOUGHT_RSI:
            return MarketCondition.BEARISH
        return MarketCondition.NEUTRAL
    except Exception as e:
        logger.error(f"Error assessing market condition: {e}")
        return MarketCondition.NEUTRAL


class RiskSizer:
    """
    Computes buy sizes in SOL.

    Usage:
        sizer = RiskSizer(config.trading.risk_limits)
        result = sizer.calculate_position_size(balance, drawdown, signal, condition)
        if result.should_trade:
            ...
    """

    def __init__(
        self,
        risk_limits: Optional[RiskLimitsConfig] = None,
        min_trade_size: float = MIN_TRADE_SIZE,
        analyzer: Optional[TechnicalAnalyzer] = None,
    ):
        self.risk_limits = risk_limits or RiskLimitsConfig()
        self.min_trade_size = min_trade_size
        self.analyzer = analyzer or TechnicalAnalyzer()

    def calculate_position_size(
        self,
        wallet_balance: Number,
        drawdown: Number,
        signal: TokenSignal,
        market_condition: MarketCondition = MarketCondition.NEUTRAL,
    ) -> SizingResult:
        """
        Size a buy.

        Args:
            wallet_balance: SOL available
            drawdown: Current portfolio drawdown fraction
            signal: Scored candidate (score, liquidity, technicals)
            market_condition: Reference market regime

        Returns:
            SizingResult; amount 0 at max drawdown or on internal error
        """
        try:
            max_drawdown = self.risk_limits.max_drawdown
            available = float(wallet_balance) * (1 - float(drawdown) / max_drawdown)

            if available <= 0:
                logger.warning(
                    f"Max drawdown reached, skipping trade "
                    f"(drawdown={float(drawdown):.4f}, max={max_drawdown})"
                )
                return SizingResult(
                    amount=0.0,
                    reason="Max drawdown reached",
                    details={"drawdown": float(drawdown), "max_drawdown": max_drawdown},
                )

            percentage = min(signal.score / 200, self.risk_limits.max_position_size)

            volatility = signal.technical.volatility if signal.technical else 0.0
            if volatility:
                percentage *= max(MIN_VOLATILITY_FACTOR, 1 - volatility)

            if market_condition == MarketCondition.BEARISH:
                percentage *= BEARISH_SIZE_FACTOR

            raw_size = available * percentage
            liquidity_cap = signal.liquidity * MAX_LIQUIDITY_IMPACT
            amount = max(self.min_trade_size, min(raw_size, liquidity_cap))

            details = {
                "available_capital": available,
                "percentage": percentage,
                "raw_size": raw_size,
                "liquidity_cap": liquidity_cap,
                "market_condition": market_condition.value,
            }
            logger.debug(f"Sized {signal.symbol or signal.address}: {amount:.4f} SOL {details}")

            return SizingResult(amount=amount, reason="Sized within risk limits", details=details)

        except Exception as e:
            logger.error(f"Error calculating position size: {e}")
            return SizingResult(amount=0.0, reason=f"Sizing error: {e}")

    async def assess_reference_market(
        self,
        market_data: MarketDataService,
        reference_asset: str = SOL_MINT,
    ) -> MarketCondition:
        """Fetch the reference asset and classify the market; NEUTRAL on failure."""
        try:
            market = await market_data.get_market_data(reference_asset)
        except Exception as e:
            logger.error(f"Error assessing market condition: {e}")
            return MarketCondition.NEUTRAL

        return assess_market_condition(market.price, market.price_history, self.analyzer)
