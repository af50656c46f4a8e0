"""
Token recommendation from scored signals.

Provides:
- TokenValidator: pre-trade liquidity, volume and metadata checks
- TokenRecommender: collect feeds, rank, validate and size the best candidate
- Fallback to SOL when nothing qualifies
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence, Union

from config.settings import SOL_MINT, ThresholdsConfig
from src.api.interfaces import SignalFeed
from src.market.market_data import MarketDataService
from src.market.models import TokenSignal
from src.risk.sizing import MarketCondition, RiskSizer
from src.signals.scorer import SignalScorer

logger = logging.getLogger(__name__)

FALLBACK_SYMBOL = "SOL"
FALLBACK_BUY_AMOUNT = 0.1
NO_CANDIDATE_REASON = "Fallback to SOL - no other tokens met criteria"
DEFAULT_REASON = "Fallback to SOL - using default recommendation"

MAX_OWNERSHIP_CONCENTRATION = 50.0  # Percent


@dataclass
class ValidationResult:
    """Outcome of pre-trade validation."""

    is_valid: bool
    reason: Optional[str] = None


@dataclass
class TokenRecommendation:
    """Token to buy and how much SOL to spend."""

    symbol: str
    address: str
    reason: str
    market_cap: float
    buy_amount: float

    @property
    def is_fallback(self) -> bool:
        return self.address == SOL_MINT

    @classmethod
    def fallback(cls, reason: str = DEFAULT_REASON) -> "TokenRecommendation":
        return cls(
            symbol=FALLBACK_SYMBOL,
            address=SOL_MINT,
            reason=reason,
            market_cap=0.0,
            buy_amount=FALLBACK_BUY_AMOUNT,
        )


class TokenValidator:
    """Checks a candidate against thresholds and token metadata."""

    def __init__(
        self,
        market_data: MarketDataService,
        thresholds: Optional[ThresholdsConfig] = None,
    ):
        self.market_data = market_data
        self.thresholds = thresholds or ThresholdsConfig()

    async def validate(self, token_address: str) -> ValidationResult:
        """
        Validate a token for trading.

        Returns:
            ValidationResult with the first failing check as reason
        """
        try:
            market = await self.market_data.get_market_data(token_address)

            if market.liquidity < self.thresholds.min_liquidity:
                return ValidationResult(
                    False,
                    f"Insufficient liquidity: {market.liquidity} < {self.thresholds.min_liquidity}",
                )

            if market.volume_24h < self.thresholds.min_volume:
                return ValidationResult(
                    False,
                    f"Insufficient 24h volume: {market.volume_24h} < {self.thresholds.min_volume}",
                )

            metadata = await self.market_data.get_token_metadata(token_address)

            if not metadata.verified:
                return ValidationResult(False, "Token is not verified")

            if metadata.suspicious_attributes:
                return ValidationResult(
                    False,
                    "Token has suspicious attributes: "
                    + ", ".join(metadata.suspicious_attributes),
                )

            if metadata.ownership_concentration > MAX_OWNERSHIP_CONCENTRATION:
                return ValidationResult(
                    False,
                    f"High ownership concentration: {metadata.ownership_concentration}%",
                )

            return ValidationResult(True)

        except Exception as e:
            logger.error(f"Error validating token {token_address}: {e}")
            return ValidationResult(False, f"Validation error: {e}")


class TokenRecommender:
    """
    Picks the token to buy next.

    Usage:
        recommender = TokenRecommender(feeds, scorer, validator, sizer)
        rec = await recommender.get_recommendation(balance, drawdown, condition)
    """

    def __init__(
        self,
        feeds: Sequence[SignalFeed],
        scorer: SignalScorer,
        validator: TokenValidator,
        sizer: Optional[RiskSizer] = None,
    ):
        self.feeds = list(feeds)
        self.scorer = scorer
        self.validator = validator
        self.sizer = sizer or RiskSizer()

    async def collect_signals(self) -> List[TokenSignal]:
        """Fetch every feed concurrently; a failing feed contributes nothing."""
        results = await asyncio.gather(
            *(feed.fetch() for feed in self.feeds),
            return_exceptions=True,
        )

        signals: List[TokenSignal] = []
        for feed, result in zip(self.feeds, results):
            if isinstance(result, Exception):
                logger.error(f"Feed {feed.name} failed: {result}")
                continue
            signals.extend(result)
        return signals

    async def get_recommendation(
        self,
        wallet_balance: Union[Decimal, float] = 0,
        drawdown: Union[Decimal, float] = 0,
        market_condition: MarketCondition = MarketCondition.NEUTRAL,
    ) -> TokenRecommendation:
        """
        Recommend a token and buy amount.

        Never raises; falls back to SOL on any failure.
        """
        try:
            logger.info("Getting token recommendations from multiple sources")

            signals = await self.collect_signals()
            ranked = self.scorer.score(signals)

            if not ranked:
                logger.warning("No suitable tokens found, defaulting to SOL")
                return TokenRecommendation.fallback(NO_CANDIDATE_REASON)

            best = ranked[0]
            validation = await self.validator.validate(best.address)
            if not validation.is_valid:
                logger.warning(f"Best token {best.symbol} failed validation: {validation.reason}")
                return TokenRecommendation.fallback(DEFAULT_REASON)

            sizing = self.sizer.calculate_position_size(
                wallet_balance, drawdown, best, market_condition
            )

            return TokenRecommendation(
                symbol=best.symbol,
                address=best.address,
                reason=", ".join(best.reasons),
                market_cap=best.market_cap,
                buy_amount=sizing.amount,
            )

        except Exception as e:
            logger.error(f"Failed to get token recommendation: {e}")
            return TokenRecommendation.fallback(DEFAULT_REASON)
