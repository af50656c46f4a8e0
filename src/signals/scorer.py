"""
Signal scoring and ranking.

Provides:
- merge_signals: combine per-feed signals by token address
- technical_score / social_score / market_score: tiered component scores
- ScoringWeights: per-component multipliers (reduced social weight when
  the social feed is stale)
- SignalScorer: merge, score, filter and rank candidates

Component ranges:
- Technical: -15 to 40
- Social: 0 to 30
- Market: 0 to 30
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from config.settings import ThresholdsConfig
from src.core.state_store import RecordType, StateStore
from src.market.models import (
    SocialMetrics,
    TechnicalSignals,
    TokenSignal,
    VolumeTrend,
)

logger = logging.getLogger(__name__)

# (threshold, points) tiers, checked in order; first match wins
MENTION_TIERS: List[Tuple[float, int]] = [(1000, 10), (500, 8), (200, 6), (100, 4), (50, 2)]
SENTIMENT_TIERS: List[Tuple[float, int]] = [(0.8, 10), (0.6, 8), (0.4, 6), (0.2, 4), (0.0, 2)]
INFLUENCER_TIERS: List[Tuple[float, int]] = [(10, 10), (5, 8), (3, 6), (1, 4), (0, 2)]

# Market cap is inverted: smaller caps have more room to grow
MARKET_CAP_TIERS: List[Tuple[float, int]] = [
    (100_000, 10), (500_000, 8), (1_000_000, 6), (5_000_000, 4), (10_000_000, 2),
]
VOLUME_TIERS: List[Tuple[float, int]] = [
    (1_000_000, 10), (500_000, 8), (100_000, 6), (50_000, 4), (10_000, 2),
]
LIQUIDITY_TIERS: List[Tuple[float, int]] = [
    (500_000, 10), (100_000, 8), (50_000, 6), (10_000, 4), (5_000, 2),
]


def _tier_above(value: float, tiers: Sequence[Tuple[float, int]]) -> int:
    """Points for the first tier with value strictly above its threshold."""
    for threshold, points in tiers:
        if value > threshold:
            return points
    return 0


def _tier_below(value: float, tiers: Sequence[Tuple[float, int]]) -> int:
    """Points for the first tier with value strictly below its threshold."""
    for threshold, points in tiers:
        if value < threshold:
            return points
    return 0


@dataclass(frozen=True)
class ScoringWeights:
    """Multipliers applied to each score component."""

    technical: float = 1.0
    social: float = 1.0
    market: float = 1.0

    @classmethod
    def from_shares(cls, technical: float, social: float, market: float) -> "ScoringWeights":
        """
        Build weights from component shares summing to 1.

        Equal thirds map to multipliers of 1.0.
        """
        return cls(technical=technical * 3, social=social * 3, market=market * 3)

    @classmethod
    def degraded_social(cls) -> "ScoringWeights":
        """Weights used while the social feed is stale."""
        return cls.from_shares(technical=0.35, social=0.05, market=0.6)

    def to_shares(self) -> Dict[str, float]:
        return {
            "technical": self.technical / 3,
            "social": self.social / 3,
            "market": self.market / 3,
        }

    @classmethod
    def from_shares_dict(cls, data: Dict[str, float]) -> "ScoringWeights":
        return cls.from_shares(
            technical=float(data.get("technical", 1 / 3)),
            social=float(data.get("social", 1 / 3)),
            market=float(data.get("market", 1 / 3)),
        )


# === Merge ===

def merge_signals(signals: Sequence[TokenSignal]) -> List[TokenSignal]:
    """
    Merge signals by address.

    The first signal for an address owns the metric fields. Later signals
    contribute their reasons and partial scores only. Output keeps
    first-seen order. Inputs are not mutated.
    """
    merged: Dict[str, TokenSignal] = {}

    for signal in signals:
        existing = merged.get(signal.address)
        if existing is None:
            merged[signal.address] = replace(signal, reasons=list(signal.reasons))
            continue

        existing.reasons.extend(signal.reasons)
        existing.score += signal.score

    return list(merged.values())


# === Component scores ===

def technical_score(technical: Optional[TechnicalSignals]) -> float:
    """Score RSI, MACD, volume profile and volatility."""
    if technical is None:
        return 0.0

    score = 0.0

    if technical.rsi < 30:
        score += 10  # Oversold
    elif technical.rsi > 70:
        score -= 5  # Overbought
    else:
        score += 5

    macd = technical.macd
    if macd.value > 0 and macd.value > macd.signal:
        score += 10
    elif macd.value < 0 and abs(macd.value) > abs(macd.signal):
        score -= 5

    profile = technical.volume_profile
    if profile.trend == VolumeTrend.INCREASING and not profile.unusual_activity:
        score += 10

    if technical.volatility < 0.2:
        score += 10
    elif technical.volatility > 0.5:
        score -= 5

    return score


def social_score(social: Optional[SocialMetrics]) -> float:
    """Score mentions, sentiment and influencer mentions."""
    if social is None:
        return 0.0

    return float(
        _tier_above(social.mention_count, MENTION_TIERS)
        + _tier_above(social.sentiment, SENTIMENT_TIERS)
        + _tier_above(social.influencer_mentions, INFLUENCER_TIERS)
    )


def market_score(signal: TokenSignal) -> float:
    """Score market cap (inverted), 24h volume and liquidity."""
    return float(
        _tier_below(signal.market_cap, MARKET_CAP_TIERS)
        + _tier_above(signal.volume_24h, VOLUME_TIERS)
        + _tier_above(signal.liquidity, LIQUIDITY_TIERS)
    )


def composite_score(signal: TokenSignal, weights: Optional[ScoringWeights] = None) -> float:
    """Weighted sum of the three components."""
    weights = weights or ScoringWeights()
    return (
        weights.technical * technical_score(signal.technical)
        + weights.social * social_score(signal.social)
        + weights.market * market_score(signal)
    )


def score_signals(
    signals: Sequence[TokenSignal],
    thresholds: Optional[ThresholdsConfig] = None,
    weights: Optional[ScoringWeights] = None,
    exclude_cmc: bool = False,
) -> List[TokenSignal]:
    """
    Merge, score, filter and rank signals.

    Args:
        signals: Raw per-feed signals
        thresholds: Minimum score/liquidity/volume (all inclusive)
        weights: Component multipliers
        exclude_cmc: Drop ranking-feed signals before merging

    Returns:
        Qualifying signals, highest score first; ties keep input order
    """
    thresholds = thresholds or ThresholdsConfig()

    if exclude_cmc:
        signals = [s for s in signals if s.cmc is None]

    scored = []
    for signal in merge_signals(signals):
        signal.score = signal.score + composite_score(signal, weights)
        scored.append(signal)

    qualified = [
        s for s in scored
        if s.score >= thresholds.min_score
        and s.liquidity >= thresholds.min_liquidity
        and s.volume_24h >= thresholds.min_volume
    ]
    return sorted(qualified, key=lambda s: s.score, reverse=True)


class SignalScorer:
    """
    Scores candidates using weights and feed validity from the state store.

    Data-quality checks write RecordType.SCORING_WEIGHTS and
    RecordType.CMC_DATA_VALID; the scorer reads them on every call.
    """

    def __init__(
        self,
        thresholds: Optional[ThresholdsConfig] = None,
        store: Optional[StateStore] = None,
    ):
        self.thresholds = thresholds or ThresholdsConfig()
        self.store = store

    def current_weights(self) -> ScoringWeights:
        if self.store is None:
            return ScoringWeights()
        shares = self.store.load(RecordType.SCORING_WEIGHTS)
        if not shares:
            return ScoringWeights()
        return ScoringWeights.from_shares_dict(shares)

    def cmc_data_valid(self) -> bool:
        if self.store is None:
            return True
        valid = self.store.load(RecordType.CMC_DATA_VALID)
        return valid is None or bool(valid)

    def score(self, signals: Sequence[TokenSignal]) -> List[TokenSignal]:
        """
        Rank candidates.

        Returns an empty list on internal error rather than raising.
        """
        try:
            weights = self.current_weights()
            exclude_cmc = not self.cmc_data_valid()
            if exclude_cmc:
                logger.info("Ranking feed marked invalid, ignoring CMC signals")

            ranked = score_signals(signals, self.thresholds, weights, exclude_cmc)
            logger.info(f"Scored {len(signals)} signals, {len(ranked)} qualified")
            return ranked
        except Exception as e:
            logger.error(f"Error scoring signals: {e}")
            return []
