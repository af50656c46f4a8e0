"""
Signal Scoring Module.

Provides:
- SignalScorer: merges, scores and ranks feed candidates
- TokenRecommender: picks, validates and sizes the next buy
- decide: buy/sell/hold decision from technical signals

Usage:
    from src.signals import SignalScorer, TokenRecommender, TokenValidator

    scorer = SignalScorer(config.trading.thresholds, store)
    recommender = TokenRecommender(feeds, scorer, TokenValidator(market_data), sizer)
    recommendation = await recommender.get_recommendation(balance, drawdown)
"""

from .scorer import (
    ScoringWeights,
    SignalScorer,
    merge_signals,
    technical_score,
    social_score,
    market_score,
    composite_score,
    score_signals,
)
from .decision import (
    DecisionAction,
    Confidence,
    TradingDecision,
    decide,
    sell_amount_for_confidence,
)
from .recommender import (
    ValidationResult,
    TokenRecommendation,
    TokenValidator,
    TokenRecommender,
)

__all__ = [
    # Scoring
    "ScoringWeights",
    "SignalScorer",
    "merge_signals",
    "technical_score",
    "social_score",
    "market_score",
    "composite_score",
    "score_signals",
    # Decisions
    "DecisionAction",
    "Confidence",
    "TradingDecision",
    "decide",
    "sell_amount_for_confidence",
    # Recommendation
    "ValidationResult",
    "TokenRecommendation",
    "TokenValidator",
    "TokenRecommender",
]
