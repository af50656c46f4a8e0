"""
Tests for signal scoring.

Tests:
- Component score tiers
- Merge semantics (first signal owns metrics, reasons concatenated)
- Threshold filtering and ranking
- Store-driven weights and ranking-feed exclusion
"""

import pytest

from config.settings import ThresholdsConfig
from src.core.state_store import InMemoryStateStore, RecordType
from src.market.models import (
    CMCMetrics,
    MACDResult,
    SocialMetrics,
    TechnicalSignals,
    TokenSignal,
    VolumeProfile,
    VolumeTrend,
)
from src.signals.scorer import (
    ScoringWeights,
    SignalScorer,
    composite_score,
    market_score,
    merge_signals,
    score_signals,
    social_score,
    technical_score,
)


def strong_technical() -> TechnicalSignals:
    return TechnicalSignals(
        rsi=25.0,
        macd=MACDResult(value=1.0, signal=0.5),
        volume_profile=VolumeProfile(trend=VolumeTrend.INCREASING, unusual_activity=False),
        volatility=0.1,
    )


def make_signal(address: str = "A", **kwargs) -> TokenSignal:
    defaults = dict(
        symbol=address,
        market_cap=50_000.0,
        volume_24h=2_000_000.0,
        liquidity=600_000.0,
    )
    defaults.update(kwargs)
    return TokenSignal(address=address, **defaults)


class TestTechnicalScore:
    """Tests for technical_score."""

    def test_none_scores_zero(self):
        assert technical_score(None) == 0.0

    def test_maximum(self):
        assert technical_score(strong_technical()) == 40.0

    def test_minimum(self):
        technical = TechnicalSignals(
            rsi=80.0,
            macd=MACDResult(value=-2.0, signal=-1.0),
            volume_profile=VolumeProfile(trend=VolumeTrend.DECREASING),
            volatility=0.8,
        )
        assert technical_score(technical) == -15.0

    def test_neutral_defaults(self):
        # RSI 50 (+5), volatility 0 (+10)
        assert technical_score(TechnicalSignals()) == 15.0

    def test_unusual_volume_not_rewarded(self):
        technical = strong_technical()
        technical.volume_profile.unusual_activity = True
        assert technical_score(technical) == 30.0


class TestSocialScore:
    """Tests for social_score."""

    def test_maximum(self):
        assert social_score(SocialMetrics(1500, 0.9, 12)) == 30.0

    def test_tiers_are_strict(self):
        # 1000 mentions is not > 1000, sentiment 0 is not > 0, 0 influencers not > 0
        assert social_score(SocialMetrics(1000, 0.0, 0)) == 8.0

    def test_none(self):
        assert social_score(None) == 0.0


class TestMarketScore:
    """Tests for market_score."""

    def test_small_cap_high_activity(self):
        assert market_score(make_signal()) == 30.0

    def test_large_cap_scores_no_cap_points(self):
        signal = make_signal(market_cap=50_000_000.0, volume_24h=200_000.0, liquidity=60_000.0)
        assert market_score(signal) == 12.0


class TestCompositeScore:
    """Tests for composite_score and weights."""

    def test_equal_weights(self):
        signal = make_signal(technical=strong_technical(), social=SocialMetrics(1500, 0.9, 12))
        assert composite_score(signal) == 100.0

    def test_degraded_social_weights(self):
        weights = ScoringWeights.degraded_social()
        signal = make_signal(technical=strong_technical(), social=SocialMetrics(1500, 0.9, 12))

        expected = 40 * 1.05 + 30 * 0.15 + 30 * 1.8
        assert composite_score(signal, weights) == pytest.approx(expected)

    def test_shares_round_trip(self):
        weights = ScoringWeights.degraded_social()
        restored = ScoringWeights.from_shares_dict(weights.to_shares())

        assert restored.social == pytest.approx(weights.social)
        assert restored.market == pytest.approx(weights.market)


class TestMergeSignals:
    """Tests for merge_signals."""

    def test_first_signal_owns_metrics(self):
        first = make_signal("A", liquidity=100.0, reasons=["Trending"])
        second = make_signal("A", liquidity=999.0, reasons=["Twitter"], score=5.0)

        merged = merge_signals([first, second])

        assert len(merged) == 1
        assert merged[0].liquidity == 100.0
        assert merged[0].reasons == ["Trending", "Twitter"]
        assert merged[0].score == 5.0

    def test_inputs_not_mutated(self):
        first = make_signal("A", reasons=["Trending"])
        merge_signals([first, make_signal("A", reasons=["Twitter"])])

        assert first.reasons == ["Trending"]

    def test_first_seen_order(self):
        merged = merge_signals([make_signal("B"), make_signal("A"), make_signal("B")])
        assert [s.address for s in merged] == ["B", "A"]


class TestScoreSignals:
    """Tests for score_signals."""

    def test_filters_and_ranks(self):
        thresholds = ThresholdsConfig(min_liquidity=50_000, min_volume=100_000, min_score=40)
        strong = make_signal("STRONG", technical=strong_technical(), social=SocialMetrics(1500, 0.9, 12))
        medium = make_signal("MEDIUM", technical=strong_technical())
        weak = make_signal("WEAK", market_cap=50_000_000.0, volume_24h=200_000.0, liquidity=60_000.0)
        illiquid = make_signal("ILLIQUID", technical=strong_technical(), liquidity=1_000.0)

        ranked = score_signals([weak, medium, illiquid, strong], thresholds)

        assert [s.address for s in ranked] == ["STRONG", "MEDIUM"]
        assert ranked[0].score == 100.0

    def test_thresholds_inclusive(self):
        thresholds = ThresholdsConfig(min_liquidity=600_000, min_volume=2_000_000, min_score=30)
        ranked = score_signals([make_signal()], thresholds)

        assert len(ranked) == 1

    def test_min_score_boundary(self):
        thresholds = ThresholdsConfig(min_liquidity=0, min_volume=0, min_score=60)
        below = make_signal("BELOW", score=29.9)
        at = make_signal("AT", score=30.0)

        ranked = score_signals([below, at], thresholds)

        assert [s.address for s in ranked] == ["AT"]
        assert ranked[0].score == pytest.approx(60.0)

    def test_exclude_cmc(self):
        thresholds = ThresholdsConfig(min_liquidity=0, min_volume=0, min_score=0)
        signals = [make_signal("A"), make_signal("B", cmc=CMCMetrics(rank=5))]

        ranked = score_signals(signals, thresholds, exclude_cmc=True)

        assert [s.address for s in ranked] == ["A"]


class TestSignalScorer:
    """Tests for SignalScorer store integration."""

    def test_default_weights_without_store(self):
        assert SignalScorer().current_weights() == ScoringWeights()

    def test_reads_degraded_weights(self):
        store = InMemoryStateStore()
        store.save(RecordType.SCORING_WEIGHTS, ScoringWeights.degraded_social().to_shares())

        weights = SignalScorer(store=store).current_weights()

        assert weights.social == pytest.approx(0.15)

    def test_cmc_invalid_excludes_ranking_signals(self):
        store = InMemoryStateStore()
        store.save(RecordType.CMC_DATA_VALID, False)
        scorer = SignalScorer(ThresholdsConfig(min_liquidity=0, min_volume=0, min_score=0), store)

        ranked = scorer.score([make_signal("A", cmc=CMCMetrics(rank=1)), make_signal("B")])

        assert [s.address for s in ranked] == ["B"]

    def test_cmc_valid_by_default(self):
        assert SignalScorer(store=InMemoryStateStore()).cmc_data_valid() is True
