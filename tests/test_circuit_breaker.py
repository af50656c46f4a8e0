"""
Tests for the circuit breaker, pause gate and data-quality monitor.

Tests:
- Pause gate expiry and reason-scoped resume
- Circuit breaker trigger rules and pause on trip
- Per-source data-quality mitigations and their reversal
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, Mock

from config.settings import CircuitBreakerConfig, DataQualityConfig
from src.core.alerts import AlertManager, AlertType
from src.core.state_store import InMemoryStateStore, RecordType
from src.market.feeds import (
    CMC_TRENDING_FEED,
    TWITTER_SIGNALS_FEED,
    CMCTrendingFeed,
    TwitterSignalFeed,
    publish_feed,
)
from src.market.models import MarketData
from src.risk.circuit_breaker import (
    CIRCUIT_BREAKER_PAUSE_REASON,
    DATA_QUALITY_PAUSE_REASON,
    EXTREME_PRICE_MOVEMENT,
    HIGH_VOLATILITY,
    QUALITY_DEGRADED,
    QUALITY_GOOD,
    CircuitBreaker,
    DataQualityMonitor,
    TradingPauseGate,
)
from src.signals.scorer import ScoringWeights

NOW = datetime(2025, 1, 15, 12, 0, 0)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryStateStore(clock=clock)


@pytest.fixture
def gate(store, clock):
    return TradingPauseGate(store, clock=clock)


class TestTradingPauseGate:
    """Tests for TradingPauseGate."""

    def test_not_paused_by_default(self, gate):
        assert gate.status() is None
        assert not gate.is_paused()

    def test_pause_with_expiry(self, gate, clock):
        gate.pause("test", duration_seconds=3600)

        assert gate.status()["reason"] == "test"
        clock.now += 3599
        assert gate.is_paused()
        clock.now += 1
        assert not gate.is_paused()

    def test_pause_without_expiry(self, gate, clock):
        gate.pause("test")
        clock.now += 10 * 24 * 3600

        assert gate.is_paused()

    def test_resume_scoped_to_reason(self, gate):
        gate.pause(CIRCUIT_BREAKER_PAUSE_REASON, duration_seconds=3600)

        assert gate.resume(reason=DATA_QUALITY_PAUSE_REASON) is False
        assert gate.is_paused()
        assert gate.resume() is True
        assert not gate.is_paused()

    def test_resume_when_not_paused(self, gate):
        assert gate.resume() is False


def make_breaker(gate, price, history):
    market_data = Mock()
    market_data.get_market_data = AsyncMock(
        return_value=MarketData(price=price, price_history=history)
    )
    alerts = AlertManager(clock=lambda: NOW)
    return CircuitBreaker(CircuitBreakerConfig(), market_data, gate, alerts, clock=lambda: NOW)


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    def test_evaluate_price_movement(self, gate):
        breaker = make_breaker(gate, 1.0, [])

        assert breaker.evaluate(-16.0, 0.1).reason == EXTREME_PRICE_MOVEMENT
        assert breaker.evaluate(15.0, 0.1).triggered is False

    def test_evaluate_volatility(self, gate):
        breaker = make_breaker(gate, 1.0, [])

        assert breaker.evaluate(5.0, 0.61).reason == HIGH_VOLATILITY
        assert breaker.evaluate(5.0, 0.6).triggered is False

    def test_moderate_move_with_high_volatility(self, gate):
        breaker = make_breaker(gate, 1.0, [])

        result = breaker.evaluate(10.0, 0.65)

        assert result.triggered
        assert result.reason == HIGH_VOLATILITY

    def test_moderate_move_with_calm_volatility(self, gate):
        breaker = make_breaker(gate, 1.0, [])

        result = breaker.evaluate(10.0, 0.3)

        assert result.triggered is False
        assert result.reason is None

    def test_price_movement_takes_precedence(self, gate):
        breaker = make_breaker(gate, 1.0, [])
        assert breaker.evaluate(20.0, 0.9).reason == EXTREME_PRICE_MOVEMENT

    @pytest.mark.asyncio
    async def test_trip_pauses_entries_for_an_hour(self, gate, store, clock):
        breaker = make_breaker(gate, 120.0, [100.0] * 24)

        result = await breaker.check()

        assert result.triggered
        assert result.details["price_change_percent"] == pytest.approx(20.0)
        assert gate.status()["reason"] == CIRCUIT_BREAKER_PAUSE_REASON
        assert store.load(RecordType.CIRCUIT_BREAKER)["reason"] == EXTREME_PRICE_MOVEMENT
        assert breaker.alert_manager.get_recent_alerts()[0].alert_type == AlertType.CIRCUIT_BREAKER_TRIGGERED

        clock.now += 3600
        assert not gate.is_paused()

    @pytest.mark.asyncio
    async def test_calm_market(self, gate):
        breaker = make_breaker(gate, 105.0, [100.0] * 24)

        result = await breaker.check()

        assert not result.triggered
        assert not gate.is_paused()

    @pytest.mark.asyncio
    async def test_insufficient_history(self, gate):
        breaker = make_breaker(gate, 200.0, [100.0] * 23)

        result = await breaker.check()

        assert not result.triggered
        assert result.reason == "insufficient_history"

    @pytest.mark.asyncio
    async def test_error_does_not_trip(self, gate):
        breaker = make_breaker(gate, 1.0, [])
        breaker.market_data.get_market_data = AsyncMock(side_effect=RuntimeError("down"))

        result = await breaker.check()

        assert not result.triggered
        assert result.reason == "error"


def make_quality_monitor(store, gate, healthy=True, risk_reducer=None):
    provider = Mock()
    provider.check_health = AsyncMock(return_value=(True, []) if healthy else (False, ["Birdeye down"]))
    return DataQualityMonitor(
        DataQualityConfig(),
        provider,
        TwitterSignalFeed(store),
        CMCTrendingFeed(store),
        store,
        gate,
        risk_reducer=risk_reducer,
        alert_manager=AlertManager(clock=lambda: NOW),
        clock=lambda: NOW,
    )


def publish_fresh(store, twitter_age_hours=1.0, cmc_age_hours=1.0):
    publish_feed(store, TWITTER_SIGNALS_FEED, [{"tokenAddress": "A"}], NOW - timedelta(hours=twitter_age_hours))
    publish_feed(store, CMC_TRENDING_FEED, [{"address": "B"}], NOW - timedelta(hours=cmc_age_hours))


class TestDataQualityMonitor:
    """Tests for DataQualityMonitor."""

    @pytest.mark.asyncio
    async def test_all_sources_good(self, store, gate):
        publish_fresh(store)
        monitor = make_quality_monitor(store, gate)

        report = await monitor.validate_data_sources()

        assert report.status == QUALITY_GOOD
        assert store.load(RecordType.DATA_QUALITY)["status"] == QUALITY_GOOD
        assert store.load(RecordType.CMC_DATA_VALID) is True
        assert store.load(RecordType.SCORING_WEIGHTS) is None
        assert not gate.is_paused()

    @pytest.mark.asyncio
    async def test_primary_failure_pauses_and_reduces_risk(self, store, gate):
        publish_fresh(store)
        reducer = AsyncMock()
        monitor = make_quality_monitor(store, gate, healthy=False, risk_reducer=reducer)

        report = await monitor.validate_data_sources()

        assert report.status == QUALITY_DEGRADED
        assert report.primary.issues == ["Birdeye down"]
        assert gate.status()["reason"] == DATA_QUALITY_PAUSE_REASON
        reducer.assert_awaited_once()
        # Social and ranking mitigations untouched
        assert store.load(RecordType.SCORING_WEIGHTS) is None
        assert store.load(RecordType.CMC_DATA_VALID) is True

    @pytest.mark.asyncio
    async def test_primary_recovery_lifts_pause(self, store, gate):
        publish_fresh(store)
        await make_quality_monitor(store, gate, healthy=False).validate_data_sources()

        monitor = make_quality_monitor(store, gate, healthy=True)
        await monitor.validate_data_sources()

        assert not gate.is_paused()
        types = [a.alert_type for a in monitor.alert_manager.get_recent_alerts()]
        assert AlertType.DATA_QUALITY_RESTORED in types

    @pytest.mark.asyncio
    async def test_recovery_keeps_circuit_breaker_pause(self, store, gate):
        publish_fresh(store)
        gate.pause(CIRCUIT_BREAKER_PAUSE_REASON, duration_seconds=3600)

        await make_quality_monitor(store, gate).validate_data_sources()

        assert gate.status()["reason"] == CIRCUIT_BREAKER_PAUSE_REASON

    @pytest.mark.asyncio
    async def test_stale_social_degrades_weights(self, store, gate):
        publish_fresh(store, twitter_age_hours=7.0)
        monitor = make_quality_monitor(store, gate)

        report = await monitor.validate_data_sources()

        assert not report.social.valid
        assert report.social.issues == ["Twitter data is 7.0 hours old"]
        assert store.load(RecordType.SCORING_WEIGHTS) == ScoringWeights.degraded_social().to_shares()
        assert not gate.is_paused()

    @pytest.mark.asyncio
    async def test_social_recovery_restores_weights(self, store, gate):
        publish_fresh(store, twitter_age_hours=7.0)
        await make_quality_monitor(store, gate).validate_data_sources()

        publish_fresh(store)
        await make_quality_monitor(store, gate).validate_data_sources()

        assert store.load(RecordType.SCORING_WEIGHTS) is None

    @pytest.mark.asyncio
    async def test_missing_ranking_feed_invalidates_cmc(self, store, gate):
        publish_feed(store, TWITTER_SIGNALS_FEED, [{"tokenAddress": "A"}], NOW)
        monitor = make_quality_monitor(store, gate)

        report = await monitor.validate_data_sources()

        assert report.ranking.issues == ["No CMC signals available", "CMC signal metadata missing"]
        assert store.load(RecordType.CMC_DATA_VALID) is False

    @pytest.mark.asyncio
    async def test_provider_exception_marks_primary_invalid(self, store, gate):
        publish_fresh(store)
        monitor = make_quality_monitor(store, gate)
        monitor.provider.check_health = AsyncMock(side_effect=RuntimeError("boom"))

        report = await monitor.validate_data_sources()

        assert report.primary.valid is False
        assert report.primary.issues == ["boom"]
