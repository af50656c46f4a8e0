"""
Tests for trade history.

Tests:
- Recording buys and closing them with sells
- Profit and rapid-dump computation
- Average cost basis
- Token statistics and performance snapshot cap
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from src.core.state_store import InMemoryStateStore, RecordType
from src.core.trade_history import (
    MAX_PERFORMANCE_SNAPSHOTS,
    TradeHistory,
    TradeRecord,
)


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 1, 15, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def history(clock):
    return TradeHistory(InMemoryStateStore(), clock=clock)


class TestRecordBuy:
    """Tests for record_buy."""

    def test_record_buy_stores_open_trade(self, history):
        trade = history.record_buy("A", Decimal("2"), Decimal("50"), market_cap=1e6, liquidity=5e4)

        assert trade.is_open
        assert trade.buy_value_usd == Decimal("100")
        assert history.get_latest_trade("A").id == trade.id

    def test_trades_newest_first(self, history, clock):
        history.record_buy("A", Decimal("1"), Decimal("10"))
        clock.now += timedelta(minutes=5)
        history.record_buy("A", Decimal("2"), Decimal("10"))

        trades = history.get_trades_for_token("A")

        assert [t.buy_price for t in trades] == [Decimal("2"), Decimal("1")]

    def test_trades_filtered_by_token(self, history):
        history.record_buy("A", Decimal("1"), Decimal("10"))
        history.record_buy("AB", Decimal("1"), Decimal("10"))

        assert len(history.get_trades_for_token("A")) == 1


class TestRecordSell:
    """Tests for record_sell."""

    def test_profit_computed(self, history, clock):
        history.record_buy("A", Decimal("100"), Decimal("10"))
        clock.now += timedelta(hours=2)

        trade = history.record_sell("A", Decimal("120"), Decimal("10"), received_sol=Decimal("1.2"))

        assert not trade.is_open
        assert trade.profit_usd == Decimal("200")
        assert trade.profit_percent == pytest.approx(20.0)
        assert trade.received_sol == Decimal("1.2")
        assert trade.rapid_dump is False

    def test_rapid_dump_flagged(self, history, clock):
        history.record_buy("A", Decimal("100"), Decimal("10"))
        clock.now += timedelta(minutes=30)

        trade = history.record_sell("A", Decimal("90"), Decimal("10"))

        assert trade.rapid_dump is True
        assert history.get_token_stats("A")["rapid_dumps"] == 1

    def test_no_open_trade(self, history):
        assert history.record_sell("A", Decimal("1"), Decimal("1")) is None

    def test_statistics_updated(self, history, clock):
        history.record_buy("A", Decimal("100"), Decimal("1"))
        clock.now += timedelta(hours=2)
        history.record_sell("A", Decimal("110"), Decimal("1"))

        stats = history.get_token_stats("A")

        assert stats["trades"] == 1
        assert stats["total_profit_usd"] == "10"
        assert stats["average_profit_percent"] == pytest.approx(10.0)


class TestCostBasis:
    """Tests for average_cost_basis."""

    def test_volume_weighted(self, history, clock):
        history.record_buy("A", Decimal("1"), Decimal("30"))
        clock.now += timedelta(minutes=1)
        history.record_buy("A", Decimal("2"), Decimal("10"))

        assert history.average_cost_basis("A") == Decimal("1.25")

    def test_no_trades(self, history):
        assert history.average_cost_basis("A") is None


class TestPerformanceSnapshots:
    """Tests for performance snapshots."""

    def test_snapshot_timestamped(self, history):
        history.record_performance_snapshot({"total_value": "10"})

        snapshots = history.get_performance_history()
        assert snapshots[0]["total_value"] == "10"
        assert snapshots[0]["timestamp"] == "2025-01-15T12:00:00"

    def test_snapshot_cap(self, history):
        for i in range(MAX_PERFORMANCE_SNAPSHOTS + 5):
            history.record_performance_snapshot({"i": i})

        snapshots = history.get_performance_history()
        assert len(snapshots) == MAX_PERFORMANCE_SNAPSHOTS
        assert snapshots[0]["i"] == 5


class TestTradeRecord:
    """Serialization of TradeRecord."""

    def test_dict_round_trip_preserves_open_state(self):
        record = TradeRecord("A", Decimal("1.5"), Decimal("3"), datetime(2025, 1, 1))

        restored = TradeRecord.from_dict(record.to_dict())

        assert restored.buy_price == Decimal("1.5")
        assert restored.is_open
        assert restored.key == "A:2025-01-01T00:00:00"
