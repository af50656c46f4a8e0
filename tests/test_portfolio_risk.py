"""
Tests for portfolio-level risk management.

Tests:
- High-water mark and drawdown tracking
- Portfolio valuation over monitored positions
- Worst-first risk reduction planning
- Periodic performance monitoring
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, Mock

from config.settings import SOL_MINT, RiskLimitsConfig
from src.core.alerts import AlertManager, AlertType
from src.core.state_store import InMemoryStateStore, RecordType
from src.core.trade_history import TradeHistory
from src.risk.portfolio_risk import (
    PortfolioRiskManager,
    PortfolioStatus,
    PositionValue,
    RISK_REDUCTION_REASON,
)

NOW = datetime(2025, 1, 15, 12, 0, 0)


class FakeClock:
    def __init__(self):
        self.now = NOW

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def make_manager(
    sol_balance="10",
    balances=None,
    prices=None,
    max_drawdown=0.2,
    sell_callback=None,
):
    balances = balances or {}
    prices = dict(prices or {})
    prices.setdefault(SOL_MINT, Decimal("1"))
    store = InMemoryStateStore()
    history = TradeHistory(store, clock=FakeClock())

    wallet = Mock()
    wallet.get_sol_balance = AsyncMock(return_value=Decimal(sol_balance))
    wallet.get_token_balance = AsyncMock(side_effect=lambda t: balances.get(t, Decimal("0")))
    market_data = Mock()
    market_data.get_price = AsyncMock(side_effect=lambda t: prices.get(t))

    manager = PortfolioRiskManager(
        RiskLimitsConfig(max_drawdown=max_drawdown),
        wallet,
        market_data,
        store,
        history,
        sell_callback=sell_callback,
        alert_manager=AlertManager(),
        clock=lambda: NOW,
    )
    for token in balances:
        store.save(RecordType.POSITION, {"token_address": token}, key=token)
    return manager


class TestDrawdown:
    """Tests for update_drawdown."""

    def test_first_value_sets_high_water_mark(self):
        manager = make_manager()

        assert manager.update_drawdown(Decimal("100")) == Decimal("0")
        assert manager.high_water_mark() == Decimal("100")

    def test_drawdown_from_mark(self):
        manager = make_manager()
        manager.update_drawdown(Decimal("100"))

        assert manager.update_drawdown(Decimal("80")) == Decimal("0.2")
        assert manager.high_water_mark() == Decimal("100")

    def test_new_high_resets(self):
        manager = make_manager()
        manager.update_drawdown(Decimal("100"))

        assert manager.update_drawdown(Decimal("120")) == Decimal("0")
        assert manager.high_water_mark() == Decimal("120")

    def test_no_mark_without_value(self):
        assert make_manager().update_drawdown(Decimal("0")) == Decimal("0")


class TestPortfolioStatus:
    """Tests for get_portfolio_status."""

    @pytest.mark.asyncio
    async def test_values_monitored_positions(self):
        manager = make_manager(
            balances={"A": Decimal("100"), "B": Decimal("10")},
            prices={"A": Decimal("0.5")},
        )

        status = await manager.get_portfolio_status()

        assert status.sol_balance == Decimal("10")
        assert status.total_value == Decimal("60")
        assert list(status.positions) == ["A"]
        assert status.positions["A"].price == Decimal("0.5")

    @pytest.mark.asyncio
    async def test_sol_balance_valued_in_usd(self):
        manager = make_manager(
            sol_balance="2",
            balances={"A": Decimal("100")},
            prices={"A": Decimal("0.5"), SOL_MINT: Decimal("150")},
        )

        status = await manager.get_portfolio_status()

        assert status.sol_price == Decimal("150")
        assert status.total_value == Decimal("350")
        assert manager.high_water_mark() == Decimal("350")

    @pytest.mark.asyncio
    async def test_missing_sol_price_skips_drawdown(self):
        manager = make_manager(
            sol_balance="2",
            balances={"A": Decimal("100")},
            prices={"A": Decimal("0.5"), SOL_MINT: None},
        )
        manager.store.save(RecordType.HIGH_WATER_MARK, "1000")

        status = await manager.get_portfolio_status()

        assert status.sol_price is None
        assert status.drawdown == Decimal("0")
        assert list(status.positions) == ["A"]
        assert manager.high_water_mark() == Decimal("1000")

    @pytest.mark.asyncio
    async def test_error_returns_empty_status(self):
        manager = make_manager()
        manager.wallet.get_sol_balance = AsyncMock(side_effect=RuntimeError("rpc down"))

        status = await manager.get_portfolio_status()

        assert status.total_value == Decimal("0")
        assert status.positions == {}

    def test_status_to_dict(self):
        status = PortfolioStatus(
            total_value=Decimal("5"),
            positions={"A": PositionValue(Decimal("2"), Decimal("4"))},
            sol_balance=Decimal("1"),
        )

        data = status.to_dict()

        assert data["num_positions"] == 1
        assert data["positions"]["A"] == {"amount": "2", "value": "4"}


def ranked_status(drawdown: str) -> PortfolioStatus:
    return PortfolioStatus(
        total_value=Decimal("100"),
        sol_balance=Decimal("10"),
        drawdown=Decimal(drawdown),
        positions={
            "B": PositionValue(Decimal("60"), Decimal("60")),
            "A": PositionValue(Decimal("20"), Decimal("20")),
            "C": PositionValue(Decimal("10"), Decimal("10")),
        },
    )


def record_cost_basis(manager):
    manager.trade_history.record_buy("A", Decimal("2"), Decimal("20"))
    manager.trade_history.record_buy("B", Decimal("0.5"), Decimal("60"))
    manager.trade_history.record_buy("C", Decimal("1.25"), Decimal("10"))


class TestRiskReduction:
    """Tests for plan_risk_reduction and reduce_risk."""

    def test_worst_performer_first_until_target(self):
        manager = make_manager(max_drawdown=0.2)
        record_cost_basis(manager)

        # Target 0.16; selling A removes 20/100 of 0.2
        intents = manager.plan_risk_reduction(ranked_status("0.2"))

        assert [i.token_address for i in intents] == ["A"]
        assert intents[0].amount == Decimal("20")
        assert intents[0].reason == RISK_REDUCTION_REASON

    def test_deep_drawdown_sells_in_performance_order(self):
        manager = make_manager(max_drawdown=0.1)
        record_cost_basis(manager)

        intents = manager.plan_risk_reduction(ranked_status("0.2"))

        assert [i.token_address for i in intents] == ["A", "C", "B"]

    def test_positions_without_cost_basis_skipped(self):
        manager = make_manager(max_drawdown=0.1)
        manager.trade_history.record_buy("A", Decimal("2"), Decimal("20"))

        intents = manager.plan_risk_reduction(ranked_status("0.2"))

        assert [i.token_address for i in intents] == ["A"]

    def test_empty_portfolio(self):
        assert make_manager().plan_risk_reduction(PortfolioStatus()) == []

    @pytest.mark.asyncio
    async def test_reduce_risk_emits_sells_and_alert(self):
        sell = AsyncMock()
        manager = make_manager(max_drawdown=0.2, sell_callback=sell)
        record_cost_basis(manager)

        intents = await manager.reduce_risk(ranked_status("0.2"))

        assert len(intents) == 1
        sell.assert_awaited_once_with(intents[0])
        alert = manager.alert_manager.get_recent_alerts()[0]
        assert alert.alert_type == AlertType.RISK_REDUCTION


class TestMonitorPerformance:
    """Tests for monitor_performance."""

    @pytest.mark.asyncio
    async def test_exceeded_drawdown_triggers_reduction(self):
        sell = AsyncMock()
        manager = make_manager(
            sol_balance="10",
            balances={"A": Decimal("20")},
            prices={"A": Decimal("1")},
            max_drawdown=0.1,
            sell_callback=sell,
        )
        manager.trade_history.record_buy("A", Decimal("2"), Decimal("20"))
        manager.store.save(RecordType.HIGH_WATER_MARK, "50")

        status = await manager.monitor_performance()

        assert status.drawdown == Decimal("0.4")
        sell.assert_awaited_once()
        types = [a.alert_type for a in manager.alert_manager.get_recent_alerts()]
        assert AlertType.DRAWDOWN_EXCEEDED in types

    @pytest.mark.asyncio
    async def test_snapshot_and_position_refresh(self):
        manager = make_manager(balances={"A": Decimal("4")}, prices={"A": Decimal("2.5")})

        await manager.monitor_performance()

        snapshots = manager.trade_history.get_performance_history()
        assert snapshots[-1]["total_value"] == "20.0"
        record = manager.store.load(RecordType.POSITION, "A")
        assert record["value"] == "10.0"
        assert record["updated_at"] == NOW.isoformat()

    @pytest.mark.asyncio
    async def test_within_limit_no_sells(self):
        sell = AsyncMock()
        manager = make_manager(balances={"A": Decimal("4")}, prices={"A": Decimal("2.5")}, sell_callback=sell)

        await manager.monitor_performance()

        sell.assert_not_awaited()
