"""
Portfolio-level risk management.

Tracks the portfolio high-water mark and drawdown, and sells the
worst-performing positions when drawdown exceeds the configured maximum.

Monitored positions are the keys of RecordType.POSITION; the engine creates
a position record on every buy and removes it once the balance is gone.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config.settings import SOL_MINT, RiskLimitsConfig
from src.api.interfaces import Wallet
from src.core.alerts import (
    AlertManager,
    AlertSeverity,
    AlertType,
    create_drawdown_alert,
)
from src.core.state_store import RecordType, StateStore
from src.core.trade_history import TradeHistory
from src.market.market_data import MarketDataService
from src.risk.position_monitor import SellIntent

logger = logging.getLogger(__name__)

RISK_REDUCTION_REASON = "Risk reduction - drawdown exceeded"
RISK_REDUCTION_TARGET = Decimal("0.8")  # Stop at 80% of max drawdown


@dataclass
class PositionValue:
    """Held amount and its current value."""

    amount: Decimal
    value: Decimal

    @property
    def price(self) -> Decimal:
        return self.value / self.amount if self.amount > 0 else Decimal("0")


@dataclass
class PortfolioStatus:
    """Portfolio snapshot.

    Values are in USD: the SOL balance is converted at sol_price. Without a
    SOL price the SOL balance is left out of total_value and drawdown is not
    measured.
    """

    total_value: Decimal = Decimal("0")
    positions: Dict[str, PositionValue] = field(default_factory=dict)
    sol_balance: Decimal = Decimal("0")
    sol_price: Optional[Decimal] = None
    drawdown: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "total_value": str(self.total_value),
            "sol_balance": str(self.sol_balance),
            "sol_price": str(self.sol_price) if self.sol_price is not None else None,
            "num_positions": len(self.positions),
            "drawdown": str(self.drawdown),
            "positions": {
                address: {"amount": str(p.amount), "value": str(p.value)}
                for address, p in self.positions.items()
            },
        }


@dataclass
class PositionPerformance:
    token_address: str
    amount: Decimal
    value: Decimal
    performance: Decimal


class PortfolioRiskManager:
    """
    Drawdown tracking and risk reduction.

    Key Responsibilities:
    - Maintain the high-water mark in the state store
    - Value the portfolio in USD (SOL at its USD price plus monitored positions)
    - Sell worst performers until drawdown is back under 80% of the limit
    - Store performance snapshots and refresh position records

    Usage:
        risk = PortfolioRiskManager(limits, wallet, market_data, store, history,
                                    sell_callback=engine.handle_sell_intent)
        status = await risk.monitor_performance()
    """

    def __init__(
        self,
        risk_limits: RiskLimitsConfig,
        wallet: Wallet,
        market_data: MarketDataService,
        store: StateStore,
        trade_history: TradeHistory,
        sell_callback: Optional[Callable[[SellIntent], Awaitable[Any]]] = None,
        alert_manager: Optional[AlertManager] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.risk_limits = risk_limits
        self.wallet = wallet
        self.market_data = market_data
        self.store = store
        self.trade_history = trade_history
        self.sell_callback = sell_callback
        self.alert_manager = alert_manager
        self._clock = clock

    # === High-water mark ===

    def high_water_mark(self) -> Decimal:
        stored = self.store.load(RecordType.HIGH_WATER_MARK)
        return Decimal(str(stored)) if stored is not None else Decimal("0")

    def update_drawdown(self, total_value: Decimal) -> Decimal:
        """
        Drawdown from the high-water mark, raising the mark when exceeded.

        Returns:
            Drawdown fraction in [0, 1]
        """
        total_value = Decimal(str(total_value))
        hwm = self.high_water_mark()

        if total_value > hwm:
            self.store.save(RecordType.HIGH_WATER_MARK, str(total_value))
            logger.info(f"New high-water mark: {total_value}")
            return Decimal("0")

        if hwm <= 0:
            return Decimal("0")

        return max(Decimal("0"), (hwm - total_value) / hwm)

    # === Portfolio ===

    def monitored_tokens(self) -> List[str]:
        return self.store.list_keys(RecordType.POSITION)

    async def get_portfolio_status(self) -> PortfolioStatus:
        """
        Value the portfolio and update drawdown.

        Returns:
            PortfolioStatus; an empty status on error
        """
        try:
            sol_balance = Decimal(str(await self.wallet.get_sol_balance()))
            sol_price = await self.market_data.get_price(SOL_MINT)
            if sol_price is None:
                logger.warning("No SOL price, drawdown not measured this cycle")
                total_value = Decimal("0")
            else:
                sol_price = Decimal(str(sol_price))
                total_value = sol_balance * sol_price
            positions: Dict[str, PositionValue] = {}

            for token_address in self.monitored_tokens():
                balance = Decimal(str(await self.wallet.get_token_balance(token_address)))
                price = await self.market_data.get_price(token_address)
                if price is None:
                    logger.warning(f"No price for {token_address}, excluded from portfolio value")
                    continue

                value = balance * price
                if value > 0:
                    positions[token_address] = PositionValue(amount=balance, value=value)
                    total_value += value

            drawdown = self.update_drawdown(total_value) if sol_price is not None else Decimal("0")
            return PortfolioStatus(
                total_value=total_value,
                positions=positions,
                sol_balance=sol_balance,
                sol_price=sol_price,
                drawdown=drawdown,
            )

        except Exception as e:
            logger.error(f"Error getting portfolio status: {e}")
            return PortfolioStatus()

    # === Risk reduction ===

    def _rank_positions(self, status: PortfolioStatus) -> List[PositionPerformance]:
        ranked = []
        for token_address, position in status.positions.items():
            avg_price = self.trade_history.average_cost_basis(token_address)
            if avg_price is None or avg_price <= 0:
                continue

            price = position.price
            performance = (price - avg_price) / avg_price if price > 0 else Decimal("-1")
            ranked.append(
                PositionPerformance(token_address, position.amount, position.value, performance)
            )

        ranked.sort(key=lambda p: p.performance)
        return ranked

    def plan_risk_reduction(self, status: PortfolioStatus) -> List[SellIntent]:
        """
        Full-exit sells for the worst performers, worst first.

        Each sale is assumed to remove value / total_value of the current
        drawdown; planning stops once the remainder is at most 80% of the limit.
        """
        if not status.positions or status.total_value <= 0:
            return []

        target = Decimal(str(self.risk_limits.max_drawdown)) * RISK_REDUCTION_TARGET
        remaining = status.drawdown
        intents = []

        for position in self._rank_positions(status):
            if remaining <= target:
                break

            intents.append(SellIntent(position.token_address, position.amount, RISK_REDUCTION_REASON))
            remaining -= position.value / status.total_value * status.drawdown

            logger.info(
                f"Position selected for risk reduction: {position.token_address} "
                f"amount={position.amount} value={position.value} "
                f"performance={float(position.performance) * 100:.2f}%"
            )

        return intents

    async def reduce_risk(self, status: PortfolioStatus) -> List[SellIntent]:
        """Plan and emit risk-reduction sells. Never raises."""
        try:
            intents = self.plan_risk_reduction(status)
            if not intents:
                return []

            logger.info(f"Initiating risk reduction: {len(intents)} positions")
            if self.alert_manager is not None:
                self.alert_manager.create_alert(
                    AlertType.RISK_REDUCTION,
                    AlertSeverity.WARNING,
                    f"Selling {len(intents)} positions to reduce drawdown",
                    {"tokens": [i.token_address for i in intents], "drawdown": str(status.drawdown)},
                )

            if self.sell_callback is not None:
                for intent in intents:
                    await self.sell_callback(intent)
            return intents

        except Exception as e:
            logger.error(f"Error reducing risk: {e}")
            return []

    async def reduce_risk_now(self) -> List[SellIntent]:
        """Risk reduction on a fresh portfolio valuation."""
        return await self.reduce_risk(await self.get_portfolio_status())

    # === Periodic monitoring ===

    def _refresh_position_record(self, token_address: str, position: PositionValue) -> None:
        record = self.store.load(RecordType.POSITION, token_address) or {}
        record.update({
            "token_address": token_address,
            "amount": str(position.amount),
            "price": str(position.price),
            "value": str(position.value),
            "updated_at": self._clock().isoformat(),
        })
        self.store.save(RecordType.POSITION, record, key=token_address)

    async def monitor_performance(self) -> PortfolioStatus:
        """
        Hourly portfolio check.

        Values the portfolio, reduces risk when drawdown exceeds the limit,
        stores a performance snapshot and refreshes position records.
        """
        status = await self.get_portfolio_status()

        try:
            logger.info(
                f"Portfolio status: total={status.total_value}, sol={status.sol_balance}, "
                f"positions={len(status.positions)}, drawdown={float(status.drawdown) * 100:.2f}%"
            )

            max_drawdown = self.risk_limits.max_drawdown
            if status.drawdown > Decimal(str(max_drawdown)):
                logger.warning(
                    f"Maximum drawdown exceeded: {float(status.drawdown):.4f} > {max_drawdown}"
                )
                if self.alert_manager is not None:
                    create_drawdown_alert(self.alert_manager, float(status.drawdown), max_drawdown)
                await self.reduce_risk(status)

            self.trade_history.record_performance_snapshot(status.to_dict())

            for token_address, position in status.positions.items():
                self._refresh_position_record(token_address, position)

        except Exception as e:
            logger.error(f"Error monitoring portfolio performance: {e}")

        return status
