"""
Open position supervision.

Provides:
- PositionMonitor.evaluate: stop loss / take profit / momentum state machine
- PositionMonitor.evaluate_trailing_stop: trailing stop after a partial take profit
- Async tick wrappers that read balances and prices, persist trailing stops
  and emit SellIntents

Exit rules (first match wins):
    balance <= 0                              -> nothing to monitor
    price <= entry * (1 - stop_loss / 100)    -> sell everything
    price >= entry * (1 + take_profit / 100)  -> sell half, trail the rest
    price > entry and MACD turning down       -> sell 75%
    otherwise                                 -> hold
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from config.settings import RiskLimitsConfig
from src.api.interfaces import Wallet
from src.core.alerts import AlertManager, create_exit_alert
from src.core.state_store import RecordType, StateStore
from src.core.trade_history import TradeHistory
from src.market.market_data import MarketDataService
from src.market.models import TechnicalSignals
from src.market.technical import TechnicalAnalyzer

logger = logging.getLogger(__name__)

Number = Union[Decimal, float, int, str]

TRAILING_STOP_PERCENTAGE = Decimal("5")
MOMENTUM_EXIT_FRACTION = Decimal("0.75")

STOP_LOSS_REASON = "Stop loss triggered"
TAKE_PROFIT_REASON = "Take profit - selling half position"
MOMENTUM_REASON = "Negative momentum while in profit"
TRAILING_STOP_REASON = "Trailing stop triggered"
TRAILING_ARMED_REASON = "Take profit already taken, trailing stop armed"
NO_POSITION_REASON = "No position to monitor"
PRICE_UNAVAILABLE_REASON = "Price unavailable"


def _dec(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


class ExitAction(Enum):
    """What the monitor asks the engine to do."""

    NONE = auto()  # Nothing to evaluate
    HOLD = auto()  # Keep the position
    SELL = auto()  # Submit a sell


class PositionState(Enum):
    """Lifecycle state of a monitored position."""

    ACTIVE = auto()
    STOP_LOSS_EXIT = auto()
    TAKE_PROFIT_PARTIAL = auto()
    TRAILING = auto()
    TRAILING_EXIT = auto()
    MOMENTUM_EXIT = auto()
    CLOSED = auto()


@dataclass
class Position:
    """A held token and its entry."""

    token_address: str
    amount: Decimal
    buy_price: Decimal
    buy_timestamp: Optional[datetime] = None
    highest_price_seen: Decimal = Decimal("0")


@dataclass
class TrailingStop:
    """Trailing stop armed after a partial take profit."""

    token_address: str
    highest_price: Decimal
    activation_price: Decimal
    amount: Decimal
    trailing_stop_percentage: Decimal = TRAILING_STOP_PERCENTAGE
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def stop_price(self) -> Decimal:
        return self.highest_price * (1 - self.trailing_stop_percentage / 100)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_address": self.token_address,
            "highest_price": str(self.highest_price),
            "activation_price": str(self.activation_price),
            "amount": str(self.amount),
            "trailing_stop_percentage": str(self.trailing_stop_percentage),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrailingStop":
        return cls(
            token_address=data["token_address"],
            highest_price=_dec(data["highest_price"]),
            activation_price=_dec(data["activation_price"]),
            amount=_dec(data["amount"]),
            trailing_stop_percentage=_dec(
                data.get("trailing_stop_percentage", TRAILING_STOP_PERCENTAGE)
            ),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


@dataclass
class SellIntent:
    """Request to sell, handed to the engine's sell path."""

    token_address: str
    amount: Decimal
    reason: str
    state: Optional[PositionState] = None


@dataclass
class MonitorResult:
    """Outcome of one monitoring tick."""

    action: ExitAction = ExitAction.NONE
    state: PositionState = PositionState.ACTIVE
    message: str = ""
    sell: Optional[SellIntent] = None
    trailing_stop: Optional[TrailingStop] = None
    remove_trailing_stop: bool = False
    price: Optional[Decimal] = None
    price_change_percent: float = 0.0
    error: bool = False

    @property
    def should_sell(self) -> bool:
        return self.action == ExitAction.SELL and self.sell is not None


SellCallback = Callable[[SellIntent], Awaitable[Any]]


class PositionMonitor:
    """
    Supervises open positions and trailing stops.

    The evaluate methods are pure; monitor_token and monitor_trailing_stop
    wrap them with balance/price lookups, persistence and sell emission.

    Usage:
        monitor = PositionMonitor(limits, market_data, wallet, store,
                                  sell_callback=engine.handle_sell_intent)
        result = await monitor.monitor_token(token, entry_price)
    """

    def __init__(
        self,
        risk_limits: Optional[RiskLimitsConfig] = None,
        market_data: Optional[MarketDataService] = None,
        wallet: Optional[Wallet] = None,
        store: Optional[StateStore] = None,
        trade_history: Optional[TradeHistory] = None,
        analyzer: Optional[TechnicalAnalyzer] = None,
        sell_callback: Optional[SellCallback] = None,
        alert_manager: Optional[AlertManager] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.risk_limits = risk_limits or RiskLimitsConfig()
        self.market_data = market_data
        self.wallet = wallet
        self.store = store
        self.trade_history = trade_history
        self.analyzer = analyzer or TechnicalAnalyzer()
        self.sell_callback = sell_callback
        self.alert_manager = alert_manager
        self._clock = clock

    # === Pure evaluation ===

    def evaluate(
        self,
        position: Position,
        balance: Number,
        price: Optional[Number],
        technical: Optional[TechnicalSignals] = None,
        trailing_stop: Optional[TrailingStop] = None,
    ) -> MonitorResult:
        """
        Decide the exit for one position.

        Args:
            position: Token and entry price
            balance: Current token balance
            price: Current price, None when unavailable
            technical: Indicators for the momentum check
            trailing_stop: Stop already armed by an earlier take profit; the
                take-profit step is skipped while one exists

        Returns:
            MonitorResult; result.sell carries the amount to sell
        """
        balance = _dec(balance)
        if balance <= 0:
            return MonitorResult(ExitAction.NONE, PositionState.CLOSED, NO_POSITION_REASON)

        if price is None or _dec(price) <= 0:
            return MonitorResult(ExitAction.NONE, PositionState.ACTIVE, PRICE_UNAVAILABLE_REASON)

        price = _dec(price)
        entry = _dec(position.buy_price)
        token = position.token_address

        if entry <= 0:
            return MonitorResult(ExitAction.HOLD, PositionState.ACTIVE, "No entry price", price=price)

        change_pct = float((price - entry) / entry * 100)
        stop_loss_price = entry * (1 - _dec(self.risk_limits.stop_loss_percentage) / 100)
        take_profit_price = entry * (1 + _dec(self.risk_limits.take_profit_percentage) / 100)

        if price <= stop_loss_price:
            return MonitorResult(
                action=ExitAction.SELL,
                state=PositionState.STOP_LOSS_EXIT,
                message=STOP_LOSS_REASON,
                sell=SellIntent(token, balance, STOP_LOSS_REASON, PositionState.STOP_LOSS_EXIT),
                price=price,
                price_change_percent=change_pct,
            )

        if price >= take_profit_price and trailing_stop is not None:
            return MonitorResult(
                ExitAction.HOLD,
                PositionState.TRAILING,
                TRAILING_ARMED_REASON,
                price=price,
                price_change_percent=change_pct,
            )

        if price >= take_profit_price:
            half = balance / 2
            trailing = TrailingStop(
                token_address=token,
                highest_price=price,
                activation_price=price,
                amount=half,
                created_at=self._clock(),
            )
            return MonitorResult(
                action=ExitAction.SELL,
                state=PositionState.TAKE_PROFIT_PARTIAL,
                message=TAKE_PROFIT_REASON,
                sell=SellIntent(token, half, TAKE_PROFIT_REASON, PositionState.TAKE_PROFIT_PARTIAL),
                trailing_stop=trailing,
                price=price,
                price_change_percent=change_pct,
            )

        if price > entry and technical is not None:
            macd = technical.macd
            if macd.histogram < 0 and macd.value < macd.signal:
                amount = balance * MOMENTUM_EXIT_FRACTION
                return MonitorResult(
                    action=ExitAction.SELL,
                    state=PositionState.MOMENTUM_EXIT,
                    message=MOMENTUM_REASON,
                    sell=SellIntent(token, amount, MOMENTUM_REASON, PositionState.MOMENTUM_EXIT),
                    price=price,
                    price_change_percent=change_pct,
                )

        return MonitorResult(
            ExitAction.HOLD,
            PositionState.ACTIVE,
            "Holding",
            price=price,
            price_change_percent=change_pct,
        )

    def evaluate_trailing_stop(
        self,
        stop: TrailingStop,
        balance: Number,
        price: Optional[Number],
    ) -> MonitorResult:
        """
        Ratchet and check a trailing stop.

        Returns:
            MonitorResult with the updated stop (HOLD), a sell of stop.amount
            (trigger), or remove_trailing_stop when there is no balance left
        """
        if _dec(balance) <= 0:
            return MonitorResult(
                ExitAction.NONE,
                PositionState.CLOSED,
                "No position, removing trailing stop",
                remove_trailing_stop=True,
            )

        if price is None or _dec(price) <= 0:
            return MonitorResult(ExitAction.NONE, PositionState.TRAILING, PRICE_UNAVAILABLE_REASON)

        price = _dec(price)
        updated = replace(stop, highest_price=max(stop.highest_price, price))

        if price <= updated.stop_price:
            return MonitorResult(
                action=ExitAction.SELL,
                state=PositionState.TRAILING_EXIT,
                message=TRAILING_STOP_REASON,
                sell=SellIntent(
                    stop.token_address, stop.amount, TRAILING_STOP_REASON,
                    PositionState.TRAILING_EXIT,
                ),
                trailing_stop=updated,
                remove_trailing_stop=True,
                price=price,
            )

        return MonitorResult(
            ExitAction.HOLD,
            PositionState.TRAILING,
            "Trailing",
            trailing_stop=updated,
            price=price,
        )

    # === Trailing stop persistence ===

    def load_trailing_stop(self, token_address: str) -> Optional[TrailingStop]:
        data = self.store.load(RecordType.TRAILING_STOP, token_address)
        return TrailingStop.from_dict(data) if data else None

    def save_trailing_stop(self, stop: TrailingStop) -> None:
        self.store.save(RecordType.TRAILING_STOP, stop.to_dict(), key=stop.token_address)

    def remove_trailing_stop(self, token_address: str) -> None:
        self.store.delete(RecordType.TRAILING_STOP, token_address)

    def active_trailing_stops(self) -> List[str]:
        """Token addresses with an armed trailing stop."""
        return self.store.list_keys(RecordType.TRAILING_STOP)

    # === Async ticks ===

    async def _emit(self, result: MonitorResult) -> None:
        sell = result.sell
        if self.alert_manager is not None:
            create_exit_alert(
                self.alert_manager,
                result.state.name,
                sell.token_address,
                sell.reason,
                {"amount": str(sell.amount), "price": str(result.price)},
            )
        if self.sell_callback is not None:
            await self.sell_callback(sell)

    def _entry_price(self, token_address: str) -> Optional[Decimal]:
        if self.trade_history is None:
            return None
        trade = self.trade_history.get_latest_trade(token_address)
        return trade.buy_price if trade else None

    async def monitor_token(
        self,
        token_address: str,
        entry_price: Optional[Number] = None,
    ) -> MonitorResult:
        """
        One monitoring tick for a position.

        Args:
            token_address: Token held
            entry_price: Entry price; defaults to the newest recorded buy

        Returns:
            MonitorResult; error=True with a message on any failure
        """
        try:
            balance = await self.wallet.get_token_balance(token_address)
            if balance is None or _dec(balance) <= 0:
                logger.info(f"No position to monitor for {token_address}")
                return MonitorResult(ExitAction.NONE, PositionState.CLOSED, NO_POSITION_REASON)

            market = await self.market_data.get_market_data(token_address)
            if not market.has_price:
                logger.warning(f"Unable to get current price for token {token_address}")
                return MonitorResult(ExitAction.NONE, PositionState.ACTIVE, PRICE_UNAVAILABLE_REASON)

            if entry_price is None:
                entry_price = self._entry_price(token_address)

            position = Position(
                token_address=token_address,
                amount=_dec(balance),
                buy_price=_dec(entry_price) if entry_price is not None else Decimal("0"),
            )
            technical = self.analyzer.analyze_market_data(market)
            armed = self.load_trailing_stop(token_address) if self.store is not None else None
            result = self.evaluate(position, balance, market.price, technical, armed)

            logger.info(
                f"Position status {token_address}: price={market.price}, "
                f"entry={position.buy_price}, change={result.price_change_percent:.2f}%, "
                f"stop_loss=-{self.risk_limits.stop_loss_percentage}%, "
                f"take_profit={self.risk_limits.take_profit_percentage}%"
            )

            if result.trailing_stop is not None:
                self.save_trailing_stop(result.trailing_stop)
                logger.info(
                    f"Trailing stop set for {token_address} at {result.trailing_stop.activation_price} "
                    f"({result.trailing_stop.trailing_stop_percentage}%) on {result.trailing_stop.amount}"
                )

            if result.should_sell:
                logger.warning(f"{result.message} for {token_address}: selling {result.sell.amount}")
                await self._emit(result)

            return result

        except Exception as e:
            logger.error(f"Error monitoring token {token_address}: {e}")
            return MonitorResult(error=True, message=str(e))

    async def monitor_trailing_stop(self, token_address: str) -> MonitorResult:
        """One trailing-stop tick; errors are converted to MonitorResult(error=True)."""
        try:
            stop = self.load_trailing_stop(token_address)
            if stop is None:
                logger.warning(f"Trailing stop data not found for {token_address}")
                return MonitorResult(ExitAction.NONE, PositionState.ACTIVE, "Trailing stop data not found")

            balance = await self.wallet.get_token_balance(token_address)
            price = await self.market_data.get_price(token_address)
            if price is None:
                logger.warning(f"Unable to get current price for trailing stop {token_address}")

            result = self.evaluate_trailing_stop(stop, balance or 0, price)

            if result.remove_trailing_stop:
                self.remove_trailing_stop(token_address)
            elif (
                result.trailing_stop is not None
                and result.trailing_stop.highest_price > stop.highest_price
            ):
                self.save_trailing_stop(result.trailing_stop)
                logger.info(
                    f"Updated trailing stop highest price for {token_address}: "
                    f"{result.trailing_stop.highest_price}"
                )

            if result.should_sell:
                logger.info(
                    f"Trailing stop triggered for {token_address}: price={price}, "
                    f"highest={result.trailing_stop.highest_price}, "
                    f"stop={result.trailing_stop.stop_price}"
                )
                await self._emit(result)

            return result

        except Exception as e:
            logger.error(f"Error monitoring trailing stop {token_address}: {e}")
            return MonitorResult(error=True, message=str(e))
