"""
Trade History for cost basis and performance tracking.

Provides:
- TradeRecord: one buy and its eventual sell
- TradeHistory: record buys/sells, per-token statistics, performance snapshots

Records live in the state store under RecordType.TRADE, keyed by
"<token address>:<buy timestamp>".
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from src.core.state_store import RecordType, StateStore

logger = logging.getLogger(__name__)

MAX_PERFORMANCE_SNAPSHOTS = 100

# Selling at a loss this soon after buying counts as a rapid dump
RAPID_DUMP_WINDOW = timedelta(hours=1)


@dataclass
class TradeRecord:
    """A buy and (once closed) its sell."""

    token_address: str
    buy_price: Decimal
    buy_amount: Decimal
    buy_timestamp: datetime
    buy_value_usd: Decimal = Decimal("0")
    buy_market_cap: float = 0.0
    buy_liquidity: float = 0.0
    is_simulation: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    sell_price: Optional[Decimal] = None
    sell_amount: Optional[Decimal] = None
    sell_timestamp: Optional[datetime] = None
    received_sol: Decimal = Decimal("0")
    sell_value_usd: Decimal = Decimal("0")
    sell_market_cap: float = 0.0
    sell_liquidity: float = 0.0
    profit_usd: Decimal = Decimal("0")
    profit_percent: float = 0.0
    market_cap_change: float = 0.0
    liquidity_change: float = 0.0
    rapid_dump: bool = False

    @property
    def key(self) -> str:
        return f"{self.token_address}:{self.buy_timestamp.isoformat()}"

    @property
    def is_open(self) -> bool:
        return self.sell_timestamp is None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "token_address": self.token_address,
            "buy_price": str(self.buy_price),
            "buy_amount": str(self.buy_amount),
            "buy_timestamp": self.buy_timestamp.isoformat(),
            "buy_value_usd": str(self.buy_value_usd),
            "buy_market_cap": self.buy_market_cap,
            "buy_liquidity": self.buy_liquidity,
            "is_simulation": self.is_simulation,
            "sell_price": str(self.sell_price) if self.sell_price is not None else None,
            "sell_amount": str(self.sell_amount) if self.sell_amount is not None else None,
            "sell_timestamp": self.sell_timestamp.isoformat() if self.sell_timestamp else None,
            "received_sol": str(self.received_sol),
            "sell_value_usd": str(self.sell_value_usd),
            "sell_market_cap": self.sell_market_cap,
            "sell_liquidity": self.sell_liquidity,
            "profit_usd": str(self.profit_usd),
            "profit_percent": self.profit_percent,
            "market_cap_change": self.market_cap_change,
            "liquidity_change": self.liquidity_change,
            "rapid_dump": self.rapid_dump,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeRecord":
        """Deserialize from dictionary."""

        def _decimal(value: Any, default: str = "0") -> Decimal:
            return Decimal(str(value)) if value is not None else Decimal(default)

        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            token_address=data["token_address"],
            buy_price=_decimal(data.get("buy_price")),
            buy_amount=_decimal(data.get("buy_amount")),
            buy_timestamp=datetime.fromisoformat(data["buy_timestamp"]),
            buy_value_usd=_decimal(data.get("buy_value_usd")),
            buy_market_cap=float(data.get("buy_market_cap") or 0),
            buy_liquidity=float(data.get("buy_liquidity") or 0),
            is_simulation=bool(data.get("is_simulation", False)),
            sell_price=(
                Decimal(str(data["sell_price"])) if data.get("sell_price") is not None else None
            ),
            sell_amount=(
                Decimal(str(data["sell_amount"])) if data.get("sell_amount") is not None else None
            ),
            sell_timestamp=(
                datetime.fromisoformat(data["sell_timestamp"])
                if data.get("sell_timestamp") else None
            ),
            received_sol=_decimal(data.get("received_sol")),
            sell_value_usd=_decimal(data.get("sell_value_usd")),
            sell_market_cap=float(data.get("sell_market_cap") or 0),
            sell_liquidity=float(data.get("sell_liquidity") or 0),
            profit_usd=_decimal(data.get("profit_usd")),
            profit_percent=float(data.get("profit_percent") or 0),
            market_cap_change=float(data.get("market_cap_change") or 0),
            liquidity_change=float(data.get("liquidity_change") or 0),
            rapid_dump=bool(data.get("rapid_dump", False)),
        )


class TradeHistory:
    """
    Trade performance records backed by a StateStore.

    Usage:
        history = TradeHistory(store)
        history.record_buy(token, price, amount)
        ...
        history.record_sell(token, sell_price, amount)
        trades = history.get_trades_for_token(token)  # Newest first
    """

    def __init__(
        self,
        store: StateStore,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self._clock = clock

    # === Trades ===

    def record_buy(
        self,
        token_address: str,
        buy_price: Decimal,
        buy_amount: Decimal,
        buy_value_usd: Optional[Decimal] = None,
        market_cap: float = 0.0,
        liquidity: float = 0.0,
        is_simulation: bool = False,
    ) -> TradeRecord:
        """Store a new open trade."""
        buy_price = Decimal(str(buy_price))
        buy_amount = Decimal(str(buy_amount))
        record = TradeRecord(
            token_address=token_address,
            buy_price=buy_price,
            buy_amount=buy_amount,
            buy_timestamp=self._clock(),
            buy_value_usd=(
                Decimal(str(buy_value_usd)) if buy_value_usd is not None
                else buy_price * buy_amount
            ),
            buy_market_cap=market_cap,
            buy_liquidity=liquidity,
            is_simulation=is_simulation,
        )
        self.store.save(RecordType.TRADE, record.to_dict(), key=record.key)

        logger.info(
            f"Trade recorded: buy {buy_amount} of {token_address} at {buy_price}"
        )
        return record

    def record_sell(
        self,
        token_address: str,
        sell_price: Decimal,
        sell_amount: Decimal,
        received_sol: Decimal = Decimal("0"),
        market_cap: float = 0.0,
        liquidity: float = 0.0,
    ) -> Optional[TradeRecord]:
        """
        Close the newest open trade for a token and update statistics.

        Returns:
            Updated TradeRecord, or None if there is no open trade
        """
        open_trades = [t for t in self.get_trades_for_token(token_address) if t.is_open]
        if not open_trades:
            logger.warning(f"No open trade to close for {token_address}")
            return None

        trade = open_trades[0]
        now = self._clock()
        sell_price = Decimal(str(sell_price))
        sell_amount = Decimal(str(sell_amount))

        trade.sell_price = sell_price
        trade.sell_amount = sell_amount
        trade.sell_timestamp = now
        trade.received_sol = Decimal(str(received_sol))
        trade.sell_value_usd = sell_price * sell_amount
        trade.sell_market_cap = market_cap
        trade.sell_liquidity = liquidity
        trade.profit_usd = (sell_price - trade.buy_price) * sell_amount

        if trade.buy_price > 0:
            trade.profit_percent = float((sell_price - trade.buy_price) / trade.buy_price * 100)
        if trade.buy_market_cap > 0:
            trade.market_cap_change = (
                (market_cap - trade.buy_market_cap) / trade.buy_market_cap * 100
            )
        if trade.buy_liquidity > 0:
            trade.liquidity_change = (
                (liquidity - trade.buy_liquidity) / trade.buy_liquidity * 100
            )
        trade.rapid_dump = (
            trade.profit_percent < 0 and now - trade.buy_timestamp < RAPID_DUMP_WINDOW
        )

        self.store.save(RecordType.TRADE, trade.to_dict(), key=trade.key)
        self._update_token_statistics(trade)

        logger.info(
            f"Trade closed for {token_address}: "
            f"profit {trade.profit_percent:.2f}% ({trade.profit_usd})"
        )
        return trade

    def get_trades_for_token(self, token_address: str) -> List[TradeRecord]:
        """All trades for a token, newest buy first."""
        prefix = f"{token_address}:"
        trades = []
        for key in self.store.list_keys(RecordType.TRADE):
            if not key.startswith(prefix):
                continue
            data = self.store.load(RecordType.TRADE, key)
            if data:
                trades.append(TradeRecord.from_dict(data))

        trades.sort(key=lambda t: t.buy_timestamp, reverse=True)
        return trades

    def get_latest_trade(self, token_address: str) -> Optional[TradeRecord]:
        trades = self.get_trades_for_token(token_address)
        return trades[0] if trades else None

    def average_cost_basis(self, token_address: str) -> Optional[Decimal]:
        """
        Volume-weighted average buy price.

        Returns:
            sum(buy_price * buy_amount) / sum(buy_amount), or None without trades
        """
        trades = self.get_trades_for_token(token_address)
        total_amount = sum((t.buy_amount for t in trades), Decimal("0"))
        if total_amount <= 0:
            return None
        total_cost = sum((t.buy_price * t.buy_amount for t in trades), Decimal("0"))
        return total_cost / total_amount

    # === Statistics ===

    def _update_token_statistics(self, trade: TradeRecord) -> None:
        stats = self.get_token_stats(trade.token_address)

        stats["trades"] += 1
        stats["total_profit_usd"] = str(
            Decimal(str(stats["total_profit_usd"])) + trade.profit_usd
        )
        stats["average_profit_percent"] = (
            stats["average_profit_percent"] * (stats["trades"] - 1) + trade.profit_percent
        ) / stats["trades"]
        if trade.rapid_dump:
            stats["rapid_dumps"] += 1

        self.store.save(RecordType.TOKEN_STATS, stats, key=trade.token_address)

    def get_token_stats(self, token_address: str) -> Dict[str, Any]:
        """Closed-trade statistics for a token."""
        stats = self.store.load(RecordType.TOKEN_STATS, token_address)
        if stats is None:
            stats = {
                "trades": 0,
                "total_profit_usd": "0",
                "average_profit_percent": 0.0,
                "rapid_dumps": 0,
            }
        return stats

    # === Performance snapshots ===

    def record_performance_snapshot(self, snapshot: Dict[str, Any]) -> None:
        """Append a portfolio snapshot, keeping the newest 100."""
        history = self.store.load(RecordType.PERFORMANCE_HISTORY) or []
        entry = dict(snapshot)
        entry.setdefault("timestamp", self._clock().isoformat())
        history.append(entry)

        if len(history) > MAX_PERFORMANCE_SNAPSHOTS:
            history = history[-MAX_PERFORMANCE_SNAPSHOTS:]

        self.store.save(RecordType.PERFORMANCE_HISTORY, history)

    def get_performance_history(self) -> List[Dict[str, Any]]:
        return self.store.load(RecordType.PERFORMANCE_HISTORY) or []
