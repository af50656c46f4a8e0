"""
Dynamic slippage model with adaptive recalibration.

Provides:
- compute_slippage_percent: pure slippage formula
- average_slippage_efficiency: IQR-filtered mean of actual/used slippage
- SlippageSettingsState: lock-guarded, persisted mutable slippage settings
- SlippageModel: per-trade slippage in basis points, execution tracking and
  at-most-daily tuning of the liquidity/volume multipliers

Formula (percent units):
    slippage = base
    + (trade_value / liquidity * 100) ** 1.5 * liquidity_multiplier * 0.01
        (when the trade is more than 0.1% of liquidity)
    - min(volume / market_cap * 5, 0.5) * volume_multiplier, floored at base * 0.5
        (when volume / market_cap > 0.05)
    + special per-token adjustment
    capped at max_slippage; bps = floor(percent * 100)
"""

import logging
import math
import threading
import time
from dataclasses import asdict, dataclass, replace
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from config.settings import SlippageSettings
from src.core.state_store import RecordType, StateStore
from src.market.market_data import MarketDataService
from src.market.models import MarketData

logger = logging.getLogger(__name__)

FALLBACK_SLIPPAGE_BPS = 100  # 1%

LIQUIDITY_ADJUSTMENT_THRESHOLD = 0.1  # Percent of liquidity
VOLUME_ADJUSTMENT_THRESHOLD = 0.05  # Volume / market cap
MAX_VOLUME_DISCOUNT = 0.5
TAX_SLIPPAGE_BUFFER = 1.5

# Recalibration
OPTIMIZATION_INTERVAL_SECONDS = 24 * 60 * 60
RECORD_WINDOW_SECONDS = 7 * 24 * 60 * 60
MIN_RECORDS_FOR_OPTIMIZATION = 10
MIN_BUCKET_RECORDS = 5
LOW_LIQUIDITY_LIMIT = 10_000.0
HIGH_VOLUME_TO_LIQUIDITY = 0.3
EFFICIENCY_HIGH = 0.9
EFFICIENCY_LOW = 0.7
MULTIPLIER_FLOOR = 0.5
MULTIPLIER_CAP = 2.0
MAX_STORED_RECORDS = 1000


def compute_slippage_percent(
    trade_value: float,
    market: MarketData,
    settings: SlippageSettings,
    special_adjustment: float = 0.0,
) -> float:
    """
    Slippage tolerance in percent.

    Zero liquidity uses max slippage. Zero market cap skips the
    volume adjustment.

    Args:
        trade_value: Trade value in the same units as liquidity
        market: Liquidity, volume and market cap
        settings: Current slippage settings
        special_adjustment: Additive per-token term (percent)

    Returns:
        Slippage percent, at most settings.max_slippage
    """
    if market.liquidity <= 0:
        return settings.max_slippage

    slippage = settings.base_slippage

    liquidity_pct = trade_value / market.liquidity * 100
    if liquidity_pct > LIQUIDITY_ADJUSTMENT_THRESHOLD:
        slippage += liquidity_pct ** 1.5 * settings.liquidity_multiplier * 0.01

    if market.market_cap > 0:
        volume_to_mcap = market.volume_24h / market.market_cap
        if volume_to_mcap > VOLUME_ADJUSTMENT_THRESHOLD:
            discount = min(volume_to_mcap * 5, MAX_VOLUME_DISCOUNT) * settings.volume_multiplier
            slippage = max(slippage - discount, settings.base_slippage * 0.5)

    slippage += special_adjustment

    return min(slippage, settings.max_slippage)


def to_bps(percent: float) -> int:
    return int(math.floor(percent * 100))


def average_slippage_efficiency(records: Sequence["SlippageRecord"]) -> float:
    """
    Mean of actual/used slippage after IQR outlier removal.

    q1 and q3 are taken at sorted[floor(n * 0.25)] and sorted[floor(n * 0.75)];
    values outside [q1 - 1.5 IQR, q3 + 1.5 IQR] are dropped.
    """
    efficiencies = np.array(
        [r.actual_slippage_bps / r.slippage_bps_used for r in records if r.slippage_bps_used],
        dtype=float,
    )
    if efficiencies.size == 0:
        return 0.0

    ordered = np.sort(efficiencies)
    n = ordered.size
    q1 = ordered[int(n * 0.25)]
    q3 = ordered[int(n * 0.75)]
    iqr = q3 - q1

    mask = (efficiencies >= q1 - 1.5 * iqr) & (efficiencies <= q3 + 1.5 * iqr)
    return float(efficiencies[mask].mean())


@dataclass
class SlippageRecord:
    """One executed trade's slippage outcome."""

    token_address: str
    timestamp: float
    expected_amount: str
    actual_amount: str
    slippage_bps_used: int
    actual_slippage_bps: int
    is_sell: bool
    price: float = 0.0
    liquidity: float = 0.0
    volume_24h: float = 0.0

    @property
    def efficiency(self) -> float:
        return self.actual_slippage_bps / self.slippage_bps_used if self.slippage_bps_used else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SlippageRecord":
        return cls(**data)


class SlippageSettingsState:
    """
    The mutable slippage settings, owned by the slippage model.

    Loaded from the state store when a tuned copy exists, otherwise seeded
    from the trading configuration.
    """

    def __init__(self, initial: SlippageSettings, store: Optional[StateStore] = None):
        self._store = store
        self._lock = threading.Lock()

        stored = store.load(RecordType.SLIPPAGE_SETTINGS) if store else None
        self._settings = SlippageSettings.from_dict(stored) if stored else initial

    def get(self) -> SlippageSettings:
        with self._lock:
            return self._settings

    def update(self, settings: SlippageSettings) -> None:
        with self._lock:
            self._settings = settings
            if self._store is not None:
                self._store.save(RecordType.SLIPPAGE_SETTINGS, settings.to_dict())


class SlippageModel:
    """
    Per-trade slippage and online recalibration.

    Usage:
        model = SlippageModel(market_data, SlippageSettingsState(cfg.slippage, store), store)
        bps = await model.calculate_slippage_bps(token, Decimal("0.5"))
        ...
        await model.track_execution(token, expected, actual, bps, is_sell=False)
    """

    def __init__(
        self,
        market_data: MarketDataService,
        settings: SlippageSettingsState,
        store: StateStore,
        clock: Callable[[], float] = time.time,
    ):
        self.market_data = market_data
        self.settings = settings
        self.store = store
        self._clock = clock

    # === Special tokens ===

    def special_adjustment(self, token_address: str) -> float:
        """
        Additive slippage for tokens listed as special (e.g. transfer-tax tokens).

        An explicit TOKEN_SLIPPAGE override wins over TOKEN_TAX info.
        """
        special = self.store.load(RecordType.SPECIAL_SLIPPAGE_TOKENS) or []
        if token_address not in special:
            return 0.0

        try:
            override = self.store.load(RecordType.TOKEN_SLIPPAGE, token_address)
            if override is not None:
                return float(override.get("slippage_adjustment", 0))

            tax = self.store.load(RecordType.TOKEN_TAX, token_address)
            if tax and tax.get("has_tax"):
                return float(tax.get("tax_percentage", 0)) * TAX_SLIPPAGE_BUFFER
        except Exception as e:
            logger.error(f"Error getting special slippage for {token_address}: {e}")

        return 0.0

    # === Slippage calculation ===

    async def calculate_slippage_bps(
        self,
        token_address: str,
        trade_amount: Union[Decimal, float],
        is_sell: bool = False,
    ) -> int:
        """
        Slippage tolerance in basis points.

        Args:
            token_address: Token traded
            trade_amount: SOL for buys, token amount for sells
            is_sell: Sell amounts are converted to value at the current price

        Returns:
            Basis points; FALLBACK_SLIPPAGE_BPS if market data is unavailable
        """
        try:
            market = await self.market_data.get_market_data(token_address)
            settings = self.settings.get()

            trade_value = float(trade_amount) * market.price if is_sell else float(trade_amount)
            special = self.special_adjustment(token_address)
            percent = compute_slippage_percent(trade_value, market, settings, special)
            bps = to_bps(percent)

            logger.info(
                f"Calculated dynamic slippage for {token_address}: {percent:.4f}% "
                f"({bps} bps, trade_value={trade_value:.4f}, special={special})"
            )
            return bps

        except Exception as e:
            logger.error(f"Error calculating dynamic slippage for {token_address}: {e}")
            return FALLBACK_SLIPPAGE_BPS

    # === Execution tracking ===

    def load_records(self) -> List[SlippageRecord]:
        raw = self.store.load(RecordType.SLIPPAGE_HISTORY) or []
        return [SlippageRecord.from_dict(r) for r in raw]

    def _append_record(self, record: SlippageRecord) -> None:
        raw = self.store.load(RecordType.SLIPPAGE_HISTORY) or []
        raw.append(record.to_dict())
        if len(raw) > MAX_STORED_RECORDS:
            raw = raw[-MAX_STORED_RECORDS:]
        self.store.save(RecordType.SLIPPAGE_HISTORY, raw)

    async def track_execution(
        self,
        token_address: str,
        expected_amount: Union[Decimal, float, str],
        actual_amount: Union[Decimal, float, str],
        slippage_bps_used: int,
        is_sell: bool,
    ) -> Optional[SlippageRecord]:
        """
        Record a trade's realized slippage, then maybe recalibrate.

        Best effort: errors are logged, never raised.

        Returns:
            The stored record, or None if skipped
        """
        try:
            expected = Decimal(str(expected_amount))
            actual = Decimal(str(actual_amount))

            if expected <= 0 or actual <= 0:
                logger.warning(
                    f"Invalid amounts for slippage tracking on {token_address}: "
                    f"expected={expected_amount}, actual={actual_amount}"
                )
                return None

            actual_slippage = float((expected - actual) / expected * 100)

            try:
                market = await self.market_data.get_market_data(token_address)
            except Exception as e:
                logger.warning(f"Market context unavailable for slippage record: {e}")
                market = MarketData()

            record = SlippageRecord(
                token_address=token_address,
                timestamp=self._clock(),
                expected_amount=str(expected),
                actual_amount=str(actual),
                slippage_bps_used=int(slippage_bps_used),
                actual_slippage_bps=to_bps(actual_slippage),
                is_sell=is_sell,
                price=market.price,
                liquidity=market.liquidity,
                volume_24h=market.volume_24h,
            )
            self._append_record(record)

            logger.info(
                f"Trade slippage impact for {token_address}: used={record.slippage_bps_used} bps, "
                f"actual={record.actual_slippage_bps} bps, efficiency={record.efficiency:.2f}"
            )

            self.maybe_optimize()
            return record

        except Exception as e:
            logger.error(f"Error tracking slippage impact for {token_address}: {e}")
            return None

    # === Recalibration ===

    @staticmethod
    def _tune(multiplier: float, efficiency: float) -> float:
        if efficiency > EFFICIENCY_HIGH:
            return max(MULTIPLIER_FLOOR, multiplier * 0.9)
        if efficiency < EFFICIENCY_LOW:
            return min(MULTIPLIER_CAP, multiplier * 1.1)
        return multiplier

    def maybe_optimize(self) -> bool:
        """
        Tune multipliers from recent executions, at most once per 24h.

        Requires 10 records within the last 7 days. The low-liquidity bucket
        (< 10k) tunes liquidity_multiplier; high volume-to-liquidity records
        (> 0.3) tune volume_multiplier. Each needs 5 records.

        Returns:
            True if settings changed
        """
        try:
            now = self._clock()
            last = self.store.load(RecordType.LAST_SLIPPAGE_OPTIMIZATION)
            if last is not None and now - float(last) < OPTIMIZATION_INTERVAL_SECONDS:
                return False

            records = self.load_records()
            if len(records) < MIN_RECORDS_FOR_OPTIMIZATION:
                return False

            cutoff = now - RECORD_WINDOW_SECONDS
            recent = [r for r in records if r.timestamp >= cutoff]
            if len(recent) < MIN_RECORDS_FOR_OPTIMIZATION:
                return False

            low_liquidity = [r for r in recent if r.liquidity < LOW_LIQUIDITY_LIMIT]
            high_volume = [
                r for r in recent
                if r.liquidity > 0 and r.volume_24h / r.liquidity > HIGH_VOLUME_TO_LIQUIDITY
            ]

            current = self.settings.get()
            tuned = current

            if len(low_liquidity) >= MIN_BUCKET_RECORDS:
                efficiency = average_slippage_efficiency(low_liquidity)
                tuned = replace(
                    tuned, liquidity_multiplier=self._tune(tuned.liquidity_multiplier, efficiency)
                )

            if len(high_volume) >= MIN_BUCKET_RECORDS:
                efficiency = average_slippage_efficiency(high_volume)
                tuned = replace(
                    tuned, volume_multiplier=self._tune(tuned.volume_multiplier, efficiency)
                )

            changed = tuned != current
            if changed:
                self.settings.update(tuned)
                logger.info(
                    f"Optimized slippage parameters: {current.to_dict()} -> {tuned.to_dict()}"
                )

            self.store.save(RecordType.LAST_SLIPPAGE_OPTIMIZATION, now)
            return changed

        except Exception as e:
            logger.error(f"Error optimizing slippage parameters: {e}")
            return False
