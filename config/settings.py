"""
Configuration dataclasses for the Degen Trader risk engine.

All configuration parameters are defined here with sensible defaults.
Values can be overridden via config.yaml or environment variables.

The trading subtree (intervals, thresholds, risk limits, slippage) is frozen
once validated. Adaptive slippage tuning works on its own copy of
SlippageSettings owned by the slippage model.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple


SOL_MINT = "So11111111111111111111111111111111111111112"


# ===========================================
# TRADING CONFIGURATION
# ===========================================

@dataclass(frozen=True)
class IntervalsConfig:
    """Recurring work intervals (milliseconds)."""

    price_check: int = 60_000  # Per-position monitoring
    wallet_sync: int = 600_000  # 10 minutes
    performance_monitor: int = 3_600_000  # Hourly drawdown check


@dataclass(frozen=True)
class ThresholdsConfig:
    """Minimum requirements for a candidate token."""

    min_liquidity: float = 50_000.0  # USD
    min_volume: float = 100_000.0  # USD, 24h
    min_score: float = 60.0


@dataclass(frozen=True)
class RiskLimitsConfig:
    """Risk limits - CRITICAL for capital preservation."""

    max_position_size: float = 0.2  # Fraction of available capital
    max_drawdown: float = 0.1  # Fraction of high-water mark
    stop_loss_percentage: float = 5.0  # Percent below entry
    take_profit_percentage: float = 20.0  # Percent above entry


@dataclass(frozen=True)
class SlippageSettings:
    """Dynamic slippage parameters (percent units)."""

    base_slippage: float = 0.5
    max_slippage: float = 1.0
    liquidity_multiplier: float = 1.0
    volume_multiplier: float = 1.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "base_slippage": self.base_slippage,
            "max_slippage": self.max_slippage,
            "liquidity_multiplier": self.liquidity_multiplier,
            "volume_multiplier": self.volume_multiplier,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SlippageSettings":
        defaults = cls()
        return cls(
            base_slippage=float(data.get("base_slippage", defaults.base_slippage)),
            max_slippage=float(data.get("max_slippage", defaults.max_slippage)),
            liquidity_multiplier=float(
                data.get("liquidity_multiplier", defaults.liquidity_multiplier)
            ),
            volume_multiplier=float(
                data.get("volume_multiplier", defaults.volume_multiplier)
            ),
        )


@dataclass(frozen=True)
class TradingConfig:
    """Complete trading configuration."""

    intervals: IntervalsConfig = field(default_factory=IntervalsConfig)
    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)
    risk_limits: RiskLimitsConfig = field(default_factory=RiskLimitsConfig)
    slippage: SlippageSettings = field(default_factory=SlippageSettings)


# Clamping bounds applied once at startup
MIN_PRICE_CHECK_INTERVAL = 10_000
MIN_WALLET_SYNC_INTERVAL = 60_000
DEFAULT_MIN_LIQUIDITY_FALLBACK = 10_000.0
DEFAULT_MIN_VOLUME_FALLBACK = 5_000.0
MAX_POSITION_SIZE_LIMIT = 0.5
DEFAULT_MAX_POSITION_SIZE_FALLBACK = 0.1
MAX_DRAWDOWN_LIMIT = 0.5
DEFAULT_MAX_DRAWDOWN_FALLBACK = 0.2
MAX_STOP_LOSS_PERCENTAGE = 50.0
DEFAULT_STOP_LOSS_FALLBACK = 10.0
DEFAULT_TAKE_PROFIT_FALLBACK = 20.0


def validate_trading_config(raw: TradingConfig) -> Tuple[TradingConfig, List[str]]:
    """
    Clamp a raw trading configuration into safe bounds.

    Pure function: the input is never mutated.

    Args:
        raw: Configuration as loaded from YAML/environment

    Returns:
        Tuple of (clamped config, list of warnings describing each change)
    """
    warnings: List[str] = []

    intervals = raw.intervals
    if intervals.price_check < MIN_PRICE_CHECK_INTERVAL:
        warnings.append(
            f"Price check interval {intervals.price_check}ms too short, "
            f"using {MIN_PRICE_CHECK_INTERVAL}ms"
        )
        intervals = replace(intervals, price_check=MIN_PRICE_CHECK_INTERVAL)
    if intervals.wallet_sync < MIN_WALLET_SYNC_INTERVAL:
        warnings.append(
            f"Wallet sync interval {intervals.wallet_sync}ms too short, "
            f"using {MIN_WALLET_SYNC_INTERVAL}ms"
        )
        intervals = replace(intervals, wallet_sync=MIN_WALLET_SYNC_INTERVAL)

    thresholds = raw.thresholds
    if thresholds.min_liquidity <= 0:
        warnings.append(
            f"Invalid min liquidity {thresholds.min_liquidity}, "
            f"using {DEFAULT_MIN_LIQUIDITY_FALLBACK}"
        )
        thresholds = replace(thresholds, min_liquidity=DEFAULT_MIN_LIQUIDITY_FALLBACK)
    if thresholds.min_volume <= 0:
        warnings.append(
            f"Invalid min volume {thresholds.min_volume}, "
            f"using {DEFAULT_MIN_VOLUME_FALLBACK}"
        )
        thresholds = replace(thresholds, min_volume=DEFAULT_MIN_VOLUME_FALLBACK)

    limits = raw.risk_limits
    if not 0 < limits.max_position_size <= MAX_POSITION_SIZE_LIMIT:
        warnings.append(
            f"Invalid max position size {limits.max_position_size}, "
            f"using {DEFAULT_MAX_POSITION_SIZE_FALLBACK}"
        )
        limits = replace(limits, max_position_size=DEFAULT_MAX_POSITION_SIZE_FALLBACK)
    if not 0 < limits.max_drawdown <= MAX_DRAWDOWN_LIMIT:
        warnings.append(
            f"Invalid max drawdown {limits.max_drawdown}, "
            f"using {DEFAULT_MAX_DRAWDOWN_FALLBACK}"
        )
        limits = replace(limits, max_drawdown=DEFAULT_MAX_DRAWDOWN_FALLBACK)
    if not 0 < limits.stop_loss_percentage <= MAX_STOP_LOSS_PERCENTAGE:
        warnings.append(
            f"Invalid stop loss {limits.stop_loss_percentage}%, "
            f"using {DEFAULT_STOP_LOSS_FALLBACK}%"
        )
        limits = replace(limits, stop_loss_percentage=DEFAULT_STOP_LOSS_FALLBACK)
    if limits.take_profit_percentage <= 0:
        warnings.append(
            f"Invalid take profit {limits.take_profit_percentage}%, "
            f"using {DEFAULT_TAKE_PROFIT_FALLBACK}%"
        )
        limits = replace(limits, take_profit_percentage=DEFAULT_TAKE_PROFIT_FALLBACK)

    clamped = TradingConfig(
        intervals=intervals,
        thresholds=thresholds,
        risk_limits=limits,
        slippage=raw.slippage,
    )
    return clamped, warnings


# ===========================================
# PROVIDER CONFIGURATION
# ===========================================

@dataclass
class BirdeyeConfig:
    """Birdeye market data API configuration."""

    base_url: str = "https://public-api.birdeye.so"
    api_key: str = ""  # Set via DEGEN_BIRDEYE_API_KEY, never YAML
    request_timeout: int = 15  # seconds
    max_retries: int = 3
    min_request_interval: float = 0.2  # seconds between calls
    history_limit: int = 24  # hourly candles for price history


@dataclass
class JupiterConfig:
    """Jupiter quote API configuration."""

    quote_url: str = "https://quote-api.jup.ag/v6/quote"
    swap_url: str = "https://quote-api.jup.ag/v6/swap"
    request_timeout: int = 15
    lamports_per_sol: int = 1_000_000_000


# ===========================================
# RISK CONTROL CONFIGURATION
# ===========================================

@dataclass
class CircuitBreakerConfig:
    """Market-wide circuit breaker thresholds."""

    reference_asset: str = SOL_MINT
    min_history: int = 24
    lookback_index: int = 6  # Sample ~1h back at 10-minute intervals
    price_change_threshold: float = 15.0  # Percent
    volatility_threshold: float = 0.6
    pause_duration_seconds: int = 3600


@dataclass
class DataQualityConfig:
    """Signal feed freshness limits."""

    social_max_age_hours: float = 6.0
    ranking_max_age_hours: float = 12.0


# ===========================================
# INFRASTRUCTURE CONFIGURATION
# ===========================================

@dataclass
class StateStoreConfig:
    """State store backend configuration."""

    backend: str = "sqlite"  # "sqlite" or "memory"
    path: str = "data/engine_state.db"


@dataclass
class NotificationConfig:
    """Best-effort heartbeat URLs (e.g. uptime monitors)."""

    buy_heartbeat_url: Optional[str] = None
    sell_heartbeat_url: Optional[str] = None
    timeout: float = 5.0


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    file_path: str = "logs/engine.log"


# ===========================================
# MAIN ENGINE CONFIGURATION
# ===========================================

@dataclass
class EngineConfig:
    """Complete engine configuration combining all sub-configs."""

    trading: TradingConfig = field(default_factory=TradingConfig)
    birdeye: BirdeyeConfig = field(default_factory=BirdeyeConfig)
    jupiter: JupiterConfig = field(default_factory=JupiterConfig)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    data_quality: DataQualityConfig = field(default_factory=DataQualityConfig)
    state_store: StateStoreConfig = field(default_factory=StateStoreConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Wallet public key used for swap transactions
    wallet_address: str = ""

    paper_trading: bool = True  # Simulated fills; no live executor is wired
    paper_sol_balance: float = 10.0  # Starting SOL for the paper wallet

    def validate(self) -> List[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        slippage = self.trading.slippage
        if slippage.base_slippage <= 0:
            errors.append(f"Base slippage must be positive, got {slippage.base_slippage}")
        if slippage.max_slippage < slippage.base_slippage:
            errors.append(
                f"Max slippage {slippage.max_slippage}% below base "
                f"slippage {slippage.base_slippage}%"
            )

        if self.state_store.backend not in ("sqlite", "memory"):
            errors.append(f"Unknown state store backend: {self.state_store.backend}")

        if self.circuit_breaker.lookback_index >= self.circuit_breaker.min_history:
            errors.append(
                "Circuit breaker lookback index must be inside the required history"
            )

        return errors
