"""
Risk Control Module.

Provides:
- RiskSizer: buy sizing from drawdown, score, volatility and liquidity
- SlippageModel: dynamic slippage with self-tuning multipliers
- PositionMonitor: stop loss, take profit, momentum and trailing stop exits
- PortfolioRiskManager: high-water mark drawdown and risk reduction
- CircuitBreaker / DataQualityMonitor: market-wide pauses and feed degradation

Entries consult the pause gate; exits never do.
"""

from .sizing import (
    MarketCondition,
    SizingResult,
    RiskSizer,
    assess_market_condition,
)
from .slippage import (
    SlippageRecord,
    SlippageSettingsState,
    SlippageModel,
    compute_slippage_percent,
    to_bps,
)
from .position_monitor import (
    ExitAction,
    PositionState,
    Position,
    TrailingStop,
    SellIntent,
    MonitorResult,
    PositionMonitor,
)
from .portfolio_risk import (
    PositionValue,
    PortfolioStatus,
    PortfolioRiskManager,
)
from .circuit_breaker import (
    CircuitBreakerResult,
    TradingPauseGate,
    CircuitBreaker,
    SourceStatus,
    DataQualityReport,
    DataQualityMonitor,
)

__all__ = [
    # Sizing
    "MarketCondition",
    "SizingResult",
    "RiskSizer",
    "assess_market_condition",
    # Slippage
    "SlippageRecord",
    "SlippageSettingsState",
    "SlippageModel",
    "compute_slippage_percent",
    "to_bps",
    # Position monitoring
    "ExitAction",
    "PositionState",
    "Position",
    "TrailingStop",
    "SellIntent",
    "MonitorResult",
    "PositionMonitor",
    # Portfolio risk
    "PositionValue",
    "PortfolioStatus",
    "PortfolioRiskManager",
    # Circuit breaker
    "CircuitBreakerResult",
    "TradingPauseGate",
    "CircuitBreaker",
    "SourceStatus",
    "DataQualityReport",
    "DataQualityMonitor",
]
