"""
Alerts raised by exits, portfolio risk and market-wide controls.

Provides:
- AlertType / AlertSeverity enums
- Alert records and pluggable handlers (logging, callback)
- AlertManager: per-(type, token) suppression windows and bounded history
- Helpers for exit and drawdown alerts
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum, auto
from typing import Any, Callable, Deque, Dict, List, NamedTuple, Optional

logger = logging.getLogger(__name__)


class AlertSeverity(Enum):
    """Alert severity, ordered from least to most urgent."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"  # Entries halted

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {severity: i for i, severity in enumerate(AlertSeverity)}


class AlertType(Enum):
    """Engine events worth surfacing to an operator."""

    # Position exits
    STOP_LOSS_TRIGGERED = auto()
    TAKE_PROFIT_TRIGGERED = auto()
    TRAILING_STOP_TRIGGERED = auto()
    MOMENTUM_EXIT = auto()

    # Portfolio risk
    DRAWDOWN_EXCEEDED = auto()
    RISK_REDUCTION = auto()

    # Market-wide controls
    CIRCUIT_BREAKER_TRIGGERED = auto()
    DATA_QUALITY_DEGRADED = auto()
    DATA_QUALITY_RESTORED = auto()

    # Trades
    TRADE_FAILED = auto()
    SELL_REJECTED = auto()

    # Lifecycle
    PROVIDER_ERROR = auto()
    ENGINE_STARTED = auto()
    ENGINE_STOPPED = auto()


class SuppressionKey(NamedTuple):
    alert_type: AlertType
    token_address: Optional[str]


@dataclass
class Alert:
    """One raised alert, optionally scoped to a token."""

    alert_id: str
    alert_type: AlertType
    severity: AlertSeverity
    message: str
    details: Dict[str, Any]
    token_address: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "alert_type": self.alert_type.name,
            "severity": self.severity.value,
            "token_address": self.token_address,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        return f"[{self.severity.value.upper()}] {self.alert_type.name}: {self.message}"


class AlertHandler(ABC):
    """Receives every alert at or above its threshold."""

    def __init__(self, min_severity: AlertSeverity):
        self._min_severity = min_severity

    @property
    def min_severity(self) -> AlertSeverity:
        return self._min_severity

    def accepts(self, alert: Alert) -> bool:
        return alert.severity.rank >= self._min_severity.rank

    @abstractmethod
    def handle(self, alert: Alert) -> bool:
        """
        Deliver an alert.

        Returns:
            True if delivered
        """


class LoggingAlertHandler(AlertHandler):
    """Writes alerts to the module logger at a matching level."""

    LEVELS = {
        AlertSeverity.INFO: logging.INFO,
        AlertSeverity.WARNING: logging.WARNING,
        AlertSeverity.CRITICAL: logging.ERROR,
        AlertSeverity.EMERGENCY: logging.CRITICAL,
    }

    def __init__(self, min_severity: AlertSeverity = AlertSeverity.INFO):
        super().__init__(min_severity)

    def handle(self, alert: Alert) -> bool:
        scope = f" [{alert.token_address}]" if alert.token_address else ""
        logger.log(
            self.LEVELS[alert.severity],
            f"[ALERT] {alert.alert_type.name}{scope}: {alert.message} {alert.details}",
        )
        return True


class CallbackAlertHandler(AlertHandler):
    """Forwards alerts to a plain function, e.g. a chat or pager hook."""

    def __init__(
        self,
        callback: Callable[[Alert], None],
        min_severity: AlertSeverity = AlertSeverity.WARNING,
    ):
        super().__init__(min_severity)
        self._callback = callback

    def handle(self, alert: Alert) -> bool:
        try:
            self._callback(alert)
        except Exception as e:
            logger.error(f"Alert callback failed for {alert.alert_type.name}: {e}")
            return False
        return True


class AlertManager:
    """
    Routes alerts to handlers and suppresses repeats.

    A repeat is the same alert type for the same token inside the
    suppression window of its severity, so a stop loss on one token never
    hides a stop loss on another. Emergencies are never suppressed.

    Usage:
        alerts = AlertManager()
        alerts.add_handler(LoggingAlertHandler())
        alerts.create_alert(
            AlertType.STOP_LOSS_TRIGGERED,
            AlertSeverity.WARNING,
            "Stop loss triggered",
            {"price": "94"},
            token_address=token,
        )
    """

    SUPPRESSION_WINDOWS = {
        AlertSeverity.INFO: timedelta(minutes=5),
        AlertSeverity.WARNING: timedelta(minutes=2),
        AlertSeverity.CRITICAL: timedelta(seconds=30),
        AlertSeverity.EMERGENCY: timedelta(0),
    }

    def __init__(
        self,
        max_history: int = 1000,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._handlers: List[AlertHandler] = []
        self._history: Deque[Alert] = deque(maxlen=max_history)
        self._last_raised: Dict[SuppressionKey, datetime] = {}
        self._sequence = 0
        self._clock = clock

    def add_handler(self, handler: AlertHandler) -> None:
        self._handlers.append(handler)
        logger.debug(
            f"Alert handler {type(handler).__name__} registered "
            f"(min severity {handler.min_severity.value})"
        )

    def create_alert(
        self,
        alert_type: AlertType,
        severity: AlertSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        token_address: Optional[str] = None,
        force: bool = False,
    ) -> Optional[Alert]:
        """
        Raise an alert unless it repeats a recent one.

        Args:
            alert_type: What happened
            severity: How urgent it is
            message: Operator-facing text
            details: Prices, amounts and other context
            token_address: Token the alert concerns, if any
            force: Skip the suppression check

        Returns:
            The alert, or None if suppressed
        """
        now = self._clock()
        key = SuppressionKey(alert_type, token_address)

        if not force and self._suppressed(key, severity, now):
            logger.debug(f"Suppressed repeat {alert_type.name} for {token_address or 'engine'}")
            return None

        self._sequence += 1
        alert = Alert(
            alert_id=f"alert_{self._sequence}_{int(now.timestamp())}",
            alert_type=alert_type,
            severity=severity,
            message=message,
            details=details or {},
            token_address=token_address,
            timestamp=now,
        )
        self._last_raised[key] = now
        self._history.append(alert)

        for handler in self._handlers:
            if not handler.accepts(alert):
                continue
            try:
                handler.handle(alert)
            except Exception as e:
                logger.error(f"{type(handler).__name__} failed on {alert.alert_type.name}: {e}")

        return alert

    def _suppressed(self, key: SuppressionKey, severity: AlertSeverity, now: datetime) -> bool:
        last = self._last_raised.get(key)
        if last is None or severity is AlertSeverity.EMERGENCY:
            return False
        return now - last <= self.SUPPRESSION_WINDOWS[severity]

    def get_recent_alerts(
        self,
        since: Optional[datetime] = None,
        alert_type: Optional[AlertType] = None,
        token_address: Optional[str] = None,
    ) -> List[Alert]:
        """Alerts in history order, optionally filtered."""
        return [
            alert
            for alert in self._history
            if (since is None or alert.timestamp >= since)
            and (alert_type is None or alert.alert_type == alert_type)
            and (token_address is None or alert.token_address == token_address)
        ]

    def get_stats(self) -> Dict[str, Any]:
        by_severity = Counter(alert.severity.value for alert in self._history)
        by_type = Counter(alert.alert_type.name for alert in self._history)
        return {
            "total_alerts": len(self._history),
            "by_severity": {s.value: by_severity.get(s.value, 0) for s in AlertSeverity},
            "by_type": dict(by_type),
            "handler_count": len(self._handlers),
        }


# === Exit and drawdown helpers ===

# PositionState name -> (alert type, severity)
EXIT_ALERTS = {
    "STOP_LOSS_EXIT": (AlertType.STOP_LOSS_TRIGGERED, AlertSeverity.WARNING),
    "TAKE_PROFIT_PARTIAL": (AlertType.TAKE_PROFIT_TRIGGERED, AlertSeverity.INFO),
    "TRAILING_EXIT": (AlertType.TRAILING_STOP_TRIGGERED, AlertSeverity.INFO),
    "MOMENTUM_EXIT": (AlertType.MOMENTUM_EXIT, AlertSeverity.INFO),
}


def create_exit_alert(
    alert_manager: AlertManager,
    state_name: str,
    token_address: str,
    reason: str,
    details: Optional[Dict[str, Any]] = None,
) -> Optional[Alert]:
    """Raise the alert matching a position exit state; holds raise nothing."""
    mapping = EXIT_ALERTS.get(state_name)
    if mapping is None:
        return None

    alert_type, severity = mapping
    return alert_manager.create_alert(
        alert_type, severity, reason, details, token_address=token_address
    )


def create_drawdown_alert(
    alert_manager: AlertManager,
    drawdown: float,
    max_drawdown: float,
) -> Optional[Alert]:
    """
    Raise a critical alert when drawdown is above the configured limit.

    Args:
        alert_manager: Destination manager
        drawdown: Current drawdown fraction
        max_drawdown: Limit fraction

    Returns:
        Created alert, or None when within the limit or suppressed
    """
    if drawdown <= max_drawdown:
        return None

    return alert_manager.create_alert(
        AlertType.DRAWDOWN_EXCEEDED,
        AlertSeverity.CRITICAL,
        f"Maximum drawdown exceeded: {drawdown:.2%} (limit {max_drawdown:.2%})",
        {"drawdown": drawdown, "max_drawdown": max_drawdown, "action": "reduce_risk"},
    )
