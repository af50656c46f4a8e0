"""
Core Engine Module.

Provides:
- Alert system for exits, risk events and data quality
- Best-effort trade notifications
- Pending sell reservation
- Key-value state store (SQLite or in-memory) with TTL
- Trade history and performance snapshots
- Interval scheduler for the periodic ticks

The TradingEngine lives in src.core.engine and is imported from there.
"""

from .alerts import (
    AlertManager,
    Alert,
    AlertType,
    AlertSeverity,
    AlertHandler,
    LoggingAlertHandler,
    CallbackAlertHandler,
    create_exit_alert,
    create_drawdown_alert,
)
from .notifier import (
    NotificationEvent,
    NotificationPort,
    NullNotifier,
    HttpHeartbeatNotifier,
)
from .pending_sells import PendingSellTracker
from .state_store import (
    RecordType,
    StateStore,
    InMemoryStateStore,
    SQLiteStateStore,
    create_state_store,
)
from .trade_history import (
    TradeRecord,
    TradeHistory,
)
from .scheduler import (
    Scheduler,
    SchedulerState,
    ScheduledTask,
)

__all__ = [
    # Alerts
    "AlertManager",
    "Alert",
    "AlertType",
    "AlertSeverity",
    "AlertHandler",
    "LoggingAlertHandler",
    "CallbackAlertHandler",
    "create_exit_alert",
    "create_drawdown_alert",
    # Notifications
    "NotificationEvent",
    "NotificationPort",
    "NullNotifier",
    "HttpHeartbeatNotifier",
    # Pending sells
    "PendingSellTracker",
    # State store
    "RecordType",
    "StateStore",
    "InMemoryStateStore",
    "SQLiteStateStore",
    "create_state_store",
    # Trade history
    "TradeRecord",
    "TradeHistory",
    # Scheduler
    "Scheduler",
    "SchedulerState",
    "ScheduledTask",
]
