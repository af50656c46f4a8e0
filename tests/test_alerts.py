"""
Tests for Alert System module.

Tests:
- Alert creation
- Deduplication per (type, token) within severity windows
- Emergency alerts never deduplicated
- Handler routing by severity
- Exit and drawdown alert helpers
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import Mock

from src.core import (
    AlertManager,
    Alert,
    AlertType,
    AlertSeverity,
    LoggingAlertHandler,
    CallbackAlertHandler,
    create_exit_alert,
    create_drawdown_alert,
)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 15, 12, 0, 0))


@pytest.fixture
def manager(clock):
    return AlertManager(clock=clock)


class TestAlertCreation:
    """Tests for Alert creation."""

    def test_alert_to_dict(self):
        alert = Alert(
            alert_id="test_1",
            alert_type=AlertType.STOP_LOSS_TRIGGERED,
            severity=AlertSeverity.WARNING,
            message="Stop loss triggered",
            details={"price": "94"},
            token_address="TokenA",
            timestamp=datetime(2025, 1, 15, 12, 0, 0),
        )

        data = alert.to_dict()

        assert data["alert_type"] == "STOP_LOSS_TRIGGERED"
        assert data["severity"] == "warning"
        assert data["token_address"] == "TokenA"
        assert data["timestamp"] == "2025-01-15T12:00:00"

    def test_str(self):
        alert = Alert("a", AlertType.ENGINE_STARTED, AlertSeverity.INFO, "Started", {})
        assert str(alert) == "[INFO] ENGINE_STARTED: Started"

    def test_create_alert_records_history(self, manager):
        alert = manager.create_alert(
            AlertType.TRADE_FAILED, AlertSeverity.WARNING, "Buy failed", {"error": "x"}
        )

        assert alert is not None
        assert alert.alert_id.startswith("alert_1_")
        assert manager.get_recent_alerts() == [alert]


class TestDeduplication:
    """Tests for alert deduplication."""

    def test_same_type_and_token_deduplicated(self, manager):
        first = manager.create_alert(
            AlertType.STOP_LOSS_TRIGGERED, AlertSeverity.WARNING, "SL", token_address="A"
        )
        second = manager.create_alert(
            AlertType.STOP_LOSS_TRIGGERED, AlertSeverity.WARNING, "SL", token_address="A"
        )

        assert first is not None
        assert second is None

    def test_different_tokens_not_deduplicated(self, manager):
        a = manager.create_alert(
            AlertType.STOP_LOSS_TRIGGERED, AlertSeverity.WARNING, "SL", token_address="A"
        )
        b = manager.create_alert(
            AlertType.STOP_LOSS_TRIGGERED, AlertSeverity.WARNING, "SL", token_address="B"
        )

        assert a is not None
        assert b is not None

    def test_window_expires(self, manager, clock):
        manager.create_alert(AlertType.TRADE_FAILED, AlertSeverity.WARNING, "x")
        clock.advance(minutes=3)

        assert manager.create_alert(AlertType.TRADE_FAILED, AlertSeverity.WARNING, "x") is not None

    def test_emergency_never_deduplicated(self, manager, clock):
        manager.create_alert(AlertType.PROVIDER_ERROR, AlertSeverity.EMERGENCY, "x")
        clock.advance(seconds=1)

        assert manager.create_alert(AlertType.PROVIDER_ERROR, AlertSeverity.EMERGENCY, "x") is not None

    def test_force_bypasses_dedup(self, manager):
        manager.create_alert(AlertType.TRADE_FAILED, AlertSeverity.WARNING, "x")
        assert manager.create_alert(
            AlertType.TRADE_FAILED, AlertSeverity.WARNING, "x", force=True
        ) is not None


class TestHandlerRouting:
    """Tests for handler routing by severity."""

    def test_callback_receives_at_or_above_min_severity(self, manager):
        callback = Mock()
        manager.add_handler(CallbackAlertHandler(callback, min_severity=AlertSeverity.WARNING))

        manager.create_alert(AlertType.ENGINE_STARTED, AlertSeverity.INFO, "info")
        manager.create_alert(AlertType.TRADE_FAILED, AlertSeverity.WARNING, "warn")

        assert callback.call_count == 1
        assert callback.call_args.args[0].message == "warn"

    def test_failing_callback_does_not_raise(self, manager):
        manager.add_handler(CallbackAlertHandler(Mock(side_effect=RuntimeError("x"))))

        alert = manager.create_alert(AlertType.TRADE_FAILED, AlertSeverity.CRITICAL, "x")

        assert alert is not None

    def test_logging_handler(self, manager):
        manager.add_handler(LoggingAlertHandler())
        manager.create_alert(AlertType.ENGINE_STOPPED, AlertSeverity.INFO, "Stopped")

        stats = manager.get_stats()
        assert stats["total_alerts"] == 1
        assert stats["by_severity"]["info"] == 1
        assert stats["handler_count"] == 1


class TestConvenienceFunctions:
    """Tests for alert helper functions."""

    def test_stop_loss_exit_alert(self, manager):
        alert = create_exit_alert(manager, "STOP_LOSS_EXIT", "A", "Stop loss triggered")

        assert alert.alert_type == AlertType.STOP_LOSS_TRIGGERED
        assert alert.severity == AlertSeverity.WARNING
        assert alert.token_address == "A"

    def test_unknown_state_returns_none(self, manager):
        assert create_exit_alert(manager, "HOLD", "A", "x") is None

    def test_drawdown_alert_only_above_limit(self, manager):
        assert create_drawdown_alert(manager, 0.05, 0.1) is None

        alert = create_drawdown_alert(manager, 0.15, 0.1)

        assert alert.alert_type == AlertType.DRAWDOWN_EXCEEDED
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.details["action"] == "reduce_risk"
