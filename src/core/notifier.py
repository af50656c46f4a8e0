"""
Best-effort notifications (heartbeat pings).

Provides:
- NotificationEvent: events the engine reports outward
- NotificationPort: non-blocking notification interface
- HttpHeartbeatNotifier: pings uptime-monitor URLs after buys/sells
- NullNotifier: no-op implementation

Notifications never raise and never block the calling operation.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional, Set

import requests

from config.settings import NotificationConfig

logger = logging.getLogger(__name__)


class NotificationEvent(Enum):
    """Outward-facing engine events."""

    BUY_EXECUTED = "buy_executed"
    SELL_EXECUTED = "sell_executed"


class NotificationPort(ABC):
    """Fire-and-forget notification sink."""

    @abstractmethod
    def notify(self, event: NotificationEvent, payload: Optional[Dict[str, Any]] = None) -> None:
        """Schedule a notification. Must return immediately and never raise."""

    async def drain(self) -> None:
        """Wait for in-flight notifications (used on shutdown and in tests)."""


class NullNotifier(NotificationPort):
    """Discards every notification."""

    def notify(self, event: NotificationEvent, payload: Optional[Dict[str, Any]] = None) -> None:
        logger.debug(f"Notification discarded: {event.value}")


class HttpHeartbeatNotifier(NotificationPort):
    """
    Pings a heartbeat URL per event type.

    Usage:
        notifier = HttpHeartbeatNotifier(NotificationConfig(
            buy_heartbeat_url="https://uptime.example/api/push/abc",
        ))
        notifier.notify(NotificationEvent.BUY_EXECUTED)
    """

    def __init__(
        self,
        config: Optional[NotificationConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or NotificationConfig()
        self._session = session or requests.Session()
        self._tasks: Set[asyncio.Task] = set()

    def _url_for(self, event: NotificationEvent) -> Optional[str]:
        if event == NotificationEvent.BUY_EXECUTED:
            return self.config.buy_heartbeat_url
        if event == NotificationEvent.SELL_EXECUTED:
            return self.config.sell_heartbeat_url
        return None

    def _ping(self, url: str) -> None:
        try:
            response = self._session.get(url, timeout=self.config.timeout)
            if not response.ok:
                logger.warning(f"Heartbeat ping returned {response.status_code}")
        except requests.RequestException as e:
            logger.warning(f"Heartbeat ping failed: {e}")

    def notify(self, event: NotificationEvent, payload: Optional[Dict[str, Any]] = None) -> None:
        url = self._url_for(event)
        if not url:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (sync caller): ping inline, errors are still swallowed
            self._ping(url)
            return

        task = loop.create_task(asyncio.to_thread(self._ping, url))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
