"""
Pending sell volume tracking.

Several triggers (stop loss, trailing stop, risk reduction) may try to sell
the same token at once. Each sell reserves its amount here for the duration
of the submission so other triggers see what is already on its way out.
"""

import logging
import threading
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, Iterator

logger = logging.getLogger(__name__)


class PendingSellTracker:
    """
    Lock-guarded map of token address to outstanding sell amount.

    Usage:
        with tracker.reserve(token, amount):
            await executor.execute(...)
    """

    def __init__(self):
        self._pending: Dict[str, Decimal] = {}
        self._lock = threading.Lock()

    def _add(self, token_address: str, amount: Decimal) -> Decimal:
        with self._lock:
            total = self._pending.get(token_address, Decimal("0")) + amount
            if total <= 0:
                self._pending.pop(token_address, None)
                total = Decimal("0")
            else:
                self._pending[token_address] = total
            return total

    @contextmanager
    def reserve(self, token_address: str, amount: Decimal) -> Iterator[Decimal]:
        """
        Reserve sell volume for the duration of the block.

        The reservation is released on every exit path, including errors.

        Yields:
            Total pending amount for the token including this reservation
        """
        amount = Decimal(str(amount))
        total = self._add(token_address, amount)
        logger.debug(f"Reserved {amount} of {token_address}, pending={total}")
        try:
            yield total
        finally:
            remaining = self._add(token_address, -amount)
            logger.debug(f"Released {amount} of {token_address}, pending={remaining}")

    def pending(self, token_address: str) -> Decimal:
        """Outstanding sell amount for a token (never negative)."""
        with self._lock:
            return self._pending.get(token_address, Decimal("0"))

    def available(self, token_address: str, balance: Decimal) -> Decimal:
        """Balance not already reserved by an in-flight sell."""
        return max(Decimal("0"), Decimal(str(balance)) - self.pending(token_address))

    def snapshot(self) -> Dict[str, str]:
        """Copy of all pending amounts (for logging/status)."""
        with self._lock:
            return {address: str(amount) for address, amount in self._pending.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
