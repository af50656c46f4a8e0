"""
Paper trading collaborators.

Provides:
- PaperWallet: in-memory SOL and token balances
- PaperExecutor: fills trades at the current quote and updates the wallet

Signing and broadcasting are outside this package; paper mode is the only
executor wired by the entry point.
"""

import logging
import threading
import uuid
from decimal import Decimal
from typing import Dict, Optional

from config.settings import SOL_MINT, JupiterConfig
from src.api.interfaces import (
    ExecutionResult,
    Executor,
    QuoteProvider,
    TradeDirection,
    Wallet,
)
from src.market.market_data import MarketDataService

logger = logging.getLogger(__name__)


class PaperWallet(Wallet):
    """Simulated wallet; balances in UI units."""

    def __init__(self, sol_balance: Decimal = Decimal("0")):
        self._sol = Decimal(str(sol_balance))
        self._tokens: Dict[str, Decimal] = {}
        self._lock = threading.Lock()

    async def get_sol_balance(self) -> Decimal:
        with self._lock:
            return self._sol

    async def get_token_balance(self, token_address: str) -> Decimal:
        with self._lock:
            return self._tokens.get(token_address, Decimal("0"))

    def apply(self, sol_delta: Decimal, token_address: str, token_delta: Decimal) -> None:
        """Apply a fill; balances never go below zero."""
        with self._lock:
            self._sol = max(Decimal("0"), self._sol + sol_delta)
            balance = max(Decimal("0"), self._tokens.get(token_address, Decimal("0")) + token_delta)
            if balance > 0:
                self._tokens[token_address] = balance
            else:
                self._tokens.pop(token_address, None)

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            result = {"SOL": str(self._sol)}
            result.update({address: str(amount) for address, amount in self._tokens.items()})
            return result


class PaperExecutor(Executor):
    """
    Fills every trade at the live quote.

    Usage:
        wallet = PaperWallet(Decimal("10"))
        executor = PaperExecutor(quotes, market_data, wallet)
        result = await executor.execute(token, Decimal("0.5"), 0.01, TradeDirection.BUY)
    """

    def __init__(
        self,
        quote_provider: QuoteProvider,
        market_data: MarketDataService,
        wallet: PaperWallet,
        jupiter_config: Optional[JupiterConfig] = None,
    ):
        self.quote_provider = quote_provider
        self.market_data = market_data
        self.wallet = wallet
        self.lamports_per_sol = (jupiter_config or JupiterConfig()).lamports_per_sol

    async def execute(
        self,
        asset: str,
        amount: Decimal,
        slippage: float,
        direction: TradeDirection,
    ) -> ExecutionResult:
        amount = Decimal(str(amount))
        slippage_bps = int(round(slippage * 10000))

        try:
            metadata = await self.market_data.get_token_metadata(asset)
            scale = Decimal(10) ** metadata.decimals

            if direction == TradeDirection.BUY:
                if amount > await self.wallet.get_sol_balance():
                    return ExecutionResult(False, error="Insufficient SOL balance")
                lamports = (amount * self.lamports_per_sol).to_integral_value()
                quote = await self.quote_provider.get_quote(SOL_MINT, asset, lamports, slippage_bps)
                self.wallet.apply(-amount, asset, quote.out_amount / scale)
            else:
                if amount > await self.wallet.get_token_balance(asset):
                    return ExecutionResult(False, error="Insufficient token balance")
                base_amount = (amount * scale).to_integral_value()
                quote = await self.quote_provider.get_quote(asset, SOL_MINT, base_amount, slippage_bps)
                self.wallet.apply(quote.out_amount / self.lamports_per_sol, asset, -amount)

        except Exception as e:
            logger.error(f"Paper {direction.value} of {asset} failed: {e}")
            return ExecutionResult(False, error=str(e))

        signature = f"PAPER-{uuid.uuid4().hex[:12].upper()}"
        logger.info(
            f"Paper {direction.value} filled: {amount} {asset} -> {quote.out_amount} ({signature})"
        )
        return ExecutionResult(True, signature=signature, out_amount=quote.out_amount)
