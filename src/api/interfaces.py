"""
Collaborator interfaces consumed by the engine.

Provides:
- MarketDataProvider: prices, history and token metadata
- QuoteProvider: swap quotes and transactions
- Executor: trade submission
- Wallet: balances
- SignalFeed: raw per-asset candidate records
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from src.market.models import MarketData, TokenMetadata, TokenSignal


class TradeDirection(Enum):
    """Trade side."""

    BUY = "buy"
    SELL = "sell"


@dataclass
class Quote:
    """Swap quote from a routing provider."""

    input_mint: str
    output_mint: str
    in_amount: Decimal
    out_amount: Decimal
    slippage_bps: int
    route_plan: List[Dict[str, Any]] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionResult:
    """Outcome of a submitted trade."""

    success: bool
    signature: Optional[str] = None
    out_amount: Optional[Decimal] = None  # Base units of the output asset
    error: Optional[str] = None


class MarketDataProvider(ABC):
    """Source of market snapshots and token metadata."""

    @abstractmethod
    async def get_market_data(self, token_address: str) -> MarketData:
        """
        Fetch price, market cap, liquidity, volume and recent history.

        Raises:
            TransientError: On network/API failure
        """

    @abstractmethod
    async def get_token_metadata(self, token_address: str) -> TokenMetadata:
        """Fetch verification status and risk attributes."""

    async def check_health(self) -> Tuple[bool, List[str]]:
        """Probe the provider; returns (valid, issues)."""
        return True, []


class QuoteProvider(ABC):
    """Swap routing collaborator."""

    @abstractmethod
    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: Decimal,
        slippage_bps: int,
    ) -> Quote:
        """Quote a swap of `amount` base units of input_mint."""

    @abstractmethod
    async def get_swap_transaction(self, quote: Quote, wallet_address: str) -> str:
        """Build the serialized swap transaction for a quote."""


class Executor(ABC):
    """Submits trades. Signing and broadcast live behind this boundary."""

    @abstractmethod
    async def execute(
        self,
        asset: str,
        amount: Decimal,
        slippage: float,
        direction: TradeDirection,
    ) -> ExecutionResult:
        """
        Execute a trade.

        Args:
            asset: Token address
            amount: SOL for buys, token amount for sells (UI units)
            slippage: Decimal slippage tolerance (0.01 = 1%)
            direction: BUY or SELL
        """


class Wallet(ABC):
    """Balance lookups."""

    @abstractmethod
    async def get_sol_balance(self) -> Decimal:
        """Native SOL balance."""

    @abstractmethod
    async def get_token_balance(self, token_address: str) -> Decimal:
        """Token balance in UI (decimal-adjusted) units."""


class SignalFeed(ABC):
    """One independent candidate source."""

    name: str = "feed"

    @abstractmethod
    async def fetch(self) -> List[TokenSignal]:
        """Return candidate signals; an empty list when nothing is available."""
