"""
Jupiter swap quote client.

Provides:
- Quotes for a swap amount at a given slippage tolerance
- Serialized swap transactions for a quote

Signing and broadcasting the transaction is the Executor's job.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config.settings import JupiterConfig
from src.api.errors import ProviderError, ProviderTimeoutError, RateLimitError
from src.api.interfaces import Quote, QuoteProvider

logger = logging.getLogger(__name__)


class JupiterQuoteClient(QuoteProvider):
    """
    Client for the Jupiter v6 quote and swap endpoints.

    Usage:
        client = JupiterQuoteClient()
        quote = await client.get_quote(SOL_MINT, token, Decimal("100000000"), 150)
    """

    def __init__(
        self,
        config: Optional[JupiterConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or JupiterConfig()

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=2,
                backoff_factor=1,
                status_forcelist=[500, 502, 503, 504],
                allowed_methods=["GET"],
            )
            session.mount("https://", HTTPAdapter(max_retries=retry_strategy))
        self._session = session

    def _check_response(self, response: requests.Response, what: str) -> Dict[str, Any]:
        if response.status_code == 429:
            raise RateLimitError(f"Jupiter {what} rate limited", status_code=429)
        if not response.ok:
            raise ProviderError(
                f"Jupiter {what} API returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response.json()

    def fetch_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: Decimal,
        slippage_bps: int,
    ) -> Quote:
        """
        Fetch a quote.

        Args:
            input_mint: Mint being sold
            output_mint: Mint being bought
            amount: Input amount in base units (lamports for SOL)
            slippage_bps: Slippage tolerance in basis points

        Returns:
            Quote with out_amount and route plan

        Raises:
            ProviderError: On HTTP error or an incomplete quote
        """
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(int(amount)),
            "slippageBps": int(slippage_bps),
        }
        try:
            response = self._session.get(
                self.config.quote_url,
                params=params,
                timeout=self.config.request_timeout,
            )
        except requests.Timeout as e:
            raise ProviderTimeoutError("Jupiter quote timed out") from e
        except requests.RequestException as e:
            raise ProviderError(f"Jupiter quote request failed: {e}") from e

        data = self._check_response(response, "quote")
        if not data.get("outAmount") or not data.get("routePlan"):
            logger.warning(f"Invalid quote data for {output_mint}: {data}")
            raise ProviderError("Invalid quote data received")

        return Quote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=Decimal(str(data.get("inAmount") or int(amount))),
            out_amount=Decimal(str(data["outAmount"])),
            slippage_bps=int(slippage_bps),
            route_plan=list(data["routePlan"]),
            raw=data,
        )

    def fetch_swap_transaction(self, quote: Quote, wallet_address: str) -> str:
        """Build the base64 swap transaction for a quote."""
        try:
            response = self._session.post(
                self.config.swap_url,
                json={"quoteResponse": quote.raw, "userPublicKey": wallet_address},
                timeout=self.config.request_timeout,
            )
        except requests.Timeout as e:
            raise ProviderTimeoutError("Jupiter swap timed out") from e
        except requests.RequestException as e:
            raise ProviderError(f"Jupiter swap request failed: {e}") from e

        data = self._check_response(response, "swap")
        transaction = data.get("swapTransaction")
        if not transaction:
            raise ProviderError("Jupiter swap response missing transaction")
        return transaction

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: Decimal,
        slippage_bps: int,
    ) -> Quote:
        return await asyncio.to_thread(
            self.fetch_quote, input_mint, output_mint, amount, slippage_bps
        )

    async def get_swap_transaction(self, quote: Quote, wallet_address: str) -> str:
        return await asyncio.to_thread(self.fetch_swap_transaction, quote, wallet_address)

    def close(self) -> None:
        self._session.close()
