"""
Birdeye market data client.

Provides:
- Spot price, market cap, liquidity and 24h volume
- Hourly price/volume history
- Token info and holder concentration for pre-trade validation
- Health probe against the SOL price endpoint

HTTP calls use a requests session with urllib3 retries and a leaky-bucket
rate limiter. Async methods run the blocking calls in a worker thread.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config.settings import SOL_MINT, BirdeyeConfig
from src.api.errors import (
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
    TransientError,
)
from src.api.interfaces import MarketDataProvider
from src.api.rate_limiter import RequestRateLimiter
from src.market.models import MarketData, TokenMetadata

logger = logging.getLogger(__name__)

# Token info sanity limits
MAX_SANE_TOTAL_SUPPLY = 1_000_000_000_000_000
MAX_SANE_DECIMALS = 18


class BirdeyeClient(MarketDataProvider):
    """
    Client for the Birdeye public REST API.

    Usage:
        client = BirdeyeClient(BirdeyeConfig(api_key="..."))
        data = await client.get_market_data(token_address)
    """

    def __init__(
        self,
        config: Optional[BirdeyeConfig] = None,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RequestRateLimiter] = None,
    ):
        """
        Initialize Birdeye client.

        Args:
            config: Birdeye configuration (API key, timeouts, retries)
            session: Pre-built session (tests inject a mock)
            rate_limiter: Shared limiter, built from config if omitted
        """
        self.config = config or BirdeyeConfig()
        self._base_url = self.config.base_url.rstrip("/")

        self._rate_limiter = rate_limiter or RequestRateLimiter(
            max_counter=15,
            decay_rate=1.0,
            min_delay=self.config.min_request_interval,
        )

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=self.config.max_retries,
                backoff_factor=1,
                status_forcelist=[500, 502, 503, 504],
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("https://", adapter)
        self._session = session

    # === Low-level request ===

    def _request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Make a GET request and return the `data` payload.

        Raises:
            ProviderError: Missing key, HTTP error or `success: false`
            RateLimitError: HTTP 429
            ProviderTimeoutError: Request timed out
        """
        if not self.config.api_key:
            raise ProviderError("Birdeye API key not found")

        self._rate_limiter.acquire()
        url = f"{self._base_url}{path}"

        try:
            response = self._session.get(
                url,
                params=params,
                headers={"X-API-KEY": self.config.api_key, "x-chain": "solana"},
                timeout=self.config.request_timeout,
            )
        except requests.Timeout as e:
            raise ProviderTimeoutError(f"Birdeye request timed out: {path}") from e
        except requests.RequestException as e:
            raise ProviderError(f"Birdeye request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitError("Birdeye rate limit hit", status_code=429)
        if not response.ok:
            raise ProviderError(
                f"Birdeye API error: {response.status_code}",
                status_code=response.status_code,
            )

        payload = response.json()
        if not payload.get("success"):
            raise ProviderError(
                f"Birdeye API error: {payload.get('message') or 'Unknown error'}"
            )

        return payload.get("data") or {}

    # === Sync fetchers ===

    def fetch_price(self, token_address: str) -> Dict[str, Any]:
        """Spot price payload (value, liquidity, ...)."""
        return self._request("/v1/token/price", {"address": token_address})

    def fetch_price_history(self, token_address: str) -> Tuple[List[float], List[float]]:
        """Hourly price and volume history, oldest first."""
        data = self._request(
            "/v1/token/price_history",
            {
                "address": token_address,
                "type": "hour",
                "limit": self.config.history_limit,
            },
        )
        items = data.get("items") or []
        prices = [float(item.get("value") or 0) for item in items]
        volumes = [float(item.get("volume") or 0) for item in items]
        return prices, volumes

    def fetch_market_snapshot(self, token_address: str) -> Dict[str, float]:
        """Market cap, liquidity and 24h volume from the v3 market-data endpoint."""
        data = self._request("/defi/v3/token/market-data", {"address": token_address})
        liquidity = data.get("liquidity")
        if isinstance(liquidity, dict):
            liquidity = liquidity.get("usd")
        return {
            "price": float(data.get("price") or 0),
            "market_cap": float(data.get("marketCap") or data.get("market_cap") or 0),
            "liquidity": float(liquidity or 0),
            "volume_24h": float(data.get("volume24h") or data.get("volume_24h_usd") or 0),
        }

    def fetch_market_data(self, token_address: str) -> MarketData:
        """Combine spot price, history and (if needed) the market snapshot."""
        price_data = self.fetch_price(token_address)
        prices, volumes = self.fetch_price_history(token_address)

        market = MarketData(
            price=float(price_data.get("value") or 0),
            market_cap=float(price_data.get("marketCap") or 0),
            liquidity=float(price_data.get("liquidity") or 0),
            volume_24h=float(price_data.get("volume24h") or 0),
            price_history=prices,
            volume_history=volumes,
        )

        # The price endpoint omits liquidity/market cap for many tokens
        if market.liquidity <= 0 or market.market_cap <= 0:
            snapshot = self.fetch_market_snapshot(token_address)
            market.liquidity = market.liquidity or snapshot["liquidity"]
            market.market_cap = market.market_cap or snapshot["market_cap"]
            market.volume_24h = market.volume_24h or snapshot["volume_24h"]

        return market

    def fetch_token_metadata(self, token_address: str) -> TokenMetadata:
        """Token info plus holder concentration."""
        info = self._request("/v1/token/info", {"address": token_address})

        suspicious: List[str] = []
        if float(info.get("totalSupply") or 0) > MAX_SANE_TOTAL_SUPPLY:
            suspicious.append("Extremely high total supply")
        if int(info.get("decimals") or 0) > MAX_SANE_DECIMALS:
            suspicious.append("Unusual decimal places")

        concentration = self._fetch_holder_concentration(token_address)

        return TokenMetadata(
            verified=bool(info.get("verified", False)),
            suspicious_attributes=suspicious,
            ownership_concentration=concentration,
            decimals=int(info.get("decimals") or 9),
        )

    def _fetch_holder_concentration(self, token_address: str) -> float:
        """Top-10 holder share in percent; 100 when unknown."""
        try:
            security = self._request("/defi/token_security", {"address": token_address})
        except TransientError as e:
            logger.warning(f"Holder concentration unavailable for {token_address}: {e}")
            return 100.0

        share = security.get("top10HolderPercent")
        if share is None:
            return 100.0
        share = float(share)
        # API reports a fraction in [0, 1]
        return share * 100 if share <= 1 else share

    # === MarketDataProvider ===

    async def get_market_data(self, token_address: str) -> MarketData:
        return await asyncio.to_thread(self.fetch_market_data, token_address)

    async def get_token_metadata(self, token_address: str) -> TokenMetadata:
        return await asyncio.to_thread(self.fetch_token_metadata, token_address)

    async def check_health(self) -> Tuple[bool, List[str]]:
        """Probe the SOL price endpoint."""
        if not self.config.api_key:
            return False, ["Birdeye API key not found"]

        try:
            data = await asyncio.to_thread(self.fetch_price, SOL_MINT)
        except TransientError as e:
            return False, [e.message]

        if not data.get("value"):
            return False, ["Birdeye returned no SOL price"]
        return True, []

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()
