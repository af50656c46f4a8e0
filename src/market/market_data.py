"""
Cached, retried access to market data providers.

Provides:
- MarketDataService: wraps a MarketDataProvider with a TTL cache and
  bounded exponential-backoff retry
"""

import logging
from decimal import Decimal
from typing import Optional

from src.api.errors import RetryConfig, retry_async
from src.api.interfaces import MarketDataProvider
from src.market.cache import CacheKeyClass, MarketDataCache
from src.market.models import MarketData, TokenMetadata

logger = logging.getLogger(__name__)


class MarketDataService:
    """
    Market data facade used by every engine component.

    Market data and prices are cached for 60s, metadata for 5 minutes.
    Transient provider errors are retried up to 3 times with backoff.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        cache: Optional[MarketDataCache] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.provider = provider
        self.cache = cache or MarketDataCache()
        self.retry_config = retry_config or RetryConfig()

    async def get_market_data(self, token_address: str) -> MarketData:
        """
        Get market data for a token.

        Raises:
            TransientError: When every retry attempt failed
        """
        cached = self.cache.get_for(CacheKeyClass.MARKET_DATA, token_address)
        if cached is not None:
            return cached

        market = await retry_async(
            lambda: self.provider.get_market_data(token_address),
            self.retry_config,
            description=f"market data {token_address}",
        )
        self.cache.set_for(CacheKeyClass.MARKET_DATA, token_address, market)
        if market.has_price:
            self.cache.set_for(CacheKeyClass.PRICE, token_address, Decimal(str(market.price)))
        return market

    async def get_price(self, token_address: str) -> Optional[Decimal]:
        """
        Current price, or None when unavailable.

        Never raises; failures are logged.
        """
        cached = self.cache.get_for(CacheKeyClass.PRICE, token_address)
        if cached is not None:
            return cached

        try:
            market = await self.get_market_data(token_address)
        except Exception as e:
            logger.warning(f"Price unavailable for {token_address}: {e}")
            return None

        if not market.has_price:
            return None
        return Decimal(str(market.price))

    async def get_token_metadata(self, token_address: str) -> TokenMetadata:
        """
        Token verification metadata.

        Falls back to unverified defaults on any failure.
        """
        cached = self.cache.get_for(CacheKeyClass.TOKEN_METADATA, token_address)
        if cached is not None:
            return cached

        try:
            metadata = await retry_async(
                lambda: self.provider.get_token_metadata(token_address),
                self.retry_config,
                description=f"token metadata {token_address}",
            )
        except Exception as e:
            logger.error(f"Error fetching token metadata for {token_address}: {e}")
            return TokenMetadata.unverified()

        self.cache.set_for(CacheKeyClass.TOKEN_METADATA, token_address, metadata)
        return metadata

    def invalidate(self, token_address: str) -> None:
        """Drop every cached entry for a token."""
        for key_class in CacheKeyClass:
            self.cache.delete(key_class.key(token_address))
