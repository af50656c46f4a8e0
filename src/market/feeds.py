"""
Signal feeds backed by the state store.

Intel collectors publish raw records under RecordType.SIGNAL_FEED (one key
per feed) plus an `updated_at` timestamp under RecordType.FEED_METADATA.
The feeds here shape those records into TokenSignals.

Provides:
- StoreSignalFeed: base class for store-backed feeds
- BirdeyeTrendingFeed: trending tokens, enriched with market data and technicals
- TwitterSignalFeed: social mention signals
- CMCTrendingFeed: ranking feed signals
- publish_feed: helper used by collectors and tests to publish records
"""

import asyncio
import logging
from abc import abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.api.interfaces import SignalFeed
from src.core.state_store import RecordType, StateStore
from src.market.market_data import MarketDataService
from src.market.models import CMCMetrics, SocialMetrics, TokenSignal
from src.market.technical import TechnicalAnalyzer

logger = logging.getLogger(__name__)

BIRDEYE_TRENDING_FEED = "birdeye_trending_tokens"
TWITTER_SIGNALS_FEED = "twitter_parsed_signals"
CMC_TRENDING_FEED = "cmc_trending_tokens"


def publish_feed(
    store: StateStore,
    feed_name: str,
    records: List[Dict[str, Any]],
    updated_at: Optional[datetime] = None,
) -> None:
    """Store raw feed records and stamp the feed's freshness metadata."""
    store.save(RecordType.SIGNAL_FEED, records, key=feed_name)
    store.save(
        RecordType.FEED_METADATA,
        {"updated_at": (updated_at or datetime.utcnow()).isoformat(), "count": len(records)},
        key=feed_name,
    )


def _float(record: Dict[str, Any], key: str) -> float:
    value = record.get(key)
    return float(value) if value is not None else 0.0


class StoreSignalFeed(SignalFeed):
    """Feed reading raw records published to the state store."""

    name = "feed"

    def __init__(self, store: StateStore):
        self.store = store

    def raw_records(self) -> List[Dict[str, Any]]:
        return self.store.load(RecordType.SIGNAL_FEED, self.name) or []

    def last_updated(self) -> Optional[datetime]:
        """When the collector last published, or None if unknown."""
        metadata = self.store.load(RecordType.FEED_METADATA, self.name)
        if not metadata or not metadata.get("updated_at"):
            return None
        return datetime.fromisoformat(metadata["updated_at"])

    @abstractmethod
    def to_signal(self, record: Dict[str, Any]) -> Optional[TokenSignal]:
        """Shape one raw record; None to skip it."""

    async def fetch(self) -> List[TokenSignal]:
        try:
            signals = []
            for record in self.raw_records():
                signal = self.to_signal(record)
                if signal is not None:
                    signals.append(signal)
            return signals
        except Exception as e:
            logger.error(f"Error getting {self.name} signals: {e}")
            return []


class TwitterSignalFeed(StoreSignalFeed):
    """Social mentions parsed from Twitter."""

    name = TWITTER_SIGNALS_FEED

    def to_signal(self, record: Dict[str, Any]) -> Optional[TokenSignal]:
        address = record.get("tokenAddress")
        if not address:
            return None

        mentions = int(record.get("mentionCount") or 0)
        return TokenSignal(
            address=address,
            symbol=record.get("symbol", ""),
            market_cap=_float(record, "marketCap"),
            volume_24h=_float(record, "volume24h"),
            price=_float(record, "price"),
            liquidity=_float(record, "liquidity"),
            reasons=[f"High social activity: {mentions} mentions"],
            social=SocialMetrics(
                mention_count=mentions,
                sentiment=_float(record, "sentiment"),
                influencer_mentions=int(record.get("influencerMentions") or 0),
            ),
        )


class CMCTrendingFeed(StoreSignalFeed):
    """CoinMarketCap trending tokens."""

    name = CMC_TRENDING_FEED

    def to_signal(self, record: Dict[str, Any]) -> Optional[TokenSignal]:
        address = record.get("address")
        if not address:
            return None

        rank = int(record.get("cmcRank") or 0)
        return TokenSignal(
            address=address,
            symbol=record.get("symbol", ""),
            market_cap=_float(record, "marketCap"),
            volume_24h=_float(record, "volume24h"),
            price=_float(record, "price"),
            liquidity=_float(record, "liquidity"),
            reasons=[f"Trending on CMC: {rank} rank"],
            cmc=CMCMetrics(
                rank=rank,
                price_change_24h=_float(record, "priceChange24h"),
                volume_change_24h=_float(record, "volumeChange24h"),
            ),
        )


class BirdeyeTrendingFeed(StoreSignalFeed):
    """
    Birdeye trending tokens.

    Each token is enriched with live market data and technical signals.
    Tokens whose market data cannot be fetched are skipped.
    """

    name = BIRDEYE_TRENDING_FEED

    def __init__(
        self,
        store: StateStore,
        market_data: MarketDataService,
        analyzer: Optional[TechnicalAnalyzer] = None,
    ):
        super().__init__(store)
        self.market_data = market_data
        self.analyzer = analyzer or TechnicalAnalyzer()

    def to_signal(self, record: Dict[str, Any]) -> Optional[TokenSignal]:
        address = record.get("address")
        if not address:
            return None
        return TokenSignal(address=address, symbol=record.get("symbol", ""))

    async def _enrich(self, signal: TokenSignal) -> Optional[TokenSignal]:
        try:
            market = await self.market_data.get_market_data(signal.address)
        except Exception as e:
            logger.warning(f"Skipping trending token {signal.address}: {e}")
            return None

        signal.market_cap = market.market_cap
        signal.volume_24h = market.volume_24h
        signal.price = market.price
        signal.liquidity = market.liquidity
        signal.reasons.append(f"Trending on Birdeye with {market.volume_24h}$ 24h volume")
        signal.technical = self.analyzer.analyze_market_data(market)
        return signal

    async def fetch(self) -> List[TokenSignal]:
        base = await super().fetch()
        if not base:
            return []

        enriched = await asyncio.gather(*(self._enrich(s) for s in base))
        return [s for s in enriched if s is not None]


def build_default_feeds(
    store: StateStore,
    market_data: MarketDataService,
    analyzer: Optional[TechnicalAnalyzer] = None,
) -> List[StoreSignalFeed]:
    """Trending, social and ranking feeds in merge order."""
    return [
        BirdeyeTrendingFeed(store, market_data, analyzer),
        TwitterSignalFeed(store),
        CMCTrendingFeed(store),
    ]
