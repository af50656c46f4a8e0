"""
Market data models.

Provides:
- TokenSignal: per-asset candidate assembled from signal feeds
- Technical, social and ranking metric subtrees
- MarketData and TokenMetadata snapshots returned by providers
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class VolumeTrend(Enum):
    """Direction of recent volume versus its window mean."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


@dataclass
class MACDResult:
    """MACD line, signal line and histogram."""

    value: float = 0.0
    signal: float = 0.0
    histogram: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"value": self.value, "signal": self.signal, "histogram": self.histogram}


@dataclass
class VolumeProfile:
    """Volume trend over a window."""

    trend: VolumeTrend = VolumeTrend.STABLE
    unusual_activity: bool = False
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trend": self.trend.value,
            "unusual_activity": self.unusual_activity,
            "confidence": self.confidence,
        }


@dataclass
class TechnicalSignals:
    """Technical indicator snapshot for one asset."""

    rsi: float = 50.0
    macd: MACDResult = field(default_factory=MACDResult)
    volume_profile: VolumeProfile = field(default_factory=VolumeProfile)
    volatility: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rsi": self.rsi,
            "macd": self.macd.to_dict(),
            "volume_profile": self.volume_profile.to_dict(),
            "volatility": self.volatility,
        }


@dataclass
class SocialMetrics:
    """Social feed metrics."""

    mention_count: int = 0
    sentiment: float = 0.0  # [-1, 1]
    influencer_mentions: int = 0


@dataclass
class CMCMetrics:
    """Ranking feed metrics."""

    rank: int = 0
    price_change_24h: float = 0.0
    volume_change_24h: float = 0.0


@dataclass
class TokenSignal:
    """
    Candidate asset for one recommendation cycle.

    score is only meaningful after scoring; reasons is append-only provenance.
    """

    address: str
    symbol: str
    market_cap: float = 0.0
    volume_24h: float = 0.0
    price: float = 0.0
    liquidity: float = 0.0
    score: float = 0.0
    reasons: List[str] = field(default_factory=list)
    technical: Optional[TechnicalSignals] = None
    social: Optional[SocialMetrics] = None
    cmc: Optional[CMCMetrics] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "address": self.address,
            "symbol": self.symbol,
            "market_cap": self.market_cap,
            "volume_24h": self.volume_24h,
            "price": self.price,
            "liquidity": self.liquidity,
            "score": self.score,
            "reasons": list(self.reasons),
            "technical": self.technical.to_dict() if self.technical else None,
            "social": (
                {
                    "mention_count": self.social.mention_count,
                    "sentiment": self.social.sentiment,
                    "influencer_mentions": self.social.influencer_mentions,
                }
                if self.social else None
            ),
            "cmc": (
                {
                    "rank": self.cmc.rank,
                    "price_change_24h": self.cmc.price_change_24h,
                    "volume_change_24h": self.cmc.volume_change_24h,
                }
                if self.cmc else None
            ),
        }


@dataclass
class MarketData:
    """Price/liquidity snapshot with recent history."""

    price: float = 0.0
    market_cap: float = 0.0
    liquidity: float = 0.0
    volume_24h: float = 0.0
    price_history: List[float] = field(default_factory=list)
    volume_history: List[float] = field(default_factory=list)

    @property
    def has_price(self) -> bool:
        return self.price > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price": self.price,
            "market_cap": self.market_cap,
            "liquidity": self.liquidity,
            "volume_24h": self.volume_24h,
            "price_history": list(self.price_history),
            "volume_history": list(self.volume_history),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketData":
        return cls(
            price=float(data.get("price") or 0.0),
            market_cap=float(data.get("market_cap") or 0.0),
            liquidity=float(data.get("liquidity") or 0.0),
            volume_24h=float(data.get("volume_24h") or 0.0),
            price_history=[float(p) for p in data.get("price_history") or []],
            volume_history=[float(v) for v in data.get("volume_history") or []],
        )


@dataclass
class TokenMetadata:
    """On-chain/token-list metadata used for pre-trade validation."""

    verified: bool = False
    suspicious_attributes: List[str] = field(default_factory=list)
    ownership_concentration: float = 100.0  # Percent held by top holders
    decimals: int = 9

    @classmethod
    def unverified(cls, reason: str = "Unable to verify token") -> "TokenMetadata":
        """Defaults used when metadata cannot be fetched."""
        return cls(
            verified=False,
            suspicious_attributes=[reason],
            ownership_concentration=100.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verified": self.verified,
            "suspicious_attributes": list(self.suspicious_attributes),
            "ownership_concentration": self.ownership_concentration,
            "decimals": self.decimals,
        }
