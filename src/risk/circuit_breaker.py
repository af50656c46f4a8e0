"""
Market-wide circuit breaker and data-quality degradation.

Provides:
- CircuitBreaker: pauses new entries on extreme reference-asset moves
- TradingPauseGate: entry gate honouring pause expiry
- DataQualityMonitor: probes the price feed and signal feed freshness,
  applying mitigations for each degraded source

Entries consult the pause gate; exits and risk reduction never do.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config.settings import CircuitBreakerConfig, DataQualityConfig
from src.api.interfaces import MarketDataProvider
from src.core.alerts import AlertManager, AlertSeverity, AlertType
from src.core.state_store import RecordType, StateStore
from src.market import indicators
from src.market.feeds import StoreSignalFeed
from src.market.market_data import MarketDataService
from src.signals.scorer import ScoringWeights

logger = logging.getLogger(__name__)

EXTREME_PRICE_MOVEMENT = "extreme_price_movement"
HIGH_VOLATILITY = "high_volatility"

CIRCUIT_BREAKER_PAUSE_REASON = "Circuit breaker triggered"
DATA_QUALITY_PAUSE_REASON = "Primary price feed issues"

QUALITY_GOOD = "good"
QUALITY_DEGRADED = "degraded"


@dataclass
class CircuitBreakerResult:
    """Outcome of a circuit breaker check."""

    triggered: bool = False
    reason: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class TradingPauseGate:
    """
    Reads and writes the TRADING_PAUSED record.

    A pause with expiry_time lifts itself once the time has passed; a pause
    without expiry stays until resume().
    """

    def __init__(self, store: StateStore, clock: Callable[[], float] = time.time):
        self.store = store
        self._clock = clock

    def status(self) -> Optional[Dict[str, Any]]:
        record = self.store.load(RecordType.TRADING_PAUSED)
        if not record or not record.get("paused"):
            return None

        expiry = record.get("expiry_time")
        if expiry is not None and self._clock() >= float(expiry):
            return None
        return record

    def is_paused(self) -> bool:
        return self.status() is not None

    def pause(
        self,
        reason: str,
        duration_seconds: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        now = self._clock()
        record = {
            "paused": True,
            "reason": reason,
            "timestamp": now,
            "expiry_time": now + duration_seconds if duration_seconds else None,
            "details": details or {},
        }
        self.store.save(RecordType.TRADING_PAUSED, record, ttl=duration_seconds)
        logger.warning(f"Trading paused: {reason}")

    def resume(self, reason: Optional[str] = None) -> bool:
        """
        Lift the pause.

        Args:
            reason: Only lift a pause created with this reason

        Returns:
            True if a pause was lifted
        """
        current = self.status()
        if current is None:
            return False
        if reason is not None and current.get("reason") != reason:
            return False

        self.store.delete(RecordType.TRADING_PAUSED)
        logger.info(f"Trading resumed (was: {current.get('reason')})")
        return True


class CircuitBreaker:
    """
    Pauses entries when the reference asset moves too far or too violently.

    Trigger: |1h change| > 15% or volatility > 0.6. Trips pause entries
    for one hour.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig,
        market_data: MarketDataService,
        pause_gate: TradingPauseGate,
        alert_manager: Optional[AlertManager] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.config = config
        self.market_data = market_data
        self.pause_gate = pause_gate
        self.alert_manager = alert_manager
        self._clock = clock

    def evaluate(self, price_change_percent: float, volatility: float) -> CircuitBreakerResult:
        """Pure trigger rule; price movement takes precedence in the reason."""
        details = {"price_change_percent": price_change_percent, "volatility": volatility}

        if abs(price_change_percent) > self.config.price_change_threshold:
            return CircuitBreakerResult(True, EXTREME_PRICE_MOVEMENT, details)
        if volatility > self.config.volatility_threshold:
            return CircuitBreakerResult(True, HIGH_VOLATILITY, details)
        return CircuitBreakerResult(False, None, details)

    async def check(self, reference_address: Optional[str] = None) -> CircuitBreakerResult:
        """
        Check the reference asset and pause entries on trigger.

        Returns:
            CircuitBreakerResult; not triggered when history is insufficient
            or on error
        """
        reference_address = reference_address or self.config.reference_asset

        try:
            logger.info("Checking circuit breaker conditions")
            market = await self.market_data.get_market_data(reference_address)
            history = market.price_history

            if len(history) < self.config.min_history:
                logger.warning("Insufficient price history for circuit breaker check")
                return CircuitBreakerResult(False, "insufficient_history", {"points": len(history)})

            prior_price = history[self.config.lookback_index]
            if prior_price <= 0:
                logger.warning(f"Invalid prior price {prior_price} for circuit breaker check")
                return CircuitBreakerResult(False, "invalid_prior_price", {"prior_price": prior_price})

            change = (market.price - prior_price) / prior_price * 100
            volatility = indicators.volatility(history)

            logger.info(
                f"Market conditions: price={market.price}, change={change:.2f}%, "
                f"volatility={volatility:.4f}"
            )

            result = self.evaluate(change, volatility)
            if result.triggered:
                self._trip(result)
            return result

        except Exception as e:
            logger.error(f"Error checking circuit breaker conditions: {e}")
            return CircuitBreakerResult(False, "error", {"error": str(e)})

    def _trip(self, result: CircuitBreakerResult) -> None:
        logger.warning(
            f"Circuit breaker triggered: {result.reason} {result.details}, pausing trades"
        )
        self.pause_gate.store.save(
            RecordType.CIRCUIT_BREAKER,
            {
                "triggered": True,
                "reason": result.reason,
                "timestamp": self._clock().isoformat(),
                "details": result.details,
            },
        )
        self.pause_gate.pause(
            CIRCUIT_BREAKER_PAUSE_REASON,
            duration_seconds=self.config.pause_duration_seconds,
            details=result.details,
        )

        if self.alert_manager is not None:
            self.alert_manager.create_alert(
                AlertType.CIRCUIT_BREAKER_TRIGGERED,
                AlertSeverity.CRITICAL,
                f"Circuit breaker triggered: {result.reason}",
                result.details,
            )


# === Data quality ===

@dataclass
class SourceStatus:
    """Validity of one data source."""

    valid: bool
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "issues": list(self.issues)}


@dataclass
class DataQualityReport:
    """Result of a data-source validation pass."""

    status: str
    primary: SourceStatus
    social: SourceStatus
    ranking: SourceStatus
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_good(self) -> bool:
        return self.status == QUALITY_GOOD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "primary": self.primary.to_dict(),
            "social": self.social.to_dict(),
            "ranking": self.ranking.to_dict(),
            "updated_at": self.updated_at.isoformat(),
        }


class DataQualityMonitor:
    """
    Validates data sources and degrades behaviour per failing source.

    Mitigations:
    - Primary price feed invalid: pause entries (no expiry) and reduce risk
    - Social feed stale: store reduced social scoring weights
    - Ranking feed stale: mark CMC data invalid so ranking-only signals are ignored

    Each mitigation is reverted once its source is valid again.
    """

    def __init__(
        self,
        config: DataQualityConfig,
        provider: MarketDataProvider,
        social_feed: StoreSignalFeed,
        ranking_feed: StoreSignalFeed,
        store: StateStore,
        pause_gate: TradingPauseGate,
        risk_reducer: Optional[Callable[[], Awaitable[Any]]] = None,
        alert_manager: Optional[AlertManager] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.config = config
        self.provider = provider
        self.social_feed = social_feed
        self.ranking_feed = ranking_feed
        self.store = store
        self.pause_gate = pause_gate
        self.risk_reducer = risk_reducer
        self.alert_manager = alert_manager
        self._clock = clock

    # === Source checks ===

    async def check_primary(self) -> SourceStatus:
        try:
            valid, issues = await self.provider.check_health()
            return SourceStatus(valid, list(issues))
        except Exception as e:
            return SourceStatus(False, [str(e)])

    def check_feed(self, feed: StoreSignalFeed, label: str, max_age_hours: float) -> SourceStatus:
        """Feed must be non-empty with metadata fresher than max_age_hours."""
        try:
            issues = []

            if not feed.raw_records():
                issues.append(f"No {label} signals available")

            updated_at = feed.last_updated()
            if updated_at is None:
                issues.append(f"{label} signal metadata missing")
            else:
                age_hours = (self._clock() - updated_at) / timedelta(hours=1)
                if age_hours > max_age_hours:
                    issues.append(f"{label} data is {age_hours:.1f} hours old")

            return SourceStatus(not issues, issues)
        except Exception as e:
            return SourceStatus(False, [str(e)])

    # === Validation pass ===

    async def validate_data_sources(self) -> DataQualityReport:
        """
        Probe every source, store the report and apply mitigations.

        Never raises; an unexpected failure yields a degraded report.
        """
        logger.info("Validating data sources")
        previous = self.store.load(RecordType.DATA_QUALITY) or {}

        try:
            primary = await self.check_primary()
            social = self.check_feed(self.social_feed, "Twitter", self.config.social_max_age_hours)
            ranking = self.check_feed(self.ranking_feed, "CMC", self.config.ranking_max_age_hours)

            all_valid = primary.valid and social.valid and ranking.valid
            report = DataQualityReport(
                status=QUALITY_GOOD if all_valid else QUALITY_DEGRADED,
                primary=primary,
                social=social,
                ranking=ranking,
                updated_at=self._clock(),
            )
            logger.info(f"Data source validation results: {report.to_dict()}")

            self.store.save(RecordType.DATA_QUALITY, report.to_dict())
            await self._apply_mitigations(report, previous.get("status"))
            return report

        except Exception as e:
            logger.error(f"Error validating data sources: {e}")
            failed = SourceStatus(False, [str(e)])
            return DataQualityReport(QUALITY_DEGRADED, failed, failed, failed, self._clock())

    async def _apply_mitigations(self, report: DataQualityReport, previous_status: Optional[str]) -> None:
        if not report.is_good:
            logger.warning(f"Handling degraded data quality: {report.to_dict()}")
            if self.alert_manager is not None:
                self.alert_manager.create_alert(
                    AlertType.DATA_QUALITY_DEGRADED,
                    AlertSeverity.WARNING,
                    "Data quality degraded",
                    report.to_dict(),
                )
        elif previous_status == QUALITY_DEGRADED and self.alert_manager is not None:
            self.alert_manager.create_alert(
                AlertType.DATA_QUALITY_RESTORED,
                AlertSeverity.INFO,
                "Data quality restored",
                report.to_dict(),
            )

        if not report.primary.valid:
            logger.warning("Pausing new trades due to primary price feed issues")
            self.pause_gate.pause(DATA_QUALITY_PAUSE_REASON, details={"issues": report.primary.issues})
            if self.risk_reducer is not None:
                await self.risk_reducer()
        else:
            self.pause_gate.resume(reason=DATA_QUALITY_PAUSE_REASON)

        if not report.social.valid:
            logger.warning("Reducing social metrics weight due to stale Twitter data")
            self.store.save(RecordType.SCORING_WEIGHTS, ScoringWeights.degraded_social().to_shares())
        else:
            self.store.delete(RecordType.SCORING_WEIGHTS)

        if not report.ranking.valid:
            logger.warning("CMC data issues detected, focusing on technical analysis")
        self.store.save(RecordType.CMC_DATA_VALID, report.ranking.valid)
