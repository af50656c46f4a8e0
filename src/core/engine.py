"""
Trading Engine - Central Coordinator for the risk engine.

Provides:
- Component wiring (scoring, sizing, slippage, monitoring, risk, breaker)
- Buy and sell paths with pending-sell reservation and quote retry
- Periodic tick handlers registered with the Scheduler
- Graceful shutdown closing all positions

Unit conventions:
- Wallet balances, sell amounts and Executor amounts are UI units
  (SOL for buys, decimal-adjusted tokens for sells)
- Quote amounts and ExecutionResult.out_amount are base units
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Sequence, Union

from config.settings import SOL_MINT, EngineConfig
from src.api.errors import (
    InsufficientBalanceError,
    InvalidSellAmountError,
    InvariantViolation,
    ProviderError,
    RetryConfig,
    retry_async,
)
from src.api.interfaces import (
    Executor,
    Quote,
    QuoteProvider,
    SignalFeed,
    TradeDirection,
    Wallet,
)
from src.core.alerts import AlertManager, AlertSeverity, AlertType, LoggingAlertHandler
from src.core.notifier import NotificationEvent, NotificationPort, NullNotifier
from src.core.pending_sells import PendingSellTracker
from src.core.scheduler import Scheduler
from src.core.state_store import RecordType, StateStore
from src.core.trade_history import TradeHistory
from src.market.feeds import (
    CMC_TRENDING_FEED,
    TWITTER_SIGNALS_FEED,
    CMCTrendingFeed,
    StoreSignalFeed,
    TwitterSignalFeed,
)
from src.market.market_data import MarketDataService
from src.market.technical import TechnicalAnalyzer
from src.risk.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerResult,
    DataQualityMonitor,
    DataQualityReport,
    TradingPauseGate,
)
from src.risk.portfolio_risk import PortfolioRiskManager, PortfolioStatus
from src.risk.position_monitor import MonitorResult, PositionMonitor, PositionState, SellIntent
from src.risk.sizing import RiskSizer
from src.risk.slippage import SlippageModel, SlippageSettingsState
from src.signals.recommender import TokenRecommender, TokenValidator
from src.signals.scorer import SignalScorer

logger = logging.getLogger(__name__)

Number = Union[Decimal, float, int, str]

QUOTE_RETRY = RetryConfig(max_retries=3, base_delay=1.0, exponential_base=2.0)

# Fixed task intervals (seconds)
TRAILING_STOP_INTERVAL = 60
DATA_QUALITY_INTERVAL = 15 * 60
CIRCUIT_BREAKER_INTERVAL = 5 * 60

SHUTDOWN_REASON = "Service shutdown"


class EngineState(Enum):
    """Engine lifecycle states."""

    CREATED = auto()
    RUNNING = auto()
    STOPPED = auto()


@dataclass
class TradeResult:
    """Outcome of a buy or sell attempt."""

    success: bool
    token_address: str = ""
    direction: Optional[TradeDirection] = None
    amount: Decimal = Decimal("0")
    reason: str = ""
    signature: Optional[str] = None
    out_amount: Optional[Decimal] = None
    slippage_bps: Optional[int] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "token_address": self.token_address,
            "direction": self.direction.value if self.direction else None,
            "amount": str(self.amount),
            "reason": self.reason,
            "signature": self.signature,
            "out_amount": str(self.out_amount) if self.out_amount is not None else None,
            "slippage_bps": self.slippage_bps,
            "error": self.error,
        }


def _dec(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _find_feed(feeds: Sequence[SignalFeed], name: str) -> Optional[StoreSignalFeed]:
    for feed in feeds:
        if feed.name == name and isinstance(feed, StoreSignalFeed):
            return feed
    return None


class TradingEngine:
    """
    Wires every engine component and exposes the tick handlers.

    Key Responsibilities:
    - Entry decisions (recommendation, sizing, pause gate)
    - Buy/sell execution with dynamic slippage and quote retry
    - Sell validation and pending-sell reservation
    - Position, trailing stop and portfolio supervision
    - Circuit breaker and data-quality checks

    Usage:
        engine = TradingEngine(config, market_data, quotes, executor, wallet, store, feeds)
        scheduler = Scheduler()
        engine.register_tasks(scheduler)
        await engine.start()
        await scheduler.start()
        ...
        await scheduler.stop()
        await engine.stop()
    """

    def __init__(
        self,
        config: EngineConfig,
        market_data: MarketDataService,
        quote_provider: QuoteProvider,
        executor: Executor,
        wallet: Wallet,
        store: StateStore,
        feeds: Sequence[SignalFeed],
        notifier: Optional[NotificationPort] = None,
        alert_manager: Optional[AlertManager] = None,
        quote_retry: Optional[RetryConfig] = None,
    ):
        self.config = config
        self.market_data = market_data
        self.quote_provider = quote_provider
        self.executor = executor
        self.wallet = wallet
        self.store = store
        self.notifier = notifier or NullNotifier()
        self.quote_retry = quote_retry or QUOTE_RETRY

        if alert_manager is None:
            alert_manager = AlertManager()
            alert_manager.add_handler(LoggingAlertHandler())
        self.alert_manager = alert_manager

        trading = config.trading
        self.analyzer = TechnicalAnalyzer()
        self.trade_history = TradeHistory(store)
        self.pending_sells = PendingSellTracker()
        self.pause_gate = TradingPauseGate(store)

        # Entry pipeline
        self.scorer = SignalScorer(trading.thresholds, store)
        self.validator = TokenValidator(market_data, trading.thresholds)
        self.sizer = RiskSizer(trading.risk_limits, analyzer=self.analyzer)
        self.recommender = TokenRecommender(feeds, self.scorer, self.validator, self.sizer)
        self.slippage = SlippageModel(
            market_data,
            SlippageSettingsState(trading.slippage, store),
            store,
        )

        # Supervision
        self.position_monitor = PositionMonitor(
            risk_limits=trading.risk_limits,
            market_data=market_data,
            wallet=wallet,
            store=store,
            trade_history=self.trade_history,
            analyzer=self.analyzer,
            sell_callback=self.handle_sell_intent,
            alert_manager=self.alert_manager,
        )
        self.portfolio_risk = PortfolioRiskManager(
            risk_limits=trading.risk_limits,
            wallet=wallet,
            market_data=market_data,
            store=store,
            trade_history=self.trade_history,
            sell_callback=self.handle_sell_intent,
            alert_manager=self.alert_manager,
        )
        self.circuit_breaker = CircuitBreaker(
            config.circuit_breaker,
            market_data,
            self.pause_gate,
            alert_manager=self.alert_manager,
        )
        self.data_quality = DataQualityMonitor(
            config.data_quality,
            market_data.provider,
            _find_feed(feeds, TWITTER_SIGNALS_FEED) or TwitterSignalFeed(store),
            _find_feed(feeds, CMC_TRENDING_FEED) or CMCTrendingFeed(store),
            store,
            self.pause_gate,
            risk_reducer=self.portfolio_risk.reduce_risk_now,
            alert_manager=self.alert_manager,
        )

        self._state = EngineState.CREATED

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == EngineState.RUNNING

    # === Lifecycle ===

    async def start(self) -> None:
        """Initial wallet sync and portfolio check."""
        if self.is_running:
            logger.warning("Trading engine is already running")
            return

        logger.info("Starting trading engine...")
        self._state = EngineState.RUNNING
        await self.sync_wallet()
        await self.monitor_performance()

        self.alert_manager.create_alert(
            AlertType.ENGINE_STARTED, AlertSeverity.INFO, "Trading engine started"
        )
        logger.info("Trading engine started")

    async def stop(self) -> List[TradeResult]:
        """
        Stop the engine and close every open position.

        Shutdown sells bypass the pause gate like every other exit.

        Returns:
            Results of the shutdown sells
        """
        if not self.is_running:
            logger.warning("Trading engine is not running")
            return []

        logger.info("Stopping trading engine...")
        self._state = EngineState.STOPPED

        results = []
        status = await self.portfolio_risk.get_portfolio_status()
        for token_address, position in status.positions.items():
            logger.info(f"Closing position on service stop: {token_address}")
            results.append(
                await self.execute_sell(token_address, position.amount, SHUTDOWN_REASON)
            )

        await self.notifier.drain()
        self.alert_manager.create_alert(
            AlertType.ENGINE_STOPPED,
            AlertSeverity.INFO,
            "Trading engine stopped",
            {"positions_closed": sum(1 for r in results if r.success)},
        )
        logger.info("Trading engine stopped")
        return results

    def register_tasks(self, scheduler: Scheduler) -> None:
        """Register every periodic handler (intervals from config, in ms)."""
        intervals = self.config.trading.intervals

        scheduler.register("buy_signal", intervals.price_check / 1000, self.generate_buy_signal)
        scheduler.register("monitor_positions", intervals.price_check / 1000, self.monitor_positions)
        scheduler.register("monitor_trailing_stops", TRAILING_STOP_INTERVAL, self.monitor_trailing_stops)
        scheduler.register("wallet_sync", intervals.wallet_sync / 1000, self.sync_wallet)
        scheduler.register(
            "monitor_performance", intervals.performance_monitor / 1000, self.monitor_performance
        )
        scheduler.register(
            "validate_data_sources", DATA_QUALITY_INTERVAL, self.validate_data_sources,
            run_immediately=True,
        )
        scheduler.register(
            "circuit_breaker", CIRCUIT_BREAKER_INTERVAL, self.check_circuit_breaker,
            run_immediately=True,
        )
        logger.info("Scheduled tasks registered")

    # === Quotes ===

    async def _get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: Decimal,
        slippage_bps: int,
    ) -> Quote:
        """Quote with bounded retry (3 attempts, 1s/2s backoff)."""
        try:
            return await retry_async(
                lambda: self.quote_provider.get_quote(input_mint, output_mint, amount, slippage_bps),
                self.quote_retry,
                description=f"quote {input_mint} -> {output_mint}",
            )
        except Exception as e:
            raise ProviderError(
                f"Failed to get quote after {self.quote_retry.max_retries} attempts: {e}"
            ) from e

    async def _token_decimals(self, token_address: str) -> int:
        metadata = await self.market_data.get_token_metadata(token_address)
        return metadata.decimals

    # === Buy path ===

    async def generate_buy_signal(self) -> Optional[TradeResult]:
        """
        Recommend, size and buy one token.

        Returns:
            TradeResult of the buy, or None when no entry was attempted
        """
        try:
            logger.info("Generating buy signal...")

            pause = self.pause_gate.status()
            if pause is not None:
                logger.info(f"Entries paused ({pause.get('reason')}), skipping buy signal")
                return None

            sol_balance = _dec(await self.wallet.get_sol_balance())
            status = await self.portfolio_risk.get_portfolio_status()
            condition = await self.sizer.assess_reference_market(
                self.market_data, self.config.circuit_breaker.reference_asset
            )

            recommendation = await self.recommender.get_recommendation(
                sol_balance, status.drawdown, condition
            )
            logger.info(f"Token recommendation: {recommendation}")

            if recommendation.is_fallback:
                logger.info(f"No tradable token: {recommendation.reason}")
                return None
            if recommendation.buy_amount <= 0:
                logger.info(f"Recommendation for {recommendation.symbol} sized to zero, skipping")
                return None

            return await self.handle_buy_signal(
                recommendation.address, recommendation.buy_amount, recommendation.reason
            )

        except Exception as e:
            logger.error(f"Error generating buy signal: {e}")
            return None

    async def handle_buy_signal(
        self,
        token_address: str,
        amount: Number,
        reason: str = "",
    ) -> TradeResult:
        """
        Buy `amount` SOL worth of a token.

        Never raises; every failure is returned as TradeResult(success=False).
        """
        amount = _dec(amount)
        result = TradeResult(False, token_address, TradeDirection.BUY, amount, reason)
        logger.info(f"Processing buy signal: {token_address} for {amount} SOL ({reason})")

        try:
            if self.pause_gate.is_paused():
                result.error = "Trading paused"
                return result

            if amount <= 0:
                result.error = "Invalid buy amount"
                return result

            sol_balance = _dec(await self.wallet.get_sol_balance())
            if amount > sol_balance:
                result.error = "Insufficient SOL balance"
                logger.warning(f"Buy of {amount} SOL exceeds balance {sol_balance}")
                return result

            slippage_bps = await self.slippage.calculate_slippage_bps(token_address, amount)
            result.slippage_bps = slippage_bps

            lamports = (amount * self.config.jupiter.lamports_per_sol).to_integral_value()
            quote = await self._get_quote(SOL_MINT, token_address, lamports, slippage_bps)
            logger.info(f"Quote received for {token_address}: out={quote.out_amount}")

            execution = await self.executor.execute(
                token_address, amount, slippage_bps / 10000, TradeDirection.BUY
            )
            if not execution.success:
                result.error = execution.error or "Buy failed"
                self._trade_failed(result)
                return result

            result.success = True
            result.signature = execution.signature
            result.out_amount = execution.out_amount
            logger.info(f"Buy successful: {execution.signature}, out={execution.out_amount}")

            await self._record_buy(token_address, amount, execution.out_amount)
            if execution.out_amount:
                await self.slippage.track_execution(
                    token_address, quote.out_amount, execution.out_amount, slippage_bps, is_sell=False
                )

            self.notifier.notify(NotificationEvent.BUY_EXECUTED, result.to_dict())
            return result

        except Exception as e:
            logger.error(f"Failed to process buy signal for {token_address}: {e}")
            result.error = str(e)
            self._trade_failed(result)
            return result

    async def _record_buy(
        self,
        token_address: str,
        sol_amount: Decimal,
        out_amount: Optional[Decimal],
    ) -> None:
        """Store the trade record and open a position record."""
        if not out_amount:
            logger.warning(f"Buy of {token_address} returned no out amount, position not tracked")
            return

        try:
            decimals = await self._token_decimals(token_address)
            token_amount = _dec(out_amount) / (Decimal(10) ** decimals)
            market = await self.market_data.get_market_data(token_address)
            price = _dec(market.price)

            trade = self.trade_history.record_buy(
                token_address,
                price,
                token_amount,
                market_cap=market.market_cap,
                liquidity=market.liquidity,
            )
            self.store.save(
                RecordType.POSITION,
                {
                    "token_address": token_address,
                    "amount": str(token_amount),
                    "buy_price": str(price),
                    "buy_sol": str(sol_amount),
                    "price": str(price),
                    "value": str(token_amount * price),
                    "buy_timestamp": trade.buy_timestamp.isoformat(),
                    "updated_at": datetime.utcnow().isoformat(),
                },
                key=token_address,
            )
        except Exception as e:
            logger.error(f"Error tracking position for {token_address}: {e}")

    # === Sell path ===

    async def handle_sell_intent(self, intent: SellIntent) -> TradeResult:
        """Sell callback used by the position monitor and risk manager."""
        return await self.execute_sell(intent.token_address, intent.amount, intent.reason)

    async def execute_sell(
        self,
        token_address: str,
        amount: Optional[Number],
        reason: str = "",
        current_balance: Optional[Number] = None,
    ) -> TradeResult:
        """
        Validate a sell and submit it.

        Rejections (no submission attempted):
        - amount missing, zero or negative: "Invalid sell amount"
        - amount above the wallet balance: "Insufficient balance"
        - balance fully reserved by in-flight sells: "Insufficient balance"

        An amount above the unreserved balance is reduced to it.
        """
        result = TradeResult(False, token_address, TradeDirection.SELL, reason=reason)

        try:
            if amount is None:
                raise InvalidSellAmountError(amount)
            amount = _dec(amount)
            result.amount = amount
            if amount <= 0:
                raise InvalidSellAmountError(amount)

            if current_balance is None:
                current_balance = await self.wallet.get_token_balance(token_address)
            balance = _dec(current_balance)
            if amount > balance:
                raise InsufficientBalanceError(amount, balance)

            available = self.pending_sells.available(token_address, balance)
            if available <= 0:
                raise InsufficientBalanceError(amount, available)
            if amount > available:
                logger.warning(
                    f"Sell of {amount} {token_address} reduced to {available}: "
                    f"{self.pending_sells.pending(token_address)} already pending"
                )
                amount = available

        except InvariantViolation as e:
            logger.warning(f"Sell rejected for {token_address}: {e.message} {e.details}")
            result.error = e.message
            result.details = e.details
            self.alert_manager.create_alert(
                AlertType.SELL_REJECTED,
                AlertSeverity.WARNING,
                f"Sell rejected: {e.message}",
                e.details,
                token_address=token_address,
            )
            return result

        except Exception as e:
            logger.error(f"Error validating sell for {token_address}: {e}")
            result.error = str(e)
            return result

        return await self.handle_sell_signal(token_address, amount, reason)

    async def handle_sell_signal(
        self,
        token_address: str,
        amount: Number,
        reason: str = "",
    ) -> TradeResult:
        """
        Submit a validated sell.

        The amount stays reserved in the pending-sell tracker until the
        submission finishes, whatever the outcome.
        """
        amount = _dec(amount)
        result = TradeResult(False, token_address, TradeDirection.SELL, amount, reason)
        logger.info(f"Processing sell signal: {amount} of {token_address} ({reason})")

        try:
            with self.pending_sells.reserve(token_address, amount):
                slippage_bps = await self.slippage.calculate_slippage_bps(
                    token_address, amount, is_sell=True
                )
                result.slippage_bps = slippage_bps

                decimals = await self._token_decimals(token_address)
                base_amount = (amount * Decimal(10) ** decimals).to_integral_value()
                quote = await self._get_quote(token_address, SOL_MINT, base_amount, slippage_bps)

                execution = await self.executor.execute(
                    token_address, amount, slippage_bps / 10000, TradeDirection.SELL
                )
                if not execution.success:
                    result.error = execution.error or "Sell failed"
                    self._trade_failed(result)
                    return result

                result.success = True
                result.signature = execution.signature
                result.out_amount = execution.out_amount
                logger.info(f"Sell successful: {execution.signature}, received={execution.out_amount}")

                await self._record_sell(token_address, amount, execution.out_amount)
                if execution.out_amount:
                    await self.slippage.track_execution(
                        token_address, quote.out_amount, execution.out_amount, slippage_bps, is_sell=True
                    )

            self.notifier.notify(NotificationEvent.SELL_EXECUTED, result.to_dict())
            await self._close_if_empty(token_address)
            return result

        except Exception as e:
            logger.error(f"Failed to process sell signal for {token_address}: {e}")
            result.error = str(e)
            self._trade_failed(result)
            return result

    async def _record_sell(
        self,
        token_address: str,
        amount: Decimal,
        out_amount: Optional[Decimal],
    ) -> None:
        try:
            received_sol = (
                _dec(out_amount) / self.config.jupiter.lamports_per_sol
                if out_amount else Decimal("0")
            )
            price = await self.market_data.get_price(token_address) or Decimal("0")
            self.trade_history.record_sell(token_address, price, amount, received_sol)
        except Exception as e:
            logger.error(f"Error recording sell for {token_address}: {e}")

    async def _close_if_empty(self, token_address: str) -> None:
        """Drop position and trailing stop records once the balance is gone."""
        balance = _dec(await self.wallet.get_token_balance(token_address))
        if balance <= 0:
            self.store.delete(RecordType.POSITION, token_address)
            self.store.delete(RecordType.TRAILING_STOP, token_address)
            logger.info(f"Position closed: {token_address}")

    def _trade_failed(self, result: TradeResult) -> None:
        direction = result.direction.value if result.direction else "trade"
        self.alert_manager.create_alert(
            AlertType.TRADE_FAILED,
            AlertSeverity.WARNING,
            f"{direction.capitalize()} failed: {result.error}",
            result.to_dict(),
            token_address=result.token_address,
        )

    # === Supervision ticks ===

    async def monitor_positions(self) -> Dict[str, MonitorResult]:
        """Run one monitoring tick for every open position."""
        results = {}
        for token_address in self.store.list_keys(RecordType.POSITION):
            record = self.store.load(RecordType.POSITION, token_address) or {}
            entry_price = _dec(record["buy_price"]) if record.get("buy_price") else None

            result = await self.position_monitor.monitor_token(token_address, entry_price)
            results[token_address] = result

            if not result.error and result.state == PositionState.CLOSED:
                self.store.delete(RecordType.POSITION, token_address)
        return results

    async def monitor_trailing_stops(self) -> Dict[str, MonitorResult]:
        """Run one tick for every armed trailing stop."""
        results = {}
        for token_address in self.position_monitor.active_trailing_stops():
            results[token_address] = await self.position_monitor.monitor_trailing_stop(token_address)
        return results

    async def monitor_performance(self) -> PortfolioStatus:
        return await self.portfolio_risk.monitor_performance()

    async def validate_data_sources(self) -> DataQualityReport:
        return await self.data_quality.validate_data_sources()

    async def check_circuit_breaker(self) -> CircuitBreakerResult:
        return await self.circuit_breaker.check()

    async def sync_wallet(self) -> bool:
        """Refresh and store the SOL balance."""
        try:
            logger.info("Syncing wallet information")
            balance = _dec(await self.wallet.get_sol_balance())
            self.store.save(
                RecordType.WALLET_BALANCE,
                {"balance": str(balance), "timestamp": datetime.utcnow().isoformat()},
            )
            logger.info(f"Wallet balance synced: {balance}")
            return True
        except Exception as e:
            logger.error(f"Failed to sync wallet: {e}")
            return False

    def get_stats(self) -> Dict[str, Any]:
        return {
            "state": self._state.name,
            "paused": self.pause_gate.status(),
            "pending_sells": self.pending_sells.snapshot(),
            "open_positions": self.store.list_keys(RecordType.POSITION),
            "trailing_stops": self.position_monitor.active_trailing_stops(),
            "slippage_settings": self.slippage.settings.get().to_dict(),
            "alerts": self.alert_manager.get_stats(),
        }
