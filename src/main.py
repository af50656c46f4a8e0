#!/usr/bin/env python3
"""
Degen Trader Risk Engine - Main Entry Point.

Usage:
    python -m src.main config/config.yaml
    python -m src.main config/config.yaml --dry-run
    python -m src.main config/config.yaml --log-level DEBUG

Environment:
    DEGEN_BIRDEYE_API_KEY: Birdeye API key (required)
    DEGEN_WALLET_ADDRESS: Wallet public key
    DEGEN_PAPER_TRADING: Simulated fills (default true)
"""

import argparse
import asyncio
import logging
import signal
import sys
from decimal import Decimal
from pathlib import Path
from typing import Optional

from config.settings import EngineConfig
from src.api.birdeye import BirdeyeClient
from src.api.jupiter import JupiterQuoteClient
from src.api.paper import PaperExecutor, PaperWallet
from src.core.alerts import AlertManager, LoggingAlertHandler
from src.core.engine import TradingEngine
from src.core.notifier import HttpHeartbeatNotifier
from src.core.scheduler import Scheduler
from src.core.state_store import create_state_store
from src.market.feeds import build_default_feeds
from src.market.market_data import MarketDataService
from src.utils.config_loader import ConfigLoader


def setup_logging(level: str, log_file: Optional[str] = None) -> None:
    """
    Configure logging for the engine.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for logging
    """
    console_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    file_format = (
        "%(asctime)s [%(levelname)s] %(name)s "
        "(%(filename)s:%(lineno)d): %(message)s"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    console_handler.setFormatter(logging.Formatter(console_format))
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)  # Log everything to file
        file_handler.setFormatter(logging.Formatter(file_format))
        root_logger.addHandler(file_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Degen Trader risk-managed trading engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate configuration without running
  python -m src.main config/config.yaml --dry-run

  # Run with debug logging
  python -m src.main config/config.yaml --log-level DEBUG
        """,
    )

    parser.add_argument(
        "config",
        type=str,
        nargs="?",
        default="config/config.yaml",
        help="Path to configuration YAML file",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and exit without trading",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: logging.level from config)",
    )

    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Log file path (default: logging.file_path from config)",
    )

    return parser.parse_args()


def print_config_summary(config: EngineConfig) -> None:
    """Print configuration summary."""
    trading = config.trading
    print("\nConfiguration:")
    print(f"  Paper trading: {config.paper_trading}")
    print(f"  State store: {config.state_store.backend} ({config.state_store.path})")
    print(f"  Min liquidity: ${trading.thresholds.min_liquidity:,.0f}")
    print(f"  Min volume: ${trading.thresholds.min_volume:,.0f}")
    print(f"  Max position size: {trading.risk_limits.max_position_size:.0%}")
    print(f"  Max drawdown: {trading.risk_limits.max_drawdown:.0%}")
    print(f"  Stop loss: {trading.risk_limits.stop_loss_percentage}%")
    print(f"  Take profit: {trading.risk_limits.take_profit_percentage}%")
    print(f"  Slippage: {trading.slippage.base_slippage}% - {trading.slippage.max_slippage}%")
    print()


def build_engine(config: EngineConfig) -> TradingEngine:
    """Wire the engine and its collaborators from configuration."""
    store = create_state_store(config.state_store.backend, config.state_store.path)

    birdeye = BirdeyeClient(config.birdeye)
    market_data = MarketDataService(birdeye)
    quotes = JupiterQuoteClient(config.jupiter)

    wallet = PaperWallet(Decimal(str(config.paper_sol_balance)))
    executor = PaperExecutor(quotes, market_data, wallet, config.jupiter)

    alert_manager = AlertManager()
    alert_manager.add_handler(LoggingAlertHandler())

    return TradingEngine(
        config,
        market_data=market_data,
        quote_provider=quotes,
        executor=executor,
        wallet=wallet,
        store=store,
        feeds=build_default_feeds(store, market_data),
        notifier=HttpHeartbeatNotifier(config.notifications),
        alert_manager=alert_manager,
    )


async def main(args: argparse.Namespace) -> int:
    """
    Main async entry point.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    logger = logging.getLogger(__name__)

    try:
        config = ConfigLoader(args.config).load()
    except FileNotFoundError:
        print(f"Error: Config file not found: {args.config}")
        return 1
    except Exception as e:
        print(f"Error loading config: {e}")
        return 1

    if args.log_level is None or args.log_file is None:
        setup_logging(
            args.log_level or config.logging.level,
            args.log_file or config.logging.file_path,
        )

    print_config_summary(config)

    errors = config.validate()
    if errors:
        print("Configuration errors:")
        for error in errors:
            print(f"  - {error}")
        return 1

    if not config.birdeye.api_key:
        print("Error: DEGEN_BIRDEYE_API_KEY must be set")
        return 1

    logger.info("Configuration validated successfully")

    if args.dry_run:
        print("Dry run complete - configuration is valid")
        return 0

    if not config.paper_trading:
        print("Error: no live executor is configured; set DEGEN_PAPER_TRADING=true")
        return 1

    engine = build_engine(config)
    scheduler = Scheduler()
    engine.register_tasks(scheduler)

    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()

    def request_shutdown(sig: signal.Signals) -> None:
        if stop_requested.is_set():
            logger.critical("Second signal received - immediate exit")
            sys.exit(1)
        logger.info(f"Received signal {sig.name}, initiating graceful shutdown...")
        stop_requested.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, request_shutdown, sig)

    try:
        await engine.start()
        await scheduler.start()
        logger.info("Engine is running. Press Ctrl+C to stop.")

        await stop_requested.wait()
        return 0

    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1

    finally:
        await scheduler.stop()
        try:
            results = await engine.stop()
            logger.info(f"Shutdown sells: {[r.to_dict() for r in results]}")
        except Exception as stop_error:
            logger.error(f"Error during shutdown: {stop_error}")
        engine.store.close()


def run() -> None:
    """Synchronous entry point."""
    args = parse_args()

    setup_logging(args.log_level or "INFO", args.log_file)

    logger = logging.getLogger(__name__)
    logger.info("Starting Degen Trader risk engine")

    try:
        exit_code = asyncio.run(main(args))
    except KeyboardInterrupt:
        exit_code = 0

    sys.exit(exit_code)


if __name__ == "__main__":
    run()
