"""
Configuration loader for the Degen Trader risk engine.

Loads configuration from:
1. YAML file (config/config.yaml)
2. Environment variables (DEGEN_* prefix)
3. .env file (via python-dotenv)

Environment variables override YAML values.
API keys MUST be set via environment (never in YAML).
"""

import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from config.settings import (
    EngineConfig,
    TradingConfig,
    IntervalsConfig,
    ThresholdsConfig,
    RiskLimitsConfig,
    SlippageSettings,
    BirdeyeConfig,
    JupiterConfig,
    CircuitBreakerConfig,
    DataQualityConfig,
    StateStoreConfig,
    NotificationConfig,
    LoggingConfig,
    SOL_MINT,
    validate_trading_config,
)

logger = logging.getLogger(__name__)


class ConfigLoader:
    """
    Loads and validates engine configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (DEGEN_*)
    2. YAML config file
    3. Default values in dataclasses
    """

    ENV_PREFIX = "DEGEN_"

    def __init__(
        self,
        config_path: Optional[str] = None,
        env_file: Optional[str] = None,
    ):
        """
        Initialize config loader.

        Args:
            config_path: Path to YAML config file. If None, uses config/config.yaml
            env_file: Path to .env file. If None, uses .env in project root
        """
        self._config_path = Path(config_path) if config_path else Path("config/config.yaml")
        self._env_file = Path(env_file) if env_file else Path(".env")

        if self._env_file.exists():
            load_dotenv(self._env_file)
            logger.debug(f"Loaded environment from {self._env_file}")

    def load(self) -> EngineConfig:
        """
        Load complete engine configuration.

        The trading subtree is clamped by validate_trading_config before
        the config is returned; every clamp is logged as a warning.

        Returns:
            EngineConfig with all settings populated
        """
        yaml_config = self._load_yaml()
        config = self._build_config(yaml_config)

        errors = config.validate()
        for error in errors:
            logger.warning(f"Config warning: {error}")

        return config

    def _load_yaml(self) -> Dict[str, Any]:
        """Load YAML configuration file."""
        if not self._config_path.exists():
            logger.warning(f"Config file not found: {self._config_path}, using defaults")
            return {}

        with open(self._config_path) as f:
            config = yaml.safe_load(f) or {}

        logger.info(f"Loaded config from {self._config_path}")
        return config

    def _get_env(self, key: str, default: Any = None) -> Any:
        """
        Get environment variable with DEGEN_ prefix.

        Args:
            key: Variable name (without prefix)
            default: Default value if not set

        Returns:
            Environment variable value or default
        """
        full_key = f"{self.ENV_PREFIX}{key}"
        value = os.environ.get(full_key)

        if value is None:
            return default

        # Type conversion based on default type
        if isinstance(default, bool):
            return value.lower() in ("true", "1", "yes")
        elif isinstance(default, int):
            return int(value)
        elif isinstance(default, float):
            return float(value)

        return value

    def _build_trading_config(self, yaml_config: Dict[str, Any]) -> TradingConfig:
        """Build and clamp the trading subtree."""
        intervals_yaml = yaml_config.get("intervals", {})
        intervals = IntervalsConfig(
            price_check=self._get_env(
                "PRICE_CHECK_INTERVAL",
                intervals_yaml.get("price_check", 60_000),
            ),
            wallet_sync=self._get_env(
                "WALLET_SYNC_INTERVAL",
                intervals_yaml.get("wallet_sync", 600_000),
            ),
            performance_monitor=intervals_yaml.get("performance_monitor", 3_600_000),
        )

        thresholds_yaml = yaml_config.get("thresholds", {})
        thresholds = ThresholdsConfig(
            min_liquidity=float(self._get_env(
                "MIN_LIQUIDITY",
                float(thresholds_yaml.get("min_liquidity", 50_000.0)),
            )),
            min_volume=float(self._get_env(
                "MIN_VOLUME",
                float(thresholds_yaml.get("min_volume", 100_000.0)),
            )),
            min_score=float(thresholds_yaml.get("min_score", 60.0)),
        )

        risk_yaml = yaml_config.get("risk_limits", {})
        risk_limits = RiskLimitsConfig(
            max_position_size=float(self._get_env(
                "MAX_POSITION_SIZE",
                float(risk_yaml.get("max_position_size", 0.2)),
            )),
            max_drawdown=float(self._get_env(
                "MAX_DRAWDOWN",
                float(risk_yaml.get("max_drawdown", 0.1)),
            )),
            stop_loss_percentage=float(risk_yaml.get("stop_loss_percentage", 5.0)),
            take_profit_percentage=float(risk_yaml.get("take_profit_percentage", 20.0)),
        )

        slippage_yaml = yaml_config.get("slippage", {})
        slippage = SlippageSettings.from_dict(slippage_yaml)

        raw = TradingConfig(
            intervals=intervals,
            thresholds=thresholds,
            risk_limits=risk_limits,
            slippage=slippage,
        )
        trading, warnings = validate_trading_config(raw)
        for warning in warnings:
            logger.warning(f"Trading config clamped: {warning}")
        return trading

    def _build_config(self, yaml_config: Dict[str, Any]) -> EngineConfig:
        """Build EngineConfig from YAML and environment."""
        trading = self._build_trading_config(yaml_config.get("trading", {}))

        birdeye_yaml = yaml_config.get("birdeye", {})
        birdeye = BirdeyeConfig(
            base_url=birdeye_yaml.get("base_url", "https://public-api.birdeye.so"),
            api_key=self._get_env("BIRDEYE_API_KEY", ""),
            request_timeout=birdeye_yaml.get("request_timeout", 15),
            max_retries=birdeye_yaml.get("max_retries", 3),
            min_request_interval=birdeye_yaml.get("min_request_interval", 0.2),
            history_limit=birdeye_yaml.get("history_limit", 24),
        )

        jupiter_yaml = yaml_config.get("jupiter", {})
        jupiter = JupiterConfig(
            quote_url=jupiter_yaml.get("quote_url", "https://quote-api.jup.ag/v6/quote"),
            swap_url=jupiter_yaml.get("swap_url", "https://quote-api.jup.ag/v6/swap"),
            request_timeout=jupiter_yaml.get("request_timeout", 15),
        )

        cb_yaml = yaml_config.get("circuit_breaker", {})
        circuit_breaker = CircuitBreakerConfig(
            reference_asset=cb_yaml.get("reference_asset", SOL_MINT),
            min_history=cb_yaml.get("min_history", 24),
            lookback_index=cb_yaml.get("lookback_index", 6),
            price_change_threshold=cb_yaml.get("price_change_threshold", 15.0),
            volatility_threshold=cb_yaml.get("volatility_threshold", 0.6),
            pause_duration_seconds=cb_yaml.get("pause_duration_seconds", 3600),
        )

        dq_yaml = yaml_config.get("data_quality", {})
        data_quality = DataQualityConfig(
            social_max_age_hours=dq_yaml.get("social_max_age_hours", 6.0),
            ranking_max_age_hours=dq_yaml.get("ranking_max_age_hours", 12.0),
        )

        store_yaml = yaml_config.get("state_store", {})
        state_store = StateStoreConfig(
            backend=self._get_env("STATE_BACKEND", store_yaml.get("backend", "sqlite")),
            path=self._get_env("STATE_PATH", store_yaml.get("path", "data/engine_state.db")),
        )

        notify_yaml = yaml_config.get("notifications", {})
        notifications = NotificationConfig(
            buy_heartbeat_url=self._get_env(
                "BUY_HEARTBEAT_URL", notify_yaml.get("buy_heartbeat_url")
            ),
            sell_heartbeat_url=self._get_env(
                "SELL_HEARTBEAT_URL", notify_yaml.get("sell_heartbeat_url")
            ),
            timeout=notify_yaml.get("timeout", 5.0),
        )

        logging_yaml = yaml_config.get("logging", {})
        log_config = LoggingConfig(
            level=self._get_env("LOG_LEVEL", logging_yaml.get("level", "INFO")),
            file_path=logging_yaml.get("file_path", "logs/engine.log"),
        )

        # Paper trading from environment
        paper_trading = self._get_env("PAPER_TRADING", yaml_config.get("paper_trading", True))
        if isinstance(paper_trading, str):
            paper_trading = paper_trading.lower() in ("true", "1", "yes")

        return EngineConfig(
            trading=trading,
            birdeye=birdeye,
            jupiter=jupiter,
            circuit_breaker=circuit_breaker,
            data_quality=data_quality,
            state_store=state_store,
            notifications=notifications,
            logging=log_config,
            wallet_address=self._get_env("WALLET_ADDRESS", yaml_config.get("wallet_address", "")),
            paper_trading=paper_trading,
            paper_sol_balance=float(yaml_config.get("paper_sol_balance", 10.0)),
        )
