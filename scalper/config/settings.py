"""
Configuration management with Pydantic validation.

Loads settings from YAML config file and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class KrakenConfig(BaseModel):
    """Kraken REST API configuration."""

    base_url: str = "https://api.kraken.com"
    api_version: int = Field(default=0, ge=0, le=9)
    timeout_sec: float = Field(default=10.0, ge=1.0, le=120.0)


class RunConfig(BaseModel):
    """Runtime trading mode configuration."""

    mode: Literal["paper", "live"] = Field(default="paper", validation_alias="RUN_MODE")
    live_confirm: str = Field(default="", validation_alias="RUN_LIVE_CONFIRM")

    model_config = {
        "populate_by_name": True,
    }


class RetryConfig(BaseModel):
    """Bounded retry policy for exchange calls."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    delay_sec: float = Field(default=2.0, ge=0.0, le=60.0)
    # Substrings (case-insensitive) marking errors that must never be retried
    non_retryable_errors: list[str] = Field(
        default_factory=lambda: [
            "Invalid key",
            "Invalid nonce",
            "Invalid arguments",
            "Permission denied",
        ]
    )


class RsiThresholds(BaseModel):
    """One RSI threshold set."""

    oversold: float = Field(ge=0.0, le=100.0)
    overbought: float = Field(ge=0.0, le=100.0)
    oversold_extreme: float = Field(ge=0.0, le=100.0)
    overbought_extreme: float = Field(ge=0.0, le=100.0)

    @model_validator(mode="after")
    def validate_ordering(self) -> "RsiThresholds":
        if not (self.oversold_extreme <= self.oversold < self.overbought <= self.overbought_extreme):
            raise ValueError(
                "RSI thresholds must satisfy oversold_extreme <= oversold < overbought <= overbought_extreme"
            )
        return self


class RsiThresholdsConfig(BaseModel):
    """Regime-dependent RSI thresholds."""

    trending: RsiThresholds = Field(
        default_factory=lambda: RsiThresholds(
            oversold=45, overbought=55, oversold_extreme=40, overbought_extreme=60
        )
    )
    ranging: RsiThresholds = Field(
        default_factory=lambda: RsiThresholds(
            oversold=40, overbought=60, oversold_extreme=35, overbought_extreme=65
        )
    )
    volatile: RsiThresholds = Field(
        default_factory=lambda: RsiThresholds(
            oversold=25, overbought=75, oversold_extreme=15, overbought_extreme=85
        )
    )
    low_activity: RsiThresholds = Field(
        default_factory=lambda: RsiThresholds(
            oversold=45, overbought=55, oversold_extreme=40, overbought_extreme=60
        )
    )
    default: RsiThresholds = Field(
        default_factory=lambda: RsiThresholds(
            oversold=30, overbought=70, oversold_extreme=20, overbought_extreme=80
        )
    )


class StrategyConfig(BaseModel):
    """Signal generation configuration."""

    interval_minutes: int = Field(default=1, ge=1, le=1440)
    lookback_minutes: int = Field(default=60, ge=10, le=10080)
    macd_fast: int = Field(default=12, ge=2, le=50)
    macd_slow: int = Field(default=26, ge=5, le=100)
    macd_signal: int = Field(default=9, ge=2, le=50)
    rsi_thresholds: RsiThresholdsConfig = Field(default_factory=RsiThresholdsConfig)

    @field_validator("macd_slow")
    @classmethod
    def validate_macd_periods(cls, v: int, info) -> int:
        fast = info.data.get("macd_fast", 12)
        if v <= fast:
            raise ValueError(f"macd_slow ({v}) must be greater than macd_fast ({fast})")
        return v


class ActivityTier(BaseModel):
    """Activity ratio ceiling with the RSI settings it implies."""

    max_ratio: float = Field(ge=0.0, le=100.0)
    min_trades: int = Field(ge=1, le=20)
    rsi_period: int = Field(ge=2, le=50)


class RegimeConfig(BaseModel):
    """Market condition classification configuration."""

    min_candles: int = Field(default=10, ge=2, le=500)
    trending_volatility: float = Field(default=1.5, ge=0.0)
    trending_volume_trend: float = Field(default=0.5, ge=0.0)
    ranging_volatility: float = Field(default=0.5, ge=0.0)
    ranging_price_trend: float = Field(default=0.2, ge=0.0)
    volatile_volatility: float = Field(default=2.0, ge=0.0)
    # Activity filter
    min_avg_volume: float = Field(default=1000.0, ge=0.0)
    min_avg_move_pct: float = Field(default=0.05, ge=0.0)
    activity_move_threshold: float = Field(default=0.0001, ge=0.0, le=0.1)
    activity_tiers: list[ActivityTier] = Field(
        default_factory=lambda: [
            ActivityTier(max_ratio=10, min_trades=1, rsi_period=3),
            ActivityTier(max_ratio=20, min_trades=2, rsi_period=5),
            ActivityTier(max_ratio=30, min_trades=2, rsi_period=7),
        ]
    )
    default_min_trades: int = Field(default=3, ge=1, le=20)
    default_rsi_period: int = Field(default=14, ge=2, le=50)
    low_activity_max_trades: int = Field(default=2, ge=0, le=20)


class RiskConfig(BaseModel):
    """Risk management configuration - contains hard limits."""

    max_risk_per_trade: float = Field(default=0.01, gt=0.0, le=0.05)
    max_open_positions: int = Field(default=3, ge=1, le=10)
    max_daily_loss_fraction: float = Field(default=0.05, gt=0.0, le=0.5)
    high_volatility: float = Field(default=2.0, ge=0.0)
    low_volatility: float = Field(default=0.5, ge=0.0)
    high_volatility_multiplier: float = Field(default=0.5, gt=0.0, le=1.0)
    low_volatility_multiplier: float = Field(default=1.5, ge=1.0, le=3.0)
    reference_currency: str = "GBP"
    # Conversion rates keyed "FROM/TO"
    exchange_rates: dict[str, float] = Field(
        default_factory=lambda: {"USD/GBP": 0.79, "GBP/USD": 1.27}
    )

    @field_validator("low_volatility")
    @classmethod
    def validate_volatility_band(cls, v: float, info) -> float:
        high = info.data.get("high_volatility", 2.0)
        if v >= high:
            raise ValueError(f"low_volatility ({v}) must be below high_volatility ({high})")
        return v


class ExecutionConfig(BaseModel):
    """Order sizing, exits and formatting configuration."""

    trade_amount: dict[str, float] = Field(default_factory=lambda: {"GBP": 10.0, "USD": 10.0})
    max_trade_amount: float = Field(default=30.0, gt=0.0)
    max_balance_fraction: float = Field(default=0.1, gt=0.0, le=1.0)
    reduced_size_multiplier: float = Field(default=0.5, gt=0.0, le=1.0)
    sizing_mode: Literal["fixed", "risk"] = "fixed"
    stop_loss_pct: float = Field(default=2.0, gt=0.0, le=50.0)
    take_profit_pct: float = Field(default=1.0, gt=0.0, le=100.0)
    leveraged_stop_loss_pct: float = Field(default=1.0, gt=0.0, le=50.0)
    leveraged_take_profit_pct: float = Field(default=0.5, gt=0.0, le=100.0)
    use_margin: bool = True
    max_leverage: int = Field(default=3, ge=1, le=5)
    leverage: int = Field(default=3, ge=1, le=5)
    min_margin_equity: float = Field(default=5.0, ge=0.0)
    min_margin_level: float = Field(default=200.0, ge=0.0)
    validate_orders: bool = False
    min_order_sizes: dict[str, float] = Field(
        default_factory=lambda: {
            "default": 0.0002,
            "SUIUSD": 10.0,
            "LTCUSD": 0.05,
            "ETHUSD": 0.005,
            "BTCUSD": 0.0001,
        }
    )
    volume_precision: dict[str, int] = Field(
        default_factory=lambda: {
            "default": 8,
            "BTC": 8,
            "ETH": 8,
            "XRP": 2,
            "ADA": 2,
            "DOT": 4,
            "SOL": 4,
            "VINE": 0,
            "BSX": 0,
            "REN": 0,
        }
    )
    whole_unit_volume_threshold: float = Field(default=1000.0, gt=0.0)

    @field_validator("leverage")
    @classmethod
    def validate_leverage(cls, v: int, info) -> int:
        max_lev = info.data.get("max_leverage", 3)
        if v > max_lev:
            raise ValueError(f"leverage ({v}) cannot exceed max_leverage ({max_lev})")
        return v

    @model_validator(mode="after")
    def validate_leveraged_exits(self) -> "ExecutionConfig":
        if self.leveraged_stop_loss_pct > self.stop_loss_pct:
            raise ValueError("leveraged_stop_loss_pct cannot be wider than stop_loss_pct")
        if self.leveraged_take_profit_pct > self.take_profit_pct:
            raise ValueError("leveraged_take_profit_pct cannot be wider than take_profit_pct")
        return self

    def min_order_size(self, symbol: str) -> float:
        return self.min_order_sizes.get(symbol, self.min_order_sizes.get("default", 0.0))


class SchedulerConfig(BaseModel):
    """Loop cadence and pair selection configuration."""

    cycle_interval_sec: float = Field(default=60.0, ge=1.0, le=3600.0)
    monitor_interval_sec: float = Field(default=5.0, ge=0.5, le=600.0)
    off_hours_interval_sec: float = Field(default=300.0, ge=1.0, le=3600.0)
    max_pairs: int = Field(default=5, ge=1, le=50)
    off_hours_max_pairs: int = Field(default=2, ge=1, le=50)
    symbols: list[str] = Field(default_factory=list)
    quote_currencies: list[str] = Field(default_factory=lambda: ["GBP", "USD"])
    min_order_value_fraction: float = Field(default=0.95, gt=0.0, le=1.0)


class PaperConfig(BaseModel):
    """Simulated account used when run.mode is paper."""

    balances: dict[str, float] = Field(default_factory=lambda: {"GBP": 100.0, "USD": 100.0})
    equity: float = Field(default=200.0, ge=0.0)
    margin_level: float = Field(default=1000.0, ge=0.0)
    max_order_history: int = Field(default=500, ge=1, le=100_000)


class StorageConfig(BaseModel):
    """Storage paths configuration."""

    logs_path: str = "./logs"
    performance_path: str = "./logs/performance.json"


class MonitoringConfig(BaseModel):
    """Monitoring configuration."""

    metrics_enabled: bool = False
    metrics_port: int = Field(default=9090, ge=1024, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_http: bool = False
    log_http_max_body_chars: int = Field(default=500, ge=0, le=5000)
    error_log_max_bytes: int = Field(default=5_000_000, ge=100_000, le=50_000_000)
    error_log_backup_count: int = Field(default=3, ge=1, le=20)
    health_check_enabled: bool = True
    health_check_interval_sec: float = Field(default=3600.0, ge=10.0, le=86400.0)
    max_consecutive_losses: int = Field(default=3, ge=1, le=100)
    max_error_log_lines: int = Field(default=100, ge=1)
    max_exchange_error_lines: int = Field(default=20, ge=1)


class Settings(BaseSettings):
    """Main application settings."""

    run: RunConfig = Field(default_factory=RunConfig)

    # API credentials from environment
    kraken_api_key: str = Field(default="", alias="KRAKEN_API_KEY")
    kraken_api_secret: str = Field(default="", alias="KRAKEN_API_SECRET")

    # Sub-configurations
    kraken: KrakenConfig = Field(default_factory=KrakenConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    regime: RegimeConfig = Field(default_factory=RegimeConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    paper: PaperConfig = Field(default_factory=PaperConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "env_nested_delimiter": "__",
        "populate_by_name": True,
    }

    def validate_for_trading(self) -> list[str]:
        """Validate settings are usable at startup. Returns list of errors."""
        errors = []

        if not self.kraken_api_key:
            errors.append("KRAKEN_API_KEY not set")
        if not self.kraken_api_secret:
            errors.append("KRAKEN_API_SECRET not set")
        if self.run.mode == "live" and self.run.live_confirm != "YES_I_UNDERSTAND":
            errors.append("RUN_LIVE_CONFIRM missing/invalid")

        missing_amounts = [
            currency
            for currency in self.scheduler.quote_currencies
            if currency not in self.execution.trade_amount
        ]
        if missing_amounts:
            errors.append(f"trade_amount missing for currencies: {', '.join(missing_amounts)}")

        return errors


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Load settings from YAML config file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file values
    3. Default values
    """
    config_data = {}

    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", "config.yaml")

    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file) as f:
            config_data = yaml.safe_load(f) or {}

    run_overrides = {}
    env_run_mode = os.environ.get("RUN_MODE")
    env_run_confirm = os.environ.get("RUN_LIVE_CONFIRM")
    if env_run_mode:
        run_overrides["mode"] = env_run_mode
    if env_run_confirm is not None:
        run_overrides["live_confirm"] = env_run_confirm
    if run_overrides:
        config_data.setdefault("run", {}).update(run_overrides)

    env_path = config_file.parent / ".env"
    return Settings(**config_data, _env_file=env_path)


def create_default_config(path: str | Path = "config.yaml") -> None:
    """Create a default configuration file."""
    default_config = {
        "run": {"mode": "paper", "live_confirm": ""},
        "kraken": {"base_url": "https://api.kraken.com", "timeout_sec": 10},
        "retry": {"max_attempts": 3, "delay_sec": 2.0},
        "strategy": {
            "interval_minutes": 1,
            "lookback_minutes": 60,
            "macd_fast": 12,
            "macd_slow": 26,
            "macd_signal": 9,
        },
        "risk": {
            "max_risk_per_trade": 0.01,
            "max_open_positions": 3,
            "max_daily_loss_fraction": 0.05,
            "reference_currency": "GBP",
        },
        "execution": {
            "trade_amount": {"GBP": 10, "USD": 10},
            "stop_loss_pct": 2.0,
            "take_profit_pct": 1.0,
            "leveraged_stop_loss_pct": 1.0,
            "leveraged_take_profit_pct": 0.5,
            "use_margin": True,
            "leverage": 3,
            "max_leverage": 3,
        },
        "scheduler": {
            "cycle_interval_sec": 60,
            "monitor_interval_sec": 5,
            "max_pairs": 5,
            "symbols": [],
        },
        "storage": {"logs_path": "./logs", "performance_path": "./logs/performance.json"},
        "monitoring": {
            "log_level": "INFO",
            "metrics_enabled": False,
            "metrics_port": 9090,
            "health_check_interval_sec": 3600,
        },
    }

    with open(path, "w") as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)
