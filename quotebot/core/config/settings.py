"""Configuration settings for the market making bot."""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> Any:
    """Convert a Go-style duration string (``15s``, ``1m30s``, ``500ms``) to seconds.

    Numbers and numeric strings are taken as seconds. Anything else is
    returned unchanged so the field validator reports it.
    """
    if value is None or isinstance(value, (int, float)):
        return value
    if not isinstance(value, str):
        return value

    text = value.strip().lower()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        pass

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            raise ValueError(f"Invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return total


class AppSettings(BaseModel):
    """Application-level settings."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="quotebot", description="Application name")
    version: str = Field(default="0.1.0", description="Application version")
    log_level: str = Field(default="INFO", description="Logging level")
    environment: str = Field(default="development", description="Environment (development, staging, production)")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment."""
        valid_envs = ["development", "staging", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of: {valid_envs}")
        return v.lower()


class MarketMakingSettings(BaseModel):
    """Quoting and order cycle parameters."""

    model_config = ConfigDict(frozen=True)

    strategy: str = Field(default="marketmake", description="Strategy preset the values were derived from")
    product_code: str = Field(default="FX_BTC_JPY", description="Instrument to quote")
    risk_rate: float = Field(default=1.0, gt=0, description="Spread scaling factor")
    lot_size: float = Field(default=0.01, gt=0, description="Quantity submitted per leg")
    max_inventory_multiple: float = Field(default=4.0, gt=0, description="Inventory normalization cap, in lots")
    interval: float = Field(default=15.0, gt=0, description="Cycle period in seconds")
    dwell: Optional[float] = Field(default=None, gt=0, description="Hold duration in seconds (defaults to interval)")
    execution_window: Optional[float] = Field(default=None, gt=0, description="Trailing execution window in seconds (defaults to interval)")
    volatility_exponent: float = Field(default=0.55, gt=0, le=1, description="Exponent mapping variance to spread scale")
    microstructure_enabled: bool = Field(default=False, description="Add the liquidity penalty term to the spread")
    dead_band: float = Field(default=1.0, ge=0, description="Residual inventory, in lots, that triggers a flatten instead of quoting (0 disables)")
    trend_bias: float = Field(default=0.0, ge=0, description="Inventory shift applied against short-term momentum")
    momentum_split: float = Field(default=1.0, gt=0, description="Seconds of most recent prints compared against the window mean")
    min_spread: float = Field(default=0.0, ge=0, description="Lower bound on the quoted spread")
    tick_size: float = Field(default=1.0, gt=0, description="Instrument price granularity")
    order_type: str = Field(default="LIMIT", description="Order type used for both legs")
    fail_fast: bool = Field(default=False, description="Cancel the sibling leg as soon as one leg fails")
    restart_delay: float = Field(default=0.0, ge=0, description="Pause before restarting a failed session")

    @field_validator("interval", "dwell", "execution_window", "momentum_split", "restart_delay", mode="before")
    @classmethod
    def validate_duration(cls, v: Any) -> Any:
        """Accept seconds or Go-style durations."""
        return parse_duration(v)

    @field_validator("order_type")
    @classmethod
    def validate_order_type(cls, v: str) -> str:
        """Validate order type."""
        if v.upper() not in ("LIMIT", "MARKET"):
            raise ValueError("Order type must be LIMIT or MARKET")
        return v.upper()

    @property
    def hold_duration(self) -> float:
        """Seconds each order rests before reconciliation."""
        return self.dwell if self.dwell is not None else self.interval

    @property
    def window_duration(self) -> float:
        """Seconds of trailing executions fed to the estimators."""
        return self.execution_window if self.execution_window is not None else self.interval


class MarketDataSettings(BaseModel):
    """Public market data feed settings."""

    model_config = ConfigDict(frozen=True)

    ws_uri: str = Field(default="wss://ws.lightstream.bitflyer.com/json-rpc", description="JSON-RPC WebSocket endpoint")
    rest_base_url: str = Field(default="https://api.bitflyer.com", description="Public REST endpoint used to seed the window")
    ping_interval: int = Field(default=20, ge=5, le=300, description="Ping interval in seconds")
    timeout: int = Field(default=10, ge=1, le=60, description="Connection and receive timeout in seconds")
    seed_count: int = Field(default=100, ge=0, le=500, description="Executions fetched over REST on every subscribe")
    max_executions: int = Field(default=10000, ge=100, description="Upper bound on executions kept in memory")
    retention: float = Field(default=300.0, gt=0, description="Seconds of executions kept in memory")

    @field_validator("retention", mode="before")
    @classmethod
    def validate_retention(cls, v: Any) -> Any:
        """Accept seconds or Go-style durations."""
        return parse_duration(v)


class PaperSettings(BaseModel):
    """In-memory paper account settings."""

    model_config = ConfigDict(frozen=True)

    initial_collateral: float = Field(default=1_000_000.0, ge=0, description="Starting collateral in quote currency")
    fill_on_touch: bool = Field(default=False, description="Fill when a print touches the order price, not only through it")
    closed_order_history: int = Field(default=100, ge=1, description="Filled or canceled orders kept for status queries")


class TelemetrySettings(BaseModel):
    """Gauge export settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Enable the collateral tracer")
    interval: float = Field(default=60.0, gt=0, description="Seconds between gauge writes")
    metric: str = Field(default="collateral", description="Gauge name")

    @field_validator("interval", mode="before")
    @classmethod
    def validate_interval(cls, v: Any) -> Any:
        """Accept seconds or Go-style durations."""
        return parse_duration(v)


class LoggingSettings(BaseModel):
    """Logging configuration settings."""

    model_config = ConfigDict(frozen=True)

    log_to_file: bool = Field(default=False, description="Enable file logging")
    log_file_path: str = Field(default="logs/quotebot.log", description="Log file path")
    log_max_file_size: int = Field(default=10485760, ge=1024, description="Max log file size in bytes")
    log_backup_count: int = Field(default=5, ge=1, le=50, description="Number of log backups to keep")
    log_format: str = Field(
        default="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        description="Log format string"
    )
    enable_json_logging: bool = Field(default=False, description="Emit JSON on the console handler")


# Per-strategy coefficients; explicit configuration overrides them.
STRATEGY_PRESETS: Dict[str, Dict[str, Any]] = {
    "marketmake": {
        "strategy": "marketmake",
        "volatility_exponent": 0.55,
        "max_inventory_multiple": 4.0,
    },
    "sma": {
        "strategy": "sma",
        "volatility_exponent": 0.6,
        "max_inventory_multiple": 5.0,
        "execution_window": 2.0,
        "dwell": 8.0,
        "trend_bias": 0.02,
        "momentum_split": 1.0,
    },
}


class Settings(BaseModel):
    """Main application settings."""

    model_config = ConfigDict(frozen=True)

    app: AppSettings = Field(default_factory=AppSettings, description="Application settings")
    market_making: MarketMakingSettings = Field(default_factory=MarketMakingSettings, description="Quoting settings")
    market_data: MarketDataSettings = Field(default_factory=MarketDataSettings, description="Market data feed settings")
    paper: PaperSettings = Field(default_factory=PaperSettings, description="Paper account settings")
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings, description="Telemetry settings")
    logging: LoggingSettings = Field(default_factory=LoggingSettings, description="Logging settings")

    def to_dict(self) -> dict:
        """Convert settings to dictionary."""
        return self.model_dump()

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app.environment == "production"
