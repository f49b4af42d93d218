"""Configuration management."""

from .manager import ConfigurationError, ConfigurationManager, load_settings
from .settings import (
    STRATEGY_PRESETS,
    AppSettings,
    LoggingSettings,
    MarketDataSettings,
    MarketMakingSettings,
    PaperSettings,
    Settings,
    TelemetrySettings,
    parse_duration,
)

__all__ = [
    'ConfigurationError',
    'ConfigurationManager',
    'load_settings',
    'STRATEGY_PRESETS',
    'AppSettings',
    'LoggingSettings',
    'MarketDataSettings',
    'MarketMakingSettings',
    'PaperSettings',
    'Settings',
    'TelemetrySettings',
    'parse_duration',
]
