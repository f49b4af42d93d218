"""Configuration loading for the market making bot.

Settings are assembled once at startup from YAML files, ``.env`` files and
the process environment, then handed to every component explicitly.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import structlog
import yaml
from dotenv import dotenv_values

from .settings import STRATEGY_PRESETS, Settings

# Environment variable -> dotted settings key. ROT_SIZE is the lot size and
# MAX_ROT the max inventory multiple.
ENV_MAPPING: Dict[str, str] = {
    'APP_NAME': 'app.name',
    'APP_ENV': 'app.environment',
    'LOG_LEVEL': 'app.log_level',
    'STRATEGY': 'market_making.strategy',
    'PRODUCT_CODE': 'market_making.product_code',
    'RISK_RATE': 'market_making.risk_rate',
    'ROT_SIZE': 'market_making.lot_size',
    'MAX_ROT': 'market_making.max_inventory_multiple',
    'INTERVAL': 'market_making.interval',
    'DWELL': 'market_making.dwell',
    'EXECUTION_WINDOW': 'market_making.execution_window',
    'VOLATILITY_EXPONENT': 'market_making.volatility_exponent',
    'MICROSTRUCTURE_ENABLED': 'market_making.microstructure_enabled',
    'DEAD_BAND': 'market_making.dead_band',
    'TREND_BIAS': 'market_making.trend_bias',
    'MIN_SPREAD': 'market_making.min_spread',
    'TICK_SIZE': 'market_making.tick_size',
    'FAIL_FAST': 'market_making.fail_fast',
    'RESTART_DELAY': 'market_making.restart_delay',
    'WEBSOCKET_URI': 'market_data.ws_uri',
    'REST_BASE_URL': 'market_data.rest_base_url',
    'WEBSOCKET_PING_INTERVAL': 'market_data.ping_interval',
    'WEBSOCKET_TIMEOUT': 'market_data.timeout',
    'PAPER_INITIAL_COLLATERAL': 'paper.initial_collateral',
    'PAPER_FILL_ON_TOUCH': 'paper.fill_on_touch',
    'PAPER_CLOSED_ORDER_HISTORY': 'paper.closed_order_history',
    'TELEMETRY_ENABLED': 'telemetry.enabled',
    'TELEMETRY_INTERVAL': 'telemetry.interval',
    'LOG_TO_FILE': 'logging.log_to_file',
    'LOG_FILE_PATH': 'logging.log_file_path',
    'LOG_MAX_FILE_SIZE': 'logging.log_max_file_size',
    'LOG_BACKUP_COUNT': 'logging.log_backup_count',
    'ENABLE_JSON_LOGGING': 'logging.enable_json_logging',
}


class ConfigurationError(Exception):
    """Raised when there's an error in configuration loading or validation."""
    pass


def _set_nested_value(data: dict, keys: List[str], value) -> None:
    """Set a nested dictionary value from a list of keys."""
    for key in keys[:-1]:
        data = data.setdefault(key, {})
    data[keys[-1]] = value


class ConfigurationManager:
    """Collects configuration sources and builds an immutable Settings value."""

    def __init__(self) -> None:
        self._config_paths: List[Path] = []
        self._env_files: List[Path] = []
        self.logger = structlog.get_logger(__name__)

    def add_config_path(self, path: Union[str, Path]) -> None:
        """Add a YAML configuration file.

        Raises:
            ConfigurationError: If path doesn't exist.
        """
        config_path = Path(path)

        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        if config_path not in self._config_paths:
            self._config_paths.append(config_path)

    def add_env_file(self, env_file: Union[str, Path]) -> None:
        """Add an environment file.

        Raises:
            ConfigurationError: If file doesn't exist.
        """
        env_path = Path(env_file)

        if not env_path.exists():
            raise ConfigurationError(f"Environment file not found: {env_file}")

        if env_path not in self._env_files:
            self._env_files.append(env_path)

    def load_from_yaml(self, file_path: Union[str, Path]) -> dict:
        """Load configuration from YAML file.

        Raises:
            ConfigurationError: If file cannot be loaded or parsed.
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as file:
                data = yaml.safe_load(file) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load YAML config from {file_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"YAML config {file_path} must contain a mapping")
        return data

    def load_from_env(self, env_file: Union[str, Path]) -> dict:
        """Load configuration from a .env file, mapped onto settings keys."""
        try:
            values = dotenv_values(env_file)
        except OSError as e:
            raise ConfigurationError(f"Failed to load env file from {env_file}: {e}") from e
        return self.map_environment(values)

    def map_environment(self, environ: Mapping[str, Optional[str]]) -> dict:
        """Translate environment-style variables into a nested settings dict."""
        config: dict = {}
        for env_var, config_path in ENV_MAPPING.items():
            value = environ.get(env_var)
            if value is not None and value != "":
                _set_nested_value(config, config_path.split('.'), value)
        return config

    def merge_configs(self, *configs: dict) -> dict:
        """Deep merge configuration dictionaries; later ones win."""
        def deep_merge(base: dict, overlay: dict) -> dict:
            result = base.copy()

            for key, value in overlay.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = deep_merge(result[key], value)
                else:
                    result[key] = value

            return result

        merged: dict = {}
        for config in configs:
            if config:
                merged = deep_merge(merged, config)

        return merged

    def load_configuration(
        self,
        strategy: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        overrides: Optional[dict] = None,
    ) -> Settings:
        """Merge every source and validate the result.

        Precedence, lowest first: strategy preset, YAML files, env files,
        process environment, explicit overrides.

        Args:
            strategy: Preset name (``marketmake`` or ``sma``)
            environ: Environment to read (defaults to ``os.environ``)
            overrides: Final nested overrides, e.g. from the command line

        Raises:
            ConfigurationError: If a source cannot be read or validation fails.
        """
        parts: List[dict] = []

        if strategy is not None:
            if strategy not in STRATEGY_PRESETS:
                raise ConfigurationError(
                    f"Unknown strategy {strategy!r}; expected one of {sorted(STRATEGY_PRESETS)}"
                )
            parts.append({'market_making': dict(STRATEGY_PRESETS[strategy])})

        for config_path in self._config_paths:
            parts.append(self.load_from_yaml(config_path))

        for env_file in self._env_files:
            parts.append(self.load_from_env(env_file))

        parts.append(self.map_environment(os.environ if environ is None else environ))

        if overrides:
            parts.append(overrides)

        merged = self.merge_configs(*parts)
        try:
            settings = Settings(**merged)
        except ValueError as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

        self.logger.debug(
            "Configuration loaded",
            config_paths=[str(p) for p in self._config_paths],
            env_files=[str(p) for p in self._env_files],
            strategy=settings.market_making.strategy,
        )
        return settings

    @staticmethod
    def dump_yaml(settings: Settings) -> str:
        """Render settings as YAML."""
        return yaml.safe_dump(settings.model_dump(), default_flow_style=False, indent=2, sort_keys=False)


def load_settings(
    config_paths: Optional[List[Union[str, Path]]] = None,
    env_files: Optional[List[Union[str, Path]]] = None,
    strategy: Optional[str] = None,
    overrides: Optional[dict] = None,
) -> Settings:
    """Build settings from the given sources, falling back to conventional paths.

    Args:
        config_paths: YAML files; defaults to ``config/config.yaml`` if present
        env_files: .env files; defaults to ``.env`` and ``config/.env`` if present
        strategy: Strategy preset name
        overrides: Final nested overrides

    Returns:
        Validated, immutable Settings
    """
    manager = ConfigurationManager()

    if config_paths:
        for path in config_paths:
            manager.add_config_path(path)
    else:
        for path in (Path("config/default.yaml"), Path("config/config.yaml")):
            if path.exists():
                manager.add_config_path(path)

    if env_files:
        for env_file in env_files:
            manager.add_env_file(env_file)
    else:
        for env_file in (Path(".env"), Path("config/.env")):
            if env_file.exists():
                manager.add_env_file(env_file)

    return manager.load_configuration(strategy=strategy, overrides=overrides)
