"""Command line entry point for the market making bot."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

from .core.app.orchestrator import ApplicationOrchestrator
from .core.config import STRATEGY_PRESETS, ConfigurationError, ConfigurationManager, load_settings
from .utils.logging import fallback_logging, get_logger, setup_logging


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--config', action='append', default=[], metavar='PATH',
                        help='YAML configuration file (repeatable, later files win)')
    common.add_argument('--env-file', action='append', default=[], metavar='PATH',
                        help='.env file (repeatable, later files win)')
    common.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='Override the configured log level')
    common.add_argument('--product', metavar='CODE', help='Product code, e.g. FX_BTC_JPY')

    parser = argparse.ArgumentParser(prog='quotebot', description='Two-sided market making bot')
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('marketmake', parents=[common],
                          help='Quote around the mid with volatility spread and inventory skew')
    subparsers.add_parser('sma', parents=[common],
                          help='Short-window variant that leans quotes with momentum')
    config_parser = subparsers.add_parser('config', parents=[common],
                                          help='Print the effective configuration as YAML')
    config_parser.add_argument('--strategy', choices=sorted(STRATEGY_PRESETS), default=None,
                               help='Apply a strategy preset before printing')

    return parser


def _overrides(args: argparse.Namespace) -> dict:
    overrides: dict = {}
    if args.product:
        overrides.setdefault('market_making', {})['product_code'] = args.product
    if args.log_level:
        overrides.setdefault('app', {})['log_level'] = args.log_level
    return overrides


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments and run the selected command.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)
    strategy = args.strategy if args.command == 'config' else args.command

    try:
        settings = load_settings(
            config_paths=args.config or None,
            env_files=args.env_file or None,
            strategy=strategy,
            overrides=_overrides(args),
        )
    except ConfigurationError as e:
        fallback_logging()
        get_logger("main").error("Invalid configuration", error=str(e))
        return 2

    if args.command == 'config':
        sys.stdout.write(ConfigurationManager.dump_yaml(settings))
        return 0

    setup_logging(settings, args.log_level)
    logger = get_logger("main")
    logger.info("Starting quotebot", version=settings.app.version, strategy=settings.market_making.strategy)

    try:
        asyncio.run(ApplicationOrchestrator(settings).run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


def main_sync() -> None:
    """Synchronous main entry point."""
    sys.exit(main())


if __name__ == "__main__":
    main_sync()
