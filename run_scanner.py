#!/usr/bin/env python3
"""
AMM arbitrage scanner CLI.

Scans constant-product exchanges for simple (cross-exchange) and triangular
arbitrage each new block and logs what it finds.

Usage:
    python3 run_scanner.py
    python3 run_scanner.py --config configs/scanner.yaml
    python3 run_scanner.py --config configs/scanner.yaml --once
"""

import argparse
import asyncio
import sys

from amm_arbitrage import logging_config
from amm_arbitrage.config import load_config
from amm_arbitrage.exceptions import ConfigError
from amm_arbitrage.runner import ScannerRunner


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="AMM arbitrage opportunity scanner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config
  python3 run_scanner.py

  # Single scan (for testing/CI)
  python3 run_scanner.py --config configs/scanner.yaml --once

  # Verbose output
  python3 run_scanner.py --log-level DEBUG
        """,
    )

    parser.add_argument(
        "--config",
        default="configs/scanner.yaml",
        help="Path to config YAML file (default: configs/scanner.yaml)",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single scan and exit (overrides config setting)",
    )

    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (overrides config setting)",
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    if args.once:
        config.once = True

    logging_config.setup(args.log_level or config.log_level)

    try:
        runner = ScannerRunner(config)
    except ValueError as e:
        print(f"Initialization failed: {e}", file=sys.stderr)
        return 1

    try:
        asyncio.run(runner.run())
    except KeyboardInterrupt:
        print("\nStopped by user")
        return 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
