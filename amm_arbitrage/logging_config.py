"""
Logging configuration for cleaner output.

Usage:
    from amm_arbitrage import logging_config
    logging_config.setup()
"""

import logging
import sys
from typing import Union


def setup(level: Union[str, int] = logging.INFO) -> None:
    """
    Configure the root logger with a compact console format.

    - Uses shorter timestamp format (HH:MM:SS instead of full datetime)
    - Suppresses verbose HTTP logs from web3 and urllib3
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )
    console.setFormatter(formatter)
    root.addHandler(console)

    # Suppress noisy loggers
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger("amm_arbitrage").setLevel(level)

