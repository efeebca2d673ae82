"""
Common helpers for the scanner: ISO timestamps, duration formatting and loggers.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union


def timestamp_to_iso(timestamp: float) -> str:
    """Convert Unix timestamp to ISO 8601 string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.2f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


def get_logger(
    name: str,
    level: Union[str, int] = logging.NOTSET,
    extra: Optional[Dict[str, Any]] = None,
) -> Union[logging.Logger, logging.LoggerAdapter]:
    """
    Get a module logger, optionally bound to extra context fields.

    Handlers are configured once on the root logger by
    ``amm_arbitrage.logging_config.setup``; module loggers only propagate.

    Args:
        name: Logger name (typically __name__)
        level: Logging level; NOTSET defers to the root configuration
        extra: Context fields appended to every message as ``key=value``

    Returns:
        Logger, or LoggerAdapter when extra context is given
    """
    logger = logging.getLogger(name)

    if level != logging.NOTSET:
        logger.setLevel(level)

    if extra:
        return ContextAdapter(logger, extra)

    return logger


class ContextAdapter(logging.LoggerAdapter):
    """Appends bound context fields to each log message."""

    def process(self, msg, kwargs):
        context = " ".join(f"{k}={v}" for k, v in self.extra.items())
        return f"{msg} | {context}", kwargs
