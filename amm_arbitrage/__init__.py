"""
AMM Arbitrage Scanner.

Detects simple (cross-exchange) and triangular arbitrage on Uniswap V2 style
constant-product exchanges using exact on-chain integer math, behind a
cached, rate-limited and retried reserve access layer.
"""

PROJECT_NAME = "AMM-Arbitrage-Scanner"

from amm_arbitrage.version import __version__ as VERSION

from amm_arbitrage.amm_math import (
    calculate_price_impact,
    find_optimal_amount,
    get_amount_in,
    get_amount_out,
    get_amounts_in,
    get_amounts_out,
    simulate_simple_arbitrage,
    simulate_triangular_arbitrage,
)
from amm_arbitrage.detector import ArbitrageDetector, CycleState
from amm_arbitrage.exceptions import (
    AccessError,
    AccessFaultKind,
    ArbitrageScannerError,
    ConfigError,
    MathError,
    PairNotFoundError,
)
from amm_arbitrage.rate_limiter import RateLimiter, RetryHandler
from amm_arbitrage.reserves import ReserveService
from amm_arbitrage.types import ArbitrageType, Opportunity, RunMetrics

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "get_amount_out",
    "get_amount_in",
    "get_amounts_out",
    "get_amounts_in",
    "calculate_price_impact",
    "simulate_simple_arbitrage",
    "simulate_triangular_arbitrage",
    "find_optimal_amount",
    "ArbitrageDetector",
    "CycleState",
    "ArbitrageScannerError",
    "ConfigError",
    "MathError",
    "AccessError",
    "AccessFaultKind",
    "PairNotFoundError",
    "RateLimiter",
    "RetryHandler",
    "ReserveService",
    "ArbitrageType",
    "Opportunity",
    "RunMetrics",
]
