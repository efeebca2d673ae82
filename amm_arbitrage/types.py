"""
Core data types for AMM arbitrage scanning.

All amounts are integers in the token's smallest unit. Prices are integers
scaled by 1e18.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .exceptions import ValidationError
from .utils import timestamp_to_iso

# (reserve_in, reserve_out) for one swap hop
Reserves = Tuple[int, int]


class ArbitrageType(Enum):
    SIMPLE = "SIMPLE"
    TRIANGULAR = "TRIANGULAR"


@dataclass(frozen=True)
class TokenInfo:
    """ERC20 metadata. Immutable once fetched."""

    address: str
    symbol: str
    decimals: int


@dataclass(frozen=True)
class PairReserves:
    """
    Reserve snapshot of a constant-product pair, in on-chain token order.

    Attributes:
        reserve0: Reserve of token0
        reserve1: Reserve of token1
        token0: Address of token0
        token1: Address of token1
        block_timestamp_last: Timestamp of the last reserve update on chain
    """

    reserve0: int
    reserve1: int
    token0: str
    token1: str
    block_timestamp_last: int

    def directional(self, token_in: str) -> Reserves:
        """Return (reserve_in, reserve_out) for a swap selling token_in."""
        if self.token0.lower() == token_in.lower():
            return self.reserve0, self.reserve1
        return self.reserve1, self.reserve0


@dataclass(frozen=True)
class PairInfo:
    """A resolved pair: address, both tokens in caller order, live reserves."""

    pair_address: str
    token_a: TokenInfo
    token_b: TokenInfo
    reserves: PairReserves


@dataclass(frozen=True)
class SimpleArbitrageResult:
    amount_out: int
    profit: int
    profit_percent: float
    price_impact_a: float
    price_impact_b: float
    is_profitable: bool


@dataclass(frozen=True)
class TriangularArbitrageResult:
    amount_out: int
    profit: int
    profit_percent: float
    amounts: Tuple[int, ...]
    price_impacts: Tuple[float, ...]
    is_profitable: bool


@dataclass(frozen=True)
class Opportunity:
    """
    A detected arbitrage opportunity.

    ``estimated_profit`` is the simulated profit after gas; ``net_profit`` is
    the same value after the safety-margin haircut. For simple arbitrage
    ``buy_dex`` and ``sell_dex`` differ; for triangular both name the single
    exchange and the path fields are populated.
    """

    base_token: str
    quote_token: str
    base_token_symbol: str
    quote_token_symbol: str
    buy_dex: str
    sell_dex: str
    amount_in: int
    amount_out: int
    estimated_profit: int
    profit_percent: float
    gas_estimate: int
    net_profit: int
    buy_price: int
    sell_price: int
    price_impact: float
    arbitrage_type: ArbitrageType
    intermediate_token: Optional[str] = None
    token_path: Tuple[str, ...] = ()
    amounts: Tuple[int, ...] = ()
    price_impacts: Tuple[float, ...] = ()
    block_number: Optional[int] = None
    gas_price: Optional[int] = None

    def __post_init__(self):
        if self.amount_in <= 0:
            raise ValidationError(
                "Opportunity amount_in must be positive",
                {"amount_in": self.amount_in},
            )
        if self.net_profit > self.estimated_profit:
            raise ValidationError(
                "Net profit cannot exceed estimated profit",
                {
                    "net_profit": self.net_profit,
                    "estimated_profit": self.estimated_profit,
                },
            )
        if self.arbitrage_type is ArbitrageType.TRIANGULAR:
            if len(self.token_path) != 4 or len(self.amounts) != 4:
                raise ValidationError(
                    "Triangular opportunity needs a 4-token path and 4 amounts",
                    {"token_path": self.token_path, "amounts": self.amounts},
                )
            if self.amounts[0] != self.amount_in:
                raise ValidationError("amounts[0] must equal amount_in")
            if len(self.price_impacts) != 3:
                raise ValidationError("Triangular opportunity needs 3 price impacts")

    @property
    def is_triangular(self) -> bool:
        return self.arbitrage_type is ArbitrageType.TRIANGULAR

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization (big ints as strings)."""
        return {
            "base_token": self.base_token,
            "quote_token": self.quote_token,
            "base_token_symbol": self.base_token_symbol,
            "quote_token_symbol": self.quote_token_symbol,
            "buy_dex": self.buy_dex,
            "sell_dex": self.sell_dex,
            "amount_in": str(self.amount_in),
            "amount_out": str(self.amount_out),
            "estimated_profit": str(self.estimated_profit),
            "profit_percent": self.profit_percent,
            "gas_estimate": str(self.gas_estimate),
            "net_profit": str(self.net_profit),
            "buy_price": str(self.buy_price),
            "sell_price": str(self.sell_price),
            "price_impact": self.price_impact,
            "arbitrage_type": self.arbitrage_type.value,
            "intermediate_token": self.intermediate_token,
            "token_path": list(self.token_path) or None,
            "amounts": [str(a) for a in self.amounts] or None,
            "price_impacts": list(self.price_impacts) or None,
            "block_number": self.block_number,
            "gas_price": None if self.gas_price is None else str(self.gas_price),
        }


@dataclass(frozen=True)
class RunMetrics:
    """
    Aggregate statistics for one completed scan cycle.

    Attributes:
        opportunities_found: Opportunities emitted by this cycle
        runtime_ms: Wall-clock duration of the cycle
        block_number: Block processed by this cycle
        error_count: Cumulative cycle failures since start
        total_opportunities: Cumulative opportunities since start
        profitable_last_24h: Opportunities with positive net profit emitted
            in the trailing 24 hours
        last_run_at: Unix timestamp of the cycle end
    """

    opportunities_found: int
    runtime_ms: int
    block_number: int
    error_count: int
    total_opportunities: int
    profitable_last_24h: int
    last_run_at: float
    by_type: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "opportunities_found": self.opportunities_found,
            "runtime_ms": self.runtime_ms,
            "block_number": self.block_number,
            "error_count": self.error_count,
            "total_opportunities": self.total_opportunities,
            "profitable_last_24h": self.profitable_last_24h,
            "last_run_at": timestamp_to_iso(self.last_run_at),
            "by_type": dict(self.by_type),
        }
