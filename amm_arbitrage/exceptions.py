"""
Exception hierarchy for the AMM arbitrage scanner.

Math errors are caller misuse and never retried. Access errors carry a
fault tag assigned once at the RPC boundary; retry logic switches on the tag,
never on message content.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ArbitrageScannerError(Exception):
    """Base exception for all scanner related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigError(ArbitrageScannerError):
    """Raised when config is invalid or missing required fields."""

    pass


class ValidationError(ArbitrageScannerError):
    """Raised when validation of data fails."""

    pass


class MathError(ValidationError):
    """Raised by the AMM math library on invalid inputs."""

    pass


class InsufficientInputAmount(MathError):
    """Swap input amount is zero or negative."""

    def __init__(self, amount_in: int):
        super().__init__(
            "UniswapV2Library: INSUFFICIENT_INPUT_AMOUNT",
            {"amount_in": amount_in},
        )


class InsufficientOutputAmount(MathError):
    """Requested output amount is zero or negative."""

    def __init__(self, amount_out: int):
        super().__init__(
            "UniswapV2Library: INSUFFICIENT_OUTPUT_AMOUNT",
            {"amount_out": amount_out},
        )


class InsufficientLiquidity(MathError):
    """A reserve is empty or the requested output drains the pool."""

    def __init__(self, reserve_in: int, reserve_out: int):
        super().__init__(
            "UniswapV2Library: INSUFFICIENT_LIQUIDITY",
            {"reserve_in": reserve_in, "reserve_out": reserve_out},
        )


class AccessFaultKind(Enum):
    """Classification of a failed chain read."""

    RATE_LIMITED = "rate_limited"
    NETWORK_FAILURE = "network_failure"
    SERVER_FAULT = "server_fault"
    PERMANENT_FAULT = "permanent_fault"


RETRYABLE_FAULTS = frozenset(
    {
        AccessFaultKind.RATE_LIMITED,
        AccessFaultKind.NETWORK_FAILURE,
        AccessFaultKind.SERVER_FAULT,
    }
)


class AccessError(ArbitrageScannerError):
    """Raised when a blockchain read call fails."""

    def __init__(
        self,
        message: str,
        kind: AccessFaultKind = AccessFaultKind.PERMANENT_FAULT,
        endpoint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.kind = kind
        self.endpoint = endpoint

    @property
    def is_retryable(self) -> bool:
        return self.kind in RETRYABLE_FAULTS


class PairNotFoundError(AccessError):
    """The factory has no pair for the requested tokens."""

    def __init__(self, factory: str, token_a: str, token_b: str):
        super().__init__(
            f"No pair found for tokens {token_a} and {token_b}",
            kind=AccessFaultKind.PERMANENT_FAULT,
            endpoint=factory,
            details={"token_a": token_a, "token_b": token_b},
        )
        self.factory = factory
        self.token_a = token_a
        self.token_b = token_b


class MalformedResponseError(AccessError):
    """A read call returned data of an unexpected shape."""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(
            message, kind=AccessFaultKind.PERMANENT_FAULT, endpoint=endpoint
        )
