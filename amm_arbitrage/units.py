"""
Fixed-point helpers for on-chain integer amounts.

All token amounts in the scanner are Python ints in the token's smallest
unit. Decimal is used only at the edges, when converting human-readable
values in and out.
"""

import math
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Union

ETHER_DECIMALS = 18

# Scale factor for prices expressed as integers
PRECISION = 10**18

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def parse_units(amount: Union[str, int, Decimal], decimals: int = ETHER_DECIMALS) -> int:
    """
    Convert a human-readable amount into smallest units.

    >>> parse_units("0.1")
    100000000000000000
    >>> parse_units("1.5", 6)
    1500000

    Raises:
        ValueError: If amount is not a number or has more precision than
            the token supports
    """
    if isinstance(amount, float):
        amount = str(amount)
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value(rounding=ROUND_DOWN):
        raise ValueError(f"Amount {amount} has more than {decimals} decimals")
    return int(scaled)


def format_units(amount: int, decimals: int = ETHER_DECIMALS) -> str:
    """Convert smallest units back to a plain decimal string."""
    value = Decimal(amount).scaleb(-decimals)
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def format_token_amount(amount: int, decimals: int = ETHER_DECIMALS, precision: int = 4) -> str:
    """Format smallest units for log output with fixed precision."""
    value = Decimal(amount).scaleb(-decimals)
    return f"{value:.{precision}f}"


def div_trunc(numerator: int, denominator: int) -> int:
    """
    Integer division truncating toward zero, as EVM/BigInt division does.

    Python's ``//`` floors, which differs for negative quotients.
    """
    if denominator == 0:
        raise ZeroDivisionError("Division by zero")
    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient


def is_zero_address(address: str) -> bool:
    return address is None or int(address, 16) == 0


def calculate_percentage(value: int, total: int) -> float:
    """Share of total in percent at 0.01% resolution; 0.0 when total is 0."""
    if total == 0:
        return 0.0
    return div_trunc(value * 10000, total) / 100


def integer_sqrt(value: int) -> int:
    """Floor square root of a non-negative integer."""
    if value < 0:
        raise ValueError("Cannot calculate square root of negative number")
    return math.isqrt(value)
