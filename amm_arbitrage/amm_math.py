"""
Constant-product (Uniswap V2 style) swap math.

Implements the exact integer formulas of the V2 library contract, with the
0.3% fee embedded as 997/1000. Every division truncates the way the
on-chain contract does; no floating point is used for amounts. Price impact
and profit percent are reported as floats for display only.
"""

from typing import List, Sequence

from .exceptions import (
    InsufficientInputAmount,
    InsufficientLiquidity,
    InsufficientOutputAmount,
    MathError,
    ValidationError,
)
from .types import Reserves, SimpleArbitrageResult, TriangularArbitrageResult
from .units import PRECISION, div_trunc

FEE_NUMERATOR = 997
FEE_DENOMINATOR = 1000

DEFAULT_SEARCH_ITERATIONS = 20


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    """
    Calculate output amount for a V2 swap.

    Formula (with fee embedded):
        amountInWithFee = amountIn * 997
        amountOut = amountInWithFee * reserveOut / (reserveIn * 1000 + amountInWithFee)

    Args:
        amount_in: Input token amount (smallest units)
        reserve_in: Reserve of input token
        reserve_out: Reserve of output token

    Returns:
        Output token amount, truncated

    Raises:
        InsufficientInputAmount: If amount_in <= 0
        InsufficientLiquidity: If either reserve <= 0
    """
    if amount_in <= 0:
        raise InsufficientInputAmount(amount_in)
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidity(reserve_in, reserve_out)

    amount_in_with_fee = amount_in * FEE_NUMERATOR
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * FEE_DENOMINATOR + amount_in_with_fee

    return numerator // denominator


def get_amount_in(amount_out: int, reserve_in: int, reserve_out: int) -> int:
    """
    Calculate the input amount required to receive amount_out.

    Formula:
        amountIn = reserveIn * amountOut * 1000 / ((reserveOut - amountOut) * 997) + 1

    The trailing +1 rounds up so the returned input always buys at least
    amount_out.

    Raises:
        InsufficientOutputAmount: If amount_out <= 0
        InsufficientLiquidity: If either reserve <= 0 or amount_out >= reserve_out
    """
    if amount_out <= 0:
        raise InsufficientOutputAmount(amount_out)
    if reserve_in <= 0 or reserve_out <= 0 or amount_out >= reserve_out:
        raise InsufficientLiquidity(reserve_in, reserve_out)

    numerator = reserve_in * amount_out * FEE_DENOMINATOR
    denominator = (reserve_out - amount_out) * FEE_NUMERATOR

    return numerator // denominator + 1


def get_amounts_out(amount_in: int, reserves: Sequence[Reserves]) -> List[int]:
    """
    Chain get_amount_out across hops (e.g. A -> B -> C).

    Args:
        amount_in: Initial input amount
        reserves: (reserve_in, reserve_out) for each hop, in trade order

    Returns:
        Amounts of length len(reserves) + 1, starting with amount_in
    """
    if not reserves:
        raise ValidationError("Invalid reserves array")

    amounts = [amount_in]
    for reserve_in, reserve_out in reserves:
        amounts.append(get_amount_out(amounts[-1], reserve_in, reserve_out))
    return amounts


def get_amounts_in(amount_out: int, reserves: Sequence[Reserves]) -> List[int]:
    """
    Chain get_amount_in backwards from the final desired output.

    Args:
        amount_out: Final desired output amount
        reserves: (reserve_in, reserve_out) for each hop, in trade order

    Returns:
        Amounts of length len(reserves) + 1, ending with amount_out
    """
    if not reserves:
        raise ValidationError("Invalid reserves array")

    amounts = [0] * (len(reserves) + 1)
    amounts[-1] = amount_out
    for i in range(len(reserves) - 1, -1, -1):
        reserve_in, reserve_out = reserves[i]
        amounts[i] = get_amount_in(amounts[i + 1], reserve_in, reserve_out)
    return amounts


def calculate_price_impact(
    amount_in: int, amount_out: int, reserve_in: int, reserve_out: int
) -> float:
    """
    Price impact of a trade in percent.

    Price impact = (spotPrice - executionPrice) / spotPrice, where both prices
    are 1e18-scaled integers. Resolution is 0.01%.

    Returns 0.0 (never raises) when any input is zero or negative.
    """
    if min(amount_in, amount_out, reserve_in, reserve_out) <= 0:
        return 0.0

    spot_price = reserve_out * PRECISION // reserve_in
    execution_price = amount_out * PRECISION // amount_in

    if spot_price <= 0:
        return 0.0

    impact_bps = div_trunc((spot_price - execution_price) * 10000, spot_price)
    return impact_bps / 100


def _profit_percent(profit: int, amount_in: int) -> float:
    if amount_in <= 0:
        return 0.0
    return profit / amount_in * 100


def simulate_simple_arbitrage(
    amount_in: int,
    reserves_a: Reserves,
    reserves_b: Reserves,
    gas_estimate: int,
) -> SimpleArbitrageResult:
    """
    Simulate buying on market A and selling back on market B.

    Args:
        amount_in: Amount of the base token spent on market A
        reserves_a: (base_reserve, quote_reserve) on market A
        reserves_b: (quote_reserve, base_reserve) on market B
        gas_estimate: Execution cost in base-token smallest units

    Returns:
        SimpleArbitrageResult with profit = amount_out - amount_in - gas_estimate

    Raises:
        MathError: If any hop is invalid
    """
    amount_b = get_amount_out(amount_in, reserves_a[0], reserves_a[1])
    amount_out = get_amount_out(amount_b, reserves_b[0], reserves_b[1])

    profit = amount_out - amount_in - gas_estimate

    return SimpleArbitrageResult(
        amount_out=amount_out,
        profit=profit,
        profit_percent=_profit_percent(profit, amount_in),
        price_impact_a=calculate_price_impact(
            amount_in, amount_b, reserves_a[0], reserves_a[1]
        ),
        price_impact_b=calculate_price_impact(
            amount_b, amount_out, reserves_b[0], reserves_b[1]
        ),
        is_profitable=profit > 0,
    )


def simulate_triangular_arbitrage(
    amount_in: int,
    reserves_ab: Reserves,
    reserves_bc: Reserves,
    reserves_ca: Reserves,
    gas_estimate: int,
) -> TriangularArbitrageResult:
    """
    Simulate the three-hop cycle A -> B -> C -> A on a single market.

    Returns:
        TriangularArbitrageResult with 4 amounts (amounts[0] == amount_in)
        and 3 per-hop price impacts
    """
    hops = (reserves_ab, reserves_bc, reserves_ca)
    amounts = get_amounts_out(amount_in, hops)

    price_impacts = tuple(
        calculate_price_impact(amounts[i], amounts[i + 1], hop[0], hop[1])
        for i, hop in enumerate(hops)
    )

    amount_out = amounts[-1]
    profit = amount_out - amount_in - gas_estimate

    return TriangularArbitrageResult(
        amount_out=amount_out,
        profit=profit,
        profit_percent=_profit_percent(profit, amount_in),
        amounts=tuple(amounts),
        price_impacts=price_impacts,
        is_profitable=profit > 0,
    )


def find_optimal_amount(
    min_amount: int,
    max_amount: int,
    reserves_a: Reserves,
    reserves_b: Reserves,
    gas_estimate: int,
    iterations: int = DEFAULT_SEARCH_ITERATIONS,
) -> int:
    """
    Heuristic search for a profitable simple-arbitrage trade size.

    Bisects [min_amount, max_amount], moving toward larger sizes while the
    midpoint is profitable and toward smaller sizes otherwise, and returns
    the size with the best profit seen. Profit vs. size is not guaranteed to
    be unimodal once price impact compounds over two hops, so this is not an
    exact optimizer: it returns the best midpoint it visited.

    Returns:
        Best amount seen, or min_amount when every visited size loses money
    """
    left = min_amount
    right = max_amount
    best_amount = min_amount
    best_profit = -1

    for _ in range(iterations):
        mid = (left + right) // 2

        try:
            result = simulate_simple_arbitrage(mid, reserves_a, reserves_b, gas_estimate)
        except MathError:
            right = mid - 1
        else:
            if result.profit > best_profit:
                best_profit = result.profit
                best_amount = mid

            if result.is_profitable:
                left = mid + 1
            else:
                right = mid - 1

        if left >= right:
            break

    return best_amount
