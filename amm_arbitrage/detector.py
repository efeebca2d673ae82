"""
Arbitrage opportunity search over constant-product exchanges.

Each cycle walks IDLE -> FETCH_BLOCK -> SIMPLE_SCAN -> TRIANGULAR_SCAN ->
EMIT -> IDLE. Simple scans compare the same pair across two exchanges;
triangular scans walk three-token cycles on a single exchange. Failures of a
single pair or triple are contained locally; anything else ends the cycle,
increments the error counter and is reported to the sink.
"""

import asyncio
import time
from collections import Counter, deque
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from itertools import combinations, permutations
from typing import Callable, Deque, List, Optional, Sequence, Tuple

from .amm_math import simulate_simple_arbitrage, simulate_triangular_arbitrage
from .config import ExchangeConfig, ScannerConfig
from .exceptions import ArbitrageScannerError, MathError, PairNotFoundError
from .reserves import ReserveService
from .sinks import OpportunitySink
from .types import ArbitrageType, Opportunity, PairInfo, RunMetrics
from .units import format_token_amount
from .utils import format_duration, get_logger

logger = get_logger(__name__)

PROFIT_WINDOW_SEC = 24 * 60 * 60

# Triangular cycles execute three swaps
TRIANGULAR_GAS_MULTIPLIER = 3


class CycleState(Enum):
    IDLE = "idle"
    FETCH_BLOCK = "fetch_block"
    SIMPLE_SCAN = "simple_scan"
    TRIANGULAR_SCAN = "triangular_scan"
    EMIT = "emit"


def apply_safety_margin(profit: int, safety_margin: float) -> int:
    """
    Haircut profit by the safety margin with integer truncation.

    adjusted = profit * floor((1 - margin) * 1000) / 1000
    """
    scaled = (Decimal(1) - Decimal(str(safety_margin))) * 1000
    permille = int(scaled.to_integral_value(rounding=ROUND_FLOOR))
    return profit * permille // 1000


class ArbitrageDetector:
    """
    Drives scan cycles against a shared ReserveService.

    Only one cycle should run at a time: the last processed block is read at
    cycle start and written at successful cycle end.

    Args:
        service: Shared reserve access layer
        config: Validated scanner configuration
        sink: Receiver of opportunities, metrics and errors
        clock: Wall clock for run timestamps and the 24h window
    """

    def __init__(
        self,
        service: ReserveService,
        config: ScannerConfig,
        sink: OpportunitySink,
        clock: Callable[[], float] = time.time,
    ):
        self.service = service
        self.config = config
        self.sink = sink
        self._clock = clock

        self.state = CycleState.IDLE
        self.last_processed_block = 0
        self.error_count = 0
        self.total_opportunities = 0
        self.last_run_at: Optional[float] = None
        self.last_runtime_ms: Optional[int] = None
        self._profitable_history: Deque[Tuple[float, int]] = deque()

    async def detect_opportunities(self) -> Optional[RunMetrics]:
        """
        Run one scan cycle.

        Returns:
            RunMetrics of the completed cycle, or None if the cycle was
            skipped (no new block) or failed
        """
        start = time.perf_counter()
        logger.info("Starting arbitrage detection...")

        found: List[Opportunity] = []
        emitted = False
        try:
            self.state = CycleState.FETCH_BLOCK
            current_block = await self.service.get_current_block_number()

            if current_block <= self.last_processed_block:
                logger.debug("No new blocks to process")
                return None

            gas_price = await self.service.get_current_gas_price()

            self.state = CycleState.SIMPLE_SCAN
            simple = await self.detect_simple_arbitrage(gas_price, current_block)
            found.extend(simple)
            logger.info(f"Found {len(simple)} simple arbitrage opportunities")

            self.state = CycleState.TRIANGULAR_SCAN
            triangular = await self.detect_triangular_arbitrage(gas_price, current_block)
            found.extend(triangular)
            logger.info(f"Found {len(triangular)} triangular arbitrage opportunities")

            self.state = CycleState.EMIT
            runtime_ms = int((time.perf_counter() - start) * 1000)
            metrics = self._record_cycle(found, runtime_ms, current_block)
            emitted = True
            await self.sink.record_opportunities(found)
            await self.sink.record_metrics(metrics)

            stats = self.service.get_stats()
            logger.info(
                f"Rate limiter stats - Queue: {stats['queue_length']}, "
                f"Requests: {stats['current_request_count']}, "
                f"Token cache: {stats['token_cache_size']}, "
                f"Pair cache: {stats['pair_cache_size']}"
            )

            self.last_processed_block = current_block
            logger.info(
                f"Arbitrage detection completed in "
                f"{format_duration(runtime_ms / 1000)}"
            )
            return metrics

        except Exception as e:
            self.error_count += 1
            logger.error(f"Error in arbitrage detection: {e}")
            await self._report_failure(found if not emitted else [], e)
            return None

        finally:
            self.state = CycleState.IDLE

    async def _report_failure(self, partial: List[Opportunity], error: Exception) -> None:
        """Hand completed-phase results and the error to the sink."""
        try:
            if partial:
                self._track_opportunities(partial)
                await self.sink.record_opportunities(partial)
                logger.info(f"Saved {len(partial)} opportunities from completed phases")
            await self.sink.record_error(self.error_count, error)
        except Exception as sink_error:
            logger.error(f"Error reporting failed cycle: {sink_error}")

    def _track_opportunities(self, opportunities: Sequence[Opportunity]) -> None:
        now = self._clock()
        self.total_opportunities += len(opportunities)
        profitable = sum(1 for o in opportunities if o.net_profit > 0)
        self._profitable_history.append((now, profitable))

        cutoff = now - PROFIT_WINDOW_SEC
        while self._profitable_history and self._profitable_history[0][0] < cutoff:
            self._profitable_history.popleft()

    def _record_cycle(
        self, found: Sequence[Opportunity], runtime_ms: int, block_number: int
    ) -> RunMetrics:
        self._track_opportunities(found)
        self.last_run_at = self._clock()
        self.last_runtime_ms = runtime_ms

        by_type = Counter(o.arbitrage_type.value for o in found)
        return RunMetrics(
            opportunities_found=len(found),
            runtime_ms=runtime_ms,
            block_number=block_number,
            error_count=self.error_count,
            total_opportunities=self.total_opportunities,
            profitable_last_24h=self.profitable_last_24h,
            last_run_at=self.last_run_at,
            by_type=dict(by_type),
        )

    @property
    def profitable_last_24h(self) -> int:
        cutoff = self._clock() - PROFIT_WINDOW_SEC
        return sum(n for ts, n in self._profitable_history if ts >= cutoff)

    def get_token_pairs(self) -> List[Tuple[str, str]]:
        """Every unordered pair from the token universe."""
        return list(combinations(self.config.tokens.values(), 2))

    def get_token_triples(self) -> List[Tuple[str, str, str]]:
        """Every ordered triple of distinct tokens."""
        return list(permutations(self.config.tokens.values(), 3))

    # ------------------------------------------------------------------
    # Simple arbitrage
    # ------------------------------------------------------------------

    async def detect_simple_arbitrage(
        self, gas_price: int, block_number: Optional[int] = None
    ) -> List[Opportunity]:
        """
        Compare every token pair across every pair of exchanges.

        Pairs are looked up in batches of config.batch_size; a batch is fully
        awaited before the next one starts.
        """
        gas_estimate = gas_price * self.config.gas_limit
        token_pairs = self.get_token_pairs()
        batch_size = self.config.batch_size
        total_batches = (len(token_pairs) + batch_size - 1) // batch_size

        opportunities: List[Opportunity] = []
        for i in range(0, len(token_pairs), batch_size):
            batch = token_pairs[i : i + batch_size]
            results = await asyncio.gather(
                *[
                    self._scan_pair(token_a, token_b, gas_estimate, gas_price, block_number)
                    for token_a, token_b in batch
                ]
            )
            for result in results:
                opportunities.extend(result)

            logger.debug(f"Processed batch {i // batch_size + 1}/{total_batches}")

        return opportunities

    async def _scan_pair(
        self,
        token_a: str,
        token_b: str,
        gas_estimate: int,
        gas_price: int,
        block_number: Optional[int],
    ) -> List[Opportunity]:
        # Sequential lookups keep per-pair load low
        listed: List[Tuple[ExchangeConfig, PairInfo]] = []
        for exchange in self.config.exchanges:
            try:
                pair = await self.service.get_pair_info(exchange.factory, token_a, token_b)
            except PairNotFoundError:
                logger.debug(f"No {token_a}/{token_b} pair on {exchange.name}")
                continue
            except ArbitrageScannerError as e:
                logger.debug(f"Error checking pair {token_a}/{token_b} on {exchange.name}: {e}")
                continue
            except Exception as e:
                logger.warning(f"Unexpected error checking pair {token_a}/{token_b} on {exchange.name}: {e}")
                continue
            listed.append((exchange, pair))

        opportunities: List[Opportunity] = []
        for (ex_x, pair_x), (ex_y, pair_y) in combinations(listed, 2):
            context = (gas_estimate, gas_price, block_number)
            opportunities.extend(self._check_simple_direction(pair_x, pair_y, ex_x.name, ex_y.name, *context))
            opportunities.extend(self._check_simple_direction(pair_y, pair_x, ex_y.name, ex_x.name, *context))
        return opportunities

    def _check_simple_direction(
        self,
        buy_pair: PairInfo,
        sell_pair: PairInfo,
        buy_dex: str,
        sell_dex: str,
        gas_estimate: int,
        gas_price: int,
        block_number: Optional[int],
    ) -> List[Opportunity]:
        """Try every candidate size in both token directions: buy on one, sell on the other."""
        opportunities = []
        for amount_in in self.config.simple_trade_sizes:
            for a_to_b in (True, False):
                opportunity = self.simulate_simple(
                    amount_in,
                    buy_pair,
                    sell_pair,
                    a_to_b,
                    buy_dex,
                    sell_dex,
                    gas_estimate,
                    gas_price=gas_price,
                    block_number=block_number,
                )
                if opportunity and opportunity.net_profit > self.config.min_profit_wei:
                    opportunities.append(opportunity)
        return opportunities

    def simulate_simple(
        self,
        amount_in: int,
        buy_pair: PairInfo,
        sell_pair: PairInfo,
        a_to_b: bool,
        buy_dex: str,
        sell_dex: str,
        gas_estimate: int,
        gas_price: Optional[int] = None,
        block_number: Optional[int] = None,
    ) -> Optional[Opportunity]:
        """
        Simulate one simple cycle and build an Opportunity if it pays.

        The base token is spent on the buy exchange for the quote token,
        which is sold back for the base token on the sell exchange.

        Returns:
            Opportunity, or None when unprofitable after the safety margin
        """
        if a_to_b:
            base, quote = buy_pair.token_a, buy_pair.token_b
        else:
            base, quote = buy_pair.token_b, buy_pair.token_a

        reserves_a = buy_pair.reserves.directional(base.address)
        reserves_b = sell_pair.reserves.directional(quote.address)

        try:
            result = simulate_simple_arbitrage(amount_in, reserves_a, reserves_b, gas_estimate)
        except MathError as e:
            logger.debug(f"Error in arbitrage simulation: {e}")
            return None

        if not result.is_profitable:
            return None

        adjusted_profit = apply_safety_margin(result.profit, self.config.safety_margin)
        if adjusted_profit <= 0:
            return None

        return Opportunity(
            base_token=base.address,
            quote_token=quote.address,
            base_token_symbol=base.symbol,
            quote_token_symbol=quote.symbol,
            buy_dex=buy_dex,
            sell_dex=sell_dex,
            amount_in=amount_in,
            amount_out=result.amount_out,
            estimated_profit=result.profit,
            profit_percent=result.profit_percent,
            gas_estimate=gas_estimate,
            net_profit=adjusted_profit,
            buy_price=self.service.calculate_price(buy_pair.reserves, base.address),
            sell_price=self.service.calculate_price(sell_pair.reserves, base.address),
            price_impact=max(result.price_impact_a, result.price_impact_b),
            arbitrage_type=ArbitrageType.SIMPLE,
            block_number=block_number,
            gas_price=gas_price,
        )

    # ------------------------------------------------------------------
    # Triangular arbitrage
    # ------------------------------------------------------------------

    async def detect_triangular_arbitrage(
        self, gas_price: int, block_number: Optional[int] = None
    ) -> List[Opportunity]:
        """Check every ordered token triple on the triangular exchange."""
        exchange = self.config.exchange(self.config.triangular_exchange)
        gas_estimate = gas_price * self.config.gas_limit * TRIANGULAR_GAS_MULTIPLIER

        opportunities: List[Opportunity] = []
        for token_a, token_b, token_c in self.get_token_triples():
            try:
                opportunity = await self.check_triangular_arbitrage(
                    exchange, token_a, token_b, token_c, gas_estimate, gas_price, block_number
                )
            except ArbitrageScannerError as e:
                logger.debug(
                    f"Error checking triangular arbitrage {token_a}/{token_b}/{token_c}: {e}"
                )
                continue
            except Exception as e:
                logger.warning(
                    f"Unexpected error checking triangular arbitrage {token_a}/{token_b}/{token_c}: {e}"
                )
                continue
            if opportunity:
                opportunities.append(opportunity)

        return opportunities

    async def check_triangular_arbitrage(
        self,
        exchange: ExchangeConfig,
        token_a: str,
        token_b: str,
        token_c: str,
        gas_estimate: int,
        gas_price: Optional[int] = None,
        block_number: Optional[int] = None,
    ) -> Optional[Opportunity]:
        """
        Simulate A -> B -> C -> A and return the first size that pays.

        Candidate sizes are tried in configured order and the search stops at
        the first one whose margin-adjusted profit clears min_profit_wei;
        later sizes are not evaluated even if they would pay more.
        """
        pair_ab, pair_bc, pair_ca = await asyncio.gather(
            self.service.get_pair_info(exchange.factory, token_a, token_b),
            self.service.get_pair_info(exchange.factory, token_b, token_c),
            self.service.get_pair_info(exchange.factory, token_c, token_a),
        )

        reserves_ab = pair_ab.reserves.directional(token_a)
        reserves_bc = pair_bc.reserves.directional(token_b)
        reserves_ca = pair_ca.reserves.directional(token_c)

        for amount_in in self.config.triangular_trade_sizes:
            try:
                result = simulate_triangular_arbitrage(
                    amount_in, reserves_ab, reserves_bc, reserves_ca, gas_estimate
                )
            except MathError as e:
                logger.debug(f"Error in triangular simulation: {e}")
                continue

            if not result.is_profitable:
                continue

            adjusted_profit = apply_safety_margin(result.profit, self.config.safety_margin)
            if adjusted_profit <= self.config.min_profit_wei:
                continue

            token_info = pair_ab.token_a
            logger.debug(
                f"Triangular {token_info.symbol}->{pair_ab.token_b.symbol}->"
                f"{pair_bc.token_b.symbol} pays "
                f"{format_token_amount(adjusted_profit, precision=6)} "
                f"at size {format_token_amount(amount_in)}"
            )
            return Opportunity(
                base_token=token_a,
                quote_token=token_a,
                base_token_symbol=token_info.symbol,
                quote_token_symbol=token_info.symbol,
                buy_dex=exchange.name,
                sell_dex=exchange.name,
                amount_in=amount_in,
                amount_out=result.amount_out,
                estimated_profit=result.profit,
                profit_percent=result.profit_percent,
                gas_estimate=gas_estimate,
                net_profit=adjusted_profit,
                buy_price=0,
                sell_price=0,
                price_impact=max(result.price_impacts),
                arbitrage_type=ArbitrageType.TRIANGULAR,
                intermediate_token=token_b,
                token_path=(token_a, token_b, token_c, token_a),
                amounts=result.amounts,
                price_impacts=result.price_impacts,
                block_number=block_number,
                gas_price=gas_price,
            )

        return None
