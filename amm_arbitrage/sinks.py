"""
Destinations for detected opportunities and per-cycle run metrics.

Persistence and querying are owned by the host; the scanner only hands
records to an OpportunitySink once per cycle.
"""

from collections import deque
from typing import Deque, List, Optional, Protocol, Sequence, runtime_checkable

from .types import Opportunity, RunMetrics
from .units import format_token_amount
from .utils import get_logger

logger = get_logger(__name__)


@runtime_checkable
class OpportunitySink(Protocol):
    """Protocol for consumers of scan results."""

    async def record_opportunities(self, opportunities: Sequence[Opportunity]) -> None:
        """Receive the opportunities found by one cycle."""
        ...

    async def record_metrics(self, metrics: RunMetrics) -> None:
        """Receive run metrics of a completed cycle."""
        ...

    async def record_error(self, error_count: int, error: BaseException) -> None:
        """Receive notice of a failed cycle and the cumulative error count."""
        ...


class InMemorySink:
    """Keeps the most recent opportunities and metrics in memory."""

    def __init__(self, max_opportunities: int = 1000, max_metrics: int = 100):
        self.opportunities: Deque[Opportunity] = deque(maxlen=max_opportunities)
        self.metrics: Deque[RunMetrics] = deque(maxlen=max_metrics)
        self.error_count = 0
        self.last_error: Optional[BaseException] = None

    async def record_opportunities(self, opportunities: Sequence[Opportunity]) -> None:
        self.opportunities.extend(opportunities)

    async def record_metrics(self, metrics: RunMetrics) -> None:
        self.metrics.append(metrics)

    async def record_error(self, error_count: int, error: BaseException) -> None:
        self.error_count = error_count
        self.last_error = error

    @property
    def latest_metrics(self) -> Optional[RunMetrics]:
        return self.metrics[-1] if self.metrics else None

    def top_opportunities(self, limit: int = 10) -> List[Opportunity]:
        """Recorded opportunities ordered by net profit, highest first."""
        return sorted(self.opportunities, key=lambda o: o.net_profit, reverse=True)[:limit]


class LoggingSink:
    """Writes each opportunity and cycle summary to the log."""

    async def record_opportunities(self, opportunities: Sequence[Opportunity]) -> None:
        for opp in opportunities:
            if opp.is_triangular:
                route = " -> ".join(opp.token_path)
                venue = opp.buy_dex
            else:
                route = f"{opp.base_token_symbol}/{opp.quote_token_symbol}"
                venue = f"{opp.buy_dex} -> {opp.sell_dex}"
            logger.info(
                f"[{opp.arbitrage_type.value}] {route} on {venue}: "
                f"in {format_token_amount(opp.amount_in)} "
                f"net {format_token_amount(opp.net_profit, precision=6)} "
                f"({opp.profit_percent:+.3f}%, impact {opp.price_impact:.2f}%)"
            )

    async def record_metrics(self, metrics: RunMetrics) -> None:
        logger.info(
            f"Cycle block #{metrics.block_number:,}: {metrics.opportunities_found} found, "
            f"{metrics.total_opportunities} total, "
            f"{metrics.profitable_last_24h} profitable in 24h, "
            f"{metrics.runtime_ms}ms"
        )

    async def record_error(self, error_count: int, error: BaseException) -> None:
        logger.error(f"Cycle failed ({error_count} total): {error}")


class MultiSink:
    """Fans records out to several sinks in order."""

    def __init__(self, sinks: Sequence[OpportunitySink]):
        self.sinks = list(sinks)

    async def record_opportunities(self, opportunities: Sequence[Opportunity]) -> None:
        for sink in self.sinks:
            await sink.record_opportunities(opportunities)

    async def record_metrics(self, metrics: RunMetrics) -> None:
        for sink in self.sinks:
            await sink.record_metrics(metrics)

    async def record_error(self, error_count: int, error: BaseException) -> None:
        for sink in self.sinks:
            await sink.record_error(error_count, error)
