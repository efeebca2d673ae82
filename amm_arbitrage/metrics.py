"""
Prometheus metrics for scan cycles.

ScannerMetrics is an OpportunitySink: it turns per-cycle results into
Prometheus counters, gauges and histograms, and can expose them over HTTP.
"""

from typing import Any, Dict, Optional, Sequence

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from .types import Opportunity, RunMetrics
from .utils import get_logger

logger = get_logger(__name__)


class ScannerMetrics:
    """
    Scan cycle metrics collection and exposure.

    Provides Prometheus-compatible metrics for:
    - Opportunities found, by arbitrage type and exchange route
    - Cycle duration and processed block
    - Cycle failures
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics with a dedicated registry unless one is given"""
        self.registry = registry or CollectorRegistry()
        self._initialize_metrics()

        self._app = None
        self._runner = None
        self._site = None

    def _initialize_metrics(self):
        self.opportunities_total = Counter(
            "amm_arbitrage_opportunities_total",
            "Total opportunities detected",
            ["arbitrage_type", "buy_dex", "sell_dex"],
            registry=self.registry,
        )

        self.best_net_profit_wei = Gauge(
            "amm_arbitrage_best_net_profit_wei",
            "Highest margin-adjusted profit in the last batch of opportunities",
            ["arbitrage_type"],
            registry=self.registry,
        )

        self.cycles_completed_total = Counter(
            "amm_arbitrage_cycles_completed_total",
            "Total scan cycles completed",
            registry=self.registry,
        )

        self.cycle_errors_total = Gauge(
            "amm_arbitrage_cycle_errors",
            "Cumulative failed scan cycles",
            registry=self.registry,
        )

        self.cycle_duration_seconds = Histogram(
            "amm_arbitrage_cycle_duration_seconds",
            "Duration of completed scan cycles",
            buckets=[0.5, 1, 2, 5, 10, 30, 60, 120, 300],
            registry=self.registry,
        )

        self.last_runtime_seconds = Gauge(
            "amm_arbitrage_last_runtime_seconds",
            "Duration of the last completed scan cycle",
            registry=self.registry,
        )

        self.last_processed_block = Gauge(
            "amm_arbitrage_last_processed_block",
            "Block number of the last completed cycle",
            registry=self.registry,
        )

        self.profitable_last_24h = Gauge(
            "amm_arbitrage_profitable_last_24h",
            "Profitable opportunities detected in the trailing 24 hours",
            registry=self.registry,
        )

        self.last_run_timestamp = Gauge(
            "amm_arbitrage_last_run_timestamp_seconds",
            "Unix time of the last completed cycle",
            registry=self.registry,
        )

    # === SINK INTERFACE ===

    async def record_opportunities(self, opportunities: Sequence[Opportunity]) -> None:
        best: Dict[str, int] = {}
        for opp in opportunities:
            kind = opp.arbitrage_type.value
            self.opportunities_total.labels(
                arbitrage_type=kind, buy_dex=opp.buy_dex, sell_dex=opp.sell_dex
            ).inc()
            best[kind] = max(best.get(kind, opp.net_profit), opp.net_profit)

        for kind, profit in best.items():
            self.best_net_profit_wei.labels(arbitrage_type=kind).set(profit)

    async def record_metrics(self, metrics: RunMetrics) -> None:
        self.cycles_completed_total.inc()
        self.cycle_duration_seconds.observe(metrics.runtime_ms / 1000)
        self.last_runtime_seconds.set(metrics.runtime_ms / 1000)
        self.last_processed_block.set(metrics.block_number)
        self.profitable_last_24h.set(metrics.profitable_last_24h)
        self.last_run_timestamp.set(metrics.last_run_at)
        self.cycle_errors_total.set(metrics.error_count)

    async def record_error(self, error_count: int, error: BaseException) -> None:
        self.cycle_errors_total.set(error_count)

    # === SERVER MANAGEMENT ===

    async def start_server(
        self, port: int = 8000, host: str = "0.0.0.0", path: str = "/metrics"
    ) -> bool:
        """Start Prometheus metrics HTTP server"""
        try:
            self._app = web.Application()
            self._app.router.add_get(path, self._metrics_handler)
            self._app.router.add_get("/health", self._health_handler)

            self._runner = web.AppRunner(self._app)
            await self._runner.setup()

            self._site = web.TCPSite(self._runner, host, port)
            await self._site.start()

            logger.info(f"Metrics server started on http://{host}:{port}{path}")
            return True

        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False

    async def stop_server(self) -> None:
        """Stop the metrics server"""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        logger.info("Metrics server stopped")

    async def _metrics_handler(self, request):
        metrics_output = generate_latest(self.registry)
        # aiohttp rejects a charset inside content_type
        content_type = CONTENT_TYPE_LATEST.split(";")[0]
        return web.Response(text=metrics_output.decode("utf-8"), content_type=content_type)

    async def _health_handler(self, request):
        return web.json_response({"status": "healthy", "service": "amm_arbitrage_metrics"})

    def render(self) -> str:
        """Current metrics in Prometheus text format."""
        return generate_latest(self.registry).decode("utf-8")

    def get_metrics_summary(self) -> Dict[str, Any]:
        return {
            "last_processed_block": self.last_processed_block._value.get(),
            "cycle_errors": self.cycle_errors_total._value.get(),
            "profitable_last_24h": self.profitable_last_24h._value.get(),
        }
