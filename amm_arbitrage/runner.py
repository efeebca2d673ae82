"""
Scan loop host.

ScannerRunner wires the RPC reader, the shared reserve service, the sinks
and the detector from a ScannerConfig, then triggers a detection cycle every
poll_sec seconds.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional

from .chain import ChainReader, Web3ChainReader
from .config import ScannerConfig
from .detector import ArbitrageDetector
from .metrics import ScannerMetrics
from .reserves import ReserveService
from .sinks import InMemorySink, LoggingSink, MultiSink, OpportunitySink
from .types import RunMetrics
from .units import format_units
from .utils import get_logger

logger = get_logger(__name__)


class ScannerRunner:
    """
    Owns one ReserveService and one ArbitrageDetector for the process.

    Args:
        config: Validated scanner configuration
        reader: Chain reader to use instead of a Web3ChainReader on rpc_url
        sleep: Awaitable sleep between cycles, injectable for tests
    """

    def __init__(
        self,
        config: ScannerConfig,
        reader: Optional[ChainReader] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.reader = reader or Web3ChainReader(
            config.rpc_url, request_timeout=config.request_timeout_sec
        )
        self.service = ReserveService.from_config(self.reader, config)

        self.history = InMemorySink()
        sinks: List[OpportunitySink] = [LoggingSink(), self.history]
        self.metrics: Optional[ScannerMetrics] = None
        if config.metrics_port is not None:
            self.metrics = ScannerMetrics()
            sinks.append(self.metrics)

        self.detector = ArbitrageDetector(self.service, config, MultiSink(sinks))
        self._sleep = sleep
        self.cycles_run = 0

    def print_banner(self) -> None:
        """Log the scan parameters once at startup."""
        exchanges = ", ".join(e.name for e in self.config.exchanges)
        logger.info("=" * 60)
        logger.info("AMM arbitrage scanner")
        logger.info(f"Exchanges: {exchanges}")
        logger.info(f"Triangular exchange: {self.config.triangular_exchange}")
        logger.info(f"Tokens: {', '.join(self.config.tokens)}")
        logger.info(
            f"Min profit: {format_units(self.config.min_profit_wei)} | "
            f"Safety margin: {self.config.safety_margin:.1%} | "
            f"Poll: {self.config.poll_sec}s"
        )
        logger.info("=" * 60)

    async def run_once(self) -> Optional[RunMetrics]:
        self.cycles_run += 1
        return await self.detector.detect_opportunities()

    async def run(self) -> None:
        """
        Main loop: one detection cycle per poll interval.

        Cycle failures are counted and reported by the detector, so the loop
        keeps going; runs a single cycle when config.once is set.
        """
        self.print_banner()

        if self.metrics is not None:
            await self.metrics.start_server(port=self.config.metrics_port)

        try:
            while True:
                await self.run_once()

                if self.config.once:
                    break

                await self._sleep(self.config.poll_sec)
        finally:
            if self.metrics is not None:
                await self.metrics.stop_server()
            logger.info(
                f"Scanner stopped after {self.cycles_run} cycles "
                f"({self.detector.error_count} failed, "
                f"{self.detector.total_opportunities} opportunities)"
            )
