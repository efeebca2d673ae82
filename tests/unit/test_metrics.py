"""
Unit tests for Prometheus scanner metrics
"""

import pytest
from prometheus_client import CollectorRegistry

from amm_arbitrage.metrics import ScannerMetrics
from amm_arbitrage.sinks import OpportunitySink

from test_sinks import make_metrics
from test_types import make_opportunity, make_triangular


@pytest.fixture
def test_registry():
    """Create a test-specific registry"""
    return CollectorRegistry()


@pytest.fixture
def metrics(test_registry):
    """Create ScannerMetrics instance with test registry"""
    return ScannerMetrics(test_registry)


class TestScannerMetrics:
    """Test ScannerMetrics functionality"""

    def test_initialization(self, metrics):
        assert metrics.registry is not None
        assert isinstance(metrics, OpportunitySink)
        assert hasattr(metrics, "opportunities_total")
        assert hasattr(metrics, "cycle_duration_seconds")

    def test_separate_registries(self):
        """Two instances never collide on metric names"""
        ScannerMetrics(CollectorRegistry())
        ScannerMetrics(CollectorRegistry())

    @pytest.mark.asyncio
    async def test_opportunity_counters(self, metrics, test_registry):
        await metrics.record_opportunities(
            [
                make_opportunity(net_profit=5),
                make_opportunity(net_profit=9),
                make_triangular(net_profit=7),
            ]
        )

        simple_labels = {"arbitrage_type": "SIMPLE", "buy_dex": "DexY", "sell_dex": "DexX"}
        assert test_registry.get_sample_value(
            "amm_arbitrage_opportunities_total", simple_labels
        ) == 2.0
        assert test_registry.get_sample_value(
            "amm_arbitrage_best_net_profit_wei", {"arbitrage_type": "SIMPLE"}
        ) == 9.0
        assert test_registry.get_sample_value(
            "amm_arbitrage_best_net_profit_wei", {"arbitrage_type": "TRIANGULAR"}
        ) == 7.0

    @pytest.mark.asyncio
    async def test_cycle_metrics(self, metrics, test_registry):
        await metrics.record_metrics(make_metrics(runtime_ms=2500, error_count=2))

        assert test_registry.get_sample_value("amm_arbitrage_cycles_completed_total") == 1.0
        assert test_registry.get_sample_value("amm_arbitrage_cycle_duration_seconds_count") == 1.0
        assert test_registry.get_sample_value("amm_arbitrage_cycle_duration_seconds_sum") == 2.5
        assert test_registry.get_sample_value("amm_arbitrage_last_runtime_seconds") == 2.5
        assert test_registry.get_sample_value("amm_arbitrage_last_processed_block") == 18_000_000
        assert test_registry.get_sample_value("amm_arbitrage_profitable_last_24h") == 2.0
        assert test_registry.get_sample_value("amm_arbitrage_cycle_errors") == 2.0

    @pytest.mark.asyncio
    async def test_error_metric(self, metrics, test_registry):
        await metrics.record_error(5, RuntimeError("boom"))

        assert test_registry.get_sample_value("amm_arbitrage_cycle_errors") == 5.0
        assert metrics.get_metrics_summary()["cycle_errors"] == 5.0

    @pytest.mark.asyncio
    async def test_render(self, metrics):
        await metrics.record_metrics(make_metrics())

        output = metrics.render()
        assert "# TYPE amm_arbitrage_last_processed_block gauge" in output
        assert "amm_arbitrage_cycles_completed_total 1.0" in output

    @pytest.mark.asyncio
    async def test_http_handlers(self, metrics):
        metrics_response = await metrics._metrics_handler(None)
        assert metrics_response.content_type == "text/plain"
        assert "amm_arbitrage_cycle_errors" in metrics_response.text

        health_response = await metrics._health_handler(None)
        assert health_response.status == 200
