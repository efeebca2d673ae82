"""
Unit tests for amm_arbitrage/types.py
"""

import pytest

from amm_arbitrage.exceptions import ValidationError
from amm_arbitrage.types import ArbitrageType, Opportunity, PairReserves, RunMetrics

E18 = 10**18


def make_opportunity(**overrides):
    fields = dict(
        base_token="0xa",
        quote_token="0xb",
        base_token_symbol="AAA",
        quote_token_symbol="BBB",
        buy_dex="DexY",
        sell_dex="DexX",
        amount_in=E18,
        amount_out=E18 + 10**17,
        estimated_profit=10**17,
        profit_percent=10.0,
        gas_estimate=0,
        net_profit=98 * 10**15,
        buy_price=2200 * E18,
        sell_price=2000 * E18,
        price_impact=1.25,
        arbitrage_type=ArbitrageType.SIMPLE,
    )
    fields.update(overrides)
    return Opportunity(**fields)


def make_triangular(**overrides):
    fields = dict(
        quote_token="0xa",
        quote_token_symbol="AAA",
        sell_dex="DexY",
        arbitrage_type=ArbitrageType.TRIANGULAR,
        intermediate_token="0xc",
        token_path=("0xa", "0xc", "0xb", "0xa"),
        amounts=(E18, 2171 * E18, 2160 * E18, E18 + 10**17),
        price_impacts=(1.0, 0.2, 1.1),
    )
    fields.update(overrides)
    return make_opportunity(**fields)


class TestPairReserves:
    def test_directional(self):
        reserves = PairReserves(10, 20, "0xAbC", "0xdef", 0)

        assert reserves.directional("0xabc") == (10, 20)
        assert reserves.directional("0xDEF") == (20, 10)


class TestOpportunity:
    def test_valid_simple(self):
        opp = make_opportunity()
        assert not opp.is_triangular
        assert opp.token_path == ()

    def test_valid_triangular(self):
        opp = make_triangular()
        assert opp.is_triangular
        assert opp.amounts[0] == opp.amount_in

    def test_amount_in_must_be_positive(self):
        with pytest.raises(ValidationError):
            make_opportunity(amount_in=0)

    def test_net_profit_bounded_by_estimate(self):
        with pytest.raises(ValidationError):
            make_opportunity(net_profit=2 * 10**17)

    def test_triangular_shape_enforced(self):
        with pytest.raises(ValidationError):
            make_triangular(token_path=("0xa", "0xc", "0xa"))
        with pytest.raises(ValidationError):
            make_triangular(amounts=(2 * E18, 1, 1, 1))
        with pytest.raises(ValidationError):
            make_triangular(price_impacts=(1.0,))

    def test_frozen(self):
        opp = make_opportunity()
        with pytest.raises(AttributeError):
            opp.net_profit = 0

    def test_to_dict_stringifies_amounts(self):
        data = make_triangular(block_number=100, gas_price=10**9).to_dict()

        assert data["amount_in"] == str(E18)
        assert data["net_profit"] == str(98 * 10**15)
        assert data["arbitrage_type"] == "TRIANGULAR"
        assert data["token_path"] == ["0xa", "0xc", "0xb", "0xa"]
        assert data["amounts"][1] == str(2171 * E18)
        assert data["gas_price"] == "1000000000"
        assert data["block_number"] == 100

    def test_to_dict_simple_has_no_path(self):
        data = make_opportunity().to_dict()
        assert data["token_path"] is None
        assert data["amounts"] is None
        assert data["gas_price"] is None


class TestRunMetrics:
    def test_to_dict(self):
        metrics = RunMetrics(
            opportunities_found=3,
            runtime_ms=1500,
            block_number=100,
            error_count=1,
            total_opportunities=10,
            profitable_last_24h=7,
            last_run_at=0.0,
            by_type={"SIMPLE": 3},
        )

        data = metrics.to_dict()
        assert data["last_run_at"] == "1970-01-01T00:00:00+00:00"
        assert data["by_type"] == {"SIMPLE": 3}
        assert data["profitable_last_24h"] == 7
