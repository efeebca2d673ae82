"""
Shared fixtures: an in-memory V2 chain standing in for the RPC node.
"""

from typing import Any, Dict, List, Sequence, Tuple

import pytest

from amm_arbitrage import abi
from amm_arbitrage.config import RetrySettings, ScannerConfig
from amm_arbitrage.rate_limiter import RateLimiter
from amm_arbitrage.reserves import ReserveService
from amm_arbitrage.units import ZERO_ADDRESS

TOKEN_A = "0x" + "a" * 40
TOKEN_B = "0x" + "b" * 40
TOKEN_C = "0x" + "c" * 40
FACTORY_X = "0x" + "1" * 40
FACTORY_Y = "0x" + "2" * 40

E18 = 10**18


class FakeChain:
    """
    ChainReader over in-memory factories, pairs and tokens.

    getPair is symmetric and token0 is the lower address, as on chain.
    Queued failures are raised, in order, by the next matching call.
    """

    def __init__(self, block_number: int = 100, gas_price: int = 10**9):
        self.block_number = block_number
        self.gas_price = gas_price
        self.tokens: Dict[str, Tuple[str, int]] = {}
        self.factories: Dict[str, Dict[frozenset, str]] = {}
        self.factory_pairs: Dict[str, List[str]] = {}
        self.pairs: Dict[str, Tuple[int, int, str, str]] = {}
        self.calls: List[Tuple[str, str, Tuple[Any, ...]]] = []
        self.failures: Dict[Tuple[str, str], List[BaseException]] = {}
        self._next_pair = 0x1000

    def add_token(self, address: str, symbol: str, decimals: int = 18) -> None:
        self.tokens[address.lower()] = (symbol, decimals)

    def add_pair(
        self, factory: str, token_x: str, token_y: str, reserve_x: int, reserve_y: int
    ) -> str:
        pair_address = "0x" + format(self._next_pair, "040x")
        self._next_pair += 1

        if token_x.lower() < token_y.lower():
            self.pairs[pair_address] = (reserve_x, reserve_y, token_x, token_y)
        else:
            self.pairs[pair_address] = (reserve_y, reserve_x, token_y, token_x)

        key = frozenset((token_x.lower(), token_y.lower()))
        self.factories.setdefault(factory.lower(), {})[key] = pair_address
        self.factory_pairs.setdefault(factory.lower(), []).append(pair_address)
        return pair_address

    def fail_next(self, address: str, signature: str, *errors: BaseException) -> None:
        self.failures.setdefault((address.lower(), signature), []).extend(errors)

    def count(self, signature: str) -> int:
        return sum(1 for _, sig, _ in self.calls if sig == signature)

    async def call(self, address: str, signature: str, args: Sequence[Any] = ()) -> Any:
        self.calls.append((address, signature, tuple(args)))

        queued = self.failures.get((address.lower(), signature))
        if queued:
            raise queued.pop(0)

        if signature == abi.GET_PAIR:
            pairs = self.factories.get(address.lower(), {})
            return pairs.get(frozenset(a.lower() for a in args), ZERO_ADDRESS)
        if signature == abi.ALL_PAIRS_LENGTH:
            return len(self.factory_pairs.get(address.lower(), []))
        if signature == abi.ALL_PAIRS:
            return self.factory_pairs[address.lower()][args[0]]
        if signature == abi.GET_RESERVES:
            reserve0, reserve1, _, _ = self.pairs[address]
            return (reserve0, reserve1, 1_700_000_000)
        if signature == abi.TOKEN0:
            return self.pairs[address][2]
        if signature == abi.TOKEN1:
            return self.pairs[address][3]
        if signature == abi.SYMBOL:
            return self.tokens[address.lower()][0]
        if signature == abi.DECIMALS:
            return self.tokens[address.lower()][1]
        raise AssertionError(f"Unexpected call {signature} on {address}")

    async def get_block_number(self) -> int:
        self.calls.append(("node", "eth_blockNumber", ()))
        queued = self.failures.get(("node", "eth_blockNumber"))
        if queued:
            raise queued.pop(0)
        return self.block_number

    async def get_gas_price(self):
        self.calls.append(("node", "eth_gasPrice", ()))
        return self.gas_price


class RecordingSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def chain():
    fake = FakeChain()
    fake.add_token(TOKEN_A, "AAA")
    fake.add_token(TOKEN_B, "BBB")
    fake.add_token(TOKEN_C, "CCC")
    return fake


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def service(chain, recording_sleep):
    """ReserveService with a permissive limiter and instant backoff."""
    return ReserveService(
        chain,
        rate_limiter=RateLimiter(max_requests=10_000, time_window=1.0),
        retry=RetrySettings(max_retries=3, base_delay_sec=1.0, max_delay_sec=10.0),
        sleep=recording_sleep,
    )


def make_config(**overrides) -> ScannerConfig:
    config_dict = {
        "rpc_url": "http://localhost:8545",
        "tokens": {"AAA": TOKEN_A, "BBB": TOKEN_B},
        "exchanges": [
            {"name": "DexX", "factory": FACTORY_X},
            {"name": "DexY", "factory": FACTORY_Y},
        ],
        "min_profit_wei": 10**15,
        "safety_margin": 0.02,
        "gas_limit": 200_000,
        "simple_trade_sizes": ["1"],
        "triangular_trade_sizes": ["1"],
    }
    config_dict.update(overrides)
    return ScannerConfig(config_dict)
