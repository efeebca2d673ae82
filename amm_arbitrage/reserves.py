"""
Reserve access layer for constant-product pairs.

ReserveService resolves pair addresses, reads live reserves and token
metadata through a ChainReader, and owns the process-lifetime caches for
immutable data. Every read passes through the shared RateLimiter and then
the RetryHandler.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from . import abi
from .chain import ChainReader
from .config import RateLimitSettings, RetrySettings, ScannerConfig
from .exceptions import MalformedResponseError, PairNotFoundError
from .rate_limiter import RateLimiter, RetryHandler
from .types import PairInfo, PairReserves, TokenInfo
from .units import PRECISION, is_zero_address
from .utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

PAIR_DISCOVERY_BATCH_SIZE = 10


class ReserveService:
    """
    Cached, rate-limited, retried access to V2 factory, pair and token reads.

    Exactly one instance should exist per process; it is shared by
    reference with every consumer so the caches and the rate limiter are
    shared too.

    Args:
        reader: Chain read capability
        rate_limiter: Limiter shared by all reads of this service
        retry: Backoff parameters for transient faults
        default_gas_price: Gas price (wei) used when the node reports none
        sleep: Awaitable sleep used for retry backoff
    """

    def __init__(
        self,
        reader: ChainReader,
        rate_limiter: Optional[RateLimiter] = None,
        retry: Optional[RetrySettings] = None,
        default_gas_price: int = 20 * 10**9,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if rate_limiter is None:
            limits = RateLimitSettings()
            rate_limiter = RateLimiter(
                limits.max_requests, limits.time_window_sec, limits.min_interval_sec
            )
        self.reader = reader
        self.rate_limiter = rate_limiter
        self.retry = retry or RetrySettings()
        self.default_gas_price = default_gas_price
        self._sleep = sleep

        self._token_cache: Dict[str, TokenInfo] = {}
        self._pair_address_cache: Dict[Tuple[str, str, str], str] = {}

    @classmethod
    def from_config(cls, reader: ChainReader, config: ScannerConfig) -> "ReserveService":
        """Build a service with the limiter and retry settings from config."""
        limits = config.rate_limit
        return cls(
            reader,
            rate_limiter=RateLimiter(
                max_requests=limits.max_requests,
                time_window=limits.time_window_sec,
                min_interval=limits.min_interval_sec,
            ),
            retry=config.retry,
            default_gas_price=config.default_gas_price_wei,
        )

    async def _guarded(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run one read through the rate limiter, then the retry wrapper."""

        async def with_retry() -> T:
            return await RetryHandler.with_exponential_backoff(
                fn,
                max_retries=self.retry.max_retries,
                base_delay=self.retry.base_delay_sec,
                max_delay=self.retry.max_delay_sec,
                sleep=self._sleep,
            )

        return await self.rate_limiter.execute(with_retry)

    async def _call(self, address: str, signature: str, args: Sequence[Any] = ()) -> Any:
        return await self._guarded(lambda: self.reader.call(address, signature, args))

    async def get_pair_address(self, factory: str, token_a: str, token_b: str) -> str:
        """
        Resolve the pair contract for two tokens on a factory.

        Results are cached per (factory, token_a, token_b) in the order
        supplied, so (A, B) and (B, A) are separate entries.

        Raises:
            PairNotFoundError: If the factory returns the zero address
        """
        cache_key = (factory.lower(), token_a.lower(), token_b.lower())
        cached = self._pair_address_cache.get(cache_key)
        if cached is not None:
            return cached

        pair_address = await self._call(factory, abi.GET_PAIR, (token_a, token_b))
        if not isinstance(pair_address, str) or is_zero_address(pair_address):
            raise PairNotFoundError(factory, token_a, token_b)

        self._pair_address_cache[cache_key] = pair_address
        return pair_address

    async def get_reserves(self, pair_address: str) -> PairReserves:
        """Read live reserves and token order of a pair. Never cached."""

        async def read() -> PairReserves:
            reserves = await self.reader.call(pair_address, abi.GET_RESERVES)
            token0 = await self.reader.call(pair_address, abi.TOKEN0)
            token1 = await self.reader.call(pair_address, abi.TOKEN1)

            if not isinstance(reserves, (list, tuple)) or len(reserves) != 3:
                raise MalformedResponseError(
                    f"Unexpected getReserves() result: {reserves!r}", pair_address
                )
            try:
                return PairReserves(
                    reserve0=int(reserves[0]),
                    reserve1=int(reserves[1]),
                    token0=str(token0),
                    token1=str(token1),
                    block_timestamp_last=int(reserves[2]),
                )
            except (TypeError, ValueError) as e:
                raise MalformedResponseError(
                    f"Unexpected getReserves() result: {reserves!r}", pair_address
                ) from e

        return await self._guarded(read)

    async def get_token_info(self, token_address: str) -> TokenInfo:
        """Read symbol and decimals of a token; cached for the process lifetime."""
        cached = self._token_cache.get(token_address)
        if cached is not None:
            return cached

        async def read() -> TokenInfo:
            symbol, decimals = await asyncio.gather(
                self.reader.call(token_address, abi.SYMBOL),
                self.reader.call(token_address, abi.DECIMALS),
            )
            try:
                return TokenInfo(
                    address=token_address, symbol=str(symbol), decimals=int(decimals)
                )
            except (TypeError, ValueError) as e:
                raise MalformedResponseError(
                    f"Unexpected token metadata: {symbol!r}/{decimals!r}", token_address
                ) from e

        token_info = await self._guarded(read)
        self._token_cache[token_address] = token_info
        return token_info

    async def get_pair_info(self, factory: str, token_a: str, token_b: str) -> PairInfo:
        """
        Resolve a pair and read its reserves plus both tokens' metadata.

        Raises:
            PairNotFoundError: If the factory has no such pair
            AccessError: If a read fails permanently or retries are exhausted
        """
        pair_address = await self.get_pair_address(factory, token_a, token_b)

        reserves, token_a_info, token_b_info = await asyncio.gather(
            self.get_reserves(pair_address),
            self.get_token_info(token_a),
            self.get_token_info(token_b),
        )

        return PairInfo(
            pair_address=pair_address,
            token_a=token_a_info,
            token_b=token_b_info,
            reserves=reserves,
        )

    async def pair_exists(self, factory: str, token_a: str, token_b: str) -> bool:
        """Check if a pair exists on a factory; any failure counts as absent."""
        try:
            await self.get_pair_address(factory, token_a, token_b)
        except Exception as e:
            logger.debug(f"Pair {token_a}/{token_b} unavailable on {factory}: {e}")
            return False
        return True

    async def get_all_pairs(self, factory: str, limit: int = 100) -> List[str]:
        """
        Enumerate up to limit pair addresses from a factory.

        Reads are issued in batches of 10; each batch completes before the
        next starts.
        """
        pairs_length = await self._call(factory, abi.ALL_PAIRS_LENGTH)
        actual_limit = min(limit, int(pairs_length))

        pairs: List[str] = []
        for start in range(0, actual_limit, PAIR_DISCOVERY_BATCH_SIZE):
            end = min(start + PAIR_DISCOVERY_BATCH_SIZE, actual_limit)
            batch = await asyncio.gather(
                *[self._call(factory, abi.ALL_PAIRS, (i,)) for i in range(start, end)]
            )
            pairs.extend(batch)

        return pairs

    @staticmethod
    def calculate_price(reserves: PairReserves, token_a: str) -> int:
        """
        Price of token_a in units of the other pair token, scaled by 1e18.

        Returns 0 when either reserve is empty.
        """
        if reserves.reserve0 == 0 or reserves.reserve1 == 0:
            return 0

        if token_a.lower() == reserves.token0.lower():
            return reserves.reserve1 * PRECISION // reserves.reserve0
        return reserves.reserve0 * PRECISION // reserves.reserve1

    async def get_current_block_number(self) -> int:
        return int(await self._guarded(self.reader.get_block_number))

    async def get_current_gas_price(self) -> int:
        """Current gas price in wei, or the configured default if none reported."""
        gas_price = await self._guarded(self.reader.get_gas_price)
        if not gas_price:
            logger.debug(
                f"Node reported no gas price, using default {self.default_gas_price}"
            )
            return self.default_gas_price
        return int(gas_price)

    def get_stats(self) -> Dict[str, int]:
        """Rate limiter and cache statistics."""
        return {
            "queue_length": self.rate_limiter.get_queue_length(),
            "current_request_count": self.rate_limiter.get_current_request_count(),
            "token_cache_size": len(self._token_cache),
            "pair_cache_size": len(self._pair_address_cache),
        }

    def clear_caches(self) -> None:
        """Drop cached token metadata and pair addresses."""
        self._token_cache.clear()
        self._pair_address_cache.clear()
        logger.info("Reserve service caches cleared")
