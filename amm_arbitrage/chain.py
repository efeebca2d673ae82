"""
Read-only blockchain access.

ChainReader is the capability the scanner consumes: a contract read
addressed by (contract address, function signature, arguments), plus the
current block number and gas price. Web3ChainReader implements it over a
web3 HTTP provider and is the single place where raw RPC failures are
classified into tagged AccessError instances.
"""

import asyncio
from typing import Any, Callable, Optional, Protocol, Sequence, runtime_checkable

import requests
from web3 import Web3
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    TimeExhausted,
)

from .abi import READ_ABI
from .exceptions import AccessError, AccessFaultKind
from .utils import get_logger

logger = get_logger(__name__)

# JSON-RPC error codes
RPC_LIMIT_EXCEEDED = -32005
RPC_INTERNAL_ERROR = -32603

RATE_LIMIT_MARKERS = ("too many requests", "rate limit", "limit exceeded")


@runtime_checkable
class ChainReader(Protocol):
    """Protocol for read-only chain access."""

    async def call(self, address: str, signature: str, args: Sequence[Any] = ()) -> Any:
        """Call a view function and return its decoded result."""
        ...

    async def get_block_number(self) -> int:
        """Get the latest block number."""
        ...

    async def get_gas_price(self) -> Optional[int]:
        """Get the current gas price in wei, or None if unavailable."""
        ...


def _rpc_error_code(error: BaseException) -> Optional[int]:
    """Extract a JSON-RPC error code from web3 error shapes, if any."""
    response = getattr(error, "rpc_response", None)
    if isinstance(response, dict):
        err = response.get("error")
        if isinstance(err, dict) and isinstance(err.get("code"), int):
            return err["code"]

    # Older web3 raises ValueError({"code": ..., "message": ...})
    if error.args and isinstance(error.args[0], dict):
        code = error.args[0].get("code")
        if isinstance(code, int):
            return code

    return None


def classify_rpc_error(error: BaseException, endpoint: Optional[str] = None) -> AccessError:
    """
    Map a raw provider/web3 failure onto a tagged AccessError.

    Args:
        error: Exception raised by the provider or contract call
        endpoint: Contract address or RPC method for context

    Returns:
        AccessError whose kind decides retry behaviour downstream
    """
    if isinstance(error, AccessError):
        return error

    message = f"RPC call failed ({endpoint}): {error}"
    kind = AccessFaultKind.PERMANENT_FAULT

    if isinstance(error, requests.exceptions.HTTPError):
        status = error.response.status_code if error.response is not None else None
        if status == 429:
            kind = AccessFaultKind.RATE_LIMITED
        elif status is not None and 500 <= status < 600:
            kind = AccessFaultKind.SERVER_FAULT
    elif isinstance(
        error,
        (
            requests.exceptions.Timeout,
            requests.exceptions.ConnectionError,
            asyncio.TimeoutError,
            TimeoutError,
            ConnectionError,
            TimeExhausted,
        ),
    ):
        kind = AccessFaultKind.NETWORK_FAILURE
    elif isinstance(error, (ContractLogicError, BadFunctionCallOutput)):
        kind = AccessFaultKind.PERMANENT_FAULT
    else:
        code = _rpc_error_code(error)
        if code == RPC_LIMIT_EXCEEDED or code == 429:
            kind = AccessFaultKind.RATE_LIMITED
        elif code == RPC_INTERNAL_ERROR or (code is not None and 500 <= code < 600):
            kind = AccessFaultKind.SERVER_FAULT
        elif code is None and any(m in str(error).lower() for m in RATE_LIMIT_MARKERS):
            kind = AccessFaultKind.RATE_LIMITED

    return AccessError(message, kind=kind, endpoint=endpoint, details={"cause": repr(error)})


class Web3ChainReader:
    """
    ChainReader backed by a synchronous web3 HTTP provider.

    Blocking RPC calls run in the default thread pool so the event loop is
    never blocked. One instance is built by the host process and shared by
    reference.

    Args:
        rpc_url: HTTP(S) RPC endpoint
        request_timeout: Per-request timeout in seconds
        web3: Pre-built Web3 instance (overrides rpc_url)
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        request_timeout: float = 10.0,
        web3: Optional[Web3] = None,
    ):
        if web3 is None:
            if not rpc_url or not rpc_url.startswith(("http://", "https://")):
                raise ValueError(f"Invalid RPC URL format: {rpc_url}")
            web3 = Web3(
                Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout})
            )
        self.web3 = web3
        self.rpc_url = rpc_url

    async def _run(self, fn: Callable[[], Any], endpoint: str) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn)
        except Exception as e:
            error = classify_rpc_error(e, endpoint)
            logger.debug(f"RPC {endpoint} failed ({error.kind.value}): {e}")
            raise error from e

    def _call_sync(self, address: str, signature: str, args: Sequence[Any]) -> Any:
        contract = self.web3.eth.contract(
            address=Web3.to_checksum_address(address), abi=READ_ABI
        )
        function = contract.get_function_by_signature(signature)
        call_args = [
            Web3.to_checksum_address(a) if isinstance(a, str) and Web3.is_address(a) else a
            for a in args
        ]
        return function(*call_args).call()

    async def call(self, address: str, signature: str, args: Sequence[Any] = ()) -> Any:
        return await self._run(
            lambda: self._call_sync(address, signature, args), f"{address}.{signature}"
        )

    async def get_block_number(self) -> int:
        return await self._run(lambda: self.web3.eth.block_number, "eth_blockNumber")

    async def get_gas_price(self) -> Optional[int]:
        gas_price = await self._run(lambda: self.web3.eth.gas_price, "eth_gasPrice")
        return int(gas_price) if gas_price else None
