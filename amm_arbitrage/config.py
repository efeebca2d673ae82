"""
Configuration loading and validation for the AMM arbitrage scanner.
"""

import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from web3 import Web3

from .exceptions import ConfigError
from .units import ETHER_DECIMALS, parse_units

DEFAULT_SIMPLE_TRADE_SIZES = ["0.1", "0.5", "1", "5", "10"]
DEFAULT_TRIANGULAR_TRADE_SIZES = ["0.1", "1", "10"]

# Mainnet defaults
DEFAULT_EXCHANGES = [
    {"name": "Uniswap V2", "factory": "0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f"},
    {"name": "SushiSwap", "factory": "0xC0AEe478e3658e2610c5F7A4A2E1777cE9e4f2Ac"},
]
DEFAULT_TOKENS = {
    "WETH": "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
    "USDC": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
    "USDT": "0xdAC17F958D2ee523a2206206994597C13D831ec7",
    "DAI": "0x6B175474E89094C44Da98b954EedeAC495271d0F",
}


@dataclass(frozen=True)
class ExchangeConfig:
    name: str
    factory: str


@dataclass(frozen=True)
class RateLimitSettings:
    max_requests: int = 10
    time_window_sec: float = 60.0
    min_interval_sec: float = 0.2


@dataclass(frozen=True)
class RetrySettings:
    max_retries: int = 3
    base_delay_sec: float = 1.0
    max_delay_sec: float = 10.0


class ScannerConfig:
    """
    Parsed and validated scanner configuration.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint
        request_timeout_sec: Per-request RPC timeout
        poll_sec: Seconds between scan cycles
        once: If True, run a single cycle and exit
        tokens: Token universe as {symbol -> address}
        exchanges: Constant-product exchanges (name + factory address)
        triangular_exchange: Exchange used for all triangular legs
        min_profit_wei: Minimum margin-adjusted profit to keep a candidate
        gas_price_gwei: Fallback gas price when the node reports none
        gas_limit: Gas units assumed per two-hop trade
        safety_margin: Fractional profit haircut, e.g. 0.02 for 2%
        simple_trade_sizes: Candidate sizes (smallest units) for simple scans
        triangular_trade_sizes: Candidate sizes (smallest units) for triangular scans
        batch_size: Token pairs looked up concurrently per batch
        rate_limit: Rate limiter parameters
        retry: Retry/backoff parameters
        log_level: Root log level name
        metrics_port: Port for the Prometheus endpoint, or None
    """

    def __init__(self, config_dict: Dict[str, Any]):
        """
        Parse and validate config from dictionary.

        Args:
            config_dict: Loaded YAML config

        Raises:
            ConfigError: If required fields missing or invalid
        """
        self.rpc_url: str = self._get_required(config_dict, "rpc_url", str)
        self.request_timeout_sec: float = float(config_dict.get("request_timeout_sec", 10))
        self.poll_sec: float = float(config_dict.get("poll_sec", 10))
        self.once: bool = bool(config_dict.get("once", False))

        self.tokens: Dict[str, str] = self._parse_tokens(
            config_dict.get("tokens", DEFAULT_TOKENS)
        )
        self.exchanges: List[ExchangeConfig] = self._parse_exchanges(
            config_dict.get("exchanges", DEFAULT_EXCHANGES)
        )

        self.triangular_exchange: str = config_dict.get(
            "triangular_exchange", self.exchanges[0].name
        )
        if self.triangular_exchange not in {e.name for e in self.exchanges}:
            raise ConfigError(
                f"triangular_exchange '{self.triangular_exchange}' is not a configured exchange"
            )

        # Trading parameters
        self.min_profit_wei: int = int(config_dict.get("min_profit_wei", 10**15))
        self.gas_price_gwei: float = float(config_dict.get("gas_price_gwei", 20))
        self.gas_limit: int = int(config_dict.get("gas_limit", 200_000))
        self.safety_margin: float = float(config_dict.get("safety_margin", 0.02))
        if not 0 <= self.safety_margin < 1:
            raise ConfigError(f"safety_margin must be in [0, 1): {self.safety_margin}")
        if self.min_profit_wei < 0:
            raise ConfigError(f"min_profit_wei must be non-negative: {self.min_profit_wei}")

        self.simple_trade_sizes: List[int] = self._parse_sizes(
            config_dict.get("simple_trade_sizes", DEFAULT_SIMPLE_TRADE_SIZES),
            "simple_trade_sizes",
        )
        self.triangular_trade_sizes: List[int] = self._parse_sizes(
            config_dict.get("triangular_trade_sizes", DEFAULT_TRIANGULAR_TRADE_SIZES),
            "triangular_trade_sizes",
        )

        self.batch_size: int = int(config_dict.get("batch_size", 5))
        if self.batch_size <= 0:
            raise ConfigError(f"batch_size must be positive: {self.batch_size}")

        self.rate_limit = self._parse_rate_limit(config_dict.get("rate_limit", {}))
        self.retry = self._parse_retry(config_dict.get("retry", {}))

        self.log_level: str = str(config_dict.get("log_level", "INFO")).upper()
        metrics_port = config_dict.get("metrics_port")
        self.metrics_port: Optional[int] = None if metrics_port is None else int(metrics_port)

    @staticmethod
    def _get_required(d: Dict, key: str, expected_type: type) -> Any:
        """Get required config field with type validation."""
        if key not in d or d[key] in (None, ""):
            raise ConfigError(f"Missing required config field: {key}")
        val = d[key]
        if not isinstance(val, expected_type):
            raise ConfigError(
                f"Config field '{key}' must be {expected_type.__name__}, got {type(val).__name__}"
            )
        return val

    @staticmethod
    def _parse_tokens(tokens_raw: Any) -> Dict[str, str]:
        if not isinstance(tokens_raw, dict):
            raise ConfigError("tokens must be a mapping of symbol -> address")

        tokens = {}
        for symbol, address in tokens_raw.items():
            if not isinstance(address, str) or not Web3.is_address(address):
                raise ConfigError(f"Token '{symbol}' has invalid address: {address!r}")
            tokens[str(symbol)] = address

        if len(tokens) < 2:
            raise ConfigError("At least 2 tokens are required")
        return tokens

    @staticmethod
    def _parse_exchanges(exchanges_raw: Any) -> List[ExchangeConfig]:
        if not isinstance(exchanges_raw, list):
            raise ConfigError("exchanges must be a list")

        exchanges = []
        for i, exchange in enumerate(exchanges_raw):
            if not isinstance(exchange, dict):
                raise ConfigError(f"Exchange config {i} must be a dict")

            name = exchange.get("name")
            factory = exchange.get("factory")
            if not name:
                raise ConfigError(f"Exchange config {i} missing 'name'")
            if not factory:
                raise ConfigError(f"Exchange '{name}' missing 'factory'")
            if not isinstance(factory, str) or not Web3.is_address(factory):
                raise ConfigError(f"Exchange '{name}' has invalid factory address: {factory!r}")

            exchanges.append(ExchangeConfig(name=name, factory=factory))

        if len(exchanges) < 2:
            raise ConfigError("At least 2 exchanges are required for simple arbitrage")
        if len({e.name for e in exchanges}) != len(exchanges):
            raise ConfigError("Exchange names must be unique")
        return exchanges

    @staticmethod
    def _parse_sizes(sizes_raw: Any, key: str) -> List[int]:
        if not isinstance(sizes_raw, list) or not sizes_raw:
            raise ConfigError(f"{key} must be a non-empty list")

        sizes = []
        for size in sizes_raw:
            try:
                amount = parse_units(str(size), ETHER_DECIMALS)
            except ValueError as e:
                raise ConfigError(f"{key} has invalid size {size!r}: {e}") from e
            if amount <= 0:
                raise ConfigError(f"{key} sizes must be positive, got {size!r}")
            sizes.append(amount)
        return sizes

    @staticmethod
    def _parse_rate_limit(raw: Dict[str, Any]) -> RateLimitSettings:
        settings = RateLimitSettings(
            max_requests=int(raw.get("max_requests", RateLimitSettings.max_requests)),
            time_window_sec=float(
                raw.get("time_window_sec", RateLimitSettings.time_window_sec)
            ),
            min_interval_sec=float(
                raw.get("min_interval_sec", RateLimitSettings.min_interval_sec)
            ),
        )
        if settings.max_requests <= 0 or settings.time_window_sec <= 0:
            raise ConfigError("rate_limit.max_requests and time_window_sec must be positive")
        if settings.min_interval_sec < 0:
            raise ConfigError("rate_limit.min_interval_sec must be non-negative")
        return settings

    @staticmethod
    def _parse_retry(raw: Dict[str, Any]) -> RetrySettings:
        settings = RetrySettings(
            max_retries=int(raw.get("max_retries", RetrySettings.max_retries)),
            base_delay_sec=float(raw.get("base_delay_sec", RetrySettings.base_delay_sec)),
            max_delay_sec=float(raw.get("max_delay_sec", RetrySettings.max_delay_sec)),
        )
        if settings.max_retries < 0:
            raise ConfigError("retry.max_retries must be non-negative")
        return settings

    @property
    def default_gas_price_wei(self) -> int:
        """Fallback gas price in wei."""
        return int(Decimal(str(self.gas_price_gwei)) * 10**9)

    def exchange(self, name: str) -> ExchangeConfig:
        for exchange in self.exchanges:
            if exchange.name == name:
                return exchange
        raise ConfigError(f"Unknown exchange: {name}")


def load_config(config_path: str, env_file: Optional[str] = None) -> ScannerConfig:
    """
    Load and validate config from YAML file.

    Variables from a .env file are loaded first; RPC_URL in the environment
    overrides rpc_url from the file.

    Args:
        config_path: Path to config YAML file
        env_file: Optional .env path (default: search from the working directory)

    Returns:
        Validated ScannerConfig instance

    Raises:
        ConfigError: If config invalid or file not found
    """
    load_dotenv(env_file)

    if not os.path.exists(config_path):
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML: {e}") from e

    if not isinstance(config_dict, dict):
        raise ConfigError("Config file must contain a YAML dictionary")

    rpc_url = os.getenv("RPC_URL")
    if rpc_url:
        config_dict["rpc_url"] = rpc_url

    return ScannerConfig(config_dict)
