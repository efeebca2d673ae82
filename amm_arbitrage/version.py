"""Version information for the AMM arbitrage scanner."""

__version__ = "0.1.0"
