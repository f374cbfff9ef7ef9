"""Single-pair ladder-buy / take-profit bot for Hyperliquid spot."""

__version__ = "0.1.0"
