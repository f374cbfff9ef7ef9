"""
Market data package: push price feed and the ranked price resolver.
"""

from ladderbot.market_data.price_feed import HyperliquidPriceFeed, PriceFeed, PriceTick
from ladderbot.market_data.price_resolver import PriceInfo, PriceResolver, PriceSource

__all__ = [
    "HyperliquidPriceFeed",
    "PriceFeed",
    "PriceInfo",
    "PriceResolver",
    "PriceSource",
    "PriceTick",
]
