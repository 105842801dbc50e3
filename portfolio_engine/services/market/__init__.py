# portfolio_engine/services/market/__init__.py
"""
Valuation cache.

Usage:
    from portfolio_engine.services.market import Market, CachePolicy

    market = Market(quote_store, currency_store, cache_policy=CachePolicy.RANGE_PRIMED)
"""

from portfolio_engine.services.market.service import Market
from portfolio_engine.services.market.types import (
    CachePolicy,
    CacheStats,
    PriceSeries,
    QuoteRecord,
)

__all__ = [
    "Market",
    "CachePolicy",
    "CacheStats",
    "PriceSeries",
    "QuoteRecord",
]
