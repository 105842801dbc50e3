# portfolio_engine/__init__.py
"""
Position accounting engine.

Turns a log of trades, cash movements, dividends, interest, taxes and
fees into point-in-time portfolio positions with realized and unrealized
P&L, valued in a base currency through a cached Market.

Usage:
    from portfolio_engine import Market, PositionService
    from portfolio_engine.services.stores import InMemoryStore

    store = InMemoryStore()
    market = Market(store, store)
    service = PositionService(market, asset_store=store)
    portfolio = service.calculate_position(transactions, "EUR", end=date(2024, 12, 31))
"""

from portfolio_engine.services.market import CachePolicy, Market
from portfolio_engine.services.positions import PositionService, PositionTotals

__version__ = "0.1.0"

__all__ = [
    "Market",
    "CachePolicy",
    "PositionService",
    "PositionTotals",
]
