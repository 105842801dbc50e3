# portfolio_engine/services/stores/__init__.py
"""
Reference implementations of the store protocols.

Usage:
    from portfolio_engine.services.stores import InMemoryStore
    from portfolio_engine.services.stores.sql import SqlQuoteStore, SqlCurrencyStore
"""

from portfolio_engine.services.stores.memory import InMemoryStore, StaticCurrencyConverter

__all__ = [
    "InMemoryStore",
    "StaticCurrencyConverter",
]
