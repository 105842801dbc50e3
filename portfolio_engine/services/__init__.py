# portfolio_engine/services/__init__.py
"""
Service layer of the position accounting engine.

Services raise the domain exceptions defined in exceptions.py and depend
on the store interfaces in protocols.py only.

Architecture:
    services/
    ├── __init__.py        # This file - exception exports
    ├── exceptions.py      # Domain exceptions
    ├── constants.py       # Business constants
    ├── protocols.py       # Store and converter interfaces (Protocol classes)
    ├── market/            # Valuation cache (Market)
    ├── positions/         # Replay engine, marks, totals, period reset
    └── stores/            # In-memory and SQLAlchemy store implementations

Usage:
    from portfolio_engine.services.market import Market
    from portfolio_engine.services.positions import PositionService
    from portfolio_engine.services import QuoteNotFoundError, FXRateError
"""

from portfolio_engine.services.exceptions import (
    ServiceError,
    ValidationError,
    InvalidCurrencyError,
    InvalidTransactionError,
    NotFoundError,
    QuoteNotFoundError,
    CurrencyNotFoundError,
    FXRateError,
    FXRateNotFoundError,
    FXConversionError,
    CacheFailureError,
    CacheLockError,
    StoreError,
    StoreUnavailableError,
)

__all__ = [
    "ServiceError",
    "ValidationError",
    "InvalidCurrencyError",
    "InvalidTransactionError",
    "NotFoundError",
    "QuoteNotFoundError",
    "CurrencyNotFoundError",
    "FXRateError",
    "FXRateNotFoundError",
    "FXConversionError",
    "CacheFailureError",
    "CacheLockError",
    "StoreError",
    "StoreUnavailableError",
]
