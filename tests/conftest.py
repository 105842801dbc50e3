# tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- In-memory store, currencies and a priced sample asset
- Market and PositionService wired to the in-memory store
"""

import os

# Settings are read at import time; retries must not sleep in tests
os.environ.setdefault("PORTFOLIO_ENGINE_ENVIRONMENT", "test")

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portfolio_engine.ledger import (
    AssetTrade,
    Cash,
    CashFlow,
    Currency,
    Transaction,
)
from portfolio_engine.models import Base
from portfolio_engine.services.market import CachePolicy, Market
from portfolio_engine.services.positions import PositionService
from portfolio_engine.services.stores import InMemoryStore, StaticCurrencyConverter


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db(db_engine) -> Iterator[Session]:
    """Create a database session for testing."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# CURRENCY FIXTURES
# =============================================================================

@pytest.fixture
def eur() -> Currency:
    return Currency.from_code("EUR")


@pytest.fixture
def usd() -> Currency:
    return Currency.from_code("USD")


@pytest.fixture
def static_fx(usd, eur) -> StaticCurrencyConverter:
    """Date-independent converter with 1 USD = 0.9 EUR."""
    converter = StaticCurrencyConverter()
    converter.add_rate(usd, eur, Decimal("0.9"))
    return converter


# =============================================================================
# STORE & MARKET FIXTURES
# =============================================================================

def at(d: date, hour: int = 16) -> datetime:
    """Aware UTC datetime on a date."""
    return datetime(d.year, d.month, d.day, hour, tzinfo=timezone.utc)


def daily_prices(start: date, days: int, first: Decimal, step: Decimal) -> list[tuple[datetime, Decimal]]:
    """Linear daily price path, one quote per day at 16:00 UTC."""
    return [
        (at(start + timedelta(days=i)), first + step * i)
        for i in range(days)
    ]


@pytest.fixture
def store() -> InMemoryStore:
    """Empty in-memory store with EUR and USD registered."""
    store = InMemoryStore()
    store.get_or_create_currency("EUR")
    store.get_or_create_currency("USD")
    return store


@pytest.fixture
def acme_id(store) -> int:
    """EUR-quoted asset priced daily through 2024: 100.0, 100.1, 100.2, ..."""
    asset_id = store.add_asset("ACME Corp")
    for time, price in daily_prices(date(2024, 1, 1), 366, Decimal("100"), Decimal("0.1")):
        store.insert_quote(asset_id, price, "EUR", time)
    return asset_id


@pytest.fixture
def market(store) -> Market:
    return Market(
        store,
        store,
        cache_policy=CachePolicy.RANGE_PRIMED,
        prime_span=timedelta(days=30),
        lock_timeout=2.0,
    )


@pytest.fixture
def uncached_market(store) -> Market:
    return Market(store, store, cache_policy=CachePolicy.UNCACHED)


@pytest.fixture
def position_service(market, store) -> PositionService:
    return PositionService(market, asset_store=store)


# =============================================================================
# TRANSACTION FACTORIES
# =============================================================================

def trade(
        asset_id: int,
        delta: str | int,
        amount: str | int,
        currency: Currency,
        on: date,
        id: int | None = None,
) -> Transaction:
    return Transaction(
        AssetTrade(asset_id=asset_id, position_delta=Decimal(delta)),
        CashFlow.of(amount, currency, on),
        id=id,
    )


def cash(amount: str | int, currency: Currency, on: date, id: int | None = None) -> Transaction:
    return Transaction(Cash(), CashFlow.of(amount, currency, on), id=id)
