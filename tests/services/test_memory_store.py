# tests/services/test_memory_store.py
"""Tests for the in-memory reference stores."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from portfolio_engine.services.exceptions import (
    CurrencyNotFoundError,
    FXConversionError,
    InvalidCurrencyError,
    QuoteNotFoundError,
)
from portfolio_engine.services.stores import InMemoryStore, StaticCurrencyConverter

T1 = datetime(2024, 1, 1, 16, tzinfo=timezone.utc)
T2 = datetime(2024, 1, 2, 16, tzinfo=timezone.utc)
T3 = datetime(2024, 1, 3, 16, tzinfo=timezone.utc)


class TestInMemoryQuotes:
    """Tests for quote storage and lookup."""

    def test_out_of_order_inserts_are_sorted(self):
        store = InMemoryStore()
        asset_id = store.add_asset("ACME")
        store.insert_quote(asset_id, "3", "EUR", T3)
        store.insert_quote(asset_id, "1", "EUR", T1)
        store.insert_quote(asset_id, "2", "EUR", T2)

        assert [q.price for q in store.quotes_in_range(asset_id, T1, T3)] == [1, 2, 3]
        assert store.last_quote_at_or_before(asset_id, T2).price == Decimal("2")

    def test_same_time_replaces(self):
        store = InMemoryStore()
        asset_id = store.add_asset("ACME")
        store.insert_quote(asset_id, "1", "EUR", T1)
        store.insert_quote(asset_id, "1.5", "EUR", T1)

        assert len(store.quotes_in_range(asset_id, T1, T1)) == 1
        assert store.last_quote_at_or_before(asset_id, T1).price == Decimal("1.5")

    def test_unknown_asset(self):
        with pytest.raises(QuoteNotFoundError):
            InMemoryStore().last_quote_at_or_before(42, T1)

    def test_insert_fx_quote_stores_inverse(self):
        store = InMemoryStore()

        store.insert_fx_quote("0.8", "GBP", "EUR", T1)

        gbp = store.get_or_create_currency("GBP")
        eur = store.get_or_create_currency("EUR")
        assert store.last_quote_at_or_before(gbp.id, T2).currency == "EUR"
        assert store.last_quote_at_or_before(eur.id, T2).price == Decimal("1.25")


class TestInMemoryCurrencies:
    """Tests for currency storage."""

    def test_get_or_create_is_idempotent(self):
        store = InMemoryStore()

        first = store.get_or_create_currency("usd")
        second = store.get_or_create_currency("USD")

        assert first.id == second.id
        assert store.currency_by_id(first.id) == first
        assert store.all_currencies() == [first]

    def test_currency_ids_share_asset_id_space(self):
        store = InMemoryStore()
        asset_id = store.add_asset("ACME")

        usd = store.get_or_create_currency("USD")

        assert usd.id != asset_id
        assert store.asset_name(usd.id) == "USD"

    def test_invalid_code(self):
        with pytest.raises(InvalidCurrencyError):
            InMemoryStore().get_or_create_currency("US")

    def test_unknown_id(self):
        with pytest.raises(CurrencyNotFoundError):
            InMemoryStore().currency_by_id(1)


class TestStaticCurrencyConverter:
    """Tests for StaticCurrencyConverter."""

    def test_rates(self):
        converter = StaticCurrencyConverter()
        converter.add_rate("USD", "EUR", "0.8")

        assert converter.fx_rate("USD", "EUR", T1) == Decimal("0.8")
        assert converter.fx_rate("EUR", "USD", T1) == Decimal("1.25")
        assert converter.fx_rate("CHF", "chf", T1) == Decimal("1")

    def test_missing_rate(self):
        with pytest.raises(FXConversionError):
            StaticCurrencyConverter().fx_rate("USD", "EUR", T1)
