# portfolio_engine/services/stores/memory.py
"""
In-memory reference stores.

InMemoryStore implements QuoteStore, CurrencyStore and AssetStore on plain
dicts. Assets and currencies share one id space, as in the SQL schema.
It is used for tests and for small, fully in-memory accounting runs.

StaticCurrencyConverter is a date-independent CurrencyConverter for
callers that already know their FX rates.
"""

from __future__ import annotations

import threading
from bisect import bisect_right, insort
from datetime import datetime
from decimal import Decimal

from portfolio_engine.ledger.currency import Currency
from portfolio_engine.services.constants import ONE
from portfolio_engine.services.exceptions import (
    CurrencyNotFoundError,
    FXConversionError,
    QuoteNotFoundError,
)
from portfolio_engine.services.market.types import QuoteRecord
from portfolio_engine.utils.date_utils import ensure_utc
from portfolio_engine.utils.fx_conversion import invert_fx_rate


class InMemoryStore:
    """Quotes, currencies and asset names held in memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self._next_id = 1
        self._asset_names: dict[int, str] = {}
        self._currencies: dict[str, Currency] = {}
        self._quotes: dict[int, list[tuple[datetime, QuoteRecord]]] = {}

    # =========================================================================
    # ASSETS
    # =========================================================================

    def add_asset(self, name: str) -> int:
        """Register an asset and return its id."""
        with self._lock:
            return self._new_asset(name)

    def _new_asset(self, name: str) -> int:
        asset_id = self._next_id
        self._next_id += 1
        self._asset_names[asset_id] = name
        return asset_id

    def asset_name(self, asset_id: int) -> str | None:
        return self._asset_names.get(asset_id)

    # =========================================================================
    # CURRENCIES
    # =========================================================================

    def all_currencies(self) -> list[Currency]:
        return list(self._currencies.values())

    def currency_by_id(self, currency_id: int) -> Currency:
        for currency in self._currencies.values():
            if currency.id == currency_id:
                return currency
        raise CurrencyNotFoundError(currency_id)

    def get_or_create_currency(self, iso_code: str) -> Currency:
        currency = Currency.from_code(iso_code)
        with self._lock:
            stored = self._currencies.get(currency.iso_code)
            if stored is None:
                stored = currency.assign_id(self._new_asset(currency.iso_code))
                self._currencies[stored.iso_code] = stored
            return stored

    # =========================================================================
    # QUOTES
    # =========================================================================

    def insert_quote(
            self,
            asset_id: int,
            price: Decimal | str | int,
            currency: Currency | str,
            time: datetime,
    ) -> QuoteRecord:
        """Store a quote, replacing any quote of the asset at the same time."""
        record = QuoteRecord(
            price=Decimal(price),
            currency=str(currency).upper(),
            time=ensure_utc(time),
        )
        with self._lock:
            series = self._quotes.setdefault(asset_id, [])
            series[:] = [(t, q) for t, q in series if t != record.time]
            insort(series, (record.time, record), key=lambda item: item[0])
        return record

    def insert_fx_quote(
            self,
            fx_rate: Decimal | str,
            foreign: Currency | str,
            domestic: Currency | str,
            time: datetime,
    ) -> None:
        """
        Store an FX rate (1 foreign = fx_rate domestic) and its inverse.

        Both currencies are created if unknown.
        """
        rate = Decimal(fx_rate)
        foreign_ccy = self.get_or_create_currency(str(foreign))
        domestic_ccy = self.get_or_create_currency(str(domestic))
        self.insert_quote(foreign_ccy.id, rate, domestic_ccy, time)
        self.insert_quote(domestic_ccy.id, invert_fx_rate(rate), foreign_ccy, time)

    def last_quote_at_or_before(self, asset_id: int, time: datetime) -> QuoteRecord:
        time = ensure_utc(time)
        series = self._quotes.get(asset_id, [])
        index = bisect_right(series, time, key=lambda item: item[0])
        if index == 0:
            raise QuoteNotFoundError(asset_id, time)
        return series[index - 1][1]

    def quotes_in_range(
            self,
            asset_id: int,
            start: datetime,
            end: datetime,
    ) -> list[QuoteRecord]:
        start, end = ensure_utc(start), ensure_utc(end)
        return [q for t, q in self._quotes.get(asset_id, []) if start <= t <= end]


class StaticCurrencyConverter:
    """
    Date-independent FX rates.

    Usage:
        converter = StaticCurrencyConverter()
        converter.add_rate(usd, eur, Decimal("0.9"))
        converter.fx_rate(eur, usd, t)  # 1 / 0.9
    """

    def __init__(self):
        self._rates: dict[tuple[str, str], Decimal] = {}

    def add_rate(self, base: Currency | str, quote: Currency | str, fx_rate: Decimal | str) -> None:
        """Store 1 base = fx_rate quote, and the inverse direction."""
        rate = Decimal(fx_rate)
        base_code, quote_code = str(base).upper(), str(quote).upper()
        self._rates[(base_code, quote_code)] = rate
        self._rates[(quote_code, base_code)] = invert_fx_rate(rate)

    def fx_rate(self, base: Currency | str, quote: Currency | str, time: datetime) -> Decimal:
        base_code, quote_code = str(base).upper(), str(quote).upper()
        if base_code == quote_code:
            return ONE
        rate = self._rates.get((base_code, quote_code))
        if rate is None:
            raise FXConversionError(base_code, quote_code, "no static rate")
        return rate
