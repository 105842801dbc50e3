# portfolio_engine/services/protocols.py
"""
Protocol interfaces for the engine's collaborators.

Using typing.Protocol enables structural subtyping:
- Store adapters satisfy protocols without inheriting from them
- Test mocks work without explicit inheritance
- The engine depends on these interfaces only, never on a concrete store
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from portfolio_engine.ledger.currency import Currency
    from portfolio_engine.services.market.types import QuoteRecord


class QuoteStore(Protocol):
    """Interface required by Market for price and FX quotes."""

    def last_quote_at_or_before(self, asset_id: int, time: datetime) -> QuoteRecord:
        """
        Latest quote of an asset with quote.time <= time.

        Raises:
            QuoteNotFoundError: No such quote
            StoreUnavailableError: Transient failure (retried by Market)
        """
        ...

    def quotes_in_range(
        self,
        asset_id: int,
        start: datetime,
        end: datetime,
    ) -> list[QuoteRecord]:
        """All quotes with start <= time <= end, ascending by time."""
        ...


class CurrencyStore(Protocol):
    """Interface required by Market for currency metadata."""

    def all_currencies(self) -> list[Currency]:
        ...

    def currency_by_id(self, currency_id: int) -> Currency:
        """
        Raises:
            CurrencyNotFoundError: Unknown id
        """
        ...

    def get_or_create_currency(self, iso_code: str) -> Currency:
        """Return the stored currency for a code, persisting it if new."""
        ...


class AssetStore(Protocol):
    """Interface used to fill in position display names."""

    def asset_name(self, asset_id: int) -> str | None:
        ...


class CurrencyConverter(Protocol):
    """Interface required by the replay engine and CashAmount arithmetic."""

    def fx_rate(self, base: Currency, quote: Currency, time: datetime) -> Decimal:
        """
        Rate such that 1 base = rate quote at `time`.

        Raises:
            FXRateError: No conversion available
        """
        ...


class PriceSource(Protocol):
    """Interface required by quote attachment."""

    def price_at(self, asset_id: int, currency: Currency, time: datetime) -> Decimal:
        ...
