# portfolio_engine/services/stores/sql.py
"""
SQLAlchemy-backed stores.

Read-side adapters over the `assets`, `currencies` and `quotes` tables of
portfolio_engine.models. The session is owned by the caller.

Database errors are mapped to StoreUnavailableError so that the Market
retries them.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from portfolio_engine.ledger.currency import Currency, default_rounding_digits, validate_iso_code
from portfolio_engine.models import Asset, CurrencyRecord, Quote
from portfolio_engine.services.exceptions import (
    CurrencyNotFoundError,
    QuoteNotFoundError,
    StoreUnavailableError,
)
from portfolio_engine.services.market.types import QuoteRecord
from portfolio_engine.utils.date_utils import ensure_utc

logger = logging.getLogger(__name__)


def _to_record(quote: Quote) -> QuoteRecord:
    # SQLite drops tzinfo on the way back
    return QuoteRecord(price=quote.price, currency=quote.currency, time=ensure_utc(quote.time))


def _to_currency(record: CurrencyRecord) -> Currency:
    return Currency(
        iso_code=record.iso_code,
        id=record.id,
        rounding_digits=record.rounding_digits,
    )


class SqlQuoteStore:
    """QuoteStore and AssetStore over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self._db = db

    def last_quote_at_or_before(self, asset_id: int, time: datetime) -> QuoteRecord:
        time = ensure_utc(time)
        query = (
            select(Quote)
            .where(Quote.asset_id == asset_id, Quote.time <= time)
            .order_by(Quote.time.desc())
            .limit(1)
        )
        try:
            quote = self._db.scalars(query).first()
        except OperationalError as e:
            raise StoreUnavailableError("quotes", str(e)) from e

        if quote is None:
            raise QuoteNotFoundError(asset_id, time)
        return _to_record(quote)

    def quotes_in_range(
            self,
            asset_id: int,
            start: datetime,
            end: datetime,
    ) -> list[QuoteRecord]:
        query = (
            select(Quote)
            .where(
                Quote.asset_id == asset_id,
                Quote.time >= ensure_utc(start),
                Quote.time <= ensure_utc(end),
            )
            .order_by(Quote.time)
        )
        try:
            quotes = self._db.scalars(query).all()
        except OperationalError as e:
            raise StoreUnavailableError("quotes", str(e)) from e

        return [_to_record(q) for q in quotes]

    def asset_name(self, asset_id: int) -> str | None:
        asset = self._db.get(Asset, asset_id)
        return asset.name if asset is not None else None


class SqlCurrencyStore:
    """CurrencyStore over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self._db = db

    def all_currencies(self) -> list[Currency]:
        try:
            records = self._db.scalars(select(CurrencyRecord).order_by(CurrencyRecord.id)).all()
        except OperationalError as e:
            raise StoreUnavailableError("currencies", str(e)) from e
        return [_to_currency(r) for r in records]

    def currency_by_id(self, currency_id: int) -> Currency:
        record = self._db.get(CurrencyRecord, currency_id)
        if record is None:
            raise CurrencyNotFoundError(currency_id)
        return _to_currency(record)

    def get_or_create_currency(self, iso_code: str) -> Currency:
        """
        Return the stored currency for a code, inserting it if missing.

        New currencies get an `assets` row and default rounding digits.
        The insert is flushed, committing is left to the caller.
        """
        code = validate_iso_code(iso_code)
        record = self._db.scalars(
            select(CurrencyRecord).where(CurrencyRecord.iso_code == code)
        ).first()
        if record is not None:
            return _to_currency(record)

        asset = Asset(name=code)
        self._db.add(asset)
        self._db.flush()

        record = CurrencyRecord(
            id=asset.id,
            iso_code=code,
            rounding_digits=default_rounding_digits(code),
        )
        self._db.add(record)
        self._db.flush()
        logger.info(f"Created currency {code} with id {asset.id}")
        return _to_currency(record)
