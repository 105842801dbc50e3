# portfolio_engine/models.py
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Numeric, UniqueConstraint, Index, Integer
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class Asset(Base):
    """
    Anything that can be quoted: securities and currencies alike.

    A currency is an asset too; its FX rates are stored as quotes of the
    asset with the currency's id.
    """
    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    quotes: Mapped[list["Quote"]] = relationship(back_populates="asset", cascade="all, delete-orphan")


class CurrencyRecord(Base):
    """
    Currency metadata.

    The primary key is shared with the `assets` row of the currency.
    """
    __tablename__ = "currencies"

    id: Mapped[int] = mapped_column(ForeignKey("assets.id"), primary_key=True)
    iso_code: Mapped[str] = mapped_column(String(3), unique=True, index=True)  # e.g. "EUR"
    rounding_digits: Mapped[int] = mapped_column(Integer, default=2)


class Quote(Base):
    """
    Point-in-time price of one unit of an asset in `currency`.

    For a currency asset, price is the FX rate:
    asset=USD, currency="EUR", price=0.92 means 1 USD = 0.92 EUR
    """
    __tablename__ = "quotes"
    __table_args__ = (
        UniqueConstraint('asset_id', 'time', 'currency', name='uq_quote_asset_time_currency'),
        # "Last quote of asset X at or before t" and range scans
        Index('ix_quote_asset_time', 'asset_id', 'time'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey("assets.id"), index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    currency: Mapped[str] = mapped_column(String(3))
    time: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    asset: Mapped["Asset"] = relationship(back_populates="quotes")
