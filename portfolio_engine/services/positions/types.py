# portfolio_engine/services/positions/types.py
"""
Internal data types for position accounting.

Design Principles:
- Use Decimal for ALL financial values (never float)
- Signed amounts: cash paid is negative, cash received is positive
- Positions are mutable accumulators owned by a single accounting run;
  totals are immutable value objects

Type Hierarchy:
    Position            - Holdings and P&L accumulators for one asset (or cash)
    PortfolioPosition   - Cash position plus asset positions in a base currency
    PositionTotals      - Aggregated value and P&L figures of a portfolio
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterator

from portfolio_engine.ledger.currency import Currency
from portfolio_engine.services.constants import ZERO


# =============================================================================
# POSITIONS
# =============================================================================

@dataclass
class Position:
    """
    Holdings and P&L accumulators for one asset, or for cash.

    Attributes:
        asset_id: Asset id (None for the cash position)
        currency: Currency all amounts are expressed in
        name: Display name
        quantity: Signed units held (cash: amount of cash)
        purchase_value: Signed cash cost of the CURRENTLY held quantity
                        (negative for a long position bought with cash)
        trading_pnl: Realized P&L from reducing the position
        interest / dividend: Income received
        fees / tax: Charges attributed to this position (negative when paid)
        last_quote: Price of one unit at last_quote_time (None if unknown)
        last_quote_time: Time of the mark (None if a fallback was used)

    Invariant:
        For non-zero quantity, -purchase_value / quantity is the average
        cost of one held unit.
    """

    asset_id: int | None
    currency: Currency
    name: str = ""
    quantity: Decimal = ZERO
    purchase_value: Decimal = ZERO
    trading_pnl: Decimal = ZERO
    interest: Decimal = ZERO
    dividend: Decimal = ZERO
    fees: Decimal = ZERO
    tax: Decimal = ZERO
    last_quote: Decimal | None = None
    last_quote_time: datetime | None = None

    @property
    def is_cash(self) -> bool:
        return self.asset_id is None

    @property
    def is_flat(self) -> bool:
        return self.quantity == ZERO

    @property
    def average_cost(self) -> Decimal | None:
        """Average cost of one held unit, None when flat."""
        if self.quantity == ZERO:
            return None
        return -self.purchase_value / self.quantity

    @property
    def market_value(self) -> Decimal:
        """quantity × last_quote, or the cost basis when unmarked."""
        if self.last_quote is None:
            return -self.purchase_value
        return self.quantity * self.last_quote

    @property
    def unrealized_pnl(self) -> Decimal:
        return self.market_value + self.purchase_value

    def reset_pnl(self) -> None:
        self.trading_pnl = ZERO
        self.interest = ZERO
        self.dividend = ZERO
        self.fees = ZERO
        self.tax = ZERO


@dataclass
class PortfolioPosition:
    """
    Cash and asset positions of a portfolio in one base currency.

    Asset positions are created lazily by the replay engine and removed
    only by the period reset.
    """

    base_currency: Currency
    cash: Position = field(init=False)
    assets: dict[int, Position] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.cash = Position(asset_id=None, currency=self.base_currency, name="Cash")

    def get_or_create(self, asset_id: int) -> Position:
        position = self.assets.get(asset_id)
        if position is None:
            position = Position(asset_id=asset_id, currency=self.base_currency)
            self.assets[asset_id] = position
        return position

    def iter_assets(self) -> Iterator[Position]:
        """Asset positions in ascending asset id."""
        for asset_id in sorted(self.assets):
            yield self.assets[asset_id]

    def iter_positions(self) -> Iterator[Position]:
        """Cash first, then assets in ascending asset id."""
        yield self.cash
        yield from self.iter_assets()

    def apply_names(self, names: dict[int, str]) -> None:
        for asset_id, position in self.assets.items():
            name = names.get(asset_id)
            if name:
                position.name = name

    def __len__(self) -> int:
        return len(self.assets)


# =============================================================================
# TOTALS
# =============================================================================

@dataclass(frozen=True)
class PositionTotals:
    """
    Aggregated figures of a portfolio after quote attachment.

    Attributes:
        value: Cash plus marked value of all assets
        trading_pnl: Realized P&L from trades
        unrealized_pnl: Marked value minus cost basis of open positions
        dividend / interest: Income
        tax / fees: Charges (negative when paid)
    """

    value: Decimal = ZERO
    trading_pnl: Decimal = ZERO
    unrealized_pnl: Decimal = ZERO
    dividend: Decimal = ZERO
    interest: Decimal = ZERO
    tax: Decimal = ZERO
    fees: Decimal = ZERO

    @property
    def total_pnl(self) -> Decimal:
        return (
            self.trading_pnl
            + self.unrealized_pnl
            + self.dividend
            + self.interest
            + self.tax
            + self.fees
        )

    def __add__(self, other: PositionTotals) -> PositionTotals:
        """
        Combine the P&L of two consecutive periods.

        `value` is a stock, not a flow: the later period's value is kept.
        """
        if not isinstance(other, PositionTotals):
            return NotImplemented
        return PositionTotals(
            value=other.value,
            trading_pnl=self.trading_pnl + other.trading_pnl,
            unrealized_pnl=self.unrealized_pnl + other.unrealized_pnl,
            dividend=self.dividend + other.dividend,
            interest=self.interest + other.interest,
            tax=self.tax + other.tax,
            fees=self.fees + other.fees,
        )
