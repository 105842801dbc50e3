# portfolio_engine/ledger/cash_flow.py
"""Dated cash flows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from portfolio_engine.ledger.currency import CashAmount, Currency


@dataclass(frozen=True)
class CashFlow:
    """
    A currency amount paid or received on a date.

    Positive amounts are received, negative amounts are paid.
    """
    amount: CashAmount
    date: date

    @classmethod
    def of(cls, amount: Decimal | int | str, currency: Currency, on: date) -> CashFlow:
        return cls(CashAmount(Decimal(amount), currency), on)

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    def aggregatable(self, other: CashFlow) -> bool:
        """Cash flows can be summed iff they share currency and date."""
        return self.amount.currency == other.amount.currency and self.date == other.date

    def fuzzy_eq(self, other: CashFlow, tol: Decimal) -> bool:
        """
        Compare two cash flows up to an absolute tolerance.

        NaN amounts never compare equal.
        """
        if not self.aggregatable(other):
            return False
        return self.amount.is_close(other.amount, tol)

    def __neg__(self) -> CashFlow:
        return CashFlow(-self.amount, self.date)
