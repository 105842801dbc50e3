# portfolio_engine/ledger/currency.py
"""
Currency and currency-denominated amounts.

A Currency is identified by its three-letter code. Its optional id links
it to the quote store: the FX rate of a currency is stored as the price
quote of the asset with the same id.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import TYPE_CHECKING

from portfolio_engine.services.constants import (
    CURRENCY_CODE_LENGTH,
    DEFAULT_ROUNDING_DIGITS,
    ZERO_DECIMAL_CURRENCIES,
)
from portfolio_engine.services.exceptions import (
    InvalidCurrencyError,
    ValidationError,
)

if TYPE_CHECKING:
    from portfolio_engine.services.protocols import CurrencyConverter


def default_rounding_digits(iso_code: str) -> int:
    """Minor-unit digits for a currency code (0 for JPY, TRL; else 2)."""
    if iso_code.upper() in ZERO_DECIMAL_CURRENCIES:
        return 0
    return DEFAULT_ROUNDING_DIGITS


def validate_iso_code(code: str) -> str:
    """
    Validate and normalize a currency code.

    Args:
        code: Candidate code, any case

    Returns:
        The upper-cased code

    Raises:
        InvalidCurrencyError: Not exactly three ASCII letters
    """
    if len(code) != CURRENCY_CODE_LENGTH:
        raise InvalidCurrencyError(code, "invalid_length")
    if not (code.isascii() and code.isalpha()):
        raise InvalidCurrencyError(code, "invalid_character")
    return code.upper()


@dataclass(frozen=True)
class Currency:
    """
    A currency, compared and hashed by its code only.

    Attributes:
        iso_code: Upper-case three-letter code
        id: Store identifier (None until persisted)
        rounding_digits: Decimals used by round_by_convention
    """
    iso_code: str
    id: int | None = field(default=None, compare=False)
    rounding_digits: int = field(default=DEFAULT_ROUNDING_DIGITS, compare=False)

    @classmethod
    def from_code(
            cls,
            code: str,
            id: int | None = None,
            rounding_digits: int | None = None,
    ) -> Currency:
        iso_code = validate_iso_code(code)
        if rounding_digits is None:
            rounding_digits = default_rounding_digits(iso_code)
        return cls(iso_code=iso_code, id=id, rounding_digits=rounding_digits)

    def assign_id(self, id: int) -> Currency:
        """
        Return a copy carrying the store id.

        Raises:
            ValidationError: The currency already has an id
        """
        if self.id is not None:
            raise ValidationError(
                f"Currency {self.iso_code} already has id {self.id}",
                field="id",
            )
        return replace(self, id=id)

    def __str__(self) -> str:
        return self.iso_code


@dataclass(frozen=True)
class CashAmount:
    """An amount of money in a given currency."""
    amount: Decimal
    currency: Currency

    def __neg__(self) -> CashAmount:
        return CashAmount(-self.amount, self.currency)

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"

    def is_nan(self) -> bool:
        return self.amount.is_nan()

    def round(self, digits: int) -> CashAmount:
        """Round half-up to the given number of decimals."""
        quantum = Decimal(1).scaleb(-digits)
        return CashAmount(
            self.amount.quantize(quantum, rounding=ROUND_HALF_UP),
            self.currency,
        )

    def round_by_convention(self) -> CashAmount:
        return self.round(self.currency.rounding_digits)

    def add(
            self,
            other: CashAmount,
            time: datetime,
            converter: CurrencyConverter,
            with_rounding: bool = False,
    ) -> CashAmount:
        """
        Add another amount, converting it into this amount's currency.

        Args:
            other: Amount to add (any currency)
            time: Point in time of the FX rate
            converter: Source of FX rates
            with_rounding: Round the result by convention

        Returns:
            New amount in this amount's currency

        Raises:
            FXRateError: No rate from other.currency to self.currency
        """
        if other.currency == self.currency:
            result = CashAmount(self.amount + other.amount, self.currency)
        else:
            rate = converter.fx_rate(other.currency, self.currency, time)
            result = CashAmount(self.amount + other.amount * rate, self.currency)

        if with_rounding:
            return result.round_by_convention()
        return result

    def sub(
            self,
            other: CashAmount,
            time: datetime,
            converter: CurrencyConverter,
            with_rounding: bool = False,
    ) -> CashAmount:
        """Subtract another amount; see add()."""
        return self.add(-other, time, converter, with_rounding)

    def is_close(self, other: CashAmount, tol: Decimal) -> bool:
        """Same currency and within an absolute tolerance."""
        if self.currency != other.currency or self.is_nan() or other.is_nan():
            return False
        return abs(self.amount - other.amount) <= tol
