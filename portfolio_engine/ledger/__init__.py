# portfolio_engine/ledger/__init__.py
"""
Ledger entities: currencies, cash amounts, cash flows and transactions.

Usage:
    from portfolio_engine.ledger import Currency, CashFlow, Transaction, AssetTrade

    eur = Currency.from_code("EUR")
    buy = Transaction(
        AssetTrade(asset_id=1, position_delta=Decimal("100")),
        CashFlow.of("-104", eur, date(2024, 1, 2)),
    )
"""

from portfolio_engine.ledger.cash_flow import CashFlow
from portfolio_engine.ledger.currency import (
    CashAmount,
    Currency,
    default_rounding_digits,
    validate_iso_code,
)
from portfolio_engine.ledger.transactions import (
    AssetTrade,
    Cash,
    Dividend,
    Fee,
    Interest,
    Tax,
    Transaction,
    TransactionType,
    find_transaction,
)

__all__ = [
    "Currency",
    "CashAmount",
    "CashFlow",
    "default_rounding_digits",
    "validate_iso_code",
    "Transaction",
    "TransactionType",
    "Cash",
    "AssetTrade",
    "Dividend",
    "Interest",
    "Tax",
    "Fee",
    "find_transaction",
]
