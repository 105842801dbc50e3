# portfolio_engine/ledger/transactions.py
"""
Ledger transactions.

A Transaction pairs a cash flow with a TransactionType describing what the
cash flow was for. The type is a tagged union of frozen dataclasses:

    Cash         Pure cash movement (deposit, withdrawal)
    AssetTrade   Buy (position_delta > 0) or sell (< 0) of an asset
    Dividend     Dividend income from an asset
    Interest     Interest income from an asset
    Tax          Tax charge, optionally referencing another transaction
    Fee          Fee charge, optionally referencing another transaction

Sign conventions: the cash flow of a buy is negative (cash paid), the cash
flow of a sell is positive (proceeds).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Union

from portfolio_engine.ledger.cash_flow import CashFlow
from portfolio_engine.services.exceptions import InvalidTransactionError


@dataclass(frozen=True)
class Cash:
    pass


@dataclass(frozen=True)
class AssetTrade:
    asset_id: int | None
    position_delta: Decimal | None


@dataclass(frozen=True)
class Dividend:
    asset_id: int | None


@dataclass(frozen=True)
class Interest:
    asset_id: int | None


@dataclass(frozen=True)
class Tax:
    transaction_ref: int | None = None


@dataclass(frozen=True)
class Fee:
    transaction_ref: int | None = None


TransactionType = Union[Cash, AssetTrade, Dividend, Interest, Tax, Fee]

# Variants that are tied to an asset
ASSET_BEARING_TYPES = (AssetTrade, Dividend, Interest)

# Variants that may reference another transaction
REFERENCING_TYPES = (Tax, Fee)


@dataclass
class Transaction:
    """
    A ledger event.

    Attributes:
        transaction_type: What the cash flow was for
        cash_flow: Amount and date
        id: Store identifier (None until persisted, then immutable)
        note: Free text
    """
    transaction_type: TransactionType
    cash_flow: CashFlow
    id: int | None = None
    note: str | None = field(default=None, compare=False)

    @property
    def asset_id(self) -> int | None:
        """Asset id of asset-bearing transactions, None otherwise."""
        if isinstance(self.transaction_type, ASSET_BEARING_TYPES):
            return self.transaction_type.asset_id
        return None

    @property
    def transaction_ref(self) -> int | None:
        if isinstance(self.transaction_type, REFERENCING_TYPES):
            return self.transaction_type.transaction_ref
        return None

    def assign_id(self, id: int) -> None:
        """
        Set the store id once.

        Raises:
            InvalidTransactionError: The transaction is already persisted
        """
        if self.id is not None:
            raise InvalidTransactionError(
                f"Transaction {self.id} already has an id, refusing to set {id}",
                transaction_id=self.id,
                field="id",
            )
        self.id = id

    def set_asset_id(self, asset_id: int) -> None:
        """Rewrite the asset of an asset-bearing transaction; no-op otherwise."""
        if isinstance(self.transaction_type, ASSET_BEARING_TYPES):
            self.transaction_type = replace(self.transaction_type, asset_id=asset_id)

    def set_transaction_ref(self, transaction_ref: int) -> None:
        """Rewrite the reference of a tax or fee; no-op otherwise."""
        if isinstance(self.transaction_type, REFERENCING_TYPES):
            self.transaction_type = replace(
                self.transaction_type, transaction_ref=transaction_ref
            )

    def validate(self) -> None:
        """
        Check that the transaction can be replayed.

        Raises:
            InvalidTransactionError: Missing asset id or position delta
        """
        tx_type = self.transaction_type
        if isinstance(tx_type, ASSET_BEARING_TYPES) and tx_type.asset_id is None:
            raise InvalidTransactionError(
                f"{type(tx_type).__name__} transaction without asset id",
                transaction_id=self.id,
                field="asset_id",
            )
        if isinstance(tx_type, AssetTrade) and tx_type.position_delta is None:
            raise InvalidTransactionError(
                "Asset trade without position delta",
                transaction_id=self.id,
                field="position_delta",
            )

    def __str__(self) -> str:
        return (
            f"Transaction(id={self.id}, {type(self.transaction_type).__name__}, "
            f"{self.cash_flow.amount} on {self.cash_flow.date.isoformat()})"
        )


def find_transaction(
        transactions: list[Transaction],
        transaction_id: int,
) -> Transaction | None:
    """Linear scan for a transaction by id."""
    for transaction in transactions:
        if transaction.id == transaction_id:
            return transaction
    return None
