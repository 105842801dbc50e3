# portfolio_engine/services/positions/calculators.py
"""
Position accounting calculators.

Each calculator follows the Single Responsibility Principle:
- DeltaPositionCalculator: Replays transactions into a PortfolioPosition
- QuoteCalculator: Marks open positions at a point in time
- TotalsCalculator: Aggregates value and P&L figures
- PeriodResetCalculator: Rebases positions at the start of a period

Design Principles:
- Calculators mutate the PortfolioPosition they are given, nothing else
- Dependencies (FX converter, price source) are passed explicitly
- Uses Decimal for ALL financial calculations

Usage:
    replay = DeltaPositionCalculator(market)
    replay.apply(portfolio, transactions, end=date(2024, 12, 31))

    QuoteCalculator(market).add_quote(portfolio, time)
    totals = TotalsCalculator().calc_totals(portfolio)
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal

from portfolio_engine.config import settings
from portfolio_engine.ledger.cash_flow import CashFlow
from portfolio_engine.ledger.currency import Currency
from portfolio_engine.ledger.transactions import (
    AssetTrade,
    Cash,
    Dividend,
    Fee,
    Interest,
    Tax,
    Transaction,
    find_transaction,
)
from portfolio_engine.services.constants import ONE, ZERO
from portfolio_engine.services.exceptions import FXRateError, NotFoundError
from portfolio_engine.services.positions.types import (
    PortfolioPosition,
    Position,
    PositionTotals,
)
from portfolio_engine.services.protocols import CurrencyConverter, PriceSource
from portfolio_engine.utils.date_utils import in_window, to_reference_time
from portfolio_engine.utils.fx_conversion import convert_using_fx_rate

logger = logging.getLogger(__name__)


class DeltaPositionCalculator:
    """
    Replays a transaction log into a PortfolioPosition.

    Every cash flow is first converted into the portfolio's base currency
    at its date's reference hour. All bookkeeping of the transaction uses
    the converted amount:

    - the cash position receives every amount
    - asset trades update quantity and cost basis, realizing P&L against
      the average cost when the position is reduced
    - dividends and interest accrue on their asset
    - taxes and fees accrue on the asset of the transaction they
      reference, or on cash

    Realized P&L on a reduction of `delta` units for cash `amount`:

        effective_price = -purchase_value / quantity
        trade_price     = -amount / delta
        pnl             = -delta × (trade_price - effective_price)

    A reduction past zero is split into a closing leg and an opening leg,
    sharing the amount pro rata.
    """

    def __init__(
            self,
            converter: CurrencyConverter,
            reference_hour: int | None = None,
    ) -> None:
        """
        Args:
            converter: FX source for non-base cash flows
            reference_hour: UTC hour at which a cash flow date is converted
                            (default settings.fx_reference_hour)
        """
        self._converter = converter
        self._reference_hour = (
            settings.fx_reference_hour if reference_hour is None else reference_hour
        )

    def apply(
            self,
            portfolio: PortfolioPosition,
            transactions: list[Transaction],
            start: date | None = None,
            end: date | None = None,
    ) -> None:
        """
        Apply all transactions dated in [start, end), in input order.

        Args:
            portfolio: Portfolio to mutate
            transactions: Transaction batch (also used to resolve tax and
                          fee references, including outside the window)
            start: First date applied (inclusive, None = unbounded)
            end: First date NOT applied (exclusive, None = unbounded)

        Raises:
            InvalidTransactionError: A transaction cannot be replayed
            FXRateError: A cash flow cannot be converted
            CacheFailureError: The market cache failed

        Note:
            On error, transactions before the failing one stay applied;
            the caller must discard the portfolio.
        """
        applied = 0
        for transaction in transactions:
            if not in_window(transaction.cash_flow.date, start, end):
                continue
            self.apply_transaction(portfolio, transaction, transactions)
            applied += 1

        logger.debug(
            f"Replayed {applied}/{len(transactions)} transactions "
            f"in window [{start}, {end})"
        )

    def apply_transaction(
            self,
            portfolio: PortfolioPosition,
            transaction: Transaction,
            batch: list[Transaction] | None = None,
    ) -> None:
        """
        Apply one transaction (mutates portfolio).

        Validation and FX conversion happen before any mutation, so a
        failing transaction leaves the portfolio untouched.
        """
        transaction.validate()
        amount = self.to_base_amount(transaction.cash_flow, portfolio.base_currency)

        portfolio.cash.quantity += amount

        tx_type = transaction.transaction_type
        if isinstance(tx_type, Cash):
            return

        if isinstance(tx_type, AssetTrade):
            position = portfolio.get_or_create(tx_type.asset_id)
            self._apply_trade(position, tx_type.position_delta, amount)
        elif isinstance(tx_type, Dividend):
            portfolio.get_or_create(tx_type.asset_id).dividend += amount
        elif isinstance(tx_type, Interest):
            portfolio.get_or_create(tx_type.asset_id).interest += amount
        elif isinstance(tx_type, Tax):
            self._charge_target(portfolio, tx_type.transaction_ref, batch).tax += amount
        elif isinstance(tx_type, Fee):
            self._charge_target(portfolio, tx_type.transaction_ref, batch).fees += amount

    def to_base_amount(self, cash_flow: CashFlow, base_currency: Currency) -> Decimal:
        """Convert a cash flow into the base currency at its reference time."""
        if cash_flow.currency == base_currency:
            return cash_flow.amount.amount

        time = to_reference_time(cash_flow.date, self._reference_hour)
        rate = self._converter.fx_rate(cash_flow.currency, base_currency, time)
        return convert_using_fx_rate(cash_flow.amount.amount, rate)

    def _apply_trade(self, position: Position, delta: Decimal, amount: Decimal) -> None:
        quantity = position.quantity

        # Opening or increasing
        if quantity == ZERO or delta == ZERO or (quantity > ZERO) == (delta > ZERO):
            position.quantity += delta
            position.purchase_value += amount
            return

        # Reducing past zero: close, then open the remainder
        if abs(delta) > abs(quantity):
            close_delta = -quantity
            close_amount = amount * close_delta / delta
            self._reduce(position, close_delta, close_amount)
            self._apply_trade(position, delta - close_delta, amount - close_amount)
            return

        self._reduce(position, delta, amount)

    @staticmethod
    def _reduce(position: Position, delta: Decimal, amount: Decimal) -> None:
        effective_price = -position.purchase_value / position.quantity
        trade_price = -amount / delta
        pnl = -delta * (trade_price - effective_price)

        position.trading_pnl += pnl
        position.quantity += delta
        position.purchase_value += amount - pnl

    @staticmethod
    def _charge_target(
            portfolio: PortfolioPosition,
            transaction_ref: int | None,
            batch: list[Transaction] | None,
    ) -> Position:
        """Position a tax or fee accrues on: the referenced asset, else cash."""
        if transaction_ref is None or not batch:
            return portfolio.cash

        referenced = find_transaction(batch, transaction_ref)
        if referenced is None or referenced.asset_id is None:
            return portfolio.cash
        return portfolio.get_or_create(referenced.asset_id)


class QuoteCalculator:
    """
    Marks positions at a point in time.

    Cash is marked at 1. Asset positions take the market price in the base
    currency; when none is available (no quote, no FX path), the average
    cost stands in and the quote time is cleared.
    """

    def __init__(self, prices: PriceSource) -> None:
        self._prices = prices

    def add_quote(self, portfolio: PortfolioPosition, time: datetime) -> None:
        """
        Attach marks to every position (mutates portfolio).

        Raises:
            CacheFailureError: The market cache failed (never recovered)
        """
        portfolio.cash.last_quote = ONE
        portfolio.cash.last_quote_time = time

        fallbacks = 0
        for position in portfolio.iter_assets():
            try:
                price = self._prices.price_at(
                    position.asset_id, portfolio.base_currency, time
                )
            except (NotFoundError, FXRateError) as e:
                logger.warning(
                    f"No mark for asset {position.asset_id} at {time.isoformat()}, "
                    f"using average cost: {e}"
                )
                position.last_quote = position.average_cost
                position.last_quote_time = None
                fallbacks += 1
                continue

            position.last_quote = price
            position.last_quote_time = time

        if fallbacks:
            logger.info(f"Marked {len(portfolio)} positions, {fallbacks} at average cost")


class TotalsCalculator:
    """Aggregates value and P&L of a marked portfolio."""

    def calc_totals(self, portfolio: PortfolioPosition) -> PositionTotals:
        """
        Calculate portfolio totals.

        value = cash + Σ marked asset values (cost basis when unmarked)
        unrealized = Σ (marked value + purchase_value) over assets
        P&L accumulators are summed over cash and assets.
        """
        value = portfolio.cash.quantity
        unrealized_pnl = ZERO
        for position in portfolio.iter_assets():
            value += position.market_value
            unrealized_pnl += position.unrealized_pnl

        positions = list(portfolio.iter_positions())
        return PositionTotals(
            value=value,
            trading_pnl=sum((p.trading_pnl for p in positions), ZERO),
            unrealized_pnl=unrealized_pnl,
            dividend=sum((p.dividend for p in positions), ZERO),
            interest=sum((p.interest for p in positions), ZERO),
            tax=sum((p.tax for p in positions), ZERO),
            fees=sum((p.fees for p in positions), ZERO),
        )


class PeriodResetCalculator:
    """
    Rebases a marked portfolio so that it can start a new period.

    After the reset, every open position looks as if it had been bought at
    its mark: P&L of the new period then measures only what happens in it.
    """

    def reset_for_period(self, portfolio: PortfolioPosition) -> None:
        """
        Reset a portfolio for a new period (mutates portfolio).

        - drops asset positions with quantity exactly zero
        - zeroes trading P&L, dividend, interest, fees and tax everywhere
        - sets purchase_value = -quantity × last_quote where a mark exists
        """
        closed = [asset_id for asset_id, p in portfolio.assets.items() if p.is_flat]
        for asset_id in closed:
            del portfolio.assets[asset_id]

        for position in portfolio.iter_positions():
            position.reset_pnl()
            if position.last_quote is not None:
                position.purchase_value = -position.quantity * position.last_quote

        logger.debug(
            f"Reset portfolio for new period: dropped {len(closed)} closed positions, "
            f"{len(portfolio)} remain"
        )
