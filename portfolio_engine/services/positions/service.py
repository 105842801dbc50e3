# portfolio_engine/services/positions/service.py
"""
Position Service - orchestrates replay, marking and period reconciliation.

- calculate_position(): Positions as of a date, marked at that date
- calculate_position_for_period(): Positions whose P&L covers [start, end) only
- calculate_totals() / calculate_period_totals(): Aggregated figures

Period reconciliation:
    1. replay the full history before `start`
    2. mark at `start` and rebase (PeriodResetCalculator)
    3. replay [start, end)
    4. mark at `end`

    Because every open position is rebased to its mark at `start`, the
    total P&L of consecutive periods adds up to the total P&L of their
    union (up to Decimal rounding).

Usage:
    from portfolio_engine.services.positions import PositionService

    service = PositionService(market)
    portfolio = service.calculate_position_for_period(
        transactions, "EUR", start=date(2024, 1, 1), end=date(2025, 1, 1)
    )
    totals = service.calculate_totals(portfolio)
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from portfolio_engine.config import settings
from portfolio_engine.ledger.currency import Currency
from portfolio_engine.ledger.transactions import Transaction
from portfolio_engine.services.exceptions import ValidationError
from portfolio_engine.services.market.service import Market
from portfolio_engine.services.positions.calculators import (
    DeltaPositionCalculator,
    PeriodResetCalculator,
    QuoteCalculator,
    TotalsCalculator,
)
from portfolio_engine.services.positions.types import PortfolioPosition, PositionTotals
from portfolio_engine.services.protocols import AssetStore
from portfolio_engine.utils.date_utils import to_reference_time

logger = logging.getLogger(__name__)


class PositionService:
    """
    Main service for position accounting.

    Attributes:
        _market: Price and FX source (shared, thread-safe)
        _asset_store: Optional source of position display names
        _replay: Transaction replay engine
        _quotes: Quote attachment
        _totals: Totals aggregation
        _reset: Period rebasing
    """

    def __init__(
            self,
            market: Market,
            asset_store: AssetStore | None = None,
            reference_hour: int | None = None,
    ) -> None:
        """
        Args:
            market: Market used for FX conversion and marks
            asset_store: Fills in position names when given
            reference_hour: UTC hour used to value a date
                            (default settings.fx_reference_hour)
        """
        self._market = market
        self._asset_store = asset_store
        self._reference_hour = (
            settings.fx_reference_hour if reference_hour is None else reference_hour
        )

        self._replay = DeltaPositionCalculator(market, self._reference_hour)
        self._quotes = QuoteCalculator(market)
        self._totals = TotalsCalculator()
        self._reset = PeriodResetCalculator()

    def calculate_position(
            self,
            transactions: list[Transaction],
            base_currency: Currency | str,
            end: date | None = None,
            as_of: datetime | None = None,
    ) -> PortfolioPosition:
        """
        Replay all transactions dated before `end` and mark the result.

        Args:
            transactions: Transaction batch (any order is replayed as given)
            base_currency: Currency of all position figures
            end: First date NOT included (None = everything)
            as_of: Mark time (default: `end` at the reference hour;
                   no marks when both are None)

        Returns:
            The resulting PortfolioPosition

        Raises:
            InvalidTransactionError, FXRateError, CacheFailureError
        """
        portfolio = PortfolioPosition(self._market.get_currency(base_currency))
        self._replay.apply(portfolio, transactions, end=end)

        mark_time = as_of
        if mark_time is None and end is not None:
            mark_time = to_reference_time(end, self._reference_hour)
        if mark_time is not None:
            self._quotes.add_quote(portfolio, mark_time)

        self._attach_names(portfolio)
        logger.info(
            f"Calculated position in {portfolio.base_currency} up to {end}: "
            f"{len(portfolio)} assets"
        )
        return portfolio

    def calculate_position_for_period(
            self,
            transactions: list[Transaction],
            base_currency: Currency | str,
            start: date,
            end: date,
    ) -> PortfolioPosition:
        """
        Positions whose P&L figures cover [start, end) only.

        Raises:
            ValidationError: start is after end
            InvalidTransactionError, FXRateError, CacheFailureError
        """
        if start > end:
            raise ValidationError(
                f"Period start {start} is after end {end}",
                field="start",
            )

        portfolio = PortfolioPosition(self._market.get_currency(base_currency))

        self._replay.apply(portfolio, transactions, end=start)
        self._quotes.add_quote(portfolio, to_reference_time(start, self._reference_hour))
        self._reset.reset_for_period(portfolio)

        self._replay.apply(portfolio, transactions, start=start, end=end)
        self._quotes.add_quote(portfolio, to_reference_time(end, self._reference_hour))

        self._attach_names(portfolio)
        logger.info(
            f"Calculated position in {portfolio.base_currency} for [{start}, {end}): "
            f"{len(portfolio)} assets"
        )
        return portfolio

    def calculate_totals(self, portfolio: PortfolioPosition) -> PositionTotals:
        return self._totals.calc_totals(portfolio)

    def calculate_period_totals(
            self,
            transactions: list[Transaction],
            base_currency: Currency | str,
            start: date,
            end: date,
    ) -> PositionTotals:
        portfolio = self.calculate_position_for_period(transactions, base_currency, start, end)
        return self._totals.calc_totals(portfolio)

    def attach_asset_names(
            self,
            portfolio: PortfolioPosition,
            asset_store: AssetStore,
    ) -> None:
        """Fill in display names of asset positions from an asset store."""
        names: dict[int, str] = {}
        for asset_id in portfolio.assets:
            name = asset_store.asset_name(asset_id)
            if name:
                names[asset_id] = name
        portfolio.apply_names(names)

    def _attach_names(self, portfolio: PortfolioPosition) -> None:
        if self._asset_store is not None:
            self.attach_asset_names(portfolio, self._asset_store)
