# portfolio_engine/services/positions/__init__.py
"""
Position accounting: transaction replay, marking and period reconciliation.

Architecture:
    positions/
    ├── __init__.py      # This file - public exports
    ├── types.py         # Position, PortfolioPosition, PositionTotals
    ├── calculators.py   # Replay, quote, totals and reset calculators
    └── service.py       # PositionService orchestrator

Usage:
    from portfolio_engine.services.positions import PositionService
"""

from portfolio_engine.services.positions.calculators import (
    DeltaPositionCalculator,
    PeriodResetCalculator,
    QuoteCalculator,
    TotalsCalculator,
)
from portfolio_engine.services.positions.service import PositionService
from portfolio_engine.services.positions.types import (
    PortfolioPosition,
    Position,
    PositionTotals,
)

__all__ = [
    "PositionService",
    "DeltaPositionCalculator",
    "QuoteCalculator",
    "TotalsCalculator",
    "PeriodResetCalculator",
    "Position",
    "PortfolioPosition",
    "PositionTotals",
]
