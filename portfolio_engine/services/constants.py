# portfolio_engine/services/constants.py
"""
Centralized constants for the position accounting engine.

Usage:
    from portfolio_engine.services.constants import (
        DEFAULT_ROUNDING_DIGITS,
        ZERO_DECIMAL_CURRENCIES,
    )
"""

from decimal import Decimal


# =============================================================================
# DECIMAL HELPERS
# =============================================================================

ZERO: Decimal = Decimal("0")
ONE: Decimal = Decimal("1")


# =============================================================================
# CURRENCY CONVENTIONS
# =============================================================================

# ISO 4217 style codes are exactly three ASCII letters
CURRENCY_CODE_LENGTH: int = 3

# Decimals used when rounding an amount "by convention"
DEFAULT_ROUNDING_DIGITS: int = 2

# Currencies quoted without minor units
ZERO_DECIMAL_CURRENCIES: frozenset[str] = frozenset({"JPY", "TRL"})


# =============================================================================
# TOLERANCES
# =============================================================================

# Relative tolerance for period additivity checks of P&L totals
PNL_RELATIVE_TOLERANCE: Decimal = Decimal("0.000001")
