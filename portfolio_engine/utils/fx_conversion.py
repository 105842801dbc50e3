# portfolio_engine/utils/fx_conversion.py
"""
FX Rate Conversion Utilities

Convention used throughout the engine (standard FX notation):
    fx_rate(base, quote, t) = X  means  1 base = X quote
    To convert an amount from base to quote, MULTIPLY by the rate.

The quote store keeps the rate of a currency against another as a price
quote of the currency's asset id, so inverting a rate is how the opposite
direction is stored.
"""

from decimal import Decimal


def convert_using_fx_rate(
    amount_base: Decimal,
    fx_rate: Decimal,
) -> Decimal:
    """
    Convert base currency to quote currency using an FX rate.

    Example:
        - Base currency: USD
        - Quote currency: EUR
        - FX rate: 0.91 (meaning 1 USD = 0.91 EUR)
        - Base amount: 110 USD
        - Quote amount: 110 × 0.91 = 100.10 EUR

    Args:
        amount_base: Amount in base currency
        fx_rate: FX rate (1 base = X quote)

    Returns:
        Amount converted to quote currency
    """
    return amount_base * fx_rate


def invert_fx_rate(fx_rate: Decimal) -> Decimal:
    """
    Invert an FX rate: 1 base = X quote  →  1 quote = 1/X base.

    Raises:
        ValueError: If the rate is zero
    """
    if fx_rate == 0:
        raise ValueError("FX rate cannot be zero")
    return Decimal("1") / fx_rate
