# portfolio_engine/utils/__init__.py
"""
Cross-cutting utilities for the position accounting engine:
- logging: Logging configuration and setup
- date_utils: UTC normalization and reference-time helpers
- fx_conversion: FX rate application and inversion

Usage:
    from portfolio_engine.utils import setup_logging, get_logger
    from portfolio_engine.utils.date_utils import to_reference_time
"""

from portfolio_engine.utils.logging import setup_logging, get_logger

__all__ = [
    "setup_logging",
    "get_logger",
]
