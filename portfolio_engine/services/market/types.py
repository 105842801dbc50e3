# portfolio_engine/services/market/types.py
"""
Data types for the valuation cache.

PriceSeries is immutable: the Market never edits a published series, it
builds a wider one and swaps the reference. Readers holding the old
object keep seeing a complete, consistent range.
"""

from __future__ import annotations

import enum
from bisect import bisect_right
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal


class CachePolicy(str, enum.Enum):
    """How a Market serves point-in-time quotes."""
    UNCACHED = "uncached"  # Every request hits the quote store
    RANGE_PRIMED = "range_primed"  # Bulk-load a span per asset, bisect inside it


@dataclass(frozen=True)
class QuoteRecord:
    """
    A single price observation as exchanged with the quote store.

    Attributes:
        price: Price of one unit in `currency`
        currency: Native currency code of the quote
        time: Observation time (aware UTC)
    """
    price: Decimal
    currency: str
    time: datetime


@dataclass(frozen=True)
class PriceSeries:
    """
    Cached quotes of one asset covering [start, end].

    `quotes` holds every stored quote inside the span plus the latest quote
    before `start` (the anchor), ordered by time with unique times. Any
    lookup for a time inside the span is therefore exact.
    """
    start: datetime
    end: datetime
    quotes: tuple[QuoteRecord, ...] = ()
    times: tuple[datetime, ...] = field(default=(), repr=False)

    @classmethod
    def build(
            cls,
            start: datetime,
            end: datetime,
            quotes: list[QuoteRecord],
    ) -> PriceSeries:
        by_time = {q.time: q for q in quotes}
        ordered = tuple(by_time[t] for t in sorted(by_time))
        return cls(
            start=start,
            end=end,
            quotes=ordered,
            times=tuple(q.time for q in ordered),
        )

    def covers(self, time: datetime) -> bool:
        return self.start <= time <= self.end

    def latest_at_or_before(self, time: datetime) -> QuoteRecord | None:
        """Binary search for the last quote with quote.time <= time."""
        index = bisect_right(self.times, time)
        if index == 0:
            return None
        return self.quotes[index - 1]

    def widened(
            self,
            start: datetime,
            end: datetime,
            quotes: list[QuoteRecord],
    ) -> PriceSeries:
        """New series over a wider span, merging freshly fetched quotes."""
        return PriceSeries.build(
            min(start, self.start),
            max(end, self.end),
            list(self.quotes) + quotes,
        )

    def __len__(self) -> int:
        return len(self.quotes)


@dataclass
class CacheStats:
    """Counters describing how a Market served its requests."""
    hits: int = 0
    primes: int = 0
    range_fetches: int = 0
    point_fetches: int = 0
