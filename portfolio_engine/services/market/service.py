# portfolio_engine/services/market/service.py
"""
Market: point-in-time prices and FX rates with a per-asset range cache.

The Market is the only shared, mutable resource of the engine. Many
accounting runs may value positions through the same Market concurrently.

Caching strategy (CachePolicy.RANGE_PRIMED):
    A request for (asset, t) outside the cached span of the asset triggers
    ONE bulk fetch of the missing part of the span, widened by
    `prime_span` on the side of t, plus the anchor quote (latest quote
    before the new span start). Spans only grow. Requests inside a span
    are answered by binary search without touching the store.

    Range fetch: O(1) store calls per miss instead of O(requests)
    In-span lookup: O(log n)

Thread Safety:
    Reads of an already covered span take no lock. Population runs under a
    single threading.Lock with a double-checked coverage test. The new
    PriceSeries is built completely before it is published with one dict
    assignment, so a reader never observes a partially loaded range.
    Failing to acquire the lock within `lock_timeout` raises
    CacheLockError; the Market never falls back to uncached lookups.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, TypeVar

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from portfolio_engine.config import settings
from portfolio_engine.ledger.currency import Currency
from portfolio_engine.services.constants import ONE
from portfolio_engine.services.exceptions import (
    CacheLockError,
    CurrencyNotFoundError,
    FXConversionError,
    FXRateNotFoundError,
    QuoteNotFoundError,
    StoreUnavailableError,
)
from portfolio_engine.services.market.types import (
    CachePolicy,
    CacheStats,
    PriceSeries,
    QuoteRecord,
)
from portfolio_engine.services.protocols import CurrencyStore, QuoteStore
from portfolio_engine.utils.date_utils import ensure_utc
from portfolio_engine.utils.fx_conversion import convert_using_fx_rate

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Market:
    """
    Point-in-time price and FX source backed by a QuoteStore.

    Satisfies the CurrencyConverter and PriceSource protocols.

    Usage:
        market = Market(quote_store, currency_store)
        rate = market.fx_rate(usd, eur, datetime(2024, 1, 15, 20, tzinfo=timezone.utc))
        price = market.price_at(asset_id=7, currency=eur, time=t)
    """

    def __init__(
            self,
            quote_store: QuoteStore,
            currency_store: CurrencyStore | None = None,
            cache_policy: CachePolicy | str | None = None,
            prime_span: timedelta | None = None,
            lock_timeout: float | None = None,
    ):
        """
        Initialize the market.

        Args:
            quote_store: Source of price and FX quotes
            currency_store: Source of currency metadata (optional)
            cache_policy: Defaults to settings.cache_policy
            prime_span: Span fetched around a miss (default settings.cache_prime_span_days)
            lock_timeout: Seconds to wait for the population lock
                          (default settings.cache_lock_timeout)
        """
        self._quote_store = quote_store
        self._currency_store = currency_store
        self._policy = CachePolicy(cache_policy or settings.cache_policy)
        self._prime_span = prime_span or timedelta(days=settings.cache_prime_span_days)
        self._lock_timeout = settings.cache_lock_timeout if lock_timeout is None else lock_timeout

        self._lock = threading.Lock()
        self._series: dict[int, PriceSeries] = {}
        self._currencies: dict[str, Currency] = {}
        self._currencies_by_id: dict[int, Currency] = {}
        self._currencies_loaded = False
        self._stats = CacheStats()

        self.max_retry_attempts = settings.store_retry_attempts
        self.retry_min_wait = settings.store_retry_min_wait
        self.retry_max_wait = settings.store_retry_max_wait

    # =========================================================================
    # CACHE CONTROL
    # =========================================================================

    @property
    def cache_policy(self) -> CachePolicy:
        return self._policy

    def set_cache_policy(self, policy: CachePolicy | str) -> None:
        """Switch policy and drop every cached series."""
        policy = CachePolicy(policy)
        with self._acquire():
            self._policy = policy
            self._series = {}
        logger.info(f"Market cache policy set to {policy.value}")

    def clear_cache(self) -> None:
        with self._acquire():
            self._series = {}
        logger.debug("Market price cache cleared")

    def cache_stats(self) -> CacheStats:
        """Snapshot of the cache counters. `hits` is approximate under concurrency."""
        return CacheStats(**vars(self._stats))

    def cached_span(self, asset_id: int) -> tuple[datetime, datetime] | None:
        series = self._series.get(asset_id)
        if series is None:
            return None
        return series.start, series.end

    # =========================================================================
    # PRICES
    # =========================================================================

    def price_at(self, asset_id: int, currency: Currency | str, time: datetime) -> Decimal:
        """
        Latest price of an asset at or before `time`, in `currency`.

        Args:
            asset_id: Asset to price
            currency: Target currency
            time: Point in time (naive values are taken as UTC)

        Returns:
            Price of one unit converted into `currency`

        Raises:
            QuoteNotFoundError: No quote at or before `time`
            FXRateError: Native currency cannot be converted
            CacheLockError: Cache population lock timed out
        """
        time = ensure_utc(time)
        target = self.get_currency(currency)
        record = self._quote_at(asset_id, time)

        native = self.get_currency(record.currency)
        if native == target:
            return record.price

        rate = self.fx_rate(native, target, time)
        return convert_using_fx_rate(record.price, rate)

    def fx_rate(self, base: Currency | str, quote: Currency | str, time: datetime) -> Decimal:
        """
        Rate such that 1 base = rate quote at `time`.

        The rate of a currency is the latest quote of the asset sharing the
        currency's id, which must be denominated in `quote`.

        Raises:
            FXRateNotFoundError: No quote of `base` at or before `time`
            FXConversionError: The latest quote is not in `quote`, or `base`
                               has no id in the currency store
        """
        base_ccy = self.get_currency(base)
        quote_ccy = self.get_currency(quote)
        if base_ccy == quote_ccy:
            return ONE

        if base_ccy.id is None:
            raise FXConversionError(
                base_ccy.iso_code,
                quote_ccy.iso_code,
                "currency has no quote id",
            )

        time = ensure_utc(time)
        try:
            record = self._quote_at(base_ccy.id, time)
        except QuoteNotFoundError as e:
            raise FXRateNotFoundError(base_ccy.iso_code, quote_ccy.iso_code, time) from e

        if record.currency != quote_ccy.iso_code:
            raise FXConversionError(
                base_ccy.iso_code,
                quote_ccy.iso_code,
                f"latest rate is quoted in {record.currency}",
            )
        return record.price

    def _quote_at(self, asset_id: int, time: datetime) -> QuoteRecord:
        if self._policy == CachePolicy.UNCACHED:
            self._stats.point_fetches += 1
            return self._execute_with_retry(
                self._quote_store.last_quote_at_or_before, asset_id, time
            )

        series = self._series.get(asset_id)
        if series is None or not series.covers(time):
            series = self._prime(asset_id, time)
        else:
            self._stats.hits += 1

        record = series.latest_at_or_before(time)
        if record is None:
            raise QuoteNotFoundError(asset_id, time)
        return record

    # =========================================================================
    # RANGE PRIMING
    # =========================================================================

    def _prime(self, asset_id: int, time: datetime) -> PriceSeries:
        """Make sure the asset's cached span covers `time` and return it."""
        with self._acquire(asset_id):
            series = self._series.get(asset_id)
            if series is not None and series.covers(time):
                self._stats.hits += 1
                return series

            new_series = self._widen(asset_id, series, time)
            self._series[asset_id] = new_series
            self._stats.primes += 1

        logger.debug(
            f"Primed asset {asset_id} over {new_series.start.date()}..{new_series.end.date()}: "
            f"{len(new_series)} quotes"
        )
        return new_series

    def _widen(
            self,
            asset_id: int,
            series: PriceSeries | None,
            time: datetime,
    ) -> PriceSeries:
        if series is None:
            start, end = time - self._prime_span, time + self._prime_span
            quotes = self._fetch_range(asset_id, start, end)
            anchor = self._fetch_anchor(asset_id, start)
            if anchor is not None:
                quotes.append(anchor)
            return PriceSeries.build(start, end, quotes)

        if time < series.start:
            start = time - self._prime_span
            quotes = self._fetch_range(asset_id, start, series.start)
            anchor = self._fetch_anchor(asset_id, start)
            if anchor is not None:
                quotes.append(anchor)
            return series.widened(start, series.end, quotes)

        end = time + self._prime_span
        quotes = self._fetch_range(asset_id, series.end, end)
        return series.widened(series.start, end, quotes)

    def _fetch_range(self, asset_id: int, start: datetime, end: datetime) -> list[QuoteRecord]:
        self._stats.range_fetches += 1
        return list(self._execute_with_retry(
            self._quote_store.quotes_in_range, asset_id, start, end
        ))

    def _fetch_anchor(self, asset_id: int, time: datetime) -> QuoteRecord | None:
        self._stats.point_fetches += 1
        try:
            return self._execute_with_retry(
                self._quote_store.last_quote_at_or_before, asset_id, time
            )
        except QuoteNotFoundError:
            return None

    def _acquire(self, asset_id: int | None = None) -> "_TimedLock":
        return _TimedLock(self._lock, self._lock_timeout, asset_id)

    # =========================================================================
    # CURRENCIES
    # =========================================================================

    def get_currency(self, currency: Currency | str) -> Currency:
        """
        Resolve a currency (or code) to its stored form with id and digits.

        The first call loads all currencies from the currency store; unseen
        codes are then created through the store. Without a currency store,
        currencies are built locally with default rounding digits.

        Raises:
            InvalidCurrencyError: Malformed code
        """
        if isinstance(currency, Currency):
            if currency.id is not None:
                return currency
            code = currency.iso_code
        else:
            code = currency.upper()

        cached = self._currencies.get(code)
        if cached is not None:
            return cached

        with self._acquire():
            if not self._currencies_loaded:
                self._load_currencies()
            cached = self._currencies.get(code)
            if cached is None:
                cached = self._create_currency(code)
                self._register_currency(cached)
        return cached

    def currency_by_id(self, currency_id: int) -> Currency:
        """
        Raises:
            CurrencyNotFoundError: Unknown id
        """
        cached = self._currencies_by_id.get(currency_id)
        if cached is not None:
            return cached
        if self._currency_store is None:
            raise CurrencyNotFoundError(currency_id)

        currency = self._execute_with_retry(self._currency_store.currency_by_id, currency_id)
        with self._acquire():
            self._register_currency(currency)
        return currency

    def _load_currencies(self) -> None:
        self._currencies_loaded = True
        if self._currency_store is None:
            return
        currencies = self._execute_with_retry(self._currency_store.all_currencies)
        for currency in currencies:
            self._register_currency(currency)
        logger.debug(f"Loaded {len(currencies)} currencies into market cache")

    def _create_currency(self, code: str) -> Currency:
        if self._currency_store is None:
            return Currency.from_code(code)
        currency = self._execute_with_retry(self._currency_store.get_or_create_currency, code)
        logger.info(f"Registered new currency {currency.iso_code} (id={currency.id})")
        return currency

    def _register_currency(self, currency: Currency) -> None:
        self._currencies[currency.iso_code] = currency
        if currency.id is not None:
            self._currencies_by_id[currency.id] = currency

    # =========================================================================
    # STORE ACCESS
    # =========================================================================

    def _execute_with_retry(
            self,
            func: Callable[..., T],
            *args: Any,
            **kwargs: Any,
    ) -> T:
        """
        Execute a store call with retry logic for transient failures.

        Retries StoreUnavailableError with exponential backoff. Does NOT
        retry QuoteNotFoundError or any other exception.

        Raises:
            The last exception if all retries fail
        """

        @retry(
            stop=stop_after_attempt(self.max_retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=self.retry_min_wait,
                max=self.retry_max_wait,
            ),
            retry=retry_if_exception_type(StoreUnavailableError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> T:
            return func(*args, **kwargs)

        return _inner()


class _TimedLock:
    """Context manager acquiring a lock with a timeout or raising CacheLockError."""

    def __init__(self, lock: threading.Lock, timeout: float, asset_id: int | None):
        self._lock = lock
        self._timeout = timeout
        self._asset_id = asset_id

    def __enter__(self) -> None:
        if not self._lock.acquire(timeout=self._timeout):
            logger.error(
                f"Valuation cache lock not acquired within {self._timeout}s"
                + (f" for asset {self._asset_id}" if self._asset_id is not None else "")
            )
            raise CacheLockError(self._timeout, self._asset_id)

    def __exit__(self, *exc_info: Any) -> None:
        self._lock.release()
