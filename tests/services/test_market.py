# tests/services/test_market.py
"""
Tests for the Market valuation cache.

Test Coverage:
- Point-in-time price lookup (at or before semantics)
- Range priming: amortized store access, monotonic span growth
- Correctness independent of population order, equal to uncached lookups
- FX rates: identity, symmetry, currency mismatch, missing rates
- Currency metadata cache
- Concurrency: parallel readers, lock timeout
- Store retries
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from portfolio_engine.ledger import Currency
from portfolio_engine.services.exceptions import (
    CacheLockError,
    FXConversionError,
    FXRateNotFoundError,
    QuoteNotFoundError,
    StoreUnavailableError,
)
from portfolio_engine.services.market import CachePolicy, Market
from portfolio_engine.services.stores import InMemoryStore
from tests.conftest import at


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# =============================================================================
# PRICES
# =============================================================================

class TestPriceAt:
    """Tests for Market.price_at()."""

    def test_latest_quote_at_or_before(self, market, acme_id):
        assert market.price_at(acme_id, "EUR", utc(2024, 1, 5, 20)) == Decimal("100.4")
        assert market.price_at(acme_id, "EUR", utc(2024, 1, 5, 16)) == Decimal("100.4")
        assert market.price_at(acme_id, "EUR", utc(2024, 1, 5, 10)) == Decimal("100.3")

    def test_after_last_quote_uses_last(self, market, acme_id):
        assert market.price_at(acme_id, "EUR", utc(2025, 3, 1)) == Decimal("136.5")

    def test_before_first_quote_raises(self, market, acme_id):
        with pytest.raises(QuoteNotFoundError) as exc_info:
            market.price_at(acme_id, "EUR", utc(2023, 12, 31, 20))

        assert exc_info.value.asset_id == acme_id

    def test_naive_time_is_utc(self, market, acme_id):
        assert market.price_at(acme_id, "EUR", datetime(2024, 1, 5, 10)) == Decimal("100.3")

    def test_converts_native_currency(self, store, market):
        """A USD-quoted asset priced in EUR goes through the USD/EUR rate."""
        asset_id = store.add_asset("Globex")
        store.insert_quote(asset_id, "100", "USD", utc(2024, 1, 2, 16))
        store.insert_fx_quote("0.9", "USD", "EUR", utc(2024, 1, 2, 12))

        assert market.price_at(asset_id, "EUR", utc(2024, 1, 2, 20)) == Decimal("90.0")
        assert market.price_at(asset_id, "USD", utc(2024, 1, 2, 20)) == Decimal("100")

    def test_missing_fx_for_native_currency(self, store, market):
        asset_id = store.add_asset("Initech")
        store.insert_quote(asset_id, "100", "GBP", utc(2024, 1, 2, 16))

        with pytest.raises(FXRateNotFoundError):
            market.price_at(asset_id, "EUR", utc(2024, 1, 2, 20))


class TestCacheCorrectness:
    """Cached answers equal uncached answers regardless of request order."""

    TIMES = [
        utc(2024, 6, 15, 20),
        utc(2024, 1, 1, 15),
        utc(2024, 12, 31, 23),
        utc(2024, 3, 3, 16),
        utc(2023, 6, 1, 0),
        utc(2024, 9, 9, 9),
        utc(2024, 1, 1, 16),
        utc(2025, 6, 1, 0),
        utc(2024, 6, 14, 12),
    ]

    @pytest.mark.parametrize("order", [
        list(range(len(TIMES))),
        list(reversed(range(len(TIMES)))),
        [4, 7, 0, 1, 8, 2, 3, 6, 5],
    ])
    def test_matches_uncached(self, store, acme_id, uncached_market, order):
        market = Market(store, store, prime_span=timedelta(days=10))

        for i in order:
            time = self.TIMES[i]
            try:
                expected = uncached_market.price_at(acme_id, "EUR", time)
            except QuoteNotFoundError:
                with pytest.raises(QuoteNotFoundError):
                    market.price_at(acme_id, "EUR", time)
                continue
            assert market.price_at(acme_id, "EUR", time) == expected

    def test_anchor_quote_before_span(self, store, market):
        """A sparse series is priced from the last quote before the cached span."""
        asset_id = store.add_asset("Sparse")
        store.insert_quote(asset_id, "5", "EUR", utc(2020, 1, 1))

        assert market.price_at(asset_id, "EUR", utc(2024, 1, 1)) == Decimal("5")
        assert market.cached_span(asset_id)[0] > utc(2020, 1, 1)


class TestRangePriming:
    """Tests for amortized store access and span growth."""

    def test_one_range_fetch_per_span(self, store, acme_id):
        spy = MagicMock(wraps=store)
        market = Market(spy, store, prime_span=timedelta(days=30))

        for day in range(1, 20):
            market.price_at(acme_id, "EUR", utc(2024, 2, day, 20))

        assert spy.quotes_in_range.call_count == 1
        assert spy.last_quote_at_or_before.call_count == 1
        stats = market.cache_stats()
        assert stats.primes == 1
        assert stats.hits == 18

    def test_span_grows_monotonically(self, store, acme_id):
        spy = MagicMock(wraps=store)
        span = timedelta(days=30)
        market = Market(spy, store, prime_span=span)
        t0 = utc(2024, 6, 1)

        market.price_at(acme_id, "EUR", t0)
        assert market.cached_span(acme_id) == (t0 - span, t0 + span)

        later = utc(2024, 9, 1)
        market.price_at(acme_id, "EUR", later)
        assert market.cached_span(acme_id) == (t0 - span, later + span)

        earlier = utc(2024, 2, 1)
        market.price_at(acme_id, "EUR", earlier)
        assert market.cached_span(acme_id) == (earlier - span, later + span)

        # Everything in between is now served from the cache
        calls = spy.quotes_in_range.call_count
        market.price_at(acme_id, "EUR", utc(2024, 4, 1))
        assert spy.quotes_in_range.call_count == calls == 3

    def test_uncached_hits_store_every_time(self, store, acme_id):
        spy = MagicMock(wraps=store)
        market = Market(spy, store, cache_policy=CachePolicy.UNCACHED)

        for day in range(1, 6):
            market.price_at(acme_id, "EUR", utc(2024, 2, day, 20))

        assert spy.last_quote_at_or_before.call_count == 5
        spy.quotes_in_range.assert_not_called()
        assert market.cached_span(acme_id) is None

    def test_set_cache_policy_drops_series(self, market, acme_id):
        market.price_at(acme_id, "EUR", utc(2024, 2, 1))
        assert market.cached_span(acme_id) is not None

        market.set_cache_policy("uncached")

        assert market.cache_policy == CachePolicy.UNCACHED
        assert market.cached_span(acme_id) is None

    def test_clear_cache(self, market, acme_id):
        market.price_at(acme_id, "EUR", utc(2024, 2, 1))

        market.clear_cache()

        assert market.cached_span(acme_id) is None
        assert market.price_at(acme_id, "EUR", utc(2024, 2, 1)) == Decimal("103.0")


# =============================================================================
# FX RATES
# =============================================================================

class TestFXRate:
    """Tests for Market.fx_rate()."""

    def test_same_currency_is_one(self, market):
        assert market.fx_rate("EUR", Currency.from_code("eur"), utc(2024, 1, 1)) == Decimal("1")

    def test_rate_and_inverse(self, store, market):
        store.insert_fx_quote("0.9", "USD", "EUR", utc(2024, 1, 2, 12))

        t = utc(2024, 1, 3)
        forward = market.fx_rate("USD", "EUR", t)
        backward = market.fx_rate("EUR", "USD", t)

        assert forward == Decimal("0.9")
        assert abs(forward * backward - 1) < Decimal("1e-20")

    def test_no_rate_before_first_quote(self, store, market):
        store.insert_fx_quote("0.9", "USD", "EUR", utc(2024, 1, 2, 12))

        with pytest.raises(FXRateNotFoundError) as exc_info:
            market.fx_rate("USD", "EUR", utc(2024, 1, 1))

        assert exc_info.value.base_currency == "USD"
        assert exc_info.value.quote_currency == "EUR"

    def test_latest_rate_in_other_currency(self, store, market):
        """Only the latest quote counts; quoted in GBP it cannot give EUR/USD."""
        store.insert_fx_quote("0.9", "USD", "EUR", utc(2024, 1, 2))
        store.insert_fx_quote("1.15", "GBP", "EUR", utc(2024, 1, 3))

        with pytest.raises(FXConversionError):
            market.fx_rate("EUR", "USD", utc(2024, 1, 4))

    def test_currency_without_id(self, store):
        market = Market(store)

        with pytest.raises(FXConversionError):
            market.fx_rate("USD", "EUR", utc(2024, 1, 4))


class TestCurrencyCache:
    """Tests for currency metadata caching."""

    def test_loads_all_currencies_once(self, store):
        currency_store = MagicMock(wraps=store)
        market = Market(store, currency_store)

        eur = market.get_currency("EUR")
        market.get_currency("usd")
        market.get_currency(Currency.from_code("EUR"))

        assert eur.id is not None
        currency_store.all_currencies.assert_called_once()
        currency_store.get_or_create_currency.assert_not_called()

    def test_unseen_code_is_created(self, store):
        currency_store = MagicMock(wraps=store)
        market = Market(store, currency_store)

        chf = market.get_currency("CHF")

        assert chf.id is not None
        assert market.currency_by_id(chf.id) == chf
        currency_store.get_or_create_currency.assert_called_once_with("CHF")

    def test_without_store_uses_defaults(self, store):
        market = Market(store)

        jpy = market.get_currency("JPY")

        assert jpy.id is None
        assert jpy.rounding_digits == 0


# =============================================================================
# CONCURRENCY
# =============================================================================

class BlockingStore(InMemoryStore):
    """Store whose range fetch for one asset blocks until released."""

    def __init__(self, blocked_asset: int | None = None):
        super().__init__()
        self.blocked_asset = blocked_asset
        self.entered = threading.Event()
        self.release = threading.Event()

    def quotes_in_range(self, asset_id, start, end):
        if asset_id == self.blocked_asset:
            self.entered.set()
            self.release.wait(5)
        return super().quotes_in_range(asset_id, start, end)


class TestConcurrency:
    """Tests for parallel access to one Market."""

    def test_parallel_readers_see_consistent_prices(self, store, acme_id, uncached_market):
        spy = MagicMock(wraps=store)
        market = Market(spy, store, prime_span=timedelta(days=30))
        times = [utc(2024, 5, day, 20) for day in range(1, 11)]
        expected = [uncached_market.price_at(acme_id, "EUR", t) for t in times]

        def worker(_):
            return [market.price_at(acme_id, "EUR", t) for t in times]

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(worker, range(16)))

        assert all(result == expected for result in results)
        assert spy.quotes_in_range.call_count == 1

    def test_lock_timeout_raises_cache_failure(self):
        store = BlockingStore()
        blocked = store.add_asset("Slow")
        other = store.add_asset("Other")
        store.blocked_asset = blocked
        for asset_id in (blocked, other):
            store.insert_quote(asset_id, "1", "EUR", utc(2024, 1, 1))
        market = Market(store, store, lock_timeout=0.05)

        thread = threading.Thread(target=market.price_at, args=(blocked, "EUR", utc(2024, 1, 2)))
        market.get_currency("EUR")
        thread.start()
        try:
            assert store.entered.wait(5)
            with pytest.raises(CacheLockError) as exc_info:
                market.price_at(other, "EUR", utc(2024, 1, 2))
            assert exc_info.value.asset_id == other
        finally:
            store.release.set()
            thread.join(5)

        # Once the population finished, both assets are served
        assert market.price_at(other, "EUR", utc(2024, 1, 2)) == Decimal("1")


# =============================================================================
# RETRIES
# =============================================================================

class FlakyStore(InMemoryStore):
    """Store whose point lookups fail a number of times first."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.calls = 0

    def last_quote_at_or_before(self, asset_id, time):
        self.calls += 1
        if self.calls <= self.failures:
            raise StoreUnavailableError("flaky", "connection reset")
        return super().last_quote_at_or_before(asset_id, time)


class TestStoreRetry:
    """Tests for retrying transient store failures."""

    def _market(self, store: InMemoryStore) -> Market:
        market = Market(store, store, cache_policy=CachePolicy.UNCACHED)
        market.retry_min_wait = 0
        market.retry_max_wait = 0
        market.max_retry_attempts = 3
        return market

    def test_recovers_after_transient_failures(self):
        store = FlakyStore(failures=2)
        asset_id = store.add_asset("ACME")
        store.insert_quote(asset_id, "7", "EUR", at(date(2024, 1, 1)))

        price = self._market(store).price_at(asset_id, "EUR", utc(2024, 1, 2))

        assert price == Decimal("7")
        assert store.calls == 3

    def test_gives_up_after_max_attempts(self):
        store = FlakyStore(failures=10)
        asset_id = store.add_asset("ACME")

        with pytest.raises(StoreUnavailableError):
            self._market(store).price_at(asset_id, "EUR", utc(2024, 1, 2))

        assert store.calls == 3

    def test_not_found_is_not_retried(self):
        store = FlakyStore(failures=0)
        asset_id = store.add_asset("ACME")

        with pytest.raises(QuoteNotFoundError):
            self._market(store).price_at(asset_id, "EUR", utc(2024, 1, 2))

        assert store.calls == 1
