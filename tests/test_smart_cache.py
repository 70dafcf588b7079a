"""
Unit tests for routing/smart_cache.py

Tests cover:
- Key derivation
- TTL expiry, LRU eviction and purge
- Adaptive TTL shortening
- Stats and thread safety
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from plugin_base.common import Domain, EnrichmentPayload, QualityLevel, Query, ResultItem
from routing.smart_cache import DEFAULT_TTLS, SmartCache

START = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_payload(text: str = "gold price", domain: Domain = Domain.GENERIC_SEARCH):
    return EnrichmentPayload(
        query=Query.from_text(text),
        domain=domain,
        items=(),
        generated_at=START,
        quality_level=QualityLevel.NONE,
    )


def news_item(n: int, age_hours: float, breaking: bool = False) -> ResultItem:
    return ResultItem(
        title=f"Story {n}",
        source_url=f"https://example.com/news/{n}",
        published_at=START - timedelta(hours=age_hours),
        domain_tags={"news", "breaking"} if breaking else {"news"},
    )


# =============================================================================
# Keys
# =============================================================================


class TestMakeKey:
    """Tests for SmartCache.make_key()."""

    def test_stable(self):
        assert SmartCache.make_key("gold price", Domain.GENERIC_SEARCH) == SmartCache.make_key(
            "gold price", Domain.GENERIC_SEARCH
        )

    def test_domain_and_scope_separate_entries(self):
        base = SmartCache.make_key("fajr time", Domain.LOCATION_TIME)
        assert base != SmartCache.make_key("fajr time", Domain.GENERIC_SEARCH)
        assert base != SmartCache.make_key("fajr time", Domain.LOCATION_TIME, "city:london")

    def test_no_field_collisions(self):
        assert SmartCache.make_key("a", Domain.NONE, "b c") != SmartCache.make_key(
            "a b", Domain.NONE, "c"
        )


# =============================================================================
# Get / put
# =============================================================================


class TestGetPut:
    """Tests for get(), put(), expiry and eviction."""

    def test_miss_then_hit(self):
        cache = SmartCache(clock=FakeClock())
        assert cache.get("k") is None
        payload = make_payload()
        cache.put("k", payload, ttl=60)
        entry = cache.get("k")
        assert entry.payload is payload
        assert entry.domain == Domain.GENERIC_SEARCH
        assert entry.ttl_seconds == 60

    def test_expiry(self):
        clock = FakeClock()
        cache = SmartCache(clock=clock)
        cache.put("k", make_payload(), ttl=60)
        clock.advance(59)
        assert cache.get("k") is not None
        clock.advance(1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_lru_eviction(self):
        cache = SmartCache(capacity=2, clock=FakeClock())
        cache.put("a", make_payload("a"), ttl=60)
        cache.put("b", make_payload("b"), ttl=60)
        cache.get("a")  # "b" is now least recently used
        cache.put("c", make_payload("c"), ttl=60)
        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert cache.get("c") is not None
        assert cache.get_stats()["evictions"] == 1

    def test_put_replaces(self):
        cache = SmartCache(clock=FakeClock())
        cache.put("k", make_payload("old"), ttl=60)
        cache.put("k", make_payload("new"), ttl=60)
        assert len(cache) == 1
        assert cache.get("k").payload.query.raw_text == "new"

    def test_invalid_ttl_and_capacity(self):
        with pytest.raises(ValueError):
            SmartCache(capacity=0)
        with pytest.raises(ValueError):
            SmartCache(clock=FakeClock()).put("k", make_payload(), ttl=0)

    def test_purge_expired(self):
        clock = FakeClock()
        cache = SmartCache(clock=clock)
        cache.put("short", make_payload(), ttl=10)
        cache.put("long", make_payload(), ttl=1000)
        clock.advance(11)
        assert cache.purge_expired() == 1
        assert len(cache) == 1

    def test_clear_and_stats(self):
        cache = SmartCache(clock=FakeClock())
        cache.put("a", make_payload(), ttl=60, domain=Domain.NONE)
        cache.get("a")
        cache.get("missing")
        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["entries"] == 1
        assert stats["entries_by_domain"] == {"none": 1}
        assert cache.clear() == 1
        assert cache.get_stats()["entries"] == 0

    def test_concurrent_puts(self):
        cache = SmartCache(capacity=50, clock=FakeClock())

        def writer(offset):
            for n in range(100):
                cache.put(f"{offset}-{n}", make_payload(), ttl=60)

        threads = [threading.Thread(target=writer, args=(t,)) for t in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(cache) == 50


# =============================================================================
# TTL policy
# =============================================================================


class TestComputeTtl:
    """Tests for compute_ttl()."""

    def test_base_ttls(self):
        cache = SmartCache(clock=FakeClock())
        assert cache.compute_ttl(Domain.LOCATION_TIME, []) == 21600
        assert cache.compute_ttl(Domain.CRAWLED_NEWS, []) == 900
        assert cache.compute_ttl(Domain.GENERIC_SEARCH, []) == 1800
        assert cache.base_ttl(Domain.NONE) == DEFAULT_TTLS[Domain.NONE] == 300

    def test_fresh_items_halve_ttl(self):
        cache = SmartCache(clock=FakeClock())
        items = [news_item(1, 0.5), news_item(2, 1.5), news_item(3, 30)]
        assert cache.compute_ttl(Domain.CRAWLED_NEWS, items) == 450

    def test_mostly_old_items_keep_base(self):
        cache = SmartCache(clock=FakeClock())
        items = [news_item(1, 0.5), news_item(2, 10), news_item(3, 30)]
        assert cache.compute_ttl(Domain.CRAWLED_NEWS, items) == 900

    def test_breaking_caps_ttl(self):
        cache = SmartCache(clock=FakeClock())
        items = [news_item(1, 20, breaking=True)]
        assert cache.compute_ttl(Domain.GENERIC_SEARCH, items) == 300

    def test_provider_ttl_only_shortens(self):
        cache = SmartCache(clock=FakeClock())
        assert cache.compute_ttl(Domain.LOCATION_TIME, [], provider_ttl=1200) == 1200
        assert cache.compute_ttl(Domain.CRAWLED_NEWS, [], provider_ttl=99999) == 900

    def test_never_lengthened(self):
        cache = SmartCache(clock=FakeClock())
        for items in ([], [news_item(1, 0.1)], [news_item(1, 100)]):
            for domain in DEFAULT_TTLS:
                assert cache.compute_ttl(domain, items) <= cache.base_ttl(domain)

    def test_from_config(self):
        cache = SmartCache.from_config(
            {"capacity": 10, "ttl_seconds": {"crawled_news": 600, "bogus": 1}}
        )
        assert cache.capacity == 10
        assert cache.base_ttl(Domain.CRAWLED_NEWS) == 600
        assert cache.base_ttl(Domain.GENERIC_SEARCH) == 1800
