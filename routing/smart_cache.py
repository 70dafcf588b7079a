"""
Smart Cache for enrichment payloads.

In-process LRU cache with per-entry TTL. Keys are derived from the
normalized query text, the routed domain and an optional scope (used for
location-dependent answers), so textual variants of the same question
share an entry.

TTLs start from a per-domain base and can only be shortened:

- half the base when most items are fresh (published in the last 2 hours)
- at most 5 minutes when any item is tagged "breaking"
- never longer than the TTL the provider asked for

A single lock guards every read and write.
"""

import hashlib
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from plugin_base.common import Domain, EnrichmentPayload, ResultItem

logger = logging.getLogger(__name__)

DEFAULT_TTLS = {
    Domain.LOCATION_TIME: 21600,  # 6 hours
    Domain.CRAWLED_NEWS: 900,  # 15 minutes
    Domain.GENERIC_SEARCH: 1800,  # 30 minutes
    Domain.NONE: 300,  # negative entries
}

KEY_SEPARATOR = "\x1f"


@dataclass
class CacheEntry:
    """A cached payload and its expiry."""

    key: str
    payload: EnrichmentPayload
    domain: Domain
    created_at: datetime
    expires_at: datetime
    hits: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    @property
    def ttl_seconds(self) -> int:
        return int((self.expires_at - self.created_at).total_seconds())


class SmartCache:
    """
    Bounded LRU cache of EnrichmentPayloads with TTL.

    Expired entries are removed when they are looked up and by
    purge_expired(). When the cache is full the least recently used entry is
    evicted.
    """

    def __init__(
        self,
        capacity: int = 512,
        ttls: Optional[dict] = None,
        fresh_window_hours: float = 2.0,
        fresh_fraction: float = 0.5,
        breaking_ttl_cap: int = 300,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if capacity < 1:
            raise ValueError("Cache capacity must be at least 1")
        self.capacity = capacity
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self.fresh_window = timedelta(hours=fresh_window_hours)
        self.fresh_fraction = fresh_fraction
        self.breaking_ttl_cap = breaking_ttl_cap
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @classmethod
    def from_config(
        cls, config: Optional[dict], clock: Optional[Callable[[], datetime]] = None
    ) -> "SmartCache":
        """Build a cache from the "cache" section of the tuning config."""
        config = config or {}
        ttls = {}
        for name, seconds in (config.get("ttl_seconds") or {}).items():
            try:
                ttls[Domain(name)] = int(seconds)
            except ValueError:
                logger.warning(f"Ignoring cache TTL for unknown domain {name!r}")
        return cls(
            capacity=int(config.get("capacity", 512)),
            ttls=ttls,
            fresh_window_hours=float(config.get("fresh_window_hours", 2)),
            fresh_fraction=float(config.get("fresh_fraction", 0.5)),
            breaking_ttl_cap=int(config.get("breaking_ttl_cap", 300)),
            clock=clock,
        )

    @staticmethod
    def make_key(normalized_text: str, domain: Domain, scope: str = "") -> str:
        """Stable cache key for a normalized query within a domain."""
        material = KEY_SEPARATOR.join([domain.value, normalized_text, scope])
        return hashlib.sha256(material.encode("utf-8")).hexdigest()

    def base_ttl(self, domain: Domain) -> int:
        return self.ttls.get(domain, self.ttls[Domain.NONE])

    def compute_ttl(
        self,
        domain: Domain,
        items: list[ResultItem],
        now: Optional[datetime] = None,
        provider_ttl: Optional[int] = None,
    ) -> int:
        """
        TTL in seconds for a payload of the given items.

        Args:
            domain: Domain the payload was routed to
            items: Items in the payload
            now: Reference time for freshness
            provider_ttl: Shortest TTL requested by the providers, if any

        Returns:
            The domain's base TTL, shortened by item freshness, breaking news
            and provider_ttl. Never longer than the base.
        """
        now = now or self._clock()
        ttl = self.base_ttl(domain)

        if items:
            dated = [item.published_at for item in items if item.published_at]
            fresh = 0
            for published in dated:
                if published.tzinfo is None:
                    published = published.replace(tzinfo=timezone.utc)
                if now - published <= self.fresh_window:
                    fresh += 1
            if fresh and fresh / len(items) >= self.fresh_fraction:
                ttl = ttl // 2
            if any("breaking" in item.domain_tags for item in items):
                ttl = min(ttl, self.breaking_ttl_cap)

        if provider_ttl is not None and provider_ttl > 0:
            ttl = min(ttl, int(provider_ttl))

        return max(1, ttl)

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for key, or None. Expired entries are dropped."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.is_expired(now):
                del self._entries[key]
                self.evictions += 1
                self.misses += 1
                logger.debug(f"Cache entry {key[:12]} expired")
                return None
            self._entries.move_to_end(key)
            entry.hits += 1
            self.hits += 1
            return entry

    def put(
        self,
        key: str,
        payload: EnrichmentPayload,
        ttl: int,
        domain: Optional[Domain] = None,
    ) -> CacheEntry:
        """Store a payload for ttl seconds, evicting the LRU entry when full."""
        if ttl <= 0:
            raise ValueError("TTL must be positive")
        now = self._clock()
        entry = CacheEntry(
            key=key,
            payload=payload,
            domain=domain or payload.domain,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            self._entries[key] = entry
            while len(self._entries) > self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                self.evictions += 1
                logger.debug(f"Cache full, evicted {evicted[:12]}")
        return entry

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self.evictions += len(expired)
        if expired:
            logger.info(f"Purged {len(expired)} expired cache entries")
        return len(expired)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cleared {count} cache entries")
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> dict:
        with self._lock:
            by_domain: dict[str, int] = {}
            for entry in self._entries.values():
                by_domain[entry.domain.value] = by_domain.get(entry.domain.value, 0) + 1
            return {
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "entries": len(self._entries),
                "capacity": self.capacity,
                "entries_by_domain": by_domain,
            }
