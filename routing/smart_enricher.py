"""
Smart Enricher Engine for live context enrichment.

Decides whether a query needs fresh external data and, if so, fetches it
from the live sources for the query's domain, ranks and de-duplicates the
results, caches them and composes an EnrichmentPayload.

The engine never raises to its caller: provider failures degrade to partial
results, cache failures degrade to misses, and a total failure yields a
payload with quality NONE and a no-data marker.
"""

import asyncio
import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from augmentation.composer import ComposerConfig, compose, format_payload
from augmentation.query_intent import classify
from augmentation.ranker import RankingConfig, rank
from config.settings import EnricherSettings, load_settings
from live.errors import AllProvidersFailed
from live.fetcher import HttpFetcher
from live.geolocation import find_city_in_text
from live.limiter import ConcurrencyLimiter
from plugin_base.common import (
    Domain,
    EnrichmentContext,
    EnrichmentPayload,
    ErrorKind,
    Query,
    QualityLevel,
    Verdict,
)
from plugin_base.live_source import LiveDataResult, PluginLiveSource
from plugin_base.loader import PluginRegistry, register_builtin_plugins

from .smart_cache import CacheEntry, SmartCache

logger = logging.getLogger(__name__)

# Sources queried per domain, with the fixed params each one gets
DOMAIN_PLAN: dict[Domain, list[tuple[str, dict]]] = {
    Domain.LOCATION_TIME: [("location_time", {})],
    Domain.CRAWLED_NEWS: [("crawled_news", {}), ("web_search", {"category": "news"})],
    Domain.GENERIC_SEARCH: [("web_search", {})],
}


class EnrichmentEngine:
    """
    Orchestrates classifier, live sources, ranker, cache and composer.

    One engine owns one cache, one limiter and one fetcher. It is safe to
    share between threads; each enrich() call runs on the caller's event
    loop (or a fresh one via enrich_sync()).
    """

    def __init__(
        self,
        settings: Optional[EnricherSettings] = None,
        *,
        fetcher: Optional[HttpFetcher] = None,
        limiter: Optional[ConcurrencyLimiter] = None,
        cache: Optional[SmartCache] = None,
        registry: Optional[PluginRegistry] = None,
        sources: Optional[dict[str, PluginLiveSource]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the engine.

        Args:
            settings: Runtime settings; loaded from the environment if omitted
            fetcher: Shared HTTP fetcher; built from settings if omitted
            limiter: Shared concurrency limiter; built from settings if omitted
            cache: Payload cache; built from the "cache" config section if omitted
            registry: Live source registry; the builtin plugins are used if omitted
            sources: Ready-made source instances keyed by source_type. Skips
                building sources from the registry entirely.
            clock: Returns the current UTC time
        """
        self.settings = settings or load_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.limiter = limiter or (
            fetcher.limiter if fetcher else ConcurrencyLimiter(self.settings.max_concurrency)
        )
        self.fetcher = fetcher or HttpFetcher(
            limiter=self.limiter,
            timeout=self.settings.request_timeout,
            max_attempts=self.settings.retry_attempts,
            backoff_base=self.settings.backoff_base,
        )
        self.cache = cache or SmartCache.from_config(
            self.settings.section("cache"), clock=self._clock
        )
        self.ranking_config = RankingConfig.from_dict(self.settings.ranking)
        self.composer_config = ComposerConfig.from_dict(self.settings.ranking)
        self.registry = registry or register_builtin_plugins()
        self.sources = sources if sources is not None else self._build_sources()

        self._stats_lock = threading.Lock()
        self.enrich_calls = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self.provider_calls = 0
        self.provider_failures = 0

        logger.info(
            f"Enrichment engine ready with sources: {', '.join(self.sources) or 'none'} "
            f"(concurrency={self.limiter.capacity}, deadline={self.settings.overall_deadline}s)"
        )

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def _source_config(self, source_type: str) -> dict:
        s = self.settings
        if source_type == "location_time":
            return {"method": s.aladhan_method, "ip_geolocation": s.enable_ip_geolocation}
        if source_type == "crawled_news":
            return {
                "seed_urls": s.news_seed_urls,
                "max_candidates": s.news_max_candidates,
                "item_timeout": s.request_timeout,
            }
        if source_type == "web_search":
            return {
                "backends": s.search_backends,
                "searxng_url": s.searxng_url,
                "jina_api_key": s.jina_api_key,
                "tavily_api_key": s.tavily_api_key,
            }
        return {}

    def _is_enabled(self, source_type: str) -> bool:
        flag = f"enable_{source_type}"
        return getattr(self.settings, flag, True)

    def _build_sources(self) -> dict[str, PluginLiveSource]:
        sources = {}
        for source_type, plugin_class in self.registry.get_all().items():
            if not self._is_enabled(source_type):
                logger.info(f"Live source {source_type} disabled by settings")
                continue
            kwargs = {}
            if source_type == "location_time":
                kwargs["clock"] = self._clock
            try:
                source = plugin_class(self._source_config(source_type), self.fetcher, **kwargs)
            except Exception as e:
                logger.error(f"Failed to create live source {source_type}: {e}")
                continue
            if not source.is_available():
                logger.warning(f"Live source {source_type} is not available")
                continue
            sources[source_type] = source
        return sources

    # -------------------------------------------------------------------------
    # Enrichment
    # -------------------------------------------------------------------------

    def enrich_sync(
        self,
        query: Union[str, Query],
        context: Union[EnrichmentContext, dict, None] = None,
    ) -> EnrichmentPayload:
        """Run enrich() to completion from synchronous code (no running loop)."""
        return asyncio.run(self.enrich(query, context))

    async def enrich(
        self,
        query: Union[str, Query],
        context: Union[EnrichmentContext, dict, None] = None,
    ) -> EnrichmentPayload:
        """
        Enrich a query with live external data.

        Args:
            query: Raw query text or a Query
            context: Caller hints (history tail, locale, location, client IP)

        Returns:
            EnrichmentPayload; never raises for provider or cache failures
        """
        self._bump("enrich_calls")
        if not isinstance(context, EnrichmentContext):
            context = EnrichmentContext.from_dict(context)
        if isinstance(query, str):
            query = Query.from_text(
                query, locale=context.locale_hint, session_id=context.session_id
            )

        now = self._clock()
        verdict = classify(
            query, context, config=self.settings.section("classifier"), today=now.date()
        )

        if not verdict.needs_external_data:
            return self._negative(query, verdict, now)

        key = SmartCache.make_key(
            query.normalized_text, verdict.domain, self._cache_scope(verdict, query, context)
        )
        entry = self._cache_get(key)
        if entry:
            logger.info(
                f"Cache hit for {query.raw_text!r} ({verdict.domain.value}, "
                f"{len(entry.payload.items)} items)"
            )
            return replace(entry.payload, query=query, generated_at=now)

        results = await self._fetch_all(verdict, query, context)
        items = [item for result in results if result.success for item in result.items]
        errors = tuple(
            result.error_kind.value
            for result in results
            if not result.success and result.error_kind
        )

        ranked = rank(items, query, now=now, config=self.ranking_config)
        payload = compose(
            verdict,
            ranked,
            query,
            generated_at=now,
            config=self.composer_config,
            errors=errors,
        )

        self._store(key, payload, results, now)

        logger.info(
            f"Enriched {query.raw_text!r}: domain={verdict.domain.value} "
            f"priority={verdict.priority.value} items={len(payload.items)} "
            f"quality={payload.quality_level.value} errors={list(errors)}"
        )
        return payload

    def _negative(self, query: Query, verdict: Verdict, now: datetime) -> EnrichmentPayload:
        key = SmartCache.make_key(query.normalized_text, Domain.NONE)
        entry = self._cache_get(key)
        if entry:
            return replace(entry.payload, query=query, generated_at=now)
        payload = compose(verdict, [], query, generated_at=now, config=self.composer_config)
        self._cache_put(key, payload, self.cache.base_ttl(Domain.NONE), Domain.NONE)
        logger.debug(f"No external data needed for {query.raw_text!r} ({verdict.reason})")
        return payload

    def _store(
        self,
        key: str,
        payload: EnrichmentPayload,
        results: list[LiveDataResult],
        now: datetime,
    ) -> None:
        healthy = [r for r in results if r.success]
        if not healthy:
            reason = AllProvidersFailed(tuple(r.error_kind for r in results if r.error_kind))
            logger.warning(f"{reason} for {payload.query.raw_text!r}, not caching")
            return

        negative_ttl = self.cache.base_ttl(Domain.NONE)
        genuine = [item for item in payload.items if not item.synthetic]
        if not genuine or len(healthy) < len(results):
            # No data, synthetic placeholders or a partial failure
            ttl = negative_ttl
        else:
            provider_ttls = [r.cache_ttl for r in healthy if r.cache_ttl > 0]
            ttl = self.cache.compute_ttl(
                payload.domain,
                list(payload.items),
                now=now,
                provider_ttl=min(provider_ttls) if provider_ttls else None,
            )
        self._cache_put(key, payload, ttl, payload.domain)

    def _cache_scope(
        self, verdict: Verdict, query: Query, context: EnrichmentContext
    ) -> str:
        """Location part of the cache key for location-dependent answers."""
        if verdict.domain != Domain.LOCATION_TIME:
            return ""
        city = find_city_in_text(query.raw_text)
        if city:
            return f"city:{city.city.lower()}"
        location = context.resolved_location
        if location:
            return f"loc:{location.lat:.2f},{location.lng:.2f},{location.timezone}"
        if context.client_ip:
            return f"ip:{context.client_ip}"
        return "default"

    # -------------------------------------------------------------------------
    # Providers
    # -------------------------------------------------------------------------

    def _plan(self, verdict: Verdict) -> list[tuple[PluginLiveSource, dict]]:
        plan = []
        for source_type, fixed_params in DOMAIN_PLAN.get(verdict.domain, []):
            source = self.sources.get(source_type)
            if source is None:
                logger.debug(f"Live source {source_type} not active, skipping")
                continue
            params = dict(fixed_params)
            if verdict.time_range and source_type == "web_search":
                params["time_range"] = verdict.time_range
            plan.append((source, params))
        return plan

    async def _fetch_all(
        self, verdict: Verdict, query: Query, context: EnrichmentContext
    ) -> list[LiveDataResult]:
        plan = self._plan(verdict)
        if not plan:
            logger.warning(f"No live sources available for domain {verdict.domain.value}")
            return [
                LiveDataResult.failure(
                    "none", ErrorKind.UNAVAILABLE, "No live source available"
                )
            ]

        tasks = {
            asyncio.ensure_future(self._call_source(source, query, params, context)): source
            for source, params in plan
        }
        done, pending = await asyncio.wait(
            tasks.keys(), timeout=self.settings.overall_deadline
        )

        results = []
        for task, source in tasks.items():
            if task in done:
                results.append(task.result())
                continue
            task.cancel()
            self._bump("provider_failures")
            logger.warning(
                f"Live source {source.source_type} missed the "
                f"{self.settings.overall_deadline}s deadline, cancelled"
            )
            results.append(
                LiveDataResult.failure(
                    source.source_type, ErrorKind.TIMEOUT, "Overall deadline exceeded"
                )
            )
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return results

    async def _call_source(
        self,
        source: PluginLiveSource,
        query: Query,
        params: dict,
        context: EnrichmentContext,
    ) -> LiveDataResult:
        self._bump("provider_calls")
        timeout = self.settings.provider_timeout
        try:
            result = await asyncio.wait_for(source.fetch(query, params, context), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Live source {source.source_type} timed out after {timeout}s")
            result = LiveDataResult.failure(
                source.source_type, ErrorKind.TIMEOUT, f"Timed out after {timeout}s"
            )
        except Exception as e:
            logger.exception(f"Live source {source.source_type} raised: {e}")
            result = LiveDataResult.failure(source.source_type, ErrorKind.UNKNOWN, str(e))

        if result.success:
            logger.info(
                f"Live source {source.source_type}: {len(result.items)} items"
                + (f", {result.skipped} skipped" if result.skipped else "")
            )
        else:
            self._bump("provider_failures")
            logger.warning(
                f"Live source {source.source_type} failed "
                f"({result.error_kind.value if result.error_kind else 'unknown'}): {result.error}"
            )
        return result

    # -------------------------------------------------------------------------
    # Cache access
    # -------------------------------------------------------------------------

    def _cache_get(self, key: str) -> Optional[CacheEntry]:
        try:
            entry = self.cache.get(key)
        except Exception as e:
            # CacheUnavailable or any other backend error
            logger.warning(f"Cache lookup failed, treating as miss: {e}")
            entry = None
        self._bump("cache_hits" if entry else "cache_misses")
        return entry

    def _cache_put(self, key: str, payload: EnrichmentPayload, ttl: int, domain: Domain) -> None:
        try:
            self.cache.put(key, payload, ttl, domain)
            logger.debug(f"Cached {domain.value} payload for {ttl}s")
        except Exception as e:
            logger.warning(f"Cache store failed, skipping: {e}")

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def _bump(self, counter: str) -> None:
        with self._stats_lock:
            setattr(self, counter, getattr(self, counter) + 1)

    def get_stats(self) -> dict:
        with self._stats_lock:
            stats = {
                "enrich_calls": self.enrich_calls,
                "cache_hits": self.cache_hits,
                "cache_misses": self.cache_misses,
                "provider_calls": self.provider_calls,
                "provider_failures": self.provider_failures,
            }
        stats["limiter"] = {
            "capacity": self.limiter.capacity,
            "in_flight": self.limiter.in_flight,
            "peak_in_flight": self.limiter.peak_in_flight,
        }
        stats["cache"] = self.cache.get_stats()
        return stats

    def list_sources(self) -> list[dict]:
        """Metadata for every registered live source, with its active state."""
        sources = []
        for metadata in self.registry.get_all_metadata():
            metadata["enabled"] = metadata["source_type"] in self.sources
            sources.append(metadata)
        return sources

    def context_text(self, payload: EnrichmentPayload) -> str:
        """Prompt-ready text for a payload, bounded by the composer's max_chars."""
        return format_payload(payload, max_chars=self.composer_config.max_chars)


def is_degraded(payload: EnrichmentPayload) -> bool:
    """True when external data was wanted but none could be retrieved."""
    return (
        payload.verdict is not None
        and payload.verdict.needs_external_data
        and payload.quality_level == QualityLevel.NONE
    )
