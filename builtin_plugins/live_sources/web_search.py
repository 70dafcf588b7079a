"""
Web search live source plugin.

Queries every configured search backend (SearXNG, Tavily, Jina) at once
and normalizes the results into ResultItems.

If no backend is configured, or the backends answered but found nothing, a
deterministic set of synthetic placeholder items is returned instead. They
point at public search pages for the query, are flagged synthetic and never
outrank genuine results. If every backend failed the fetch is reported as a
failure.
"""

import asyncio
import logging
from typing import Optional
from urllib.parse import quote_plus, urlsplit

from augmentation.query_intent import search_category_for
from augmentation.search import get_configured_search_providers
from augmentation.search.base import SearchProvider, SearchResult
from live.errors import ProviderError
from live.fetcher import HttpFetcher
from plugin_base.common import (
    Domain,
    EnrichmentContext,
    ErrorKind,
    Query,
    ResultItem,
)
from plugin_base.live_source import (
    LiveDataResult,
    ParamDefinition,
    PluginLiveSource,
)

logger = logging.getLogger(__name__)

# Public search pages used for synthetic placeholders
SYNTHETIC_ENGINES = (
    ("DuckDuckGo", "https://duckduckgo.com/?q={q}"),
    ("Bing", "https://www.bing.com/search?q={q}"),
    ("Google", "https://www.google.com/search?q={q}"),
)


class WebSearchLiveSource(PluginLiveSource):
    """
    Generic web search across the configured backends.
    """

    source_type = "web_search"
    display_name = "Web Search"
    description = "Web search via SearXNG, Tavily or Jina"
    domain = Domain.GENERIC_SEARCH
    best_for = "Prices (gold, silver, currency), markets, weather, scores and anything time sensitive"
    default_cache_ttl = 1800  # 30 minutes

    _abstract = False

    @classmethod
    def get_param_definitions(cls) -> list[ParamDefinition]:
        return [
            ParamDefinition(
                name="category",
                description="Search category",
                param_type="string",
                required=False,
                default="general",
                examples=["general", "news"],
            ),
            ParamDefinition(
                name="time_range",
                description="Recency filter",
                param_type="string",
                required=False,
                examples=["day", "week", "month", "year"],
            ),
            ParamDefinition(
                name="max_results",
                description="Results per backend",
                param_type="integer",
                required=False,
                default=6,
            ),
        ]

    def __init__(
        self,
        config: dict,
        fetcher: HttpFetcher,
        backends: Optional[list[SearchProvider]] = None,
    ):
        self.fetcher = fetcher
        self.max_results = int(config.get("max_results", 6))
        if backends is None:
            backends = get_configured_search_providers(
                names=config.get("backends") or None,
                fetcher=fetcher,
                url_overrides={"searxng": config.get("searxng_url")},
                api_keys={
                    "jina-api": config.get("jina_api_key"),
                    "tavily": config.get("tavily_api_key"),
                },
            )
        self.backends = backends

    async def fetch(
        self,
        query: Query,
        params: Optional[dict] = None,
        context: Optional[EnrichmentContext] = None,
    ) -> LiveDataResult:
        params = params or {}
        category = params.get("category") or search_category_for(Domain.GENERIC_SEARCH)
        time_range = params.get("time_range")
        max_results = int(params.get("max_results") or self.max_results)
        text = query.raw_text.strip()

        if not self.backends:
            logger.warning("No search backend configured, returning placeholders")
            return self._synthetic(query)

        try:
            outcomes = await asyncio.gather(
                *(
                    self._search_one(backend, text, max_results, time_range, category)
                    for backend in self.backends
                )
            )
        except Exception as e:
            logger.exception(f"Web search failed: {e}")
            return LiveDataResult.failure(self.source_type, ErrorKind.UNKNOWN, str(e))

        items: list[ResultItem] = []
        seen = set()
        errors = []
        for results, error_kind in outcomes:
            if error_kind:
                errors.append(error_kind)
            for result in results:
                item = self._to_item(result, category)
                if item.id not in seen:
                    seen.add(item.id)
                    items.append(item)

        if items:
            return LiveDataResult(
                success=True,
                items=items,
                source_type=self.source_type,
                cache_ttl=self.default_cache_ttl,
            )

        if len(errors) == len(self.backends):
            logger.error(f"All {len(errors)} search backends failed for: {text}")
            return LiveDataResult.failure(
                self.source_type, errors[0], "All search backends failed"
            )

        logger.info(f"Search backends found nothing for: {text}")
        return self._synthetic(query)

    async def _search_one(
        self,
        backend: SearchProvider,
        text: str,
        max_results: int,
        time_range: Optional[str],
        category: str,
    ) -> tuple[list[SearchResult], Optional[ErrorKind]]:
        try:
            results = await backend.search(
                text, max_results=max_results, time_range=time_range, category=category
            )
            return results, None
        except ProviderError as e:
            logger.warning(f"Search backend {backend.name} failed ({e.kind.value}): {e}")
            return [], e.kind
        except Exception as e:
            logger.exception(f"Search backend {backend.name} raised: {e}")
            return [], ErrorKind.UNKNOWN

    @staticmethod
    def _to_item(result: SearchResult, category: str) -> ResultItem:
        host = (urlsplit(result.url).hostname or "").removeprefix("www.")
        return ResultItem(
            title=result.title,
            body=result.snippet,
            summary=result.snippet[:300],
            source_url=result.url,
            source_name=host or result.engine,
            published_at=result.published_at,
            category=category if category != "general" else "",
            domain_tags={"search", category},
            metadata={"engine": result.engine},
        )

    def _synthetic(self, query: Query) -> LiveDataResult:
        text = query.raw_text.strip()
        items = [
            ResultItem(
                title=f"{engine} search: {text}",
                body=(
                    f"No live search results were available. Search {engine} "
                    f"for '{text}' to find current information."
                ),
                source_url=template.format(q=quote_plus(text)),
                source_name="synthetic",
                domain_tags={"synthetic"},
                synthetic=True,
            )
            for engine, template in SYNTHETIC_ENGINES
        ]
        return LiveDataResult(
            success=True,
            items=items,
            source_type=self.source_type,
            cache_ttl=self.default_cache_ttl,
        )
