"""
Jina Search providers.

Jina Search (s.jina.ai) is a web search API that returns clean, LLM-friendly
results with optional content extraction.

Two variants:
- JinaFreeSearchProvider: Free tier, no API key required (rate limited)
- JinaApiSearchProvider: Paid tier with API key (higher rate limits)

See: https://jina.ai/search/
"""

import logging
import os
from typing import Optional
from urllib.parse import quote

from live.fetcher import HttpFetcher

from .base import SearchProvider, SearchResult

logger = logging.getLogger(__name__)


class JinaSearchProviderBase(SearchProvider):
    """
    Base class for Jina Search providers.

    Uses the s.jina.ai endpoint which returns search results optimized
    for LLM consumption.
    """

    JINA_SEARCH_URL = "https://s.jina.ai/"

    def __init__(
        self,
        url_override: Optional[str] = None,
        fetcher: Optional[HttpFetcher] = None,
        api_key: Optional[str] = None,
    ):
        super().__init__(url_override, fetcher)
        self._api_key = api_key

    async def search(
        self,
        query: str,
        max_results: int = 5,
        time_range: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[SearchResult]:
        """Search using Jina Search API. Jina ignores time_range and category."""
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        # Jina Search uses the query as part of the URL path
        base_url = (self.url_override or self.JINA_SEARCH_URL).rstrip("/") + "/"
        data = self._decode(
            await self.fetcher.get(f"{base_url}{quote(query)}", headers=headers)
        )

        results = []
        for item in (data.get("data") or [])[:max_results]:
            if not item.get("url"):
                continue
            results.append(
                SearchResult(
                    title=item.get("title") or "Untitled",
                    url=item["url"],
                    snippet=(item.get("description") or item.get("content") or "")[
                        :500
                    ],
                    engine=self.name,
                )
            )

        logger.info(f"Jina Search returned {len(results)} results for query: {query}")
        return results


class JinaFreeSearchProvider(JinaSearchProviderBase):
    """
    Jina Search - Free tier (no API key required).

    Works without authentication but has lower rate limits.
    """

    name = "jina"
    requires_api_key = False

    def __init__(
        self,
        url_override: Optional[str] = None,
        fetcher: Optional[HttpFetcher] = None,
        api_key: Optional[str] = None,
    ):
        # Free tier doesn't use API key
        super().__init__(url_override, fetcher, api_key=None)

    def is_configured(self) -> bool:
        """Free tier is always available."""
        return True


class JinaApiSearchProvider(JinaSearchProviderBase):
    """
    Jina Search - API tier (requires JINA_API_KEY).
    """

    name = "jina-api"
    requires_api_key = True

    def __init__(
        self,
        url_override: Optional[str] = None,
        fetcher: Optional[HttpFetcher] = None,
        api_key: Optional[str] = None,
    ):
        super().__init__(
            url_override, fetcher, api_key=api_key or os.environ.get("JINA_API_KEY")
        )

    def is_configured(self) -> bool:
        """API tier requires JINA_API_KEY."""
        return bool(self._api_key)
