"""
SearXNG search provider.

SearXNG is a free, self-hosted metasearch engine that aggregates results
from multiple search engines while respecting privacy.
"""

import logging
import os
from typing import Optional

from augmentation.scraper import parse_datetime
from live.fetcher import HttpFetcher

from .base import SearchProvider, SearchResult

logger = logging.getLogger(__name__)


class SearXNGProvider(SearchProvider):
    """
    Search provider using SearXNG.

    Requires SEARXNG_URL environment variable to be set, or url_override
    to be provided.
    """

    name = "searxng"
    requires_api_key = False

    def __init__(
        self,
        url_override: Optional[str] = None,
        fetcher: Optional[HttpFetcher] = None,
    ):
        super().__init__(url_override, fetcher)
        self._base_url = url_override or os.environ.get("SEARXNG_URL")

    def is_configured(self) -> bool:
        """Check if SearXNG URL is configured."""
        return bool(self._base_url)

    async def search(
        self,
        query: str,
        max_results: int = 5,
        time_range: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[SearchResult]:
        if not self._base_url:
            logger.error("SearXNG URL not configured")
            return []

        # Ensure URL doesn't have trailing slash
        base_url = self._base_url.rstrip("/")

        params = {
            "q": query,
            "format": "json",
            "categories": category or "general",
        }

        # SearXNG accepts: day, week, month, year
        if time_range in ("day", "week", "month", "year"):
            params["time_range"] = time_range
            logger.debug(f"SearXNG search with time_range={time_range}")

        data = self._decode(await self.fetcher.get(f"{base_url}/search", params=params))

        results = []
        for item in data.get("results", [])[:max_results]:
            if not item.get("url"):
                continue
            results.append(
                SearchResult(
                    title=item.get("title") or "Untitled",
                    url=item["url"],
                    snippet=item.get("content") or "",
                    published_at=parse_datetime(item.get("publishedDate") or ""),
                    engine=self.name,
                )
            )

        logger.info(f"SearXNG returned {len(results)} results for query: {query}")
        return results
