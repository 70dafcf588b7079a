"""
Tavily search provider.

Tavily is a hosted search API aimed at retrieval-augmented generation. It
takes a JSON POST and returns ranked results with extracted content.

See: https://docs.tavily.com/
"""

import logging
import os
from typing import Optional

from augmentation.scraper import parse_datetime
from live.fetcher import HttpFetcher

from .base import SearchProvider, SearchResult

logger = logging.getLogger(__name__)

# Tavily's "days" filter for the news topic
_TIME_RANGE_DAYS = {"day": 1, "week": 7, "month": 30, "year": 365}


class TavilySearchProvider(SearchProvider):
    """
    Search provider using the Tavily API (requires TAVILY_API_KEY).
    """

    name = "tavily"
    requires_api_key = True

    TAVILY_SEARCH_URL = "https://api.tavily.com/search"

    def __init__(
        self,
        url_override: Optional[str] = None,
        fetcher: Optional[HttpFetcher] = None,
        api_key: Optional[str] = None,
    ):
        super().__init__(url_override, fetcher)
        self._api_key = api_key or os.environ.get("TAVILY_API_KEY")

    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def search(
        self,
        query: str,
        max_results: int = 5,
        time_range: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[SearchResult]:
        payload = {
            "api_key": self._api_key,
            "query": query,
            "search_depth": "basic",
            "max_results": max_results,
            "include_answer": False,
            "include_raw_content": False,
            "topic": "news" if category == "news" else "general",
        }
        if category == "news" and time_range in _TIME_RANGE_DAYS:
            payload["days"] = _TIME_RANGE_DAYS[time_range]

        data = self._decode(
            await self.fetcher.post_json(
                self.url_override or self.TAVILY_SEARCH_URL, payload
            )
        )

        results = []
        for item in (data.get("results") or [])[:max_results]:
            if not item.get("url"):
                continue
            results.append(
                SearchResult(
                    title=item.get("title") or "Untitled",
                    url=item["url"],
                    snippet=(item.get("content") or "")[:500],
                    published_at=parse_datetime(item.get("published_date") or ""),
                    engine=self.name,
                )
            )

        logger.info(f"Tavily returned {len(results)} results for query: {query}")
        return results
