"""
Base class for search backends.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from live.fetcher import FetchResult, HttpFetcher
from live.errors import ProviderParseError


@dataclass
class SearchResult:
    """A single search result."""

    title: str
    url: str
    snippet: str  # Brief excerpt/description
    published_at: Optional[datetime] = None
    engine: str = ""


class SearchProvider(ABC):
    """
    Abstract base class for search backends.

    Backends turn a query into SearchResults. Transport and HTTP failures
    are raised as ProviderError subclasses; the web search adapter converts
    them into typed results.
    """

    # Provider name (used for registration and selection)
    name: str = "base"

    # Whether this provider requires an API key
    requires_api_key: bool = False

    def __init__(
        self,
        url_override: Optional[str] = None,
        fetcher: Optional[HttpFetcher] = None,
    ):
        """
        Initialize the search provider.

        Args:
            url_override: Optional URL override for self-hosted providers
            fetcher: Shared fetcher; a private one is created if omitted
        """
        self.url_override = url_override
        self.fetcher = fetcher or HttpFetcher()

    @abstractmethod
    async def search(
        self,
        query: str,
        max_results: int = 5,
        time_range: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[SearchResult]:
        """
        Search for the given query.

        Args:
            query: Search query string
            max_results: Maximum number of results to return
            time_range: Optional time filter (day, week, month, year)
            category: Optional search category (news, general)

        Returns:
            List of SearchResult objects

        Raises:
            ProviderError: the backend could not be reached or answered badly
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """
        Check if the provider is properly configured.

        Returns:
            True if the provider can be used, False otherwise
        """
        pass

    def _decode(self, result: FetchResult) -> dict:
        """JSON body of a finished fetch, raising the matching ProviderError."""
        if not result.ok:
            raise result.to_error()
        data = result.json()
        if not isinstance(data, dict):
            raise ProviderParseError(
                f"{self.name} returned {type(data).__name__}, expected object",
                url=result.url,
            )
        return data
