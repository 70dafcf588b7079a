"""
Augmentation module.

Query classification, article scraping, search backends, result ranking
and payload composition.
"""

from .scraper import ArticleScraper, ScrapeResult
from .search import (
    get_configured_search_providers,
    get_search_provider,
    list_search_providers,
)

__all__ = [
    "ArticleScraper",
    "ScrapeResult",
    "get_configured_search_providers",
    "get_search_provider",
    "list_search_providers",
]
