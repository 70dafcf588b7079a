"""
Builtin live sources, one per enrichment domain.
"""

from .crawled_news import CrawledNewsLiveSource
from .location_time import LocationTimeLiveSource
from .web_search import WebSearchLiveSource

BUILTIN_LIVE_SOURCES = [
    LocationTimeLiveSource,
    CrawledNewsLiveSource,
    WebSearchLiveSource,
]

__all__ = [
    "BUILTIN_LIVE_SOURCES",
    "CrawledNewsLiveSource",
    "LocationTimeLiveSource",
    "WebSearchLiveSource",
]
