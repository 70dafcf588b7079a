"""
Live data plumbing: outbound fetch, concurrency limiting, error taxonomy,
prayer-time calculation and IP geolocation.
"""

from .errors import (
    AllProvidersFailed,
    CacheUnavailable,
    EnrichmentError,
    ProviderError,
    ProviderHttpError,
    ProviderParseError,
    ProviderTimeout,
)
from .fetcher import FetchResult, FetchState, HttpFetcher
from .limiter import ConcurrencyLimiter

__all__ = [
    "AllProvidersFailed",
    "CacheUnavailable",
    "ConcurrencyLimiter",
    "EnrichmentError",
    "FetchResult",
    "FetchState",
    "HttpFetcher",
    "ProviderError",
    "ProviderHttpError",
    "ProviderParseError",
    "ProviderTimeout",
]
