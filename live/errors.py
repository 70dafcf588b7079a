"""
Error taxonomy for live enrichment.

Provider adapters convert these into typed LiveDataResult failures; nothing
in this module is meant to escape to callers of the engine.
"""

from typing import Optional

from plugin_base.common import ErrorKind


class EnrichmentError(Exception):
    """Base class for enrichment errors."""


class ProviderError(EnrichmentError):
    """A provider could not produce data."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class ProviderTimeout(ProviderError):
    kind = ErrorKind.TIMEOUT


class ProviderHttpError(ProviderError):
    kind = ErrorKind.HTTP_ERROR

    def __init__(
        self, message: str, status: Optional[int] = None, url: Optional[str] = None
    ):
        super().__init__(message, url=url)
        self.status = status


class ProviderParseError(ProviderError):
    kind = ErrorKind.PARSE_ERROR


class CacheUnavailable(EnrichmentError):
    """The cache failed; callers treat this as a miss."""


class AllProvidersFailed(EnrichmentError):
    """Every selected provider failed. Used as the no-data reason."""

    def __init__(self, kinds: tuple = ()):
        super().__init__(
            "all providers failed: " + ", ".join(k.value for k in kinds)
            if kinds
            else "all providers failed"
        )
        self.kinds = kinds
