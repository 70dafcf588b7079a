"""
Base class for live data source plugins.

Live sources fetch real-time data at request time. The orchestrator picks
sources by domain and passes per-request parameters; each source returns a
LiveDataResult and never raises.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from plugin_base.common import Domain, EnrichmentContext, ErrorKind, Query, ResultItem


@dataclass
class ParamDefinition:
    """
    Defines a parameter the orchestrator can pass at query time.
    """

    name: str
    description: str
    param_type: str  # "string", "integer", "number", "boolean", "datetime"
    required: bool = False
    default: Any = None
    examples: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "param_type": self.param_type,
            "required": self.required,
            "default": self.default,
            "examples": self.examples,
        }


@dataclass
class LiveDataResult:
    """Result from fetch()."""

    success: bool
    items: list[ResultItem] = field(default_factory=list)
    source_type: str = ""
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    cache_ttl: int = 300  # Seconds the source considers its data fresh
    skipped: int = 0  # Candidates dropped after permanent failures
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def failure(
        cls, source_type: str, kind: ErrorKind, error: str, skipped: int = 0
    ) -> "LiveDataResult":
        return cls(
            success=False,
            source_type=source_type,
            error_kind=kind,
            error=error,
            cache_ttl=0,
            skipped=skipped,
        )


class PluginLiveSource(ABC):
    """
    Base class for live data source plugins.

    Subclasses define:
    - source_type: Unique identifier
    - display_name: Human-readable name
    - description: Help text
    - domain: The Domain this source answers for
    - best_for: Short description of good queries
    - get_param_definitions(): Per-request parameters
    - fetch(): Async data fetching logic; must convert every failure into
      a LiveDataResult instead of raising
    """

    # --- Required class attributes ---
    source_type: str
    display_name: str
    description: str
    domain: Domain
    best_for: str

    # --- Optional ---
    default_cache_ttl: int = 300

    # Mark as abstract to prevent direct registration
    _abstract: bool = True

    @classmethod
    @abstractmethod
    def get_param_definitions(cls) -> list[ParamDefinition]:
        """Parameters accepted at query time."""
        pass

    @abstractmethod
    async def fetch(
        self,
        query: Query,
        params: Optional[dict] = None,
        context: Optional[EnrichmentContext] = None,
    ) -> LiveDataResult:
        """
        Fetch live data for a query.

        Args:
            query: The normalized query
            params: Dict matching get_param_definitions()
            context: Caller hints (location, locale, history)

        Returns:
            LiveDataResult with normalized ResultItems
        """
        pass

    def is_available(self) -> bool:
        """Check if source is configured and available."""
        return True

    @classmethod
    def metadata(cls) -> dict:
        return {
            "source_type": cls.source_type,
            "display_name": cls.display_name,
            "description": cls.description,
            "domain": cls.domain.value,
            "best_for": cls.best_for,
            "default_cache_ttl": cls.default_cache_ttl,
            "params": [p.to_dict() for p in cls.get_param_definitions()],
        }
