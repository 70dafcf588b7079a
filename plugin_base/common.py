"""
Common types shared by the classifier, providers, ranker, cache and composer.

This module defines the building blocks that flow through an enrichment:
- Domain / Priority / QualityLevel / ErrorKind: the closed vocabularies
- Query, Verdict: what the user asked and what the classifier decided
- ResultItem: one normalized piece of external information
- EnrichmentContext, ResolvedLocation: caller-supplied hints
- EnrichmentPayload: the final, immutable result handed to the caller
"""

import hashlib
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)


class Domain(Enum):
    """Information domains the engine can fetch for."""

    LOCATION_TIME = "location_time"
    CRAWLED_NEWS = "crawled_news"
    GENERIC_SEARCH = "generic_search"
    NONE = "none"


# Static tie-break order when two domains score the same
DOMAIN_TIE_ORDER = (Domain.LOCATION_TIME, Domain.CRAWLED_NEWS, Domain.GENERIC_SEARCH)


class Priority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class QualityLevel(Enum):
    """Overall quality of an enrichment payload."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    NONE = "none"

    @property
    def rank(self) -> int:
        return _QUALITY_RANK[self]


_QUALITY_RANK = {
    QualityLevel.NONE: 0,
    QualityLevel.POOR: 1,
    QualityLevel.FAIR: 2,
    QualityLevel.GOOD: 3,
    QualityLevel.EXCELLENT: 4,
}


class ErrorKind(Enum):
    """Typed failure reasons reported by provider adapters."""

    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    PARSE_ERROR = "parse_error"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


# =============================================================================
# Text and URL normalization
# =============================================================================

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """
    Normalize free text for matching and cache keys.

    NFKC, lower-case, diacritics stripped from Latin letters, punctuation
    and symbols collapsed to single spaces. Non-Latin scripts keep their
    combining marks so Arabic and Devanagari terms still match.
    """
    if not text:
        return ""

    text = unicodedata.normalize("NFKD", text.lower())
    chars = []
    previous = ""
    for ch in text:
        if unicodedata.combining(ch) and previous.isascii() and previous.isalpha():
            continue
        category = unicodedata.category(ch)
        if category[0] in ("P", "S"):
            ch = " "
        chars.append(ch)
        previous = ch
    text = unicodedata.normalize("NFKC", "".join(chars))
    return _WHITESPACE_RE.sub(" ", text).strip()


def is_latin(term: str) -> bool:
    """True when every letter in the term is ASCII."""
    return all(ch.isascii() for ch in term if ch.isalpha())


_DEFAULT_PORTS = {"http": 80, "https": 443}


def canonical_url(url: str) -> str:
    """
    Canonical form of a URL used for identity.

    Lower-cased, scheme dropped, default port, fragment, trailing slash
    and utm_* tracking parameters removed.
    """
    url = (url or "").strip()
    if not url:
        return ""

    parts = urlsplit(url.lower())
    host = parts.hostname or ""
    if parts.port and parts.port != _DEFAULT_PORTS.get(parts.scheme):
        host = f"{host}:{parts.port}"
    if host.startswith("www."):
        host = host[4:]

    query = urlencode(
        sorted(
            (k, v)
            for k, v in parse_qsl(parts.query, keep_blank_values=True)
            if not k.startswith("utm_")
        )
    )
    path = parts.path.rstrip("/")
    return urlunsplit(("", host, path, query, "")).lstrip("/")


def make_item_id(source_url: str, title: str = "") -> str:
    """Stable id for a result item: hash of the canonical URL, else of the title."""
    basis = canonical_url(source_url) or "title:" + normalize_text(title)
    return hashlib.sha256(basis.encode("utf-8")).hexdigest()[:32]


# =============================================================================
# Query and classification
# =============================================================================


@dataclass(frozen=True)
class Query:
    """A user query as received and as normalized for matching."""

    raw_text: str
    normalized_text: str
    locale: Optional[str] = None
    session_id: Optional[str] = None

    @classmethod
    def from_text(
        cls,
        raw_text: str,
        locale: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> "Query":
        return cls(
            raw_text=raw_text or "",
            normalized_text=normalize_text(raw_text or ""),
            locale=locale,
            session_id=session_id,
        )


@dataclass(frozen=True)
class Verdict:
    """Classifier decision for one query."""

    needs_external_data: bool
    domain: Domain
    priority: Priority
    reason: str
    scores: dict = field(default_factory=dict, compare=False)
    matched_terms: tuple = ()
    time_range: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "needs_external_data": self.needs_external_data,
            "domain": self.domain.value,
            "priority": self.priority.value,
            "reason": self.reason,
            "scores": {k: round(v, 3) for k, v in self.scores.items()},
            "matched_terms": list(self.matched_terms),
            "time_range": self.time_range,
        }


@dataclass
class ResolvedLocation:
    """A location the caller (or IP lookup) has already resolved."""

    lat: float
    lng: float
    timezone: str
    city: str = ""
    country: str = ""
    is_default: bool = False

    @staticmethod
    def has_coordinates(data: dict) -> bool:
        lat = data.get("lat", data.get("latitude"))
        lng = data.get("lng", data.get("longitude"))
        return lat is not None and lng is not None

    @classmethod
    def from_dict(cls, data: dict) -> "ResolvedLocation":
        return cls(
            lat=float(data.get("lat", data.get("latitude"))),
            lng=float(data.get("lng", data.get("longitude"))),
            timezone=data.get("timezone") or "UTC",
            city=data.get("city", ""),
            country=data.get("country", ""),
            is_default=bool(data.get("is_default", False)),
        )

    def to_dict(self) -> dict:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "timezone": self.timezone,
            "city": self.city,
            "country": self.country,
            "is_default": self.is_default,
        }


# Makkah, used when nothing better is known
DEFAULT_LOCATION = ResolvedLocation(
    lat=21.3891,
    lng=39.8579,
    timezone="Asia/Riyadh",
    city="Makkah",
    country="Saudi Arabia",
    is_default=True,
)


@dataclass
class EnrichmentContext:
    """Optional hints supplied alongside a query."""

    session_history_tail: list[str] = field(default_factory=list)
    locale_hint: Optional[str] = None
    resolved_location: Optional[ResolvedLocation] = None
    session_id: Optional[str] = None
    client_ip: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "EnrichmentContext":
        if not data:
            return cls()
        location = data.get("resolved_location") or data.get("location")
        if isinstance(location, dict):
            if ResolvedLocation.has_coordinates(location):
                location = ResolvedLocation.from_dict(location)
            else:
                logger.warning(f"Ignoring location without coordinates: {location}")
                location = None
        history = data.get("session_history_tail") or []
        if isinstance(history, str):
            history = [history]
        return cls(
            session_history_tail=list(history),
            locale_hint=data.get("locale_hint") or data.get("locale"),
            resolved_location=location,
            session_id=data.get("session_id"),
            client_ip=data.get("client_ip"),
        )


# =============================================================================
# Results
# =============================================================================


@dataclass
class ResultItem:
    """
    One normalized piece of external information.

    Items are treated as values: the ranker returns scored copies made with
    dataclasses.replace rather than mutating its input.
    """

    title: str
    body: str = ""
    source_url: str = ""
    source_name: str = ""
    published_at: Optional[datetime] = None
    domain_tags: frozenset = frozenset()
    summary: str = ""
    category: str = ""
    synthetic: bool = False
    raw_score_components: dict = field(default_factory=dict)
    final_score: float = 0.0
    metadata: dict = field(default_factory=dict)
    id: str = ""

    def __post_init__(self):
        if not self.id:
            self.id = make_item_id(self.source_url, self.title)
        if not isinstance(self.domain_tags, frozenset):
            self.domain_tags = frozenset(self.domain_tags)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "body": self.body,
            "source_url": self.source_url,
            "source_name": self.source_name,
            "published_at": (
                self.published_at.isoformat() if self.published_at else None
            ),
            "category": self.category,
            "domain_tags": sorted(self.domain_tags),
            "synthetic": self.synthetic,
            "raw_score_components": {
                k: round(v, 4) for k, v in self.raw_score_components.items()
            },
            "final_score": round(self.final_score, 4),
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class EnrichmentPayload:
    """Immutable result of one enrichment."""

    query: Query
    domain: Domain
    items: tuple
    generated_at: datetime
    quality_level: QualityLevel
    verdict: Optional[Verdict] = None
    no_data_marker: str = ""
    errors: tuple = ()

    @property
    def has_data(self) -> bool:
        return bool(self.items)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query.raw_text,
            "normalized_query": self.query.normalized_text,
            "domain": self.domain.value,
            "quality_level": self.quality_level.value,
            "generated_at": self.generated_at.isoformat(),
            "items": [item.to_dict() for item in self.items],
            "verdict": self.verdict.to_dict() if self.verdict else None,
            "no_data_marker": self.no_data_marker,
            "errors": list(self.errors),
        }
