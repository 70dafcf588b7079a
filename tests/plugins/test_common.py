"""
Unit tests for plugin_base/common.py

Tests cover:
- Text normalization across scripts
- Canonical URLs and item ids
- Query, Verdict, ResolvedLocation, EnrichmentContext
- ResultItem and EnrichmentPayload serialization
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timezone

import pytest

from plugin_base.common import (
    DEFAULT_LOCATION,
    Domain,
    EnrichmentContext,
    EnrichmentPayload,
    Priority,
    QualityLevel,
    Query,
    ResolvedLocation,
    ResultItem,
    Verdict,
    canonical_url,
    is_latin,
    make_item_id,
    normalize_text,
)

# =============================================================================
# Normalization Tests
# =============================================================================


class TestNormalizeText:
    """Tests for normalize_text()."""

    def test_lowercases_and_strips_punctuation(self):
        assert normalize_text("  What's the GOLD price?! ") == "what s the gold price"

    def test_strips_latin_diacritics(self):
        assert normalize_text("Café Zürich") == "cafe zurich"

    def test_keeps_arabic(self):
        assert normalize_text("مواقيت الصلاة") == "مواقيت الصلاة"

    def test_keeps_devanagari_marks(self):
        # Vowel signs are combining marks that must survive
        assert normalize_text("नमाज़ का समय") != ""
        assert "समय" in normalize_text("नमाज़ का समय")

    def test_empty(self):
        assert normalize_text("") == ""
        assert normalize_text(None) == ""

    def test_is_latin(self):
        assert is_latin("fajr time")
        assert not is_latin("الفجر")


class TestCanonicalUrl:
    """Tests for canonical_url() and make_item_id()."""

    def test_case_and_trailing_slash(self):
        assert canonical_url("https://Example.com/News/Story/") == canonical_url(
            "https://example.com/news/story"
        )

    def test_scheme_www_and_default_port(self):
        assert canonical_url("http://www.example.com:80/a") == "example.com/a"
        assert canonical_url("https://example.com:443/a") == "example.com/a"
        assert canonical_url("https://example.com:8443/a") == "example.com:8443/a"

    def test_drops_fragment_and_tracking(self):
        url = "https://example.com/a?utm_source=x&b=2&a=1#top"
        assert canonical_url(url) == "example.com/a?a=1&b=2"

    def test_empty(self):
        assert canonical_url("") == ""

    def test_item_id_from_url(self):
        assert make_item_id("https://example.com/a/") == make_item_id("HTTPS://EXAMPLE.COM/a")

    def test_item_id_falls_back_to_title(self):
        assert make_item_id("", "Gold Price Today!") == make_item_id("", "gold price today")
        assert make_item_id("", "Gold price") != make_item_id("", "Silver price")


# =============================================================================
# Query and classification types
# =============================================================================


class TestQuery:
    """Tests for Query."""

    def test_from_text(self):
        query = Query.from_text("Fajr Time?", locale="en", session_id="s1")
        assert query.raw_text == "Fajr Time?"
        assert query.normalized_text == "fajr time"
        assert query.locale == "en"
        assert query.session_id == "s1"

    def test_frozen(self):
        query = Query.from_text("x")
        with pytest.raises(FrozenInstanceError):
            query.raw_text = "y"


class TestVerdict:
    """Tests for Verdict."""

    def test_scores_excluded_from_equality(self):
        a = Verdict(True, Domain.GENERIC_SEARCH, Priority.HIGH, "matched", scores={"x": 1.0})
        b = Verdict(True, Domain.GENERIC_SEARCH, Priority.HIGH, "matched", scores={"x": 2.0})
        assert a == b

    def test_to_dict(self):
        verdict = Verdict(
            needs_external_data=True,
            domain=Domain.CRAWLED_NEWS,
            priority=Priority.MEDIUM,
            reason="matched_crawled_news",
            scores={"crawled_news": 2.51234},
            matched_terms=("news",),
            time_range="day",
        )
        d = verdict.to_dict()
        assert d["domain"] == "crawled_news"
        assert d["priority"] == "medium"
        assert d["scores"] == {"crawled_news": 2.512}
        assert d["matched_terms"] == ["news"]
        assert d["time_range"] == "day"


class TestLocationAndContext:
    """Tests for ResolvedLocation and EnrichmentContext."""

    def test_location_from_dict_aliases(self):
        location = ResolvedLocation.from_dict(
            {"latitude": "51.5", "longitude": "-0.12", "timezone": "Europe/London"}
        )
        assert location.lat == 51.5
        assert location.lng == -0.12
        assert location.is_default is False

    def test_default_location_is_makkah(self):
        assert DEFAULT_LOCATION.city == "Makkah"
        assert DEFAULT_LOCATION.is_default is True
        assert DEFAULT_LOCATION.timezone == "Asia/Riyadh"

    def test_context_from_dict(self):
        context = EnrichmentContext.from_dict(
            {
                "session_history_tail": "earlier question",
                "locale": "ur",
                "location": {"lat": 24.86, "lng": 67.0, "timezone": "Asia/Karachi"},
                "client_ip": "8.8.8.8",
            }
        )
        assert context.session_history_tail == ["earlier question"]
        assert context.locale_hint == "ur"
        assert context.resolved_location.timezone == "Asia/Karachi"
        assert context.client_ip == "8.8.8.8"

    def test_location_without_coordinates_ignored(self):
        context = EnrichmentContext.from_dict(
            {"location": {"city": "Lahore", "timezone": "Asia/Karachi"}, "client_ip": "8.8.8.8"}
        )
        assert context.resolved_location is None
        assert context.client_ip == "8.8.8.8"

    def test_context_from_empty(self):
        context = EnrichmentContext.from_dict(None)
        assert context.session_history_tail == []
        assert context.resolved_location is None


# =============================================================================
# Results
# =============================================================================


class TestResultItem:
    """Tests for ResultItem."""

    def test_id_and_tags_set_on_init(self):
        item = ResultItem(
            title="Story", source_url="https://example.com/story", domain_tags={"news"}
        )
        assert item.id == make_item_id("https://example.com/story")
        assert item.domain_tags == frozenset({"news"})

    def test_to_dict(self):
        published = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        item = ResultItem(
            title="Story",
            source_url="https://example.com/story",
            published_at=published,
            domain_tags={"news", "breaking"},
            raw_score_components={"recency": 0.123456},
            final_score=7.654321,
        )
        d = item.to_dict()
        assert d["published_at"] == "2026-03-01T12:00:00+00:00"
        assert d["domain_tags"] == ["breaking", "news"]
        assert d["raw_score_components"] == {"recency": 0.1235}
        assert d["final_score"] == 7.6543
        assert d["synthetic"] is False


class TestEnrichmentPayload:
    """Tests for EnrichmentPayload."""

    def test_empty_payload(self):
        payload = EnrichmentPayload(
            query=Query.from_text("hello"),
            domain=Domain.NONE,
            items=(),
            generated_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
            quality_level=QualityLevel.NONE,
        )
        assert payload.has_data is False
        d = payload.to_dict()
        assert d["items"] == []
        assert d["verdict"] is None
        assert d["quality_level"] == "none"

    def test_quality_rank_order(self):
        levels = [
            QualityLevel.NONE,
            QualityLevel.POOR,
            QualityLevel.FAIR,
            QualityLevel.GOOD,
            QualityLevel.EXCELLENT,
        ]
        assert [level.rank for level in levels] == sorted(level.rank for level in levels)
