"""
Unit tests for augmentation/query_intent.py

Tests cover:
- Domain routing for each domain and for non-Latin scripts
- Priority levels and reason codes
- Session history carry-over
- Time range extraction
"""

from datetime import date

from augmentation.query_intent import _extract_time_range, classify, search_category_for
from plugin_base.common import Domain, EnrichmentContext, Priority, Query

# =============================================================================
# Routing
# =============================================================================


class TestClassifyRouting:
    """Tests for domain selection."""

    def test_gold_price_today(self):
        verdict = classify("gold price today")
        assert verdict.needs_external_data is True
        assert verdict.domain == Domain.GENERIC_SEARCH
        assert verdict.priority == Priority.HIGH
        assert verdict.reason == "matched_generic_search"
        assert verdict.time_range == "day"
        assert "gold" in verdict.matched_terms

    def test_prayer_time_query(self):
        verdict = classify("Fajr time in London")
        assert verdict.needs_external_data is True
        assert verdict.domain == Domain.LOCATION_TIME
        assert verdict.priority == Priority.MEDIUM

    def test_roman_urdu_prayer_query(self):
        verdict = classify("namaz ka waqt kya hai")
        assert verdict.domain == Domain.LOCATION_TIME
        assert verdict.priority == Priority.HIGH

    def test_news_query(self):
        verdict = classify("latest news from Gaza")
        assert verdict.domain == Domain.CRAWLED_NEWS
        assert verdict.priority == Priority.HIGH
        assert verdict.time_range == "week"

    def test_arabic_substring_match(self):
        verdict = classify("مواقيت الصلاة في مكة")
        assert verdict.needs_external_data is True
        assert verdict.domain == Domain.LOCATION_TIME

    def test_hindi_gold_price(self):
        verdict = classify("सोना भाव")
        assert verdict.domain == Domain.GENERIC_SEARCH

    def test_accepts_query_object(self):
        verdict = classify(Query.from_text("GOLD PRICE today!"))
        assert verdict.domain == Domain.GENERIC_SEARCH

    def test_latin_terms_match_whole_tokens(self):
        """'isha' must not fire inside 'Aishah'."""
        verdict = classify("tell me about aishah")
        assert verdict.needs_external_data is False


class TestClassifyNegative:
    """Tests for queries that need no external data."""

    def test_small_talk(self):
        verdict = classify("hello how are you")
        assert verdict.needs_external_data is False
        assert verdict.domain == Domain.NONE
        assert verdict.reason == "no_signal"

    def test_empty_query(self):
        for text in ("", "   ", "?!"):
            verdict = classify(text)
            assert verdict.needs_external_data is False
            assert verdict.reason == "empty_query"

    def test_below_threshold(self):
        verdict = classify("gold price", config={"threshold": 10.0})
        assert verdict.needs_external_data is False
        assert verdict.reason == "below_threshold"
        assert verdict.scores["generic_search"] > 0

    def test_reason_always_set(self):
        for text in ("hi", "what is love", "gold", "news"):
            assert classify(text).reason


class TestClassifyTemporal:
    """Tests for temporal-only queries and history."""

    def test_temporal_only_goes_to_generic_search(self):
        verdict = classify("what is happening right now")
        assert verdict.needs_external_data is True
        assert verdict.domain == Domain.GENERIC_SEARCH
        assert verdict.priority == Priority.LOW
        assert verdict.reason == "ambiguous_temporal"
        assert verdict.time_range == "day"

    def test_history_keeps_follow_up_in_domain(self):
        context = EnrichmentContext(session_history_tail=["fajr time", "maghrib time"])
        verdict = classify("and tomorrow", context)
        assert verdict.domain == Domain.LOCATION_TIME
        assert verdict.reason == "matched_location_time"

    def test_history_ignored_without_signal(self):
        context = EnrichmentContext(session_history_tail=["gold price today"])
        verdict = classify("thanks a lot", context)
        assert verdict.needs_external_data is False

    def test_only_last_three_history_entries_count(self):
        context = EnrichmentContext(
            session_history_tail=["fajr time", "maghrib time", "hi", "ok", "sure"]
        )
        verdict = classify("and tomorrow", context)
        assert verdict.reason == "ambiguous_temporal"

    def test_tie_uses_static_domain_order(self):
        verdict = classify("gold news")
        assert verdict.scores["generic_search"] == verdict.scores["crawled_news"]
        assert verdict.domain == Domain.CRAWLED_NEWS


# =============================================================================
# Time range extraction
# =============================================================================


class TestExtractTimeRange:
    """Tests for _extract_time_range()."""

    def test_day(self):
        assert _extract_time_range("gold price today") == "day"
        assert _extract_time_range("abhi ka rate") == "day"

    def test_week(self):
        assert _extract_time_range("what happened this week") == "week"

    def test_last_n_days(self):
        assert _extract_time_range("news from the last 3 days") == "week"
        assert _extract_time_range("news from the last 20 days") == "month"
        assert _extract_time_range("news from the last 90 days") == "year"

    def test_month(self):
        assert _extract_time_range("prices this month") == "month"

    def test_year_uses_reference_date(self):
        assert _extract_time_range("elections in 2025", today=date(2026, 5, 1)) == "year"
        assert _extract_time_range("elections in 2019", today=date(2026, 5, 1)) is None

    def test_breaking_implies_day(self):
        assert _extract_time_range("breaking updates") == "day"

    def test_none(self):
        assert _extract_time_range("history of the ottoman empire") is None


class TestSearchCategory:
    def test_categories(self):
        assert search_category_for(Domain.CRAWLED_NEWS) == "news"
        assert search_category_for(Domain.GENERIC_SEARCH) == "general"
