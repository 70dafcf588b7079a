"""
Unit tests for augmentation/ranker.py

Tests cover:
- Score components (exact phrase, term coverage, recency, trust)
- Ordering, de-duplication and near-duplicate collapse
- Synthetic items and the minimum score
- Config loading
"""

from datetime import datetime, timedelta, timezone

import pytest

from augmentation.ranker import (
    DEFAULT_WEIGHTS,
    RankingConfig,
    content_terms,
    longest_run,
    rank,
    recency,
    source_trust,
)
from plugin_base.common import ResultItem

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def make_item(title, url="", **kwargs) -> ResultItem:
    return ResultItem(title=title, source_url=url, **kwargs)


# =============================================================================
# Components
# =============================================================================


class TestComponents:
    """Tests for individual scoring helpers."""

    def test_content_terms_drop_stop_words(self):
        assert content_terms("What is the gold price today?") == ["gold", "price", "today"]

    def test_content_terms_keep_all_stop_words(self):
        assert content_terms("what is it") == ["what", "is", "it"]

    def test_longest_run(self):
        query = ["gold", "price", "today"]
        assert longest_run(query, ["spot", "gold", "price", "today"]) == 3
        assert longest_run(query, ["gold", "price", "climbs"]) == 2
        assert longest_run(query, ["price", "gold", "today"]) == 1
        assert longest_run(query, []) == 0

    def test_recency(self):
        assert recency(NOW - timedelta(hours=36), NOW, 72) == pytest.approx(0.5)
        assert recency(NOW - timedelta(hours=100), NOW, 72) == 0.0
        assert recency(NOW + timedelta(minutes=5), NOW, 72) == 1.0
        assert recency(None, NOW, 72) == 0.0

    def test_recency_naive_datetime_is_utc(self):
        naive = (NOW - timedelta(hours=36)).replace(tzinfo=None)
        assert recency(naive, NOW, 72) == pytest.approx(0.5)

    def test_source_trust_table(self):
        config = RankingConfig.from_dict(
            {"source_trust": {"default": 0.4, "medium": 0.6, "sources": {"kitco.com": "medium"}}}
        )
        assert source_trust(make_item("x", "https://www.kitco.com/a"), config) == 0.6
        assert source_trust(make_item("x", "https://news.kitco.com/a"), config) == 0.6
        assert source_trust(make_item("x", "https://unknown.org/a"), config) == 0.4

    def test_synthetic_has_no_trust(self):
        item = make_item("x", "https://kitco.com/a", synthetic=True)
        assert source_trust(item, RankingConfig()) == 0.0


# =============================================================================
# rank()
# =============================================================================


class TestRank:
    """Tests for rank()."""

    def test_exact_phrase_first(self):
        items = [
            make_item(
                "Gold market update",
                "https://example.com/market",
                summary="The price of gold moved today",
            ),
            make_item("Gold price today: rates rise", "https://example.com/rates"),
        ]
        ranked = rank(items, "gold price today", now=NOW)
        assert ranked[0].title == "Gold price today: rates rise"
        assert ranked[0].raw_score_components["exact_phrase"] == 1.0
        assert ranked[0].final_score > ranked[1].final_score

    def test_phrase_in_summary_beats_partial_matches(self):
        items = [
            make_item(
                "Price of gold, today",
                "https://example.com/scattered",
                summary="Gold, today: price",
                body="gold and today price",
                published_at=NOW,
                category="gold",
            ),
            make_item("Markets", "https://example.com/markets", summary="the gold price today is steady"),
        ]
        ranked = rank(items, "gold price today", now=NOW)
        assert [item.title for item in ranked] == ["Markets", "Price of gold, today"]
        assert ranked[0].raw_score_components["exact_phrase"] == pytest.approx(0.8)
        assert ranked[1].raw_score_components["exact_phrase"] == 0.0
        # The scattered item still has the higher weighted sum
        assert ranked[1].final_score > ranked[0].final_score

    def test_partial_phrase_run(self):
        items = [
            make_item(
                "Gold market outlook",
                "https://example.com/outlook",
                summary="Gold market price moves higher",
            ),
            make_item("Gold price climbs", "https://example.com/climbs"),
            make_item("Price watch", "https://example.com/watch"),
        ]
        ranked = rank(items, "what is the gold price today", now=NOW)
        assert ranked[0].title == "Gold price climbs"
        assert ranked[0].raw_score_components["exact_phrase"] == pytest.approx(2 / 3)
        assert ranked[1].raw_score_components["exact_phrase"] == 0.0

    def test_single_word_query_phrase(self):
        ranked = rank([make_item("Gold", "https://example.com/a")], "gold", now=NOW)
        assert ranked[0].raw_score_components["exact_phrase"] == 1.0

    def test_final_score_is_weighted_sum(self):
        ranked = rank([make_item("Gold price", "https://example.com/a")], "gold price", now=NOW)
        item = ranked[0]
        expected = sum(DEFAULT_WEIGHTS[k] * v for k, v in item.raw_score_components.items())
        assert item.final_score == pytest.approx(expected)

    def test_weights_override(self):
        items = [make_item("Gold price", "https://example.com/a")]
        default = rank(items, "gold price", now=NOW)[0].final_score
        boosted = rank(items, "gold price", now=NOW, weights={"exact_phrase": 20.0})[0].final_score
        assert boosted == pytest.approx(default + 10.0)

    def test_url_variants_collapse(self):
        items = [
            make_item("Gold price report", "https://Example.com/Story/"),
            make_item("Gold price report", "https://example.com/story"),
        ]
        ranked = rank(items, "gold price", now=NOW)
        assert len(ranked) == 1

    def test_duplicate_keeps_higher_score(self):
        items = [
            make_item("Report", "https://example.com/story"),
            make_item("Gold price report", "https://example.com/story/"),
        ]
        ranked = rank(items, "gold price", now=NOW)
        assert len(ranked) == 1
        assert ranked[0].title == "Gold price report"

    def test_near_duplicate_titles_collapse(self):
        items = [
            make_item("Gold price today rises sharply", "https://a.example.com/1"),
            make_item("Gold price today rises sharply!", "https://b.example.com/2"),
        ]
        assert len(rank(items, "gold price today", now=NOW)) == 1

    def test_synthetic_never_outranks_genuine(self):
        items = [
            make_item("gold price today", "https://duckduckgo.com/?q=gold", synthetic=True),
            make_item("Bullion rates for gold", "https://example.com/a"),
        ]
        ranked = rank(items, "gold price today", now=NOW)
        assert [item.synthetic for item in ranked] == [False, True]

    def test_low_scores_dropped_but_synthetic_kept(self):
        items = [
            make_item("Unrelated cooking recipe", "https://example.com/food"),
            make_item("Search placeholder", "https://bing.com/?q=x", synthetic=True),
        ]
        ranked = rank(items, "gold price", now=NOW)
        assert [item.title for item in ranked] == ["Search placeholder"]

    def test_fresher_item_ranks_higher(self):
        items = [
            make_item("Gold price", "https://example.com/old", published_at=NOW - timedelta(hours=48)),
            make_item("Gold price", "https://example.org/new", published_at=NOW - timedelta(hours=1)),
        ]
        ranked = rank(items, "gold price", now=NOW, config=RankingConfig(near_duplicate_jaccard=1.1))
        assert ranked[0].source_url == "https://example.org/new"

    def test_deterministic_and_pure(self):
        items = [
            make_item("Gold price today", "https://example.com/1"),
            make_item("Silver and gold rates", "https://example.com/2"),
            make_item("Gold price news", "https://example.com/3"),
        ]
        first = rank(items, "gold price today", now=NOW)
        second = rank(items, "gold price today", now=NOW)
        assert [i.id for i in first] == [i.id for i in second]
        assert [i.final_score for i in first] == [i.final_score for i in second]
        # Inputs are untouched
        assert all(item.final_score == 0.0 for item in items)
        assert all(item.raw_score_components == {} for item in items)

    def test_empty(self):
        assert rank([], "gold price", now=NOW) == []


class TestRankingConfig:
    """Tests for RankingConfig.from_dict()."""

    def test_defaults(self):
        config = RankingConfig.from_dict(None)
        assert config.weights == DEFAULT_WEIGHTS
        assert config.min_score == 1.0
        assert config.near_duplicate_jaccard == 0.85

    def test_partial_weights_merge(self):
        config = RankingConfig.from_dict({"ranking": {"weights": {"recency": 3.0}, "min_score": 2}})
        assert config.weights["recency"] == 3.0
        assert config.weights["exact_phrase"] == 10.0
        assert config.min_score == 2.0

    def test_numeric_trust(self):
        config = RankingConfig.from_dict({"source_trust": {"sources": {"Synthetic": 0.0}}})
        assert config.source_trust == {"synthetic": 0.0}
