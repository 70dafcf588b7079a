"""
Result ranking and de-duplication.

Every item gets a set of score components in [0, 1]:

- exact_phrase: longest run of consecutive query words (stop words
  dropped, at least two unless the query has one) found in title (1.0),
  summary (0.8) or body (0.5), scaled by its share of the query words
- title_terms / summary_terms / body_terms: fraction of query content
  words present in that field
- domain_relevance: density of Islamic/regional topic vocabulary
- recency: 1.0 when just published, falling linearly to 0 at the cutoff
  (72h by default); 0 when the publish time is unknown
- source_trust: static trust weight of the source
- category: a query word appears in the item's category

final_score is the weighted sum of the components. Weights, thresholds and
the trust table come from config (see config/ranking.yaml).

rank() is pure: the same items, query, now and config always give the same
output.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlsplit

from plugin_base.common import Query, ResultItem, normalize_text

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: dict[str, float] = {
    "exact_phrase": 10.0,
    "title_terms": 5.0,
    "summary_terms": 3.0,
    "body_terms": 1.0,
    "domain_relevance": 2.0,
    "recency": 1.8,
    "source_trust": 1.2,
    "category": 0.5,
}

STOP_WORDS = frozenset(
    """
    a an the and or of in on at to for with by from is are was were be been
    what whats which who when where how why do does did can could will would
    about this that these those it its me my i you your we our they their
    tell show give please any some there here
    kya hai hain ka ki ke ko mein aur
    """.split()
)

# Topic vocabulary behind domain_relevance
DOMAIN_VOCABULARY = frozenset(
    """
    islam islamic muslim muslims mosque masjid quran hadith sunnah ramadan
    eid hajj umrah prayer prayers namaz salah salat imam halal zakat makkah
    mecca madina medina ummah fatwa sharia prophet fajr maghrib isha iftar
    sehri suhoor palestine palestinian gaza jerusalem aqsa
    """.split()
)

TRUST_LEVELS = {"high": 0.9, "medium": 0.7, "low": 0.3}


@dataclass
class RankingConfig:
    """Tuning for rank(). Build with from_dict() from the YAML config."""

    weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    min_score: float = 1.0
    recency_cutoff_hours: float = 72.0
    near_duplicate_jaccard: float = 0.85
    default_trust: float = 0.5
    source_trust: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, config: Optional[dict]) -> "RankingConfig":
        config = config or {}
        ranking = config.get("ranking") or {}
        trust = config.get("source_trust") or {}

        levels = dict(TRUST_LEVELS)
        for level in ("high", "medium", "low"):
            if isinstance(trust.get(level), (int, float)):
                levels[level] = float(trust[level])

        table = {}
        for source, value in (trust.get("sources") or {}).items():
            if isinstance(value, str):
                table[source.lower()] = levels.get(value.lower(), 0.5)
            else:
                table[source.lower()] = float(value)

        return cls(
            weights={**DEFAULT_WEIGHTS, **(ranking.get("weights") or {})},
            min_score=float(ranking.get("min_score", 1.0)),
            recency_cutoff_hours=float(ranking.get("recency_cutoff_hours", 72)),
            near_duplicate_jaccard=float(ranking.get("near_duplicate_jaccard", 0.85)),
            default_trust=float(trust.get("default", 0.5)),
            source_trust=table,
        )


def _tokens(text: str) -> list[str]:
    return normalize_text(text).split()


def content_terms(text: str) -> list[str]:
    """Query words that carry meaning; all words if every one is a stop word."""
    tokens = _tokens(text)
    terms = [t for t in tokens if t not in STOP_WORDS]
    return list(dict.fromkeys(terms or tokens))


def _fraction(terms: list[str], field_tokens: set[str]) -> float:
    if not terms:
        return 0.0
    return sum(1 for t in terms if t in field_tokens) / len(terms)


def _phrase_words(text: str) -> list[str]:
    tokens = _tokens(text)
    return [t for t in tokens if t not in STOP_WORDS] or tokens


def longest_run(query_words: list[str], field_words: list[str]) -> int:
    """Length of the longest run of consecutive query words in a field."""
    best = 0
    previous = [0] * (len(field_words) + 1)
    for word in query_words:
        current = [0] * (len(field_words) + 1)
        for j, field_word in enumerate(field_words, start=1):
            if word == field_word:
                current[j] = previous[j - 1] + 1
                best = max(best, current[j])
        previous = current
    return best


def phrase_match(query_words: list[str], item: ResultItem) -> float:
    if not query_words:
        return 0.0
    shortest = min(2, len(query_words))
    score = 0.0
    for text, factor in ((item.title, 1.0), (item.summary, 0.8), (item.body, 0.5)):
        run = longest_run(query_words, _phrase_words(text))
        if run >= shortest:
            score = max(score, factor * run / len(query_words))
    return score


def source_trust(item: ResultItem, config: RankingConfig) -> float:
    """Trust weight for an item's source; synthetic items get none."""
    if item.synthetic:
        return 0.0
    candidates = [item.source_name.lower()]
    host = (urlsplit(item.source_url).hostname or "").lower()
    if host:
        candidates.append(host.removeprefix("www."))
    for candidate in candidates:
        if not candidate:
            continue
        for source, trust in config.source_trust.items():
            if candidate == source or candidate.endswith("." + source):
                return trust
    return config.default_trust


def recency(
    published_at: Optional[datetime], now: datetime, cutoff_hours: float
) -> float:
    if published_at is None or cutoff_hours <= 0:
        return 0.0
    if published_at.tzinfo is None:
        published_at = published_at.replace(tzinfo=timezone.utc)
    age_hours = (now - published_at).total_seconds() / 3600
    if age_hours <= 0:
        return 1.0
    return max(0.0, 1.0 - age_hours / cutoff_hours)


def score_components(
    item: ResultItem,
    query: Query,
    now: datetime,
    config: RankingConfig,
) -> dict[str, float]:
    terms = content_terms(query.normalized_text)
    exact = phrase_match(_phrase_words(query.normalized_text), item)

    title_tokens = set(_tokens(item.title))
    summary_tokens = set(_tokens(item.summary))
    body_tokens = set(_tokens(item.body))

    topical = title_tokens | summary_tokens
    vocabulary_hits = len(topical & DOMAIN_VOCABULARY)

    category_tokens = set(_tokens(item.category))

    return {
        "exact_phrase": exact,
        "title_terms": _fraction(terms, title_tokens),
        "summary_terms": _fraction(terms, summary_tokens),
        "body_terms": _fraction(terms, body_tokens),
        "domain_relevance": min(1.0, vocabulary_hits / 3),
        "recency": recency(item.published_at, now, config.recency_cutoff_hours),
        "source_trust": source_trust(item, config),
        "category": 1.0 if category_tokens & set(terms) else 0.0,
    }


def final_score(components: dict[str, float], weights: dict[str, float]) -> float:
    return sum(weights.get(name, 0.0) * value for name, value in components.items())


def _jaccard(a: set[str], b: set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def rank(
    items: list[ResultItem],
    query: "Query | str",
    *,
    now: Optional[datetime] = None,
    weights: Optional[dict[str, float]] = None,
    config: Optional[RankingConfig] = None,
) -> list[ResultItem]:
    """
    Score, de-duplicate and order result items.

    Args:
        items: Candidate items from any number of providers
        query: The query being answered
        now: Reference time for recency (defaults to the current UTC time)
        weights: Component weights overriding config.weights
        config: Ranking configuration

    Returns:
        New list of scored copies. Genuine items come before synthetic ones;
        within each group phrase matches come first, then order is score,
        domain relevance, recency and original position. Genuine items
        below min_score are dropped; synthetic items are kept.
    """
    if isinstance(query, str):
        query = Query.from_text(query)
    config = config or RankingConfig()
    now = now or datetime.now(timezone.utc)
    active_weights = {**config.weights, **(weights or {})}

    # Score and merge identical ids, keeping the higher score
    best: dict[str, tuple[int, ResultItem]] = {}
    for index, item in enumerate(items):
        components = score_components(item, query, now, config)
        scored = replace(
            item,
            raw_score_components=components,
            final_score=final_score(components, active_weights),
        )
        current = best.get(item.id)
        if current is None:
            best[item.id] = (index, scored)
        elif scored.final_score > current[1].final_score:
            best[item.id] = (current[0], scored)

    ordered = sorted(
        best.values(),
        key=lambda pair: (
            pair[1].synthetic,
            pair[1].raw_score_components["exact_phrase"] == 0.0,
            -pair[1].final_score,
            -pair[1].raw_score_components["domain_relevance"],
            -pair[1].raw_score_components["recency"],
            pair[0],
        ),
    )

    ranked: list[ResultItem] = []
    kept_titles: list[set[str]] = []
    dropped_low = 0
    for _, item in ordered:
        if not item.synthetic and item.final_score < config.min_score:
            dropped_low += 1
            continue
        title_tokens = set(_tokens(item.title))
        if any(
            _jaccard(title_tokens, kept) >= config.near_duplicate_jaccard
            for kept in kept_titles
        ):
            continue
        kept_titles.append(title_tokens)
        ranked.append(item)

    logger.debug(
        f"Ranked {len(items)} items -> {len(ranked)} "
        f"({len(items) - len(best)} duplicate ids, {dropped_low} below min score)"
    )
    return ranked
