"""
Query intent classification.

Decides whether a query needs live external data and, if so, which domain
should answer it. Matching is weighted term lookup over curated term sets;
there is no I/O and the result depends only on the query, the context and
the tuning config.

Domains:
- "location_time" - prayer times, sunrise/sunset, local time
- "crawled_news" - headlines, breaking news, regional events
- "generic_search" - prices, markets, weather, anything else time sensitive

Temporal words ("today", "now", "abhi") reinforce whichever domain matched.
On their own they still trigger a lookup, routed to generic search.

Also extracts a search-engine time filter:
- "day" - Last 24 hours (yesterday, today, last night)
- "week" - Last 7 days (this week, last week, recent)
- "month" - Last 30 days (this month, last month, lately)
- "year" - Last year (this year, last year)
"""

import logging
import re
from datetime import date
from typing import Optional

from plugin_base.common import (
    DOMAIN_TIE_ORDER,
    Domain,
    EnrichmentContext,
    Priority,
    Query,
    Verdict,
    is_latin,
    normalize_text,
)

logger = logging.getLogger(__name__)


# Term -> weight, per domain. Latin terms match whole tokens, other scripts
# match as substrings.
LOCATION_TIME_TERMS: dict[str, float] = {
    term: 3.0
    for term in (
        "prayer time",
        "prayer times",
        "prayer timing",
        "prayer timings",
        "namaz",
        "namaz time",
        "namaz ka waqt",
        "salah",
        "salat",
        "fajr",
        "dhuhr",
        "zuhr",
        "asr",
        "maghrib",
        "isha",
        "sehri",
        "sehar",
        "suhoor",
        "iftar",
        "iftari",
        "azan",
        "adhan",
        "sunrise",
        "sunset",
        "qibla",
        "what time",
        "current time",
        "local time",
        "time now",
        "waqt",
        "samay",
        "مواقيت الصلاة",
        "صلاة",
        "الفجر",
        "المغرب",
        "الوقت",
        "نماز",
        "وقت",
        "سحری",
        "افطار",
        "नमाज़",
        "नमाज",
        "समय",
        "सहरी",
        "इफ्तार",
    )
}

CRAWLED_NEWS_TERMS: dict[str, float] = {
    **{
        term: 2.0
        for term in (
            "news",
            "headline",
            "headlines",
            "breaking",
            "breaking news",
            "latest news",
            "reported",
            "reports",
            "announced",
            "coverage",
            "current events",
            "what happened",
            "khabar",
            "khabrein",
            "akhbar",
            "أخبار",
            "عاجل",
            "خبریں",
            "खबर",
            "समाचार",
        )
    },
    **{
        term: 2.5
        for term in (
            "gaza",
            "palestine",
            "israel",
            "west bank",
            "syria",
            "yemen",
            "sudan",
            "lebanon",
            "iran",
            "ukraine",
            "kashmir",
            "middle east",
            "al jazeera",
            "aljazeera",
            "election",
            "ceasefire",
            "غزة",
            "فلسطين",
        )
    },
}

GENERIC_SEARCH_TERMS: dict[str, float] = {
    term: 2.0
    for term in (
        "price",
        "prices",
        "rate",
        "rates",
        "gold",
        "silver",
        "market",
        "stock",
        "stocks",
        "share price",
        "currency",
        "exchange rate",
        "dollar",
        "bitcoin",
        "crypto",
        "weather",
        "forecast",
        "temperature",
        "score",
        "live score",
        "dam hai",
        "kya dam",
        "kaya dam",
        "price kya",
        "rate kya",
        "bhav",
        "sona",
        "chandi",
        "سعر",
        "الذهب",
        "قیمت",
        "भाव",
        "कीमत",
        "सोना",
    )
}

TEMPORAL_TERMS: dict[str, float] = {
    term: 1.0
    for term in (
        "today",
        "now",
        "right now",
        "latest",
        "current",
        "currently",
        "recent",
        "recently",
        "tonight",
        "tomorrow",
        "yesterday",
        "this week",
        "abhi",
        "aaj",
        "اليوم",
        "الآن",
        "آج",
        "अभी",
        "आज",
    )
}

DOMAIN_TERMS: dict[Domain, dict[str, float]] = {
    Domain.LOCATION_TIME: LOCATION_TIME_TERMS,
    Domain.CRAWLED_NEWS: CRAWLED_NEWS_TERMS,
    Domain.GENERIC_SEARCH: GENERIC_SEARCH_TERMS,
}

DEFAULT_CLASSIFIER_CONFIG = {
    "threshold": 2.0,
    "high_priority_score": 5.0,
    "medium_priority_score": 3.0,
    "history_factor": 0.25,
    "phrase_bonus": 1.0,
}


class _TermMatcher:
    """Precompiled matcher for one term table."""

    def __init__(self, terms: dict[str, float]):
        self.latin: list[tuple[str, str, float]] = []
        self.other: list[tuple[str, str, float]] = []
        for term, weight in terms.items():
            normalized = normalize_text(term)
            target = self.latin if is_latin(normalized) else self.other
            target.append((term, normalized, weight))

    def match(self, text: str, phrase_bonus: float) -> tuple[float, list[str]]:
        padded = f" {text} "
        score = 0.0
        hits = []
        for term, normalized, weight in self.latin:
            if f" {normalized} " in padded:
                score += weight
                if " " in normalized:
                    score += phrase_bonus
                hits.append(term)
        for term, normalized, weight in self.other:
            if normalized in text:
                score += weight
                hits.append(term)
        return score, hits


_DOMAIN_MATCHERS = {domain: _TermMatcher(terms) for domain, terms in DOMAIN_TERMS.items()}
_TEMPORAL_MATCHER = _TermMatcher(TEMPORAL_TERMS)


def _score_text(
    text: str, phrase_bonus: float
) -> tuple[dict[Domain, float], float, list[str]]:
    scores = {}
    matched = []
    for domain in DOMAIN_TIE_ORDER:
        score, hits = _DOMAIN_MATCHERS[domain].match(text, phrase_bonus)
        scores[domain] = score
        matched.extend(hits)
    temporal, temporal_hits = _TEMPORAL_MATCHER.match(text, phrase_bonus)
    matched.extend(temporal_hits)
    return scores, temporal, matched


def classify(
    query: "Query | str",
    context: Optional[EnrichmentContext] = None,
    config: Optional[dict] = None,
    today: Optional[date] = None,
) -> Verdict:
    """
    Classify a query.

    Args:
        query: Query object or raw text
        context: Optional caller context; the session history tail helps
            follow-up questions keep their domain
        config: Classifier tuning (threshold, priorities, history factor)
        today: Reference date for year-based time filters

    Returns:
        Verdict; never raises
    """
    if isinstance(query, str):
        query = Query.from_text(query)
    cfg = {**DEFAULT_CLASSIFIER_CONFIG, **(config or {})}
    text = query.normalized_text

    if not text:
        return Verdict(
            needs_external_data=False,
            domain=Domain.NONE,
            priority=Priority.LOW,
            reason="empty_query",
        )

    phrase_bonus = float(cfg["phrase_bonus"])
    scores, temporal, matched = _score_text(text, phrase_bonus)
    direct_hit = any(score > 0 for score in scores.values())

    if (direct_hit or temporal > 0) and context and context.session_history_tail:
        history_text = normalize_text(" ".join(context.session_history_tail[-3:]))
        history_scores, _, _ = _score_text(history_text, phrase_bonus)
        factor = float(cfg["history_factor"])
        for domain, score in history_scores.items():
            scores[domain] += factor * score

    time_range = _extract_time_range(text, today=today)
    score_map = {d.value: s for d, s in scores.items()}
    score_map["temporal"] = temporal

    best = max(
        DOMAIN_TIE_ORDER,
        key=lambda d: (scores[d], -DOMAIN_TIE_ORDER.index(d)),
    )
    total = scores[best] + temporal if scores[best] > 0 else 0.0
    threshold = float(cfg["threshold"])

    if scores[best] > 0 and total >= threshold:
        if total >= float(cfg["high_priority_score"]) or (
            direct_hit and temporal > 0
        ):
            priority = Priority.HIGH
        elif total >= float(cfg["medium_priority_score"]):
            priority = Priority.MEDIUM
        else:
            priority = Priority.LOW
        verdict = Verdict(
            needs_external_data=True,
            domain=best,
            priority=priority,
            reason=f"matched_{best.value}",
            scores=score_map,
            matched_terms=tuple(matched),
            time_range=time_range,
        )
    elif temporal > 0:
        verdict = Verdict(
            needs_external_data=True,
            domain=Domain.GENERIC_SEARCH,
            priority=Priority.LOW,
            reason="ambiguous_temporal",
            scores=score_map,
            matched_terms=tuple(matched),
            time_range=time_range or "day",
        )
    else:
        verdict = Verdict(
            needs_external_data=False,
            domain=Domain.NONE,
            priority=Priority.LOW,
            reason="below_threshold" if direct_hit else "no_signal",
            scores=score_map,
            matched_terms=tuple(matched),
        )

    logger.debug(
        f"Classified {query.raw_text!r}: domain={verdict.domain.value} "
        f"priority={verdict.priority.value} reason={verdict.reason} scores={score_map}"
    )
    return verdict


def _extract_time_range(text: str, today: Optional[date] = None) -> Optional[str]:
    """
    Extract time range from normalized text, mapped to search engine values.

    Returns one of: "day", "week", "month", "year", or None
    """
    today = today or date.today()
    padded = f" {text} "

    def has_any(patterns: list[str]) -> bool:
        return any(f" {pattern} " in padded for pattern in patterns)

    # Day-level patterns (last 24 hours)
    day_patterns = [
        "today",
        "yesterday",
        "last night",
        "this morning",
        "this afternoon",
        "this evening",
        "tonight",
        "now",
        "right now",
        "past 24 hours",
        "last 24 hours",
        "aaj",
        "abhi",
    ]
    if has_any(day_patterns):
        return "day"

    # Week-level patterns (last 7 days)
    week_patterns = [
        "this week",
        "last week",
        "past week",
        "recent",
        "recently",
        "latest",
        "last few days",
        "past few days",
    ]
    if has_any(week_patterns):
        return "week"

    match = re.search(r"last (\d+) days?", text)
    if match:
        days = int(match.group(1))
        if days <= 1:
            return "day"
        elif days <= 7:
            return "week"
        elif days <= 30:
            return "month"
        else:
            return "year"

    # Month-level patterns (last 30 days)
    month_patterns = [
        "this month",
        "last month",
        "past month",
        "lately",
        "last few weeks",
        "past few weeks",
    ]
    if has_any(month_patterns):
        return "month"

    year_patterns = [
        "this year",
        "last year",
        "past year",
        f"in {today.year}",
        f"in {today.year - 1}",
    ]
    if has_any(year_patterns):
        return "year"

    # News-related queries often imply recency
    if has_any(["breaking", "headlines", "current", "announced"]):
        return "day"

    return None


def search_category_for(domain: Domain) -> str:
    """Search-engine category to use for a domain."""
    return "news" if domain == Domain.CRAWLED_NEWS else "general"
