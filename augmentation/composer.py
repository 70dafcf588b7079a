"""
Enrichment payload composition.

Turns a verdict and ranked items into the immutable EnrichmentPayload and
serializes payloads into the bounded, source-attributed text block that is
injected into the generation prompt.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from plugin_base.common import (
    Domain,
    EnrichmentPayload,
    QualityLevel,
    Query,
    ResultItem,
    Verdict,
)

logger = logging.getLogger(__name__)

NO_DATA_MARKER = (
    "No current external data is available for this query. Answer from general "
    "knowledge and say that live information could not be retrieved."
)

DEFAULT_TOP_N = {
    Domain.LOCATION_TIME: 3,
    Domain.CRAWLED_NEWS: 8,
    Domain.GENERIC_SEARCH: 5,
}


@dataclass
class ComposerConfig:
    top_n: dict = field(default_factory=lambda: dict(DEFAULT_TOP_N))
    max_chars: int = 4000
    excellent_min_items: int = 3
    excellent_min_avg_score: float = 8.0
    excellent_min_sources: int = 2
    good_min_items: int = 2
    good_min_avg_score: float = 4.0

    @classmethod
    def from_dict(cls, config: Optional[dict]) -> "ComposerConfig":
        section = (config or {}).get("composer") or {}
        top_n = dict(DEFAULT_TOP_N)
        for name, value in (section.get("top_n") or {}).items():
            try:
                top_n[Domain(name)] = int(value)
            except ValueError:
                logger.warning(f"Ignoring top_n for unknown domain {name!r}")
        excellent = section.get("excellent") or {}
        good = section.get("good") or {}
        return cls(
            top_n=top_n,
            max_chars=int(section.get("max_chars", 4000)),
            excellent_min_items=int(excellent.get("min_items", 3)),
            excellent_min_avg_score=float(excellent.get("min_avg_score", 8.0)),
            excellent_min_sources=int(excellent.get("min_sources", 2)),
            good_min_items=int(good.get("min_items", 2)),
            good_min_avg_score=float(good.get("min_avg_score", 4.0)),
        )


def assess_quality(items: list[ResultItem], config: ComposerConfig) -> QualityLevel:
    """
    Quality of a set of items.

    Only genuine (non-synthetic) items count towards FAIR and above; a set of
    only synthetic items is POOR.
    """
    if not items:
        return QualityLevel.NONE
    genuine = [item for item in items if not item.synthetic]
    if not genuine:
        return QualityLevel.POOR

    average = sum(item.final_score for item in genuine) / len(genuine)
    sources = {item.source_name for item in genuine if item.source_name}

    if (
        len(genuine) >= config.excellent_min_items
        and average >= config.excellent_min_avg_score
        and len(sources) >= config.excellent_min_sources
    ):
        return QualityLevel.EXCELLENT
    if len(genuine) >= config.good_min_items and average >= config.good_min_avg_score:
        return QualityLevel.GOOD
    return QualityLevel.FAIR


def compose(
    verdict: Verdict,
    ranked_items: list[ResultItem],
    query: Query,
    *,
    generated_at: datetime,
    config: Optional[ComposerConfig] = None,
    errors: tuple = (),
) -> EnrichmentPayload:
    """
    Build the payload for a query.

    Args:
        verdict: Classifier decision
        ranked_items: Items already ordered by the ranker
        query: The query
        generated_at: Timestamp to stamp on the payload
        config: Top-N and quality thresholds
        errors: Provider error kind values met while fetching

    Returns:
        EnrichmentPayload holding the top N items for the verdict's domain
    """
    config = config or ComposerConfig()
    limit = config.top_n.get(verdict.domain, 5)
    items = tuple(ranked_items[:limit]) if verdict.needs_external_data else ()
    quality = assess_quality(list(items), config)

    return EnrichmentPayload(
        query=query,
        domain=verdict.domain,
        items=items,
        generated_at=generated_at,
        quality_level=quality,
        verdict=verdict,
        no_data_marker=(
            NO_DATA_MARKER
            if quality == QualityLevel.NONE and verdict.needs_external_data
            else ""
        ),
        errors=tuple(errors),
    )


def format_payload(payload: EnrichmentPayload, max_chars: int = 4000) -> str:
    """
    Serialize a payload for injection into the generation prompt.

    Args:
        payload: The payload
        max_chars: Upper bound on the returned text length

    Returns:
        Markdown block with one section per item. Without items, the
        payload's no-data marker (empty when no external data was needed)
    """
    if not payload.items:
        return payload.no_data_marker

    header = (
        f"## Live information ({payload.domain.value.replace('_', ' ')})\n"
        f"Retrieved: {payload.generated_at.strftime('%Y-%m-%d %H:%M %Z').strip()} | "
        f"Quality: {payload.quality_level.value}\n"
    )
    if payload.quality_level == QualityLevel.POOR:
        header += (
            "Note: no verified live results were found; the entries below are "
            "search suggestions, not facts.\n"
        )

    sections = []
    used = len(header)
    per_item = max(200, (max_chars - used) // len(payload.items))
    for index, item in enumerate(payload.items, 1):
        lines = [f"### {index}. {item.title}"]
        source = item.source_name or "unknown source"
        if item.synthetic:
            source += " (placeholder)"
        lines.append(f"Source: {source}")
        if item.source_url:
            lines.append(f"URL: {item.source_url}")
        if item.published_at:
            lines.append(f"Published: {item.published_at.isoformat()}")
        text = item.body or item.summary
        meta = "\n".join(lines) + "\n"
        available = per_item - len(meta) - 2
        if available > 0 and text:
            if len(text) > available:
                text = text[: max(0, available - 3)].rstrip() + "..."
            section = meta + text + "\n"
        else:
            section = meta
        if used + len(section) + 1 > max_chars:
            break
        sections.append(section)
        used += len(section) + 1

    return (header + "\n" + "\n".join(sections)).strip()[:max_chars]
