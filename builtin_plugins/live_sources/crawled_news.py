"""
Crawled news live source plugin.

Builds a small, fresh news corpus by crawling a fixed set of seed pages
(Al Jazeera main and regional sections by default): article links are pulled
from the seed pages, the most query-relevant candidates are fetched
concurrently and their title, summary, publish time and category extracted.

Failed candidates are skipped and counted; they never fail the whole fetch.
"""

import asyncio
import logging
from typing import Optional
from urllib.parse import urlsplit

from augmentation.ranker import content_terms
from augmentation.scraper import (
    ArticleScraper,
    extract_links,
    is_valid_article_url,
)
from live.fetcher import HttpFetcher
from plugin_base.common import (
    Domain,
    EnrichmentContext,
    ErrorKind,
    Query,
    ResultItem,
)
from plugin_base.live_source import (
    LiveDataResult,
    ParamDefinition,
    PluginLiveSource,
)

logger = logging.getLogger(__name__)

DEFAULT_SEED_URLS = [
    "https://www.aljazeera.com/",
    "https://www.aljazeera.com/middle-east/",
    "https://www.aljazeera.com/africa/",
    "https://www.aljazeera.com/asia/",
    "https://www.aljazeera.com/us-canada/",
    "https://www.aljazeera.com/latin-america/",
    "https://www.aljazeera.com/europe/",
    "https://www.aljazeera.com/asia-pacific/",
    "https://www.aljazeera.com/news/",
]

# Words that say nothing about which article is relevant
GENERIC_NEWS_WORDS = frozenset(
    ["news", "latest", "today", "now", "current", "breaking", "headlines", "update"]
)

BREAKING_MARKERS = ("breaking", "live:", "live updates", "liveblog")


def query_terms(text: str) -> list[str]:
    """Topical words of a normalized query."""
    return [
        t for t in content_terms(text) if len(t) >= 3 and t not in GENERIC_NEWS_WORDS
    ]


class CrawledNewsLiveSource(PluginLiveSource):
    """
    News from a crawled set of seed pages.

    Candidate links are ranked by how many query terms appear in the URL
    slug before the candidate cap applies, so on-topic articles get fetched
    first.
    """

    source_type = "crawled_news"
    display_name = "Crawled News"
    description = "Headlines and articles crawled from configured news seed pages"
    domain = Domain.CRAWLED_NEWS
    best_for = "Breaking news, regional headlines (Middle East, Asia, Africa), current events"
    default_cache_ttl = 900  # 15 minutes

    _abstract = False

    MIN_TITLE_LENGTH = 10

    @classmethod
    def get_param_definitions(cls) -> list[ParamDefinition]:
        return [
            ParamDefinition(
                name="max_candidates",
                description="Maximum number of articles to fetch",
                param_type="integer",
                required=False,
                default=12,
                examples=["6", "12"],
            ),
        ]

    def __init__(self, config: dict, fetcher: HttpFetcher):
        self.fetcher = fetcher
        self.seed_urls = list(config.get("seed_urls") or DEFAULT_SEED_URLS)
        self.max_candidates = int(config.get("max_candidates", 12))
        self.scraper = ArticleScraper(fetcher, timeout=config.get("item_timeout"))
        self.allowed_hosts = tuple(
            sorted(
                {
                    (urlsplit(url).hostname or "").removeprefix("www.")
                    for url in self.seed_urls
                }
                - {""}
            )
        )

    async def fetch(
        self,
        query: Query,
        params: Optional[dict] = None,
        context: Optional[EnrichmentContext] = None,
    ) -> LiveDataResult:
        params = params or {}
        max_candidates = int(params.get("max_candidates") or self.max_candidates)
        try:
            seed_results = await asyncio.gather(
                *(self.fetcher.get(url) for url in self.seed_urls)
            )
            healthy = [r for r in seed_results if r.ok]
            if not healthy:
                kind = next(
                    (r.error_kind for r in seed_results if r.error_kind),
                    ErrorKind.UNAVAILABLE,
                )
                logger.error(f"All {len(self.seed_urls)} news seed pages failed")
                return LiveDataResult.failure(
                    self.source_type, kind, "All seed pages failed"
                )

            candidates = self._candidate_links(healthy)
            candidates = self._prioritize(candidates, query)[:max_candidates]
            logger.info(
                f"Crawling {len(candidates)} article candidates "
                f"from {len(healthy)}/{len(self.seed_urls)} seed pages"
            )

            scraped = await asyncio.gather(
                *(self.scraper.scrape(url) for url in candidates)
            )

            items = []
            skipped = 0
            for result in scraped:
                if not result.success or len(result.title) < self.MIN_TITLE_LENGTH:
                    logger.debug(f"Skipping {result.url}: {result.error or 'short title'}")
                    skipped += 1
                    continue
                items.append(self._to_item(result))

            logger.info(
                f"Crawled news: {len(items)} articles, {skipped} skipped"
            )
            return LiveDataResult(
                success=True,
                items=items,
                source_type=self.source_type,
                cache_ttl=self.default_cache_ttl,
                skipped=skipped,
            )

        except Exception as e:
            logger.exception(f"News crawl failed: {e}")
            return LiveDataResult.failure(self.source_type, ErrorKind.UNKNOWN, str(e))

    def _candidate_links(self, seed_results: list) -> list[str]:
        seen = set()
        candidates = []
        for result in seed_results:
            for link in extract_links(result.text, result.url):
                normalized = link.split("?")[0].rstrip("/")
                if normalized in seen:
                    continue
                if is_valid_article_url(link, self.allowed_hosts):
                    seen.add(normalized)
                    candidates.append(link)
        return candidates

    @staticmethod
    def _prioritize(candidates: list[str], query: Query) -> list[str]:
        terms = query_terms(query.normalized_text)
        if not terms:
            return candidates

        def relevance(indexed: tuple[int, str]) -> tuple[int, int]:
            index, url = indexed
            slug = urlsplit(url).path.lower().replace("-", " ").replace("/", " ")
            words = set(slug.split())
            return (-sum(1 for term in terms if term in words), index)

        return [url for _, url in sorted(enumerate(candidates), key=relevance)]

    def _to_item(self, result) -> ResultItem:
        tags = {"news"}
        lowered_title = result.title.lower()
        path = urlsplit(result.url).path.lower()
        if "/liveblog/" in path or any(m in lowered_title for m in BREAKING_MARKERS):
            tags.add("breaking")
        host = (urlsplit(result.url).hostname or "").removeprefix("www.")
        body = result.content[:1500]
        return ResultItem(
            title=result.title,
            body=body,
            summary=result.summary or body[:300],
            source_url=result.url,
            source_name=host,
            published_at=result.published_at,
            category=result.category,
            domain_tags=tags,
            metadata={"image_url": result.image_url} if result.image_url else {},
        )
