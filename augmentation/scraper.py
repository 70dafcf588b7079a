"""
Article scraper for crawled news pages.

Pulls link candidates out of seed pages and structured fields out of article
pages. Extraction is pattern based and tolerant of malformed markup; each
field has a chain of patterns ordered from most to least specific:

- title: og:title, <h1>, <title>
- summary: og:description, meta description, first substantial <p>
- published time: article:published_time, JSON-LD datePublished, <time datetime>
- category: article:section, URL path

Body text uses trafilatura, falling back to regex paragraph extraction.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from html import unescape
from typing import Optional
from urllib.parse import urljoin, urlsplit

import trafilatura

from live.fetcher import HttpFetcher
from plugin_base.common import ErrorKind

logger = logging.getLogger(__name__)

# Site suffixes removed from <title> text
TITLE_SUFFIXES = (" - Al Jazeera", " | Al Jazeera", " | Reuters", " - BBC News")

_META_TAG_RE = re.compile(r"<meta\b[^>]*>", re.IGNORECASE)
_ATTR_RE = re.compile(r"""([\w:.-]+)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))""")
_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_H1_RE = re.compile(r"<h1[^>]*>(.*?)</h1>", re.IGNORECASE | re.DOTALL)
_P_RE = re.compile(r"<p[^>]*>(.*?)</p>", re.IGNORECASE | re.DOTALL)
_TIME_RE = re.compile(
    r"""<time[^>]*\bdatetime\s*=\s*["']([^"']+)["']""", re.IGNORECASE
)
_JSON_LD_RE = re.compile(
    r"""<script[^>]*type\s*=\s*["']application/ld\+json["'][^>]*>(.*?)</script>""",
    re.IGNORECASE | re.DOTALL,
)
_DATE_PUBLISHED_RE = re.compile(r'"datePublished"\s*:\s*"([^"]+)"')
_HREF_RE = re.compile(r"""<a\b[^>]*?\bhref\s*=\s*["']([^"'#]+)["']""", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")


@dataclass
class ScrapeResult:
    """Result of scraping an article URL."""

    url: str
    title: str
    content: str
    success: bool
    summary: str = ""
    published_at: Optional[datetime] = None
    category: str = ""
    image_url: str = ""
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    attempts: int = 0
    metadata: dict = field(default_factory=dict)


def _clean(fragment: str) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    return " ".join(unescape(_TAG_RE.sub(" ", fragment)).split())


def _meta_content(html: str, names: tuple[str, ...]) -> str:
    """
    Value of the first <meta> whose property/name/itemprop is in names.

    Names are tried in order, so earlier names win regardless of where the
    tags sit in the document.
    """
    found: dict[str, str] = {}
    for tag in _META_TAG_RE.findall(html):
        attrs = {}
        for match in _ATTR_RE.finditer(tag):
            value = next((g for g in match.groups()[1:] if g is not None), "")
            attrs[match.group(1).lower()] = value
        key = (
            attrs.get("property") or attrs.get("name") or attrs.get("itemprop") or ""
        ).lower()
        if key in names and key not in found and attrs.get("content"):
            found[key] = unescape(attrs["content"]).strip()
    for name in names:
        if found.get(name):
            return found[name]
    return ""


def parse_datetime(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware datetime, or None."""
    if not value:
        return None
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    # "+0300" -> "+03:00"
    value = re.sub(r"([+-]\d{2})(\d{2})$", r"\1:\2", value)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed = datetime.strptime(value[:10], "%Y-%m-%d")
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def extract_title(html: str) -> str:
    """Article title: og:title, then <h1>, then <title> without site suffix."""
    title = _meta_content(html, ("og:title", "twitter:title"))
    if not title:
        match = _H1_RE.search(html)
        if match:
            title = _clean(match.group(1))
    if not title:
        match = _TITLE_RE.search(html)
        if match:
            title = _clean(match.group(1))
    for suffix in TITLE_SUFFIXES:
        if title.endswith(suffix):
            title = title[: -len(suffix)].strip()
    return title


def extract_summary(html: str, min_paragraph: int = 40) -> str:
    """Summary: og:description, then meta description, then first long <p>."""
    summary = _meta_content(html, ("og:description", "description", "twitter:description"))
    if summary:
        return summary
    for match in _P_RE.finditer(html):
        text = _clean(match.group(1))
        if len(text) >= min_paragraph:
            return text
    return ""


def _json_ld_date(html: str) -> Optional[datetime]:
    for block in _JSON_LD_RE.findall(html):
        try:
            data = json.loads(block.strip())
        except ValueError:
            match = _DATE_PUBLISHED_RE.search(block)
            if match:
                return parse_datetime(match.group(1))
            continue
        stack = [data]
        while stack:
            node = stack.pop(0)
            if isinstance(node, list):
                stack.extend(node)
            elif isinstance(node, dict):
                if isinstance(node.get("datePublished"), str):
                    parsed = parse_datetime(node["datePublished"])
                    if parsed:
                        return parsed
                stack.extend(v for v in node.values() if isinstance(v, (dict, list)))
    return None


def extract_published(html: str) -> Optional[datetime]:
    """Publish time: article meta, then JSON-LD, then <time datetime>."""
    value = _meta_content(
        html, ("article:published_time", "og:published_time", "datepublished", "pubdate")
    )
    parsed = parse_datetime(value) if value else None
    if parsed:
        return parsed
    parsed = _json_ld_date(html)
    if parsed:
        return parsed
    match = _TIME_RE.search(html)
    if match:
        return parse_datetime(match.group(1))
    return None


# Path segments that say nothing about the topic
_GENERIC_SEGMENTS = {"news", "article", "articles", "features", "liveblog", "live", "amp"}


def extract_category(html: str, url: str) -> str:
    """Category: article:section, then the first topical URL path segment."""
    section = _meta_content(html, ("article:section",))
    if section:
        return section.lower()
    segments = [s for s in urlsplit(url).path.split("/") if s]
    for segment in segments[:-1]:
        if segment.lower() in _GENERIC_SEGMENTS or segment.isdigit():
            continue
        return segment.lower()
    return segments[0].lower() if len(segments) > 1 else ""


def extract_body(html: str, url: str = "") -> str:
    """Main body text via trafilatura, regex fallback."""
    try:
        content = trafilatura.extract(
            html,
            include_comments=False,
            include_tables=False,
            favor_precision=True,
        )
        if content:
            return content
    except Exception as e:
        logger.warning(f"trafilatura extraction failed for {url}: {e}")
    return html_to_text_fallback(html)


def html_to_text_fallback(html: str) -> str:
    """
    Fallback HTML to text conversion using regex.

    Used when trafilatura finds nothing.
    """
    # Remove script and style elements entirely
    html = re.sub(r"<script[^>]*>.*?</script>", "", html, flags=re.IGNORECASE | re.DOTALL)
    html = re.sub(r"<style[^>]*>.*?</style>", "", html, flags=re.IGNORECASE | re.DOTALL)

    # Remove nav, header, footer, aside elements
    for tag in ("nav", "header", "footer", "aside"):
        html = re.sub(
            rf"<{tag}[^>]*>.*?</{tag}>", "", html, flags=re.IGNORECASE | re.DOTALL
        )

    paragraphs = [_clean(p) for p in _P_RE.findall(html)]
    paragraphs = [p for p in paragraphs if p]
    if paragraphs:
        return "\n\n".join(paragraphs)

    html = re.sub(r"<(div|br|h[1-6]|li|tr)[^>]*>", "\n", html, flags=re.IGNORECASE)
    lines = [" ".join(unescape(line).split()) for line in _TAG_RE.sub("", html).split("\n")]
    return "\n".join(line for line in lines if line).strip()


def extract_links(html: str, base_url: str) -> list[str]:
    """Absolute link targets in document order, de-duplicated."""
    seen = set()
    links = []
    for href in _HREF_RE.findall(html):
        href = unescape(href.strip())
        if href.startswith(("javascript:", "mailto:", "tel:")):
            continue
        absolute = urljoin(base_url, href)
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links


# Paths that are listings or media rather than articles
EXCLUDED_PATH_PARTS = (
    "/video/",
    "/gallery/",
    "/podcast/",
    "/podcasts/",
    "/programme/",
    "/program/",
    "/show/",
    "/series/",
    "/tag/",
    "/author/",
)
ARTICLE_PATH_PREFIXES = ("/news/", "/features/", "/article/", "/opinions/", "/economy/")


def is_valid_article_url(url: str, allowed_hosts: tuple[str, ...]) -> bool:
    """True for article pages on an allowed host."""
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        return False
    host = (parts.hostname or "").lower()
    if not any(host == h or host.endswith("." + h) for h in allowed_hosts):
        return False
    path = parts.path.lower()
    if any(excluded in path for excluded in EXCLUDED_PATH_PARTS):
        return False
    if path.rstrip("/").endswith("/live") or path.startswith("/where/"):
        return False
    if not path.startswith(ARTICLE_PATH_PREFIXES):
        return False
    # Section index pages such as /news/ or /news/asia have too few segments
    segments = [s for s in path.split("/") if s]
    return len(segments) >= 3


class ArticleScraper:
    """
    Fetches article pages and extracts structured fields.

    All network access goes through the shared HttpFetcher, so retries and
    the global concurrency limit apply.
    """

    def __init__(self, fetcher: HttpFetcher, timeout: Optional[float] = None):
        self.fetcher = fetcher
        self.timeout = timeout

    async def scrape(self, url: str) -> ScrapeResult:
        result = await self.fetcher.get(url, timeout=self.timeout)
        if not result.ok:
            return ScrapeResult(
                url=url,
                title="",
                content="",
                success=False,
                error=result.error,
                error_kind=result.error_kind,
                attempts=result.attempts,
            )
        return self.parse(url, result.text, attempts=result.attempts)

    def parse(self, url: str, html: str, attempts: int = 1) -> ScrapeResult:
        title = extract_title(html)
        content = extract_body(html, url)
        logger.debug(f"Extracted {len(content)} chars from {url}")
        return ScrapeResult(
            url=url,
            title=title,
            content=content,
            success=bool(title),
            summary=extract_summary(html),
            published_at=extract_published(html),
            category=extract_category(html, url),
            image_url=_meta_content(html, ("og:image",)),
            error=None if title else "No title found",
            attempts=attempts,
        )
