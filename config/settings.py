"""
Runtime settings for the enrichment engine.

Operational settings (timeouts, concurrency, API keys, provider toggles) come
from environment variables. Tuning values (ranking weights, thresholds, cache
TTLs, source trust) come from ranking.yaml next to this module, or from the
file named by ENRICH_RANKING_FILE.
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

# Path to the tuning YAML file
RANKING_FILE = Path(__file__).parent / "ranking.yaml"


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {value!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid number for {name}: {value!r}, using {default}")
        return default


def _env_list(name: str) -> list[str]:
    value = os.environ.get(name, "")
    return [part.strip() for part in value.split(",") if part.strip()]


def load_ranking_config(path: Optional[Path] = None) -> dict[str, Any]:
    """Load the tuning YAML configuration.

    Args:
        path: Explicit file to read. Defaults to ENRICH_RANKING_FILE, then
            the ranking.yaml shipped with the package.

    Returns:
        Dict with classifier, ranking, source_trust, composer and cache sections
    """
    if path is None:
        env_path = os.environ.get("ENRICH_RANKING_FILE")
        path = Path(env_path) if env_path else RANKING_FILE

    if not path.exists():
        logger.warning(f"Ranking config file not found: {path}")
        return {}

    with open(path, "r") as f:
        config = yaml.safe_load(f) or {}

    if path != RANKING_FILE and RANKING_FILE.exists():
        # Partial override files are merged onto the shipped defaults
        with open(RANKING_FILE, "r") as f:
            defaults = yaml.safe_load(f) or {}
        config = _deep_merge(defaults, config)

    return config


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@dataclass
class EnricherSettings:
    """Everything the engine needs to know at construction time."""

    max_concurrency: int = 6
    provider_timeout: float = 18.0
    overall_deadline: float = 25.0
    request_timeout: float = 15.0
    retry_attempts: int = 3
    backoff_base: float = 1.0

    enable_location_time: bool = True
    enable_crawled_news: bool = True
    enable_web_search: bool = True
    enable_ip_geolocation: bool = True

    news_seed_urls: list[str] = field(default_factory=list)
    news_max_candidates: int = 12

    search_backends: list[str] = field(default_factory=list)
    searxng_url: Optional[str] = None
    jina_api_key: Optional[str] = None
    tavily_api_key: Optional[str] = None
    aladhan_method: int = 4

    ranking: dict[str, Any] = field(default_factory=dict)

    def section(self, name: str) -> dict[str, Any]:
        """Return a section of the tuning config, or an empty dict."""
        return self.ranking.get(name) or {}


def load_settings(ranking_path: Optional[Path] = None) -> EnricherSettings:
    """Build settings from the environment and the tuning YAML."""
    return EnricherSettings(
        max_concurrency=max(1, _env_int("ENRICH_MAX_CONCURRENCY", 6)),
        provider_timeout=_env_float("ENRICH_PROVIDER_TIMEOUT", 18.0),
        overall_deadline=_env_float("ENRICH_DEADLINE", 25.0),
        request_timeout=_env_float("ENRICH_REQUEST_TIMEOUT", 15.0),
        retry_attempts=max(1, _env_int("ENRICH_RETRY_ATTEMPTS", 3)),
        backoff_base=_env_float("ENRICH_BACKOFF_SECONDS", 1.0),
        enable_location_time=_env_bool("ENRICH_LOCATION_TIME_ENABLED", True),
        enable_crawled_news=_env_bool("ENRICH_CRAWLED_NEWS_ENABLED", True),
        enable_web_search=_env_bool("ENRICH_WEB_SEARCH_ENABLED", True),
        enable_ip_geolocation=_env_bool("ENRICH_IP_GEOLOCATION_ENABLED", True),
        news_seed_urls=_env_list("ENRICH_NEWS_SEED_URLS"),
        news_max_candidates=_env_int("ENRICH_NEWS_MAX_CANDIDATES", 12),
        search_backends=_env_list("ENRICH_SEARCH_BACKENDS"),
        searxng_url=os.environ.get("SEARXNG_URL"),
        jina_api_key=os.environ.get("JINA_API_KEY"),
        tavily_api_key=os.environ.get("TAVILY_API_KEY"),
        aladhan_method=_env_int("ALADHAN_METHOD", 4),
        ranking=load_ranking_config(ranking_path),
    )
