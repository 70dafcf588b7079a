"""
Search backend module.

Provides an extensible registry of web search backends used by the generic
search provider.
"""

import logging
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from live.fetcher import HttpFetcher

    from .base import SearchProvider

logger = logging.getLogger(__name__)

# Registry of available search providers
_providers: dict[str, type["SearchProvider"]] = {}

# Preference order when no explicit list is configured
DEFAULT_ORDER = ("searxng", "tavily", "jina-api", "jina")


def register_provider(provider_class: type["SearchProvider"]) -> None:
    """Register a search provider class."""
    _providers[provider_class.name] = provider_class


def get_search_provider(
    name: str,
    url_override: Optional[str] = None,
    fetcher: Optional["HttpFetcher"] = None,
    api_key: Optional[str] = None,
) -> "SearchProvider | None":
    """
    Get a search provider instance by name.

    Args:
        name: Provider name (e.g., "searxng", "tavily")
        url_override: Optional URL override for self-hosted providers
        fetcher: Shared fetcher for outbound requests
        api_key: Optional API key overriding the environment

    Returns:
        SearchProvider instance or None if not found/not configured
    """
    provider_class = _providers.get(name.lower())
    if not provider_class:
        logger.warning(f"Unknown search provider: {name}")
        return None

    kwargs = {"url_override": url_override, "fetcher": fetcher}
    if api_key and provider_class.requires_api_key:
        kwargs["api_key"] = api_key
    provider = provider_class(**kwargs)
    if not provider.is_configured():
        logger.warning(f"Search provider '{name}' is not configured")
        return None

    return provider


def list_search_providers() -> list[dict]:
    """
    List all available search providers with their configuration status.

    Returns:
        List of dicts with provider info: {name, configured, requires_api_key}
    """
    result = []
    for name, provider_class in _providers.items():
        provider = provider_class()
        result.append(
            {
                "name": name,
                "configured": provider.is_configured(),
                "requires_api_key": provider_class.requires_api_key,
            }
        )
    return result


def get_configured_search_providers(
    names: Optional[list[str]] = None,
    fetcher: Optional["HttpFetcher"] = None,
    url_overrides: Optional[dict[str, str]] = None,
    api_keys: Optional[dict[str, str]] = None,
) -> list["SearchProvider"]:
    """
    Instantiate every configured backend, in preference order.

    Args:
        names: Explicit backend names; defaults to DEFAULT_ORDER
        fetcher: Shared fetcher for outbound requests
        url_overrides: Per-backend URL overrides
        api_keys: Per-backend API keys

    Returns:
        Configured SearchProvider instances (may be empty)
    """
    url_overrides = url_overrides or {}
    api_keys = api_keys or {}
    providers = []
    for name in names or DEFAULT_ORDER:
        provider_class = _providers.get(name.lower())
        if not provider_class:
            logger.warning(f"Unknown search provider: {name}")
            continue
        kwargs = {"url_override": url_overrides.get(name), "fetcher": fetcher}
        if provider_class.requires_api_key and api_keys.get(name):
            kwargs["api_key"] = api_keys[name]
        provider = provider_class(**kwargs)
        if provider.is_configured():
            providers.append(provider)

    # The keyed Jina tier replaces the free one
    if any(p.name == "jina-api" for p in providers):
        providers = [p for p in providers if p.name != "jina"]
    return providers


# Import and register providers
from .jina import JinaApiSearchProvider, JinaFreeSearchProvider
from .searxng import SearXNGProvider
from .tavily import TavilySearchProvider

register_provider(SearXNGProvider)
register_provider(TavilySearchProvider)
register_provider(JinaFreeSearchProvider)
register_provider(JinaApiSearchProvider)

__all__ = [
    "get_search_provider",
    "get_configured_search_providers",
    "list_search_providers",
    "register_provider",
]
