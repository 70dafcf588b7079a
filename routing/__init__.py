"""
Routing module for the Live Enricher.

Provides the enrichment engine, which routes each query to the live sources
for its domain, and the payload cache it owns.
"""

from .smart_cache import CacheEntry, SmartCache
from .smart_enricher import DOMAIN_PLAN, EnrichmentEngine, is_degraded

__all__ = [
    "CacheEntry",
    "DOMAIN_PLAN",
    "EnrichmentEngine",
    "SmartCache",
    "is_degraded",
]
