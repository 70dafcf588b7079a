# Plugin framework public exports
# Shared types and the live source base class

from plugin_base.common import (
    DEFAULT_LOCATION,
    Domain,
    EnrichmentContext,
    EnrichmentPayload,
    ErrorKind,
    Priority,
    QualityLevel,
    Query,
    ResolvedLocation,
    ResultItem,
    Verdict,
    canonical_url,
    make_item_id,
    normalize_text,
)
from plugin_base.live_source import (
    LiveDataResult,
    ParamDefinition,
    PluginLiveSource,
)
from plugin_base.loader import (
    PluginRegistry,
    get_live_source_plugin,
    live_source_registry,
    register_builtin_plugins,
)

__all__ = [
    # Common types
    "DEFAULT_LOCATION",
    "Domain",
    "EnrichmentContext",
    "EnrichmentPayload",
    "ErrorKind",
    "Priority",
    "QualityLevel",
    "Query",
    "ResolvedLocation",
    "ResultItem",
    "Verdict",
    "canonical_url",
    "make_item_id",
    "normalize_text",
    # Live source
    "PluginLiveSource",
    "ParamDefinition",
    "LiveDataResult",
    # Loader
    "PluginRegistry",
    "live_source_registry",
    "get_live_source_plugin",
    "register_builtin_plugins",
]
