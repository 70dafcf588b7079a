"""
Plugin registration.

Live source plugins are registered in a typed registry keyed by their
source_type. Builtin plugins are registered explicitly by
register_builtin_plugins(); additional plugins can be registered by callers.
"""

import logging
from typing import Dict, Generic, Optional, Type, TypeVar

from plugin_base.common import Domain
from plugin_base.live_source import PluginLiveSource

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PluginRegistry(Generic[T]):
    """
    Generic registry for plugins of a specific type.

    Stores plugin classes by their source_type and provides lookup and
    metadata retrieval.
    """

    def __init__(self, base_class: Type[T], plugin_type_name: str):
        """
        Initialize the registry.

        Args:
            base_class: The base class for this plugin type
            plugin_type_name: Human-readable name for logging
        """
        self.base_class = base_class
        self.plugin_type_name = plugin_type_name
        self._plugins: Dict[str, Type[T]] = {}
        self._builtin: Dict[str, bool] = {}

    def register(self, plugin_class: Type[T], is_builtin: bool = False) -> None:
        """
        Register a plugin class.

        Args:
            plugin_class: The plugin class to register
            is_builtin: Whether this is a builtin plugin

        Raises:
            ValueError: If the plugin doesn't have a type identifier or is
                not a subclass of the registry's base class
        """
        source_type = getattr(plugin_class, "source_type", None)
        if not source_type:
            raise ValueError(f"Plugin {plugin_class.__name__} missing source_type")
        if not issubclass(plugin_class, self.base_class):
            raise ValueError(
                f"Plugin {plugin_class.__name__} is not a {self.base_class.__name__}"
            )

        if source_type in self._plugins:
            logger.warning(
                f"Duplicate {self.plugin_type_name} '{source_type}', "
                f"overwriting {self._plugins[source_type].__name__} with {plugin_class.__name__}"
            )

        self._plugins[source_type] = plugin_class
        self._builtin[source_type] = is_builtin
        logger.debug(
            f"Registered {self.plugin_type_name}: {source_type} ({plugin_class.__name__})"
            + (" [builtin]" if is_builtin else "")
        )

    def get(self, source_type: str) -> Optional[Type[T]]:
        """Get a plugin class by source_type, or None if not found."""
        return self._plugins.get(source_type)

    def get_all(self) -> Dict[str, Type[T]]:
        """Get all registered plugins keyed by source_type."""
        return self._plugins.copy()

    def for_domain(self, domain: Domain) -> list[Type[T]]:
        """Plugins whose declared domain matches, in registration order."""
        return [
            cls for cls in self._plugins.values() if getattr(cls, "domain", None) == domain
        ]

    def get_all_metadata(self) -> list[dict]:
        """
        Get metadata for all plugins.

        Returns:
            List of dicts with plugin metadata including params
        """
        result = []
        for source_type, cls in self._plugins.items():
            metadata = cls.metadata() if hasattr(cls, "metadata") else {}
            metadata["source_type"] = source_type
            metadata["is_builtin"] = self._builtin.get(source_type, False)
            result.append(metadata)
        return result

    def clear(self) -> None:
        """Clear all registered plugins. Useful for testing."""
        self._plugins.clear()
        self._builtin.clear()


live_source_registry: PluginRegistry[PluginLiveSource] = PluginRegistry(
    PluginLiveSource, "live_source"
)


def get_live_source_plugin(source_type: str) -> Optional[Type[PluginLiveSource]]:
    """
    Get a live source plugin by type.

    Args:
        source_type: The source type identifier

    Returns:
        The plugin class, or None if not found
    """
    return live_source_registry.get(source_type)


def register_builtin_plugins(
    registry: Optional[PluginRegistry] = None,
) -> PluginRegistry:
    """Register the shipped live sources. Safe to call more than once."""
    from builtin_plugins.live_sources import BUILTIN_LIVE_SOURCES

    registry = registry or live_source_registry
    for plugin_class in BUILTIN_LIVE_SOURCES:
        if registry.get(plugin_class.source_type) is not plugin_class:
            registry.register(plugin_class, is_builtin=True)
    return registry
