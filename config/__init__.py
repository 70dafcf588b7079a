"""
Config package: environment settings and ranking/cache tuning.
"""

from .settings import EnricherSettings, load_ranking_config, load_settings

__all__ = [
    "EnricherSettings",
    "load_settings",
    "load_ranking_config",
]
