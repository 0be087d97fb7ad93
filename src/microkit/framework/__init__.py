"""
Framework Layer - configuration management shared by every microkit service.
"""

from .configuration import ConfigurationStore, ConfigLoader, ConfigLoaderBuilder

__all__ = [
    "ConfigurationStore",
    "ConfigLoader",
    "ConfigLoaderBuilder",
]
