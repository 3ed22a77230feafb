"""Runtime plugin subsystem: fetch, validate, persist and execute plugin bundles."""

from .config import HOST_VERSION
from .plugin_api import PluginAction, PluginLifecycle, PluginModule, define_plugin

__version__ = "0.1.0"

__all__ = [
    "HOST_VERSION",
    "PluginAction",
    "PluginLifecycle",
    "PluginModule",
    "define_plugin",
]
