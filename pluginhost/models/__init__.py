"""Command-layer request and response schemas."""

from .plugins import (
    InstallPluginInput,
    InstallPluginResponse,
    PluginActionResponse,
    PluginIdInput,
    PluginInfo,
    PluginsResponse,
    PluginUpdateItem,
    PluginUpdatesResponse,
    TogglePluginInput,
)

__all__ = [
    "InstallPluginInput",
    "InstallPluginResponse",
    "PluginActionResponse",
    "PluginIdInput",
    "PluginInfo",
    "PluginsResponse",
    "PluginUpdateItem",
    "PluginUpdatesResponse",
    "TogglePluginInput",
]
