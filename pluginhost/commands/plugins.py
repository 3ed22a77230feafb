from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from ..models.plugins import (
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
from ..services.plugin_events import EVENT_ERROR, PluginManagerEvent
from ..services.plugin_manager import PluginManager, get_plugin_manager
from ..services.plugin_types import InstalledPluginInfo, PluginUpdateInfo

logger = logging.getLogger(__name__)

# Result of the last update check, keyed by plugin id
_available_updates: dict[str, PluginUpdateInfo] = {}


@contextmanager
def _collect_errors(manager: PluginManager, plugin_id: str) -> Iterator[list[str]]:
    errors: list[str] = []

    def _on_error(event: PluginManagerEvent) -> None:
        if event.plugin_id in (None, plugin_id) and event.error:
            errors.append(event.error)

    unsubscribe = manager.on(EVENT_ERROR, _on_error)
    try:
        yield errors
    finally:
        unsubscribe()


def _to_plugin_info(manager: PluginManager, plugin: InstalledPluginInfo) -> PluginInfo:
    manifest = plugin.manifest
    update = _available_updates.get(plugin.id)
    return PluginInfo(
        id=plugin.id,
        name=manifest.name,
        version=manifest.version,
        author=manifest.author,
        description=manifest.description,
        source=plugin.source,
        enabled=plugin.enabled,
        loaded=manager.is_loaded(plugin.id),
        installedAt=plugin.installed_at,
        updatedAt=plugin.updated_at,
        minHostVersion=manifest.min_host_version,
        icon=manifest.icon,
        authorUrl=manifest.author_url,
        repository=manifest.repository,
        isDesktopOnly=manifest.is_desktop_only,
        hasStyles=manifest.has_styles,
        provides=list(manifest.provides),
        consumes=list(manifest.consumes),
        updateAvailable=update is not None,
        latestVersion=update.latest_version if update else None,
    )


def _action_response(ok: bool, errors: list[str], declined: str) -> PluginActionResponse:
    if ok:
        return PluginActionResponse(success=True)
    return PluginActionResponse(success=False, error=errors[-1] if errors else declined)


async def initialize_plugins() -> PluginsResponse:
    manager = get_plugin_manager()
    await manager.initialize()
    return await list_plugins()


async def list_plugins() -> PluginsResponse:
    manager = get_plugin_manager()
    return PluginsResponse(
        plugins=[_to_plugin_info(manager, plugin) for plugin in manager.installed],
        available=manager.available,
    )


async def install_plugin(body: InstallPluginInput) -> InstallPluginResponse:
    result = await get_plugin_manager().install_from_github(body.url)
    return InstallPluginResponse(
        success=result.success,
        pluginId=result.plugin_id,
        error=result.error,
    )


async def toggle_plugin(body: TogglePluginInput) -> PluginActionResponse:
    manager = get_plugin_manager()
    with _collect_errors(manager, body.id) as errors:
        if body.enabled:
            ok = await manager.enable(body.id)
        else:
            ok = await manager.disable(body.id)

    state = "enabled" if body.enabled else "disabled"
    return _action_response(ok, errors, f"Plugin '{body.id}' is not installed or already {state}")


async def uninstall_plugin(body: PluginIdInput) -> PluginActionResponse:
    manager = get_plugin_manager()
    with _collect_errors(manager, body.id) as errors:
        ok = await manager.uninstall(body.id)

    if ok:
        _available_updates.pop(body.id, None)
    return _action_response(ok, errors, f"Plugin '{body.id}' is not installed")


async def update_plugin(body: PluginIdInput) -> PluginActionResponse:
    manager = get_plugin_manager()
    with _collect_errors(manager, body.id) as errors:
        ok = await manager.update(body.id)

    if ok or not errors:
        _available_updates.pop(body.id, None)
    return _action_response(ok, errors, f"Plugin '{body.id}' is already up to date")


async def check_plugin_updates() -> PluginUpdatesResponse:
    updates = await get_plugin_manager().check_for_updates()
    _available_updates.clear()
    _available_updates.update({update.plugin_id: update for update in updates})
    logger.info("Plugin update check found %s update(s)", len(updates))
    return PluginUpdatesResponse(
        updates=[
            PluginUpdateItem(
                pluginId=update.plugin_id,
                currentVersion=update.current_version,
                latestVersion=update.latest_version,
                source=update.source,
            )
            for update in updates
        ]
    )
