from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import replace
from typing import Any, Callable

from ..config import BUNDLE_FILENAME, HOST_VERSION, PLUGIN_REGISTRATION_TIMEOUT_S
from ..plugin_api import PluginModule
from .module_registry import (
    ActionRegistryProtocol,
    CapabilityRegistry,
    get_action_registry,
    get_module_registry,
)
from .plugin_errors import (
    CompatibilityError,
    DuplicateInstallError,
    PluginError,
    PluginLoadError,
    ValidationError,
)
from .plugin_events import (
    EVENT_DISABLED,
    EVENT_ENABLED,
    EVENT_ERROR,
    EVENT_INSTALLED,
    EVENT_UNINSTALLED,
    EVENT_UPDATED,
    PluginEventEmitter,
    PluginEventListener,
    PluginEventType,
    PluginManagerEvent,
)
from .plugin_fetcher import RemoteFetcher, get_remote_fetcher, parse_repo_url
from .plugin_runtime import PluginRuntime, get_plugin_runtime
from .plugin_storage import PluginStorageAdapter, get_plugin_storage_adapter
from .plugin_types import (
    FetchedPlugin,
    InstalledPluginInfo,
    InstallRecord,
    ParsedRepoUrl,
    PluginInstallResult,
    PluginManifest,
    PluginUpdateInfo,
    utc_now_iso,
)
from .plugin_validator import check_compatibility, compare_versions, validate_manifest

logger = logging.getLogger(__name__)

STORAGE_UNAVAILABLE_MESSAGE = "Plugin storage is not available; plugins are disabled."


class PluginManager:
    """Owns the installed-plugin list and the map of loaded plugin modules.

    Public lifecycle operations never raise for plugin failures. They return
    False (or a failed PluginInstallResult) and emit an ``error`` event; a
    plain False with no event means the call was declined (nothing to do).
    """

    def __init__(
        self,
        *,
        storage: PluginStorageAdapter | None = None,
        fetcher: RemoteFetcher | None = None,
        runtime: PluginRuntime | None = None,
        module_registry: CapabilityRegistry | None = None,
        action_registry: ActionRegistryProtocol | None = None,
        host_version: str = HOST_VERSION,
        registration_timeout: float = PLUGIN_REGISTRATION_TIMEOUT_S,
    ) -> None:
        self._storage = storage
        self._fetcher = fetcher
        self._runtime = runtime
        self._module_registry = module_registry
        self._action_registry = action_registry
        self._host_version = host_version
        self._registration_timeout = registration_timeout

        self._installed: tuple[InstalledPluginInfo, ...] = ()
        self._loaded: dict[str, PluginModule] = {}
        self._events = PluginEventEmitter()
        self._initialized = False
        self._available = True
        self._init_lock: asyncio.Lock | None = None
        self._operation_locks: dict[str, asyncio.Lock] = {}
        self._load_locks: dict[str, asyncio.Lock] = {}

    # Collaborators default to the process-wide instances

    @property
    def storage(self) -> PluginStorageAdapter:
        if self._storage is None:
            self._storage = get_plugin_storage_adapter()
        return self._storage

    @property
    def fetcher(self) -> RemoteFetcher:
        if self._fetcher is None:
            self._fetcher = get_remote_fetcher()
        return self._fetcher

    @property
    def runtime(self) -> PluginRuntime:
        if self._runtime is None:
            self._runtime = get_plugin_runtime()
        return self._runtime

    @property
    def module_registry(self) -> CapabilityRegistry:
        if self._module_registry is None:
            self._module_registry = get_module_registry()
        return self._module_registry

    @property
    def action_registry(self) -> ActionRegistryProtocol:
        if self._action_registry is None:
            self._action_registry = get_action_registry()
        return self._action_registry

    # Queries

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def available(self) -> bool:
        return self._available

    @property
    def installed(self) -> tuple[InstalledPluginInfo, ...]:
        return self._installed

    @property
    def enabled_plugins(self) -> tuple[InstalledPluginInfo, ...]:
        return tuple(plugin for plugin in self._installed if plugin.enabled)

    def get_plugin(self, plugin_id: str) -> InstalledPluginInfo | None:
        for plugin in self._installed:
            if plugin.id == plugin_id:
                return plugin
        return None

    def is_installed(self, plugin_id: str) -> bool:
        return self.get_plugin(plugin_id) is not None

    def is_enabled(self, plugin_id: str) -> bool:
        plugin = self.get_plugin(plugin_id)
        return plugin.enabled if plugin else False

    def is_loaded(self, plugin_id: str) -> bool:
        return plugin_id in self._loaded

    def get_loaded_module(self, plugin_id: str) -> PluginModule | None:
        return self._loaded.get(plugin_id)

    def on(self, event_type: PluginEventType, listener: PluginEventListener) -> Callable[[], None]:
        """Subscribe to lifecycle events. Returns an unsubscribe function."""
        return self._events.on(event_type, listener)

    # Lifecycle

    async def initialize(self) -> None:
        if self._initialized:
            return
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()

        async with self._init_lock:
            if self._initialized:
                return

            if not await self.storage.is_available():
                logger.warning(STORAGE_UNAVAILABLE_MESSAGE)
                self._available = False
                self._initialized = True
                return

            try:
                records = await self.storage.read_registry()
                installed: list[InstalledPluginInfo] = []
                for record in records:
                    manifest = await self._read_stored_manifest(record.id)
                    if manifest is None:
                        continue
                    installed.append(
                        InstalledPluginInfo.from_record(
                            record, manifest, path=self.storage.plugin_path(record.id)
                        )
                    )
                self._installed = tuple(installed)
                await self._remove_orphaned_files({record.id for record in records})
            except Exception as exc:
                logger.error("Failed to initialize plugin manager: %s", exc)
                self._emit(EVENT_ERROR, error=str(exc))
                self._initialized = True
                return

            # Sequential so module registration order follows registry order
            for plugin in self.enabled_plugins:
                try:
                    await self._load_plugin(plugin.id)
                except Exception as exc:
                    logger.error("Failed to load plugin '%s': %s", plugin.id, exc)
                    self._emit(EVENT_ERROR, plugin_id=plugin.id, error=str(exc))

            self._initialized = True
            logger.info(
                "Plugin manager initialized: %s installed, %s loaded",
                len(self._installed),
                len(self._loaded),
            )

    async def install_from_github(self, url: str) -> PluginInstallResult:
        if not self._available:
            return PluginInstallResult(success=False, error=STORAGE_UNAVAILABLE_MESSAGE)

        source = (url or "").strip()
        plugin_id: str | None = None
        try:
            parsed = parse_repo_url(source)
            raw_manifest = await self.fetcher.fetch_manifest(parsed)
            manifest = self._accept_manifest(raw_manifest)
            plugin_id = manifest.id

            async with self._operation_lock(plugin_id):
                if self.is_installed(plugin_id) or await self.storage.is_plugin_installed(plugin_id):
                    raise DuplicateInstallError(
                        f"Plugin '{plugin_id}' is already installed. "
                        "Use update to fetch a newer version.",
                        plugin_id=plugin_id,
                    )

                fetched = await self._fetch_assets(parsed, manifest, source)
                await self.storage.install_plugin(
                    plugin_id, manifest.to_dict(), fetched.code, fetched.styles
                )

                now = utc_now_iso()
                record = InstallRecord(
                    id=plugin_id,
                    source=source,
                    version=manifest.version,
                    enabled=True,
                    installed_at=now,
                    updated_at=now,
                )
                records = await self.storage.read_registry()
                records.append(record)
                await self.storage.write_registry(records)

                self._installed = (
                    *self._installed,
                    InstalledPluginInfo.from_record(
                        record, manifest, path=self.storage.plugin_path(plugin_id)
                    ),
                )

                await self._load_plugin(plugin_id)
                await self._run_hook(plugin_id, "on_install")
        except DuplicateInstallError as exc:
            logger.info("%s", exc)
            return PluginInstallResult(success=False, plugin_id=plugin_id, error=str(exc))
        except Exception as exc:
            logger.error("Failed to install plugin from %s: %s", source, exc)
            self._emit(EVENT_ERROR, plugin_id=plugin_id, error=str(exc))
            return PluginInstallResult(success=False, plugin_id=plugin_id, error=str(exc))

        logger.info("Installed plugin '%s' %s from %s", plugin_id, manifest.version, source)
        self._emit(EVENT_INSTALLED, plugin_id=plugin_id)
        return PluginInstallResult(success=True, plugin_id=plugin_id)

    async def uninstall(self, plugin_id: str) -> bool:
        if not self._available or not self.is_installed(plugin_id):
            return False

        async with self._operation_lock(plugin_id):
            if not self.is_installed(plugin_id):
                return False
            try:
                await self._run_hook(plugin_id, "on_uninstall")
                await self._unload_plugin(plugin_id)

                await self.storage.uninstall_plugin(plugin_id)
                records = await self.storage.read_registry()
                await self.storage.write_registry(
                    [record for record in records if record.id != plugin_id]
                )

                self._installed = tuple(p for p in self._installed if p.id != plugin_id)
            except Exception as exc:
                self._report_failure("uninstall", plugin_id, exc)
                return False

        self._operation_locks.pop(plugin_id, None)
        self._load_locks.pop(plugin_id, None)
        logger.info("Uninstalled plugin '%s'", plugin_id)
        self._emit(EVENT_UNINSTALLED, plugin_id=plugin_id)
        return True

    async def enable(self, plugin_id: str) -> bool:
        if not self._available:
            return False
        plugin = self.get_plugin(plugin_id)
        if plugin is None or plugin.enabled:
            return False

        async with self._operation_lock(plugin_id):
            plugin = self.get_plugin(plugin_id)
            if plugin is None or plugin.enabled:
                return False
            try:
                await self._load_plugin(plugin_id)
                await self._run_hook(plugin_id, "on_enable")
                await self._set_enabled(plugin_id, True)
            except Exception as exc:
                self._report_failure("enable", plugin_id, exc)
                return False

        logger.info("Enabled plugin '%s'", plugin_id)
        self._emit(EVENT_ENABLED, plugin_id=plugin_id)
        return True

    async def disable(self, plugin_id: str) -> bool:
        if not self._available:
            return False
        plugin = self.get_plugin(plugin_id)
        if plugin is None or not plugin.enabled:
            return False

        async with self._operation_lock(plugin_id):
            plugin = self.get_plugin(plugin_id)
            if plugin is None or not plugin.enabled:
                return False
            try:
                await self._run_hook(plugin_id, "on_disable")
                await self._unload_plugin(plugin_id)
                await self._set_enabled(plugin_id, False)
            except Exception as exc:
                self._report_failure("disable", plugin_id, exc)
                return False

        logger.info("Disabled plugin '%s'", plugin_id)
        self._emit(EVENT_DISABLED, plugin_id=plugin_id)
        return True

    async def update(self, plugin_id: str) -> bool:
        if not self._available or not self.is_installed(plugin_id):
            return False

        async with self._operation_lock(plugin_id):
            plugin = self.get_plugin(plugin_id)
            if plugin is None:
                return False

            previous_version = plugin.version
            was_enabled = plugin.enabled
            try:
                parsed = parse_repo_url(plugin.source)
                manifest = self._accept_manifest(await self.fetcher.fetch_manifest(parsed))
                if manifest.id != plugin_id:
                    raise ValidationError(
                        [
                            f'Plugin id changed from "{plugin_id}" to "{manifest.id}" at {plugin.source}.\n'
                            "  A plugin's id can never change; publish it as a new plugin instead."
                        ],
                        plugin_id=plugin_id,
                    )
                if manifest.version == previous_version:
                    logger.info("Plugin '%s' is already at %s", plugin_id, previous_version)
                    return False

                fetched = await self._fetch_assets(parsed, manifest, plugin.source)

                if self.is_loaded(plugin_id):
                    await self._unload_plugin(plugin_id)

                await self.storage.install_plugin(
                    plugin_id, manifest.to_dict(), fetched.code, fetched.styles
                )

                now = utc_now_iso()
                records = await self.storage.read_registry()
                await self.storage.write_registry(
                    [
                        replace(record, version=manifest.version, updated_at=now)
                        if record.id == plugin_id
                        else record
                        for record in records
                    ]
                )
                self._replace_installed(plugin_id, manifest=manifest, updated_at=now)

                if was_enabled:
                    await self._load_plugin(plugin_id)
                    await self._run_hook(plugin_id, "on_update", previous_version)
            except Exception as exc:
                self._report_failure("update", plugin_id, exc)
                return False

        logger.info("Updated plugin '%s' from %s to %s", plugin_id, previous_version, manifest.version)
        self._emit(
            EVENT_UPDATED,
            plugin_id=plugin_id,
            from_version=previous_version,
            to_version=manifest.version,
        )
        return True

    async def check_for_updates(self) -> list[PluginUpdateInfo]:
        updates: list[PluginUpdateInfo] = []
        for plugin in self._installed:
            try:
                raw_manifest = await self.fetcher.fetch_manifest(parse_repo_url(plugin.source))
            except PluginError as exc:
                logger.warning("Failed to check for updates for plugin '%s': %s", plugin.id, exc)
                continue

            validation = validate_manifest(raw_manifest)
            if not validation.valid:
                logger.warning(
                    "Ignoring invalid remote manifest for plugin '%s': %s",
                    plugin.id,
                    "; ".join(validation.errors),
                )
                continue

            latest_version = raw_manifest["version"]
            comparison = compare_versions(latest_version, plugin.version)
            if comparison is None:
                logger.warning(
                    "Cannot compare versions for plugin '%s' (installed %s, remote %s)",
                    plugin.id,
                    plugin.version,
                    latest_version,
                )
                continue
            if comparison > 0:
                updates.append(
                    PluginUpdateInfo(
                        plugin_id=plugin.id,
                        current_version=plugin.version,
                        latest_version=latest_version,
                        source=plugin.source,
                    )
                )
        return updates

    # Internals

    def _operation_lock(self, plugin_id: str) -> asyncio.Lock:
        lock = self._operation_locks.get(plugin_id)
        if lock is None:
            lock = asyncio.Lock()
            self._operation_locks[plugin_id] = lock
        return lock

    def _accept_manifest(self, raw: Any) -> PluginManifest:
        plugin_id = raw.get("id") if isinstance(raw, dict) else None
        validation = validate_manifest(raw)
        for warning in validation.warnings:
            logger.warning("Manifest warning for plugin '%s': %s", plugin_id, warning)
        if not validation.valid:
            raise ValidationError(validation.errors, warnings=validation.warnings, plugin_id=plugin_id)

        compatibility = check_compatibility(raw["minHostVersion"], self._host_version)
        if not compatibility.compatible:
            raise CompatibilityError(
                compatibility.message or "Plugin is not compatible with this host version",
                plugin_id=plugin_id,
            )
        return PluginManifest.from_dict(raw)

    async def _fetch_assets(
        self, parsed: ParsedRepoUrl, manifest: PluginManifest, source: str
    ) -> FetchedPlugin:
        code = await self.fetcher.fetch_bundle(parsed)
        styles = await self.fetcher.fetch_styles_optional(parsed, manifest)
        return FetchedPlugin(manifest=manifest, code=code, source=source, styles=styles)

    async def _read_stored_manifest(self, plugin_id: str) -> PluginManifest | None:
        try:
            raw = await self.storage.read_manifest(plugin_id)
        except PluginError as exc:
            logger.error("Skipping plugin '%s': %s", plugin_id, exc)
            self._emit(EVENT_ERROR, plugin_id=plugin_id, error=str(exc))
            return None
        if raw is None:
            logger.warning("Skipping plugin '%s': no stored manifest", plugin_id)
            return None
        try:
            return PluginManifest.from_dict(raw)
        except ValueError as exc:
            logger.warning("Skipping plugin '%s': %s", plugin_id, exc)
            return None

    async def _remove_orphaned_files(self, registered_ids: set[str]) -> None:
        for plugin_id in await self.storage.list_plugin_files():
            if plugin_id in registered_ids:
                continue
            logger.warning("Removing stored files for unregistered plugin '%s'", plugin_id)
            await self.storage.uninstall_plugin(plugin_id)

    async def _set_enabled(self, plugin_id: str, enabled: bool) -> None:
        records = await self.storage.read_registry()
        if any(record.id == plugin_id for record in records):
            await self.storage.write_registry(
                [
                    replace(record, enabled=enabled) if record.id == plugin_id else record
                    for record in records
                ]
            )
        self._replace_installed(plugin_id, enabled=enabled)

    def _replace_installed(self, plugin_id: str, **changes: Any) -> None:
        self._installed = tuple(
            replace(plugin, **changes) if plugin.id == plugin_id else plugin
            for plugin in self._installed
        )

    async def _load_plugin(self, plugin_id: str) -> None:
        if plugin_id in self._loaded:
            return

        lock = self._load_locks.get(plugin_id)
        if lock is None:
            lock = asyncio.Lock()
            self._load_locks[plugin_id] = lock

        async with lock:
            if plugin_id in self._loaded:
                return

            code = await self.storage.read_module_code(plugin_id)
            if not code:
                raise PluginLoadError(
                    f"Plugin '{plugin_id}' has no stored {BUNDLE_FILENAME}; reinstall it.",
                    plugin_id=plugin_id,
                )

            module = await self.runtime.load_module(
                code, plugin_id=plugin_id, timeout=self._registration_timeout
            )
            if module.module_id != plugin_id:
                raise PluginLoadError(
                    f"Plugin '{plugin_id}' registered a module with id '{module.module_id}'. "
                    "define_plugin() must be called with the manifest id.",
                    plugin_id=plugin_id,
                )

            self.module_registry.register(module)
            try:
                if module.actions:
                    self.action_registry.register_module_actions(module.module_id, module.actions)
            except Exception:
                self.module_registry.unregister(module.module_id)
                raise

            self._loaded[plugin_id] = module
            logger.info("Loaded plugin '%s' %s", plugin_id, module.version)

    async def _unload_plugin(self, plugin_id: str) -> None:
        module = self._loaded.pop(plugin_id, None)
        if module is None:
            return
        self.action_registry.unregister_module(module.module_id)
        self.module_registry.unregister(module.module_id)
        logger.info("Unloaded plugin '%s'", plugin_id)

    async def _run_hook(self, plugin_id: str, hook_name: str, *args: Any) -> None:
        module = self._loaded.get(plugin_id)
        if module is None:
            return
        hook = getattr(module.lifecycle, hook_name, None)
        if hook is None:
            return
        try:
            result = hook(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.warning("Plugin '%s' %s hook failed: %s", plugin_id, hook_name, exc)

    def _report_failure(self, operation: str, plugin_id: str, exc: Exception) -> None:
        logger.error("Failed to %s plugin '%s': %s", operation, plugin_id, exc)
        self._emit(EVENT_ERROR, plugin_id=plugin_id, error=str(exc))

    def _emit(self, event_type: PluginEventType, **payload: Any) -> None:
        self._events.emit(PluginManagerEvent(type=event_type, **payload))


_plugin_manager: PluginManager | None = None


def get_plugin_manager() -> PluginManager:
    global _plugin_manager
    if _plugin_manager is None:
        _plugin_manager = PluginManager()
    return _plugin_manager
