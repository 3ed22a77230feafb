from __future__ import annotations

import asyncio
import builtins
import logging
from typing import Any, Callable

from ..config import BUNDLE_FILENAME, PLUGIN_REGISTRATION_TIMEOUT_S
from ..plugin_api import PluginModule
from .plugin_errors import ExecutionError, RegistrationTimeoutError, RuntimeNotInitializedError

logger = logging.getLogger(__name__)

HOST_BRIDGE_NAME = "__pluginhost__"


def _register_outside_load(module: Any = None) -> None:
    logger.warning("register_plugin called outside of plugin loading context")


class HostBridge:
    """Object bundles see as ``__pluginhost__``.

    ``register_plugin`` is a single mutable slot. It only does something while
    PluginRuntime.load_module() is waiting for a bundle to register.
    """

    def __init__(self, host_libraries: dict[str, Any], extension_api: Any) -> None:
        self.host_libraries = host_libraries
        self.extension_api = extension_api
        self.register_plugin: Callable[[Any], None] = _register_outside_load

    def reset_register_slot(self) -> None:
        self.register_plugin = _register_outside_load

    @property
    def is_register_slot_idle(self) -> bool:
        return self.register_plugin is _register_outside_load


class PluginRuntime:
    def __init__(self) -> None:
        self._bridge: HostBridge | None = None
        self._lock: asyncio.Lock | None = None

    @property
    def bridge(self) -> HostBridge | None:
        return self._bridge

    @property
    def is_ready(self) -> bool:
        return self._bridge is not None

    def setup(
        self,
        host_libraries: dict[str, Any] | None = None,
        extension_api: Any = None,
    ) -> HostBridge:
        if extension_api is None:
            from .. import plugin_api

            extension_api = plugin_api
        self._bridge = HostBridge(dict(host_libraries or {}), extension_api)
        return self._bridge

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def load_module(
        self,
        code: str,
        *,
        plugin_id: str | None = None,
        timeout: float = PLUGIN_REGISTRATION_TIMEOUT_S,
    ) -> PluginModule:
        """Execute a bundle and wait for it to register its module.

        SECURITY NOTE: this runs arbitrary Python inside the host process.
        Only install plugins from sources you trust.
        """
        bridge = self._bridge
        if bridge is None:
            raise RuntimeNotInitializedError(
                "Plugin runtime not initialized. Call setup_plugin_runtime() first.",
                plugin_id=plugin_id,
            )

        label = plugin_id or "<unknown>"
        async with self._get_lock():
            loop = asyncio.get_running_loop()
            registration: asyncio.Future[PluginModule] = loop.create_future()

            def _resolve(module: PluginModule) -> None:
                if not registration.done():
                    registration.set_result(module)

            def _reject(error: Exception) -> None:
                if not registration.done():
                    registration.set_exception(error)

            def register_plugin(value: Any = None) -> None:
                module = PluginModule.from_export(value) if value is not None else None
                if module is None:
                    loop.call_soon_threadsafe(
                        _reject,
                        ExecutionError("Plugin did not export a valid module", plugin_id=plugin_id),
                    )
                    return
                loop.call_soon_threadsafe(_resolve, module)

            bridge.register_plugin = register_plugin
            try:
                namespace: dict[str, Any] = {
                    "__builtins__": builtins,
                    "__name__": f"pluginhost.bundle.{label}",
                    HOST_BRIDGE_NAME: bridge,
                }
                try:
                    compiled = compile(code, f"<plugin:{label}/{BUNDLE_FILENAME}>", "exec")
                    exec(compiled, namespace)
                except SyntaxError as exc:
                    raise ExecutionError(
                        f"Plugin '{label}' has a syntax error in {BUNDLE_FILENAME} "
                        f"(line {exc.lineno}): {exc.msg}",
                        plugin_id=plugin_id,
                    ) from exc
                except Exception as exc:
                    raise ExecutionError(
                        f"Plugin '{label}' raised while executing {BUNDLE_FILENAME}: {exc}",
                        plugin_id=plugin_id,
                    ) from exc

                try:
                    return await asyncio.wait_for(registration, timeout=timeout)
                except asyncio.TimeoutError as exc:
                    raise RegistrationTimeoutError(
                        f"Plugin '{label}' did not register within {timeout:g}s.\n"
                        "  Likely causes:\n"
                        "  1. The bundle failed before registering (check the log for errors)\n"
                        f"  2. The bundle never calls {HOST_BRIDGE_NAME}.register_plugin(module)\n"
                        "  3. The module was not built with define_plugin(...)",
                        plugin_id=plugin_id,
                    ) from exc
            except Exception:
                logger.exception("Failed to load plugin module '%s'", label)
                raise
            finally:
                bridge.reset_register_slot()


_plugin_runtime: PluginRuntime | None = None


def get_plugin_runtime() -> PluginRuntime:
    global _plugin_runtime
    if _plugin_runtime is None:
        _plugin_runtime = PluginRuntime()
    return _plugin_runtime


def setup_plugin_runtime(
    host_libraries: dict[str, Any] | None = None,
    extension_api: Any = None,
) -> HostBridge:
    """Install the host bridge. Must run once before any plugin is loaded."""
    return get_plugin_runtime().setup(host_libraries, extension_api)


def reset_plugin_runtime() -> None:
    global _plugin_runtime
    _plugin_runtime = None
