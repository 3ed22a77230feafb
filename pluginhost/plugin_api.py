"""Authoring API for plugin bundles.

A bundle's ``main.py`` builds its module with :func:`define_plugin` and hands
it to the host::

    define_plugin = __pluginhost__.extension_api.define_plugin

    module = define_plugin(
        plugin_id="timer-pro",
        version="1.0.0",
        display_name="Timer Pro",
        default_state=lambda: {"seconds": 0},
        actions=[{"id": "reset", "title": "Reset timer", "run": reset}],
        on_enable=lambda: print("enabled"),
    )

    __pluginhost__.register_plugin(module)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

LifecycleHook = Callable[..., Any]

_HOOK_NAMES = ("on_install", "on_enable", "on_disable", "on_uninstall", "on_update")
_CAMEL_HOOK_NAMES = {
    "onInstall": "on_install",
    "onEnable": "on_enable",
    "onDisable": "on_disable",
    "onUninstall": "on_uninstall",
    "onUpdate": "on_update",
}


@dataclass(frozen=True)
class PluginLifecycle:
    on_install: LifecycleHook | None = None
    on_enable: LifecycleHook | None = None
    on_disable: LifecycleHook | None = None
    on_uninstall: LifecycleHook | None = None
    # Receives the previously installed version string
    on_update: LifecycleHook | None = None


@dataclass(frozen=True)
class PluginAction:
    id: str
    title: str
    run: Callable[..., Any] | None = None
    subtitle: str | None = None
    keywords: tuple[str, ...] = ()
    shortcut: str | None = None
    priority: int = 0

    @classmethod
    def from_value(cls, value: Any) -> "PluginAction":
        if isinstance(value, PluginAction):
            return value
        if not isinstance(value, Mapping):
            raise ValueError("Plugin action must be an object with 'id' and 'title'")
        action_id = str(value.get("id") or "").strip()
        title = str(value.get("title") or "").strip()
        if not action_id or not title:
            raise ValueError("Plugin action must define non-empty 'id' and 'title'")
        run = value.get("run")
        if run is not None and not callable(run):
            raise ValueError(f"Plugin action '{action_id}' has a non-callable 'run'")
        return cls(
            id=action_id,
            title=title,
            run=run,
            subtitle=value.get("subtitle"),
            keywords=tuple(value.get("keywords") or ()),
            shortcut=value.get("shortcut"),
            priority=int(value.get("priority") or 0),
        )


@dataclass
class PluginModule:
    """The capability object a bundle registers with the host."""

    module_id: str
    version: str
    display_name: str = ""
    definition: dict[str, Any] = field(default_factory=dict)
    actions: list[PluginAction] = field(default_factory=list)
    lifecycle: PluginLifecycle = field(default_factory=PluginLifecycle)

    @classmethod
    def from_export(cls, value: Any) -> "PluginModule | None":
        """Coerce what a bundle passed to register_plugin() into a module.

        Accepts a PluginModule, or a mapping using either snake_case or
        camelCase keys. A single ``default`` wrapper is unwrapped. Returns
        None when the value cannot describe a module.
        """
        if isinstance(value, Mapping) and "default" in value:
            value = value["default"]
        elif not isinstance(value, (Mapping, PluginModule)) and hasattr(value, "default"):
            value = getattr(value, "default")

        if isinstance(value, PluginModule):
            return value
        if not isinstance(value, Mapping):
            return None

        module_id = value.get("module_id") or value.get("moduleId") or value.get("plugin_id") or value.get("pluginId")
        version = value.get("version")
        if not isinstance(module_id, str) or not module_id:
            return None
        if not isinstance(version, str) or not version:
            return None

        raw_lifecycle = value.get("lifecycle") or {}
        hooks: dict[str, Any] = {}
        for source in (raw_lifecycle, value):
            if not isinstance(source, Mapping):
                continue
            for key, hook in source.items():
                name = _CAMEL_HOOK_NAMES.get(key, key)
                if name in _HOOK_NAMES and callable(hook):
                    hooks.setdefault(name, hook)

        try:
            actions = [PluginAction.from_value(action) for action in value.get("actions") or ()]
        except ValueError:
            return None

        reserved = {
            "module_id",
            "moduleId",
            "plugin_id",
            "pluginId",
            "version",
            "display_name",
            "displayName",
            "actions",
            "lifecycle",
            *_HOOK_NAMES,
            *_CAMEL_HOOK_NAMES,
        }
        return cls(
            module_id=module_id,
            version=version,
            display_name=str(value.get("display_name") or value.get("displayName") or module_id),
            definition={key: item for key, item in value.items() if key not in reserved},
            actions=actions,
            lifecycle=PluginLifecycle(**hooks),
        )


def define_plugin(
    *,
    plugin_id: str,
    version: str,
    display_name: str | None = None,
    actions: list[Any] | tuple[Any, ...] = (),
    on_install: LifecycleHook | None = None,
    on_enable: LifecycleHook | None = None,
    on_disable: LifecycleHook | None = None,
    on_uninstall: LifecycleHook | None = None,
    on_update: LifecycleHook | None = None,
    **definition: Any,
) -> PluginModule:
    """Build a plugin module; the plugin id doubles as the module id.

    Extra keyword arguments (``component``, ``default_state``, ``serialize``,
    ``provides``...) are kept on ``definition`` for the host's module
    registry and are never interpreted here.
    """
    if not plugin_id:
        raise ValueError("Plugin must have a plugin_id")
    if not version:
        raise ValueError("Plugin must have a version")

    default_state = definition.get("default_state")
    if default_state is not None and not callable(default_state):
        raise ValueError("default_state must be a function returning the initial state")

    return PluginModule(
        module_id=plugin_id,
        version=version,
        display_name=display_name or plugin_id,
        definition=definition,
        actions=[PluginAction.from_value(action) for action in actions],
        lifecycle=PluginLifecycle(
            on_install=on_install,
            on_enable=on_enable,
            on_disable=on_disable,
            on_uninstall=on_uninstall,
            on_update=on_update,
        ),
    )
