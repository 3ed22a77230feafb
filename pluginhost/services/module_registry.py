"""In-process default collaborators for loaded plugin modules.

The embedding host may pass its own registries to PluginManager; anything
with the same register/unregister surface works.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Protocol

from ..plugin_api import PluginAction, PluginModule

logger = logging.getLogger(__name__)


class CapabilityRegistry(Protocol):
    def register(self, module: PluginModule) -> None: ...

    def unregister(self, module_id: str) -> bool: ...


class ActionRegistryProtocol(Protocol):
    def register_module_actions(self, module_id: str, actions: Iterable[PluginAction]) -> None: ...

    def unregister_module(self, module_id: str) -> None: ...


class ModuleRegistry:
    def __init__(self) -> None:
        self._modules: dict[str, PluginModule] = {}
        # Bumped on every mutation so callers can cheaply detect changes
        self.version = 0

    def register(self, module: PluginModule) -> None:
        if module.module_id in self._modules:
            raise ValueError(f"Module '{module.module_id}' is already registered")
        self._modules[module.module_id] = module
        self.version += 1

    def unregister(self, module_id: str) -> bool:
        if self._modules.pop(module_id, None) is None:
            return False
        self.version += 1
        return True

    def get(self, module_id: str) -> PluginModule | None:
        return self._modules.get(module_id)

    def has(self, module_id: str) -> bool:
        return module_id in self._modules

    def get_all(self) -> list[PluginModule]:
        return list(self._modules.values())

    def get_ids(self) -> list[str]:
        return list(self._modules)

    def clear(self) -> None:
        self._modules.clear()
        self.version += 1


@dataclass(frozen=True)
class RegisteredAction:
    id: str
    title: str
    group: str
    module_id: str | None = None
    run: Callable[..., Any] | None = None
    subtitle: str | None = None
    keywords: tuple[str, ...] = field(default_factory=tuple)
    shortcut: str | None = None
    priority: int = 0


class ActionRegistry:
    def __init__(self) -> None:
        self._actions: dict[str, RegisteredAction] = {}

    def register(self, action: RegisteredAction) -> None:
        if action.id in self._actions:
            logger.warning("Action '%s' already registered, overwriting", action.id)
        self._actions[action.id] = action

    def register_module_actions(self, module_id: str, actions: Iterable[PluginAction]) -> None:
        for action in actions:
            self.register(
                RegisteredAction(
                    id=f"{module_id}.{action.id}",
                    title=action.title,
                    group="module",
                    module_id=module_id,
                    run=action.run,
                    subtitle=action.subtitle,
                    keywords=action.keywords,
                    shortcut=action.shortcut,
                    priority=action.priority,
                )
            )

    def unregister(self, action_id: str) -> bool:
        return self._actions.pop(action_id, None) is not None

    def unregister_module(self, module_id: str) -> None:
        for action_id in [key for key, action in self._actions.items() if action.module_id == module_id]:
            del self._actions[action_id]

    def get(self, action_id: str) -> RegisteredAction | None:
        return self._actions.get(action_id)

    def has(self, action_id: str) -> bool:
        return action_id in self._actions

    def get_all(self, *, group: str | None = None, module_id: str | None = None) -> list[RegisteredAction]:
        actions = list(self._actions.values())
        if group is not None:
            actions = [action for action in actions if action.group == group]
        if module_id is not None:
            actions = [action for action in actions if action.module_id == module_id]
        return sorted(actions, key=lambda action: (-action.priority, action.title.lower()))

    def get_module_actions(self, module_id: str) -> list[RegisteredAction]:
        return self.get_all(module_id=module_id)


_module_registry: ModuleRegistry | None = None
_action_registry: ActionRegistry | None = None


def get_module_registry() -> ModuleRegistry:
    global _module_registry
    if _module_registry is None:
        _module_registry = ModuleRegistry()
    return _module_registry


def get_action_registry() -> ActionRegistry:
    global _action_registry
    if _action_registry is None:
        _action_registry = ActionRegistry()
    return _action_registry
