from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Literal

logger = logging.getLogger(__name__)

PluginEventType = Literal["installed", "uninstalled", "enabled", "disabled", "updated", "error"]

EVENT_INSTALLED: PluginEventType = "installed"
EVENT_UNINSTALLED: PluginEventType = "uninstalled"
EVENT_ENABLED: PluginEventType = "enabled"
EVENT_DISABLED: PluginEventType = "disabled"
EVENT_UPDATED: PluginEventType = "updated"
EVENT_ERROR: PluginEventType = "error"

PLUGIN_EVENT_TYPES: tuple[PluginEventType, ...] = (
    EVENT_INSTALLED,
    EVENT_UNINSTALLED,
    EVENT_ENABLED,
    EVENT_DISABLED,
    EVENT_UPDATED,
    EVENT_ERROR,
)


@dataclass(frozen=True)
class PluginManagerEvent:
    type: PluginEventType
    plugin_id: str | None = None
    from_version: str | None = None
    to_version: str | None = None
    error: str | None = None


PluginEventListener = Callable[[PluginManagerEvent], None]


class PluginEventEmitter:
    """Synchronous fan-out of lifecycle events to subscribers."""

    def __init__(self) -> None:
        self._listeners: dict[PluginEventType, list[PluginEventListener]] = {}

    def on(self, event_type: PluginEventType, listener: PluginEventListener) -> Callable[[], None]:
        if event_type not in PLUGIN_EVENT_TYPES:
            raise ValueError(f"Unknown plugin event type: {event_type}")
        self._listeners.setdefault(event_type, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event_type, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def emit(self, event: PluginManagerEvent) -> None:
        for listener in list(self._listeners.get(event.type, ())):
            try:
                listener(event)
            except Exception as exc:
                logger.error("Plugin event listener for '%s' failed: %s", event.type, exc)

    def clear(self) -> None:
        self._listeners.clear()
