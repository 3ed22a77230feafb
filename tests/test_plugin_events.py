from __future__ import annotations

import logging

import pytest

from pluginhost.services.plugin_events import PluginEventEmitter, PluginManagerEvent


def test_emit_reaches_only_matching_listeners() -> None:
    emitter = PluginEventEmitter()
    installed: list[PluginManagerEvent] = []
    errors: list[PluginManagerEvent] = []
    emitter.on("installed", installed.append)
    emitter.on("error", errors.append)

    emitter.emit(PluginManagerEvent(type="installed", plugin_id="timer-pro"))

    assert installed == [PluginManagerEvent(type="installed", plugin_id="timer-pro")]
    assert errors == []


def test_unsubscribe_stops_delivery() -> None:
    emitter = PluginEventEmitter()
    seen: list[str | None] = []
    unsubscribe = emitter.on("enabled", lambda event: seen.append(event.plugin_id))

    emitter.emit(PluginManagerEvent(type="enabled", plugin_id="a"))
    unsubscribe()
    unsubscribe()
    emitter.emit(PluginManagerEvent(type="enabled", plugin_id="b"))

    assert seen == ["a"]


def test_failing_listener_is_logged_and_others_still_run(caplog) -> None:
    emitter = PluginEventEmitter()
    seen: list[str] = []

    def _explode(event: PluginManagerEvent) -> None:
        raise RuntimeError("listener exploded")

    emitter.on("updated", _explode)
    emitter.on("updated", lambda event: seen.append(event.to_version or ""))

    with caplog.at_level(logging.ERROR):
        emitter.emit(PluginManagerEvent(type="updated", plugin_id="a", from_version="1.0.0", to_version="1.1.0"))

    assert seen == ["1.1.0"]
    assert "listener exploded" in caplog.text


def test_unknown_event_type_is_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown plugin event type"):
        PluginEventEmitter().on("reloaded", lambda event: None)  # type: ignore[arg-type]
