from __future__ import annotations

import pytest

from pluginhost.plugin_api import PluginModule, define_plugin


def test_define_plugin_uses_plugin_id_as_module_id() -> None:
    def on_update(previous: str) -> None:
        return None

    module = define_plugin(
        plugin_id="timer-pro",
        version="1.0.0",
        display_name="Timer Pro",
        default_state=lambda: {"seconds": 0},
        actions=[{"id": "reset", "title": "Reset timer", "keywords": ["clear"]}],
        on_update=on_update,
    )

    assert module.module_id == "timer-pro"
    assert module.display_name == "Timer Pro"
    assert module.definition["default_state"]() == {"seconds": 0}
    assert module.actions[0].keywords == ("clear",)
    assert module.lifecycle.on_update is on_update
    assert module.lifecycle.on_install is None


def test_define_plugin_validates_inputs() -> None:
    with pytest.raises(ValueError, match="plugin_id"):
        define_plugin(plugin_id="", version="1.0.0")
    with pytest.raises(ValueError, match="default_state"):
        define_plugin(plugin_id="timer-pro", version="1.0.0", default_state={"seconds": 0})
    with pytest.raises(ValueError, match="'id' and 'title'"):
        define_plugin(plugin_id="timer-pro", version="1.0.0", actions=[{"id": "reset"}])


def test_from_export_reads_camel_case_lifecycle() -> None:
    hook = lambda: None  # noqa: E731

    module = PluginModule.from_export(
        {
            "moduleId": "counter",
            "version": "0.1.0",
            "lifecycle": {"onDisable": hook},
            "component": "CounterWidget",
        }
    )

    assert module is not None
    assert module.lifecycle.on_disable is hook
    assert module.definition == {"component": "CounterWidget"}


@pytest.mark.parametrize(
    "value",
    [
        "not a module",
        {"version": "1.0.0"},
        {"moduleId": "counter"},
        {"moduleId": "counter", "version": "1.0.0", "actions": [{"title": "No id"}]},
    ],
)
def test_from_export_rejects_unusable_values(value) -> None:
    assert PluginModule.from_export(value) is None
