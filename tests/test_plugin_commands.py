from __future__ import annotations

import pytest

import pluginhost.commands.plugins as plugin_commands
from pluginhost.models.plugins import InstallPluginInput, PluginIdInput, TogglePluginInput
from pluginhost.services.plugin_manager import PluginManager

from conftest import FakeRemote, make_bundle, make_manifest


@pytest.fixture
def commands(monkeypatch, manager: PluginManager):
    monkeypatch.setattr(plugin_commands, "get_plugin_manager", lambda: manager)
    monkeypatch.setattr(plugin_commands, "_available_updates", {})
    return plugin_commands


@pytest.mark.asyncio
async def test_install_then_list(commands, remote: FakeRemote) -> None:
    remote.publish(manifest=make_manifest(icon="timer", provides=["timer.state.v1"]), bundle=make_bundle())

    installed = await commands.install_plugin(InstallPluginInput(url="github.com/acme/timer-pro"))
    response = await commands.list_plugins()

    assert installed.success is True
    assert installed.pluginId == "timer-pro"
    assert response.available is True
    [plugin] = response.plugins
    assert plugin.id == "timer-pro"
    assert plugin.enabled is True
    assert plugin.loaded is True
    assert plugin.icon == "timer"
    assert plugin.provides == ["timer.state.v1"]
    assert plugin.updateAvailable is False


@pytest.mark.asyncio
async def test_install_failure_is_reported(commands, remote: FakeRemote) -> None:
    response = await commands.install_plugin(InstallPluginInput(url="github.com/acme/missing"))

    assert response.success is False
    assert response.pluginId is None
    assert "manifest not found" in (response.error or "")


@pytest.mark.asyncio
async def test_update_check_marks_plugins_until_updated(commands, remote: FakeRemote) -> None:
    remote.publish(manifest=make_manifest(), bundle=make_bundle())
    await commands.install_plugin(InstallPluginInput(url="github.com/acme/timer-pro"))
    remote.publish(manifest=make_manifest(version="1.1.0"), bundle=make_bundle(version="1.1.0"))

    updates = await commands.check_plugin_updates()
    listed = await commands.list_plugins()

    assert [(u.pluginId, u.latestVersion) for u in updates.updates] == [("timer-pro", "1.1.0")]
    assert listed.plugins[0].updateAvailable is True
    assert listed.plugins[0].latestVersion == "1.1.0"

    result = await commands.update_plugin(PluginIdInput(id="timer-pro"))
    listed = await commands.list_plugins()

    assert result.success is True
    assert listed.plugins[0].version == "1.1.0"
    assert listed.plugins[0].updateAvailable is False


@pytest.mark.asyncio
async def test_toggle_reports_declined_and_failed_calls(commands, remote: FakeRemote) -> None:
    remote.publish(manifest=make_manifest(), bundle=make_bundle())
    await commands.install_plugin(InstallPluginInput(url="github.com/acme/timer-pro"))

    declined = await commands.toggle_plugin(TogglePluginInput(id="timer-pro", enabled=True))
    disabled = await commands.toggle_plugin(TogglePluginInput(id="timer-pro", enabled=False))

    assert declined.success is False
    assert "already enabled" in (declined.error or "")
    assert disabled.success is True
    assert (await commands.list_plugins()).plugins[0].enabled is False

    # Break the stored bundle so the next enable fails while loading
    storage = commands.get_plugin_manager().storage
    await storage.install_plugin("timer-pro", make_manifest(), "raise SystemError('corrupt')\n")
    failed = await commands.toggle_plugin(TogglePluginInput(id="timer-pro", enabled=True))

    assert failed.success is False
    assert "corrupt" in (failed.error or "")


@pytest.mark.asyncio
async def test_uninstall_command(commands, remote: FakeRemote) -> None:
    remote.publish(manifest=make_manifest(), bundle=make_bundle())
    await commands.install_plugin(InstallPluginInput(url="github.com/acme/timer-pro"))

    removed = await commands.uninstall_plugin(PluginIdInput(id="timer-pro"))
    again = await commands.uninstall_plugin(PluginIdInput(id="timer-pro"))

    assert removed.success is True
    assert again.success is False
    assert again.error == "Plugin 'timer-pro' is not installed"
    assert (await commands.list_plugins()).plugins == []


@pytest.mark.asyncio
async def test_initialize_plugins_initializes_manager(commands, manager: PluginManager) -> None:
    response = await commands.initialize_plugins()

    assert manager.initialized is True
    assert response.plugins == []
