from __future__ import annotations

import json
from pathlib import Path

import pytest

from pluginhost import db
from pluginhost.db import core as db_core
from pluginhost.services import plugin_storage
from pluginhost.services.plugin_errors import StorageError
from pluginhost.services.plugin_storage import (
    FilesystemPluginStorageAdapter,
    PluginStorageAdapter,
    SqlPluginStorageAdapter,
)
from pluginhost.services.plugin_types import InstallRecord

from conftest import make_manifest


def _record(plugin_id: str, *, enabled: bool = True, version: str = "1.0.0") -> InstallRecord:
    return InstallRecord(
        id=plugin_id,
        source=f"github.com/acme/{plugin_id}",
        version=version,
        enabled=enabled,
        installed_at="2026-01-01T00:00:00+00:00",
        updated_at="2026-01-01T00:00:00+00:00",
    )


@pytest.fixture(params=["sqlite", "filesystem"])
def adapter(request, monkeypatch, tmp_path: Path):
    if request.param == "sqlite":
        monkeypatch.setattr(db_core, "_db_path_override", None)
        db.set_db_path(tmp_path / "plugins.db")
        yield SqlPluginStorageAdapter()
        db.dispose_engine()
    else:
        yield FilesystemPluginStorageAdapter(tmp_path / "plugins")


@pytest.mark.asyncio
async def test_registry_starts_empty(adapter: PluginStorageAdapter) -> None:
    assert await adapter.is_available() is True
    assert await adapter.read_registry() == []
    assert await adapter.list_plugin_files() == []


@pytest.mark.asyncio
async def test_write_registry_replaces_table_and_keeps_order(adapter: PluginStorageAdapter) -> None:
    await adapter.write_registry([_record("zeta"), _record("alpha", enabled=False)])
    await adapter.write_registry([_record("zeta"), _record("alpha", enabled=False), _record("mid")])

    records = await adapter.read_registry()

    assert [record.id for record in records] == ["zeta", "alpha", "mid"]
    assert records[1].enabled is False
    assert records[0] == _record("zeta")


@pytest.mark.asyncio
async def test_install_plugin_stores_manifest_code_and_styles(adapter: PluginStorageAdapter) -> None:
    manifest = make_manifest(hasStyles=True)

    await adapter.install_plugin("timer-pro", manifest, "print('hi')\n", ".timer {}")

    assert await adapter.read_manifest("timer-pro") == manifest
    assert await adapter.read_module_code("timer-pro") == "print('hi')\n"
    assert await adapter.read_styles("timer-pro") == ".timer {}"
    assert await adapter.list_plugin_files() == ["timer-pro"]


@pytest.mark.asyncio
async def test_install_plugin_overwrites_existing_files(adapter: PluginStorageAdapter) -> None:
    await adapter.install_plugin("timer-pro", make_manifest(), "old = True\n", ".old {}")
    await adapter.install_plugin("timer-pro", make_manifest(version="1.1.0"), "new = True\n")

    manifest = await adapter.read_manifest("timer-pro")
    assert manifest is not None
    assert manifest["version"] == "1.1.0"
    assert await adapter.read_module_code("timer-pro") == "new = True\n"
    assert await adapter.read_styles("timer-pro") is None


@pytest.mark.asyncio
async def test_uninstall_plugin_removes_files(adapter: PluginStorageAdapter) -> None:
    await adapter.install_plugin("timer-pro", make_manifest(), "x = 1\n")

    await adapter.uninstall_plugin("timer-pro")
    await adapter.uninstall_plugin("timer-pro")

    assert await adapter.read_manifest("timer-pro") is None
    assert await adapter.read_module_code("timer-pro") is None
    assert await adapter.list_plugin_files() == []


@pytest.mark.asyncio
async def test_is_plugin_installed_follows_registry(adapter: PluginStorageAdapter) -> None:
    await adapter.install_plugin("timer-pro", make_manifest(), "x = 1\n")
    assert await adapter.is_plugin_installed("timer-pro") is False

    await adapter.write_registry([_record("timer-pro")])
    assert await adapter.is_plugin_installed("timer-pro") is True


@pytest.mark.asyncio
async def test_filesystem_layout(tmp_path: Path) -> None:
    root = tmp_path / "plugins"
    adapter = FilesystemPluginStorageAdapter(root)

    await adapter.install_plugin("timer-pro", make_manifest(), "x = 1\n")
    await adapter.write_registry([_record("timer-pro")])

    assert (root / "timer-pro" / "main.py").read_text() == "x = 1\n"
    assert json.loads((root / "timer-pro" / "manifest.json").read_text())["id"] == "timer-pro"
    registry = json.loads((root / "plugins.json").read_text())
    assert registry[0]["installedAt"] == "2026-01-01T00:00:00+00:00"
    assert adapter.plugin_path("timer-pro") == str(root / "timer-pro")
    assert list(root.glob("*.tmp")) == []

@pytest.mark.asyncio
async def test_failed_registry_write_leaves_no_temp_files(tmp_path: Path) -> None:
    root = tmp_path / "plugins"
    adapter = FilesystemPluginStorageAdapter(root)
    # A directory in place of plugins.json makes the final rename fail
    (root / "plugins.json").mkdir(parents=True)

    with pytest.raises(StorageError):
        await adapter.write_registry([_record("timer-pro")])

    assert list(root.glob("*.tmp")) == []


def test_storage_backend_comes_from_environment(monkeypatch) -> None:
    monkeypatch.setattr(plugin_storage, "_storage_adapter", None)
    monkeypatch.setenv("PLUGINHOST_STORAGE", "filesystem")
    assert isinstance(plugin_storage.get_plugin_storage_adapter(), FilesystemPluginStorageAdapter)

    monkeypatch.setattr(plugin_storage, "_storage_adapter", None)
    monkeypatch.delenv("PLUGINHOST_STORAGE")
    assert isinstance(plugin_storage.get_plugin_storage_adapter(), SqlPluginStorageAdapter)

    monkeypatch.setenv("PLUGINHOST_STORAGE", "redis")
    with pytest.raises(ValueError, match="PLUGINHOST_STORAGE"):
        plugin_storage.create_plugin_storage_adapter()
