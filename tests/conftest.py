"""Shared fixtures for the plugin subsystem test suite."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from pluginhost.services.module_registry import ActionRegistry, ModuleRegistry
from pluginhost.services.plugin_fetcher import RemoteFetcher
from pluginhost.services.plugin_manager import PluginManager
from pluginhost.services.plugin_runtime import PluginRuntime
from pluginhost.services.plugin_storage import FilesystemPluginStorageAdapter

RAW_BASE = "https://raw.githubusercontent.com"


# ---------------------------------------------------------------------------
# Plugin sources
# ---------------------------------------------------------------------------


def make_manifest(plugin_id: str = "timer-pro", version: str = "1.0.0", **overrides: Any) -> dict[str, Any]:
    manifest: dict[str, Any] = {
        "id": plugin_id,
        "name": plugin_id.replace("-", " ").title(),
        "version": version,
        "minHostVersion": "0.1.0",
        "author": "Acme",
        "description": f"{plugin_id} plugin",
    }
    manifest.update(overrides)
    return manifest


def make_bundle(plugin_id: str = "timer-pro", version: str = "1.0.0", *, module_id: str | None = None) -> str:
    """Build a main.py bundle that records its lifecycle into host_libraries['calls']."""
    return f"""
calls = __pluginhost__.host_libraries.get("calls", [])
calls.append(("executed", {plugin_id!r}, {version!r}))

define_plugin = __pluginhost__.extension_api.define_plugin

module = define_plugin(
    plugin_id={(module_id or plugin_id)!r},
    version={version!r},
    display_name="Test Plugin",
    default_state=lambda: {{"count": 0}},
    actions=[{{"id": "reset", "title": "Reset"}}],
    on_install=lambda: calls.append(("install", {plugin_id!r})),
    on_enable=lambda: calls.append(("enable", {plugin_id!r})),
    on_disable=lambda: calls.append(("disable", {plugin_id!r})),
    on_uninstall=lambda: calls.append(("uninstall", {plugin_id!r})),
    on_update=lambda previous: calls.append(("update", {plugin_id!r}, previous)),
)

__pluginhost__.register_plugin(module)
"""


SILENT_BUNDLE = "value = 1\n"


class FakeRemote:
    """In-memory raw-content host served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.files: dict[str, str] = {}
        self.requests: list[str] = []

    def publish(
        self,
        repo: str = "acme/timer-pro",
        *,
        manifest: dict[str, Any] | str,
        bundle: str | None = None,
        styles: str | None = None,
        ref: str = "main",
        path: str = "",
    ) -> None:
        root = f"{RAW_BASE}/{repo}/{ref}/" + (f"{path}/" if path else "")
        self.files[root + "manifest.json"] = (
            manifest if isinstance(manifest, str) else json.dumps(manifest)
        )
        if bundle is not None:
            self.files[root + "main.py"] = bundle
        else:
            self.files.pop(root + "main.py", None)
        if styles is not None:
            self.files[root + "styles.css"] = styles

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url not in self.files:
            return httpx.Response(404, text="404: Not Found")
        return httpx.Response(200, text=self.files[url])

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def calls() -> list[tuple]:
    return []


@pytest.fixture
def runtime(calls: list[tuple]) -> PluginRuntime:
    runtime = PluginRuntime()
    runtime.setup(host_libraries={"calls": calls})
    return runtime


@pytest.fixture
def storage(tmp_path: Path) -> FilesystemPluginStorageAdapter:
    return FilesystemPluginStorageAdapter(tmp_path / "plugins")


@pytest.fixture
def module_registry() -> ModuleRegistry:
    return ModuleRegistry()


@pytest.fixture
def action_registry() -> ActionRegistry:
    return ActionRegistry()


@pytest.fixture
def manager(
    storage: FilesystemPluginStorageAdapter,
    remote: FakeRemote,
    runtime: PluginRuntime,
    module_registry: ModuleRegistry,
    action_registry: ActionRegistry,
) -> PluginManager:
    return PluginManager(
        storage=storage,
        fetcher=RemoteFetcher(remote.client()),
        runtime=runtime,
        module_registry=module_registry,
        action_registry=action_registry,
        registration_timeout=0.2,
    )
