from __future__ import annotations

import asyncio
import json
import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from .. import db
from ..config import (
    BUNDLE_FILENAME,
    MANIFEST_FILENAME,
    STYLES_FILENAME,
    get_plugins_directory,
    get_storage_backend,
)
from .plugin_errors import StorageError
from .plugin_types import InstallRecord

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "plugins.json"


class PluginStorageAdapter(ABC):
    """Durable state for installed plugins.

    Two logical tables: an ordered install registry that is read and replaced
    as a whole, and a per-id blob store holding manifest, code and styles.
    """

    @abstractmethod
    async def is_available(self) -> bool: ...

    @abstractmethod
    async def read_registry(self) -> list[InstallRecord]: ...

    @abstractmethod
    async def write_registry(self, records: list[InstallRecord]) -> None: ...

    @abstractmethod
    async def read_manifest(self, plugin_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def read_module_code(self, plugin_id: str) -> str | None: ...

    @abstractmethod
    async def read_styles(self, plugin_id: str) -> str | None: ...

    @abstractmethod
    async def install_plugin(
        self,
        plugin_id: str,
        manifest: dict[str, Any],
        code: str,
        styles: str | None = None,
    ) -> None: ...

    @abstractmethod
    async def uninstall_plugin(self, plugin_id: str) -> None: ...

    @abstractmethod
    async def list_plugin_files(self) -> list[str]: ...

    async def is_plugin_installed(self, plugin_id: str) -> bool:
        records = await self.read_registry()
        return any(record.id == plugin_id for record in records)

    def plugin_path(self, plugin_id: str) -> str:
        return ""


class SqlPluginStorageAdapter(PluginStorageAdapter):
    """SQLite-backed storage; ORM calls run in a worker thread."""

    async def is_available(self) -> bool:
        try:
            await asyncio.to_thread(db.init_database)
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("Plugin storage unavailable: %s", exc)
            return False
        return True

    async def _run(self, fn, *args, **kwargs):
        def _call():
            with db.db_session() as sess:
                return fn(sess, *args, **kwargs)

        try:
            return await asyncio.to_thread(_call)
        except SQLAlchemyError as exc:
            raise StorageError(f"Plugin storage error: {exc}") from exc

    async def read_registry(self) -> list[InstallRecord]:
        entries = await self._run(db.list_registry_entries)
        return [InstallRecord.from_dict(entry) for entry in entries]

    async def write_registry(self, records: list[InstallRecord]) -> None:
        await self._run(db.replace_registry_entries, [record.to_dict() for record in records])

    async def read_manifest(self, plugin_id: str) -> dict[str, Any] | None:
        try:
            return await self._run(db.get_plugin_manifest, plugin_id)
        except json.JSONDecodeError as exc:
            raise StorageError(
                f"Stored manifest for plugin '{plugin_id}' is corrupt: {exc}",
                plugin_id=plugin_id,
            ) from exc

    async def read_module_code(self, plugin_id: str) -> str | None:
        files = await self._run(db.get_plugin_files, plugin_id)
        return files.code if files else None

    async def read_styles(self, plugin_id: str) -> str | None:
        files = await self._run(db.get_plugin_files, plugin_id)
        return files.styles if files else None

    async def install_plugin(
        self,
        plugin_id: str,
        manifest: dict[str, Any],
        code: str,
        styles: str | None = None,
    ) -> None:
        await self._run(
            db.save_plugin_files,
            plugin_id,
            manifest=manifest,
            code=code,
            styles=styles,
        )

    async def uninstall_plugin(self, plugin_id: str) -> None:
        await self._run(db.delete_plugin_files, plugin_id)

    async def list_plugin_files(self) -> list[str]:
        return await self._run(db.list_plugin_file_ids)


class FilesystemPluginStorageAdapter(PluginStorageAdapter):
    """Directory-backed storage: ``plugins.json`` plus one folder per plugin."""

    def __init__(self, root: Path | None = None) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root or get_plugins_directory()

    @property
    def registry_path(self) -> Path:
        return self.root / REGISTRY_FILENAME

    def plugin_path(self, plugin_id: str) -> str:
        return str(self.root / plugin_id)

    async def is_available(self) -> bool:
        try:
            await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Plugin storage unavailable at %s: %s", self.root, exc)
            return False
        return True

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except OSError as exc:
            raise StorageError(f"Plugin storage error: {exc}") from exc

    def _read_registry_sync(self) -> list[InstallRecord]:
        if not self.registry_path.exists():
            return []
        try:
            data = json.loads(self.registry_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StorageError(f"{REGISTRY_FILENAME} is corrupt: {exc}") from exc
        if not isinstance(data, list):
            raise StorageError(f"{REGISTRY_FILENAME} must contain a list of install records")
        return [InstallRecord.from_dict(entry) for entry in data if isinstance(entry, dict)]

    def _write_registry_sync(self, records: list[InstallRecord]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([record.to_dict() for record in records], indent=2)
        # Write then rename so a crash never leaves a half-written registry
        temp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.root, delete=False, suffix=".tmp"
            ) as handle:
                temp_path = Path(handle.name)
                handle.write(payload)
            temp_path.replace(self.registry_path)
        except OSError:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise

    def _read_text_sync(self, plugin_id: str, filename: str) -> str | None:
        path = self.root / plugin_id / filename
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def _install_sync(
        self,
        plugin_id: str,
        manifest: dict[str, Any],
        code: str,
        styles: str | None,
    ) -> None:
        plugin_dir = self.root / plugin_id
        plugin_dir.mkdir(parents=True, exist_ok=True)
        (plugin_dir / MANIFEST_FILENAME).write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        (plugin_dir / BUNDLE_FILENAME).write_text(code, encoding="utf-8")
        styles_path = plugin_dir / STYLES_FILENAME
        if styles is not None:
            styles_path.write_text(styles, encoding="utf-8")
        elif styles_path.exists():
            styles_path.unlink()

    def _uninstall_sync(self, plugin_id: str) -> None:
        plugin_dir = self.root / plugin_id
        if plugin_dir.exists():
            shutil.rmtree(plugin_dir)

    def _list_files_sync(self) -> list[str]:
        if not self.root.exists():
            return []
        return sorted(
            entry.name
            for entry in self.root.iterdir()
            if entry.is_dir() and (entry / MANIFEST_FILENAME).exists()
        )

    async def read_registry(self) -> list[InstallRecord]:
        return await self._run(self._read_registry_sync)

    async def write_registry(self, records: list[InstallRecord]) -> None:
        await self._run(self._write_registry_sync, list(records))

    async def read_manifest(self, plugin_id: str) -> dict[str, Any] | None:
        text = await self._run(self._read_text_sync, plugin_id, MANIFEST_FILENAME)
        if text is None:
            return None
        try:
            manifest = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageError(
                f"Stored manifest for plugin '{plugin_id}' is corrupt: {exc}",
                plugin_id=plugin_id,
            ) from exc
        return manifest if isinstance(manifest, dict) else None

    async def read_module_code(self, plugin_id: str) -> str | None:
        return await self._run(self._read_text_sync, plugin_id, BUNDLE_FILENAME)

    async def read_styles(self, plugin_id: str) -> str | None:
        return await self._run(self._read_text_sync, plugin_id, STYLES_FILENAME)

    async def install_plugin(
        self,
        plugin_id: str,
        manifest: dict[str, Any],
        code: str,
        styles: str | None = None,
    ) -> None:
        await self._run(self._install_sync, plugin_id, manifest, code, styles)

    async def uninstall_plugin(self, plugin_id: str) -> None:
        await self._run(self._uninstall_sync, plugin_id)

    async def list_plugin_files(self) -> list[str]:
        return await self._run(self._list_files_sync)


def create_plugin_storage_adapter() -> PluginStorageAdapter:
    backend = get_storage_backend()
    if backend == "filesystem":
        return FilesystemPluginStorageAdapter()
    return SqlPluginStorageAdapter()


_storage_adapter: PluginStorageAdapter | None = None


def get_plugin_storage_adapter() -> PluginStorageAdapter:
    global _storage_adapter
    if _storage_adapter is None:
        _storage_adapter = create_plugin_storage_adapter()
    return _storage_adapter


def set_plugin_storage_adapter(adapter: PluginStorageAdapter | None) -> None:
    global _storage_adapter
    _storage_adapter = adapter
