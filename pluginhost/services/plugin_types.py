from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class PluginManifest:
    id: str
    name: str
    version: str
    min_host_version: str
    author: str
    description: str
    author_url: str | None = None
    repository: str | None = None
    icon: str | None = None
    is_desktop_only: bool = False
    has_styles: bool = False
    provides: tuple[str, ...] = ()
    consumes: tuple[str, ...] = ()
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PluginManifest":
        """Build a manifest from its JSON form.

        The input is expected to have passed validate_manifest(); this only
        rejects data that cannot be turned into a manifest at all.
        """
        if not isinstance(raw, dict):
            raise ValueError("Plugin manifest must be an object")

        missing = [
            key
            for key in ("id", "name", "version", "minHostVersion", "author", "description")
            if not isinstance(raw.get(key), str) or not raw.get(key)
        ]
        if missing:
            raise ValueError(f"Plugin manifest missing required field(s): {', '.join(missing)}")

        return cls(
            id=raw["id"],
            name=raw["name"],
            version=raw["version"],
            min_host_version=raw["minHostVersion"],
            author=raw["author"],
            description=raw["description"],
            author_url=raw.get("authorUrl"),
            repository=raw.get("repository"),
            icon=raw.get("icon"),
            is_desktop_only=bool(raw.get("isDesktopOnly", False)),
            has_styles=bool(raw.get("hasStyles", False)),
            provides=tuple(raw.get("provides") or ()),
            consumes=tuple(raw.get("consumes") or ()),
            raw=dict(raw),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.raw)
        data.update(
            {
                "id": self.id,
                "name": self.name,
                "version": self.version,
                "minHostVersion": self.min_host_version,
                "author": self.author,
                "description": self.description,
            }
        )
        optional = {
            "authorUrl": self.author_url,
            "repository": self.repository,
            "icon": self.icon,
        }
        for key, value in optional.items():
            if value is not None:
                data[key] = value
        if self.is_desktop_only:
            data["isDesktopOnly"] = True
        if self.has_styles:
            data["hasStyles"] = True
        if self.provides:
            data["provides"] = list(self.provides)
        if self.consumes:
            data["consumes"] = list(self.consumes)
        return data


@dataclass(frozen=True)
class InstallRecord:
    id: str
    source: str
    version: str
    enabled: bool
    installed_at: str
    updated_at: str

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "InstallRecord":
        plugin_id = str(raw.get("id") or "").strip()
        if not plugin_id:
            raise ValueError("Install record missing required field: id")
        return cls(
            id=plugin_id,
            source=str(raw.get("source") or ""),
            version=str(raw.get("version") or ""),
            enabled=bool(raw.get("enabled", False)),
            installed_at=str(raw.get("installedAt") or ""),
            updated_at=str(raw.get("updatedAt") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "version": self.version,
            "enabled": self.enabled,
            "installedAt": self.installed_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class InstalledPluginInfo:
    id: str
    manifest: PluginManifest
    source: str
    enabled: bool
    installed_at: str
    updated_at: str
    path: str = ""

    @property
    def version(self) -> str:
        return self.manifest.version

    @classmethod
    def from_record(
        cls, record: InstallRecord, manifest: PluginManifest, *, path: str = ""
    ) -> "InstalledPluginInfo":
        return cls(
            id=record.id,
            manifest=manifest,
            source=record.source,
            enabled=record.enabled,
            installed_at=record.installed_at,
            updated_at=record.updated_at,
            path=path,
        )


@dataclass(frozen=True)
class ParsedRepoUrl:
    owner: str
    repo: str
    path: str = ""
    ref: str = "main"


@dataclass(frozen=True)
class FetchedPlugin:
    manifest: PluginManifest
    code: str
    source: str
    styles: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CompatibilityResult:
    compatible: bool
    message: str | None = None


@dataclass(frozen=True)
class PluginUpdateInfo:
    plugin_id: str
    current_version: str
    latest_version: str
    source: str


@dataclass(frozen=True)
class PluginInstallResult:
    success: bool
    plugin_id: str | None = None
    error: str | None = None
