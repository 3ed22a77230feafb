from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class PluginInfo(BaseModel):
    id: str
    name: str
    version: str
    author: str
    description: str
    source: str
    enabled: bool
    loaded: bool = False
    installedAt: str
    updatedAt: str
    minHostVersion: str
    icon: Optional[str] = None
    authorUrl: Optional[str] = None
    repository: Optional[str] = None
    isDesktopOnly: bool = False
    hasStyles: bool = False
    provides: List[str] = Field(default_factory=list)
    consumes: List[str] = Field(default_factory=list)
    updateAvailable: bool = False
    latestVersion: Optional[str] = None


class PluginsResponse(BaseModel):
    plugins: List[PluginInfo]
    available: bool = True


class InstallPluginInput(BaseModel):
    url: str


class InstallPluginResponse(BaseModel):
    success: bool
    pluginId: Optional[str] = None
    error: Optional[str] = None


class PluginIdInput(BaseModel):
    id: str


class TogglePluginInput(BaseModel):
    id: str
    enabled: bool


class PluginActionResponse(BaseModel):
    success: bool
    error: Optional[str] = None


class PluginUpdateItem(BaseModel):
    pluginId: str
    currentVersion: str
    latestVersion: str
    source: str


class PluginUpdatesResponse(BaseModel):
    updates: List[PluginUpdateItem]
