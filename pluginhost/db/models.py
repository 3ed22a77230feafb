from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class PluginRegistryEntry(Base):
    """Durable install record, one row per installed plugin."""

    __tablename__ = "plugin_registry"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    source: Mapped[str] = mapped_column(String, nullable=False)
    version: Mapped[str] = mapped_column(String, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    installedAt: Mapped[str] = mapped_column(String, nullable=False)
    updatedAt: Mapped[str] = mapped_column(String, nullable=False)
    # Registry is read and written as an ordered list
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class PluginFiles(Base):
    __tablename__ = "plugin_files"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # JSON string of manifest.json as fetched
    manifest: Mapped[str] = mapped_column(Text, nullable=False)
    code: Mapped[str] = mapped_column(Text, nullable=False)
    styles: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
