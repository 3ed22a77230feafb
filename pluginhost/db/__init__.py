from __future__ import annotations

# Core database functionality
from .core import (
    db_session,
    dispose_engine,
    get_db_path,
    init_database,
    set_db_path,
)

# Plugin registry and file blobs
from .plugins import (
    delete_plugin_files,
    get_plugin_files,
    get_plugin_manifest,
    list_plugin_file_ids,
    list_registry_entries,
    replace_registry_entries,
    save_plugin_files,
)

__all__ = [
    "db_session",
    "delete_plugin_files",
    "dispose_engine",
    "get_db_path",
    "get_plugin_files",
    "get_plugin_manifest",
    "init_database",
    "list_plugin_file_ids",
    "list_registry_entries",
    "replace_registry_entries",
    "save_plugin_files",
    "set_db_path",
]
