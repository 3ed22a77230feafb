from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .models import PluginFiles, PluginRegistryEntry


def list_registry_entries(sess: Session) -> List[Dict[str, Any]]:
    """Return registry rows as install-record dicts, in stored order."""
    rows = sess.scalars(
        select(PluginRegistryEntry).order_by(
            PluginRegistryEntry.position, PluginRegistryEntry.installedAt
        )
    ).all()
    return [
        {
            "id": row.id,
            "source": row.source,
            "version": row.version,
            "enabled": row.enabled,
            "installedAt": row.installedAt,
            "updatedAt": row.updatedAt,
        }
        for row in rows
    ]


def replace_registry_entries(sess: Session, entries: List[Dict[str, Any]]) -> None:
    """Replace the whole registry table with `entries`, keeping their order."""
    sess.execute(delete(PluginRegistryEntry))
    for position, entry in enumerate(entries):
        sess.add(
            PluginRegistryEntry(
                id=entry["id"],
                source=entry["source"],
                version=entry["version"],
                enabled=bool(entry["enabled"]),
                installedAt=entry["installedAt"],
                updatedAt=entry["updatedAt"],
                position=position,
            )
        )


def get_plugin_files(sess: Session, plugin_id: str) -> Optional[PluginFiles]:
    return sess.get(PluginFiles, plugin_id)


def get_plugin_manifest(sess: Session, plugin_id: str) -> Optional[Dict[str, Any]]:
    files = sess.get(PluginFiles, plugin_id)
    if not files:
        return None
    manifest = json.loads(files.manifest)
    return manifest if isinstance(manifest, dict) else None


def save_plugin_files(
    sess: Session,
    plugin_id: str,
    *,
    manifest: Dict[str, Any],
    code: str,
    styles: Optional[str] = None,
) -> None:
    files: Optional[PluginFiles] = sess.get(PluginFiles, plugin_id)
    manifest_json = json.dumps(manifest)

    if files:
        files.manifest = manifest_json
        files.code = code
        files.styles = styles
    else:
        sess.add(
            PluginFiles(id=plugin_id, manifest=manifest_json, code=code, styles=styles)
        )


def delete_plugin_files(sess: Session, plugin_id: str) -> bool:
    files = sess.get(PluginFiles, plugin_id)
    if not files:
        return False
    sess.delete(files)
    return True


def list_plugin_file_ids(sess: Session) -> List[str]:
    return list(sess.scalars(select(PluginFiles.id).order_by(PluginFiles.id)).all())
