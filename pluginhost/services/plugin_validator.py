"""Manifest validation and host compatibility checks.

Everything here is pure. Validation collects every problem before returning
so a plugin author can fix a manifest in one pass; each message names the
field and shows what a correct value looks like.
"""

from __future__ import annotations

import re
from typing import Any

from ..config import HOST_NAME, HOST_VERSION
from .plugin_types import CompatibilityResult, ValidationResult

PLUGIN_ID_RE = re.compile(r"^[a-z][a-z0-9]*(-[a-z0-9]+)*$")
_STRICT_SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+$")
_VERSION_PREFIX_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)")

_REQUIRED_FIELD_HINTS: dict[str, tuple[str, str]] = {
    "id": ('"my-plugin"', "Format: kebab-case (lowercase letters, numbers, hyphens)"),
    "name": ('"My Plugin"', "This is shown in the UI."),
    "version": ('"0.1.0"', "Format: MAJOR.MINOR.PATCH (semantic versioning)"),
    "minHostVersion": (
        f'"{HOST_VERSION}"',
        f"This specifies the minimum {HOST_NAME} version required.",
    ),
    "author": ('"Your Name"', "This is shown in the plugin list."),
    "description": ('"What your plugin does"', "Keep it under 200 characters."),
}

_OPTIONAL_STRING_HINTS: dict[str, str] = {
    "authorUrl": '"authorUrl": "https://github.com/yourname"',
    "repository": '"repository": "https://github.com/yourname/my-plugin"',
    "icon": '"icon": "calendar-check"',
}

_CONTRACT_LIST_HINTS: dict[str, str] = {
    "provides": '"provides": ["myplugin.data.v1"]',
    "consumes": '"consumes": ["todo.list.v1"]',
}


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def validate_manifest(raw: Any) -> ValidationResult:
    if not isinstance(raw, dict):
        return ValidationResult(
            valid=False,
            errors=[
                "manifest.json must be a valid JSON object.\n"
                "  Hint: Check for syntax errors (missing commas, quotes, etc.)"
            ],
        )

    errors: list[str] = []
    warnings: list[str] = []

    for field_name, (example, note) in _REQUIRED_FIELD_HINTS.items():
        value = raw.get(field_name)
        if value is not None and not isinstance(value, str):
            errors.append(
                f'"{field_name}" must be a string, got {type(value).__name__}.\n'
                f'  Example: "{field_name}": {example}'
            )
        elif not _is_non_empty_string(value):
            errors.append(
                f'Missing required field "{field_name}".\n'
                f'  Add: "{field_name}": {example}\n'
                f"  {note}"
            )

    plugin_id = raw.get("id")
    if _is_non_empty_string(plugin_id) and not PLUGIN_ID_RE.match(plugin_id):
        errors.append(
            f'Invalid "id" format: "{plugin_id}"\n'
            "  Must be kebab-case: lowercase letters, numbers, and hyphens.\n"
            "  Must start with a letter.\n"
            "  Valid examples: my-plugin, timer-pro, data-viz"
        )

    version = raw.get("version")
    if _is_non_empty_string(version) and not _STRICT_SEMVER_RE.match(version):
        warnings.append(
            f'Version "{version}" should follow semver format.\n'
            "  Expected: MAJOR.MINOR.PATCH (e.g., 1.0.0, 0.2.1)\n"
            "  See: https://semver.org"
        )

    for field_name, example in _OPTIONAL_STRING_HINTS.items():
        if field_name in raw and not isinstance(raw[field_name], str):
            errors.append(f'"{field_name}" must be a string.\n  Example: {example}')

    for field_name in ("isDesktopOnly", "hasStyles"):
        if field_name in raw and not isinstance(raw[field_name], bool):
            errors.append(f'"{field_name}" must be true or false (not a string).')

    for field_name, example in _CONTRACT_LIST_HINTS.items():
        if field_name not in raw:
            continue
        value = raw[field_name]
        if not isinstance(value, list):
            errors.append(f'"{field_name}" must be an array.\n  Example: {example}')
        elif not all(isinstance(item, str) for item in value):
            errors.append(f'"{field_name}" must be an array of strings (contract IDs).')

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def is_valid_manifest(raw: Any) -> bool:
    return validate_manifest(raw).valid


def parse_version(version: Any) -> tuple[int, int, int] | None:
    """Parse the leading MAJOR.MINOR.PATCH of a version string.

    Returns None when the string has no such prefix; callers decide whether
    that is fatal.
    """
    if not isinstance(version, str):
        return None
    match = _VERSION_PREFIX_RE.match(version.strip())
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def compare_versions(left: str, right: str) -> int | None:
    """Return -1, 0 or 1 comparing two versions, or None if either is unparsable."""
    left_parts = parse_version(left)
    right_parts = parse_version(right)
    if left_parts is None or right_parts is None:
        return None
    if left_parts < right_parts:
        return -1
    if left_parts > right_parts:
        return 1
    return 0


def check_compatibility(
    min_host_version: str, current_host_version: str = HOST_VERSION
) -> CompatibilityResult:
    required = parse_version(min_host_version)
    if required is None:
        return CompatibilityResult(
            compatible=False,
            message=(
                f'Invalid version format in manifest: "{min_host_version}"\n'
                "  Expected format: MAJOR.MINOR.PATCH (e.g., 0.1.0, 1.0.0)\n"
                '  Fix the "minHostVersion" field in manifest.json'
            ),
        )

    current = parse_version(current_host_version)
    if current is None:
        raise ValueError(f"Invalid host version: {current_host_version}")

    if current < required:
        return CompatibilityResult(
            compatible=False,
            message=(
                f"Plugin requires {HOST_NAME} {min_host_version}, "
                f"but you have {current_host_version}.\n\n"
                "Solutions:\n"
                f"  1. Update {HOST_NAME} to the latest version\n"
                "  2. Use an older version of this plugin\n"
                "  3. Ask the plugin author to lower minHostVersion"
            ),
        )

    return CompatibilityResult(compatible=True)
