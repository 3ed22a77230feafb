from __future__ import annotations

import json
import logging
import re
from typing import Any

import httpx

from ..config import (
    BUNDLE_BUILD_COMMAND,
    BUNDLE_FILENAME,
    MANIFEST_FILENAME,
    STYLES_FILENAME,
    get_fetch_timeout,
)
from .plugin_errors import (
    BundleNotFoundError,
    InvalidSourceError,
    ManifestNotFoundError,
    ManifestParseError,
    NetworkError,
)
from .plugin_types import ParsedRepoUrl, PluginManifest

logger = logging.getLogger(__name__)

RAW_CONTENT_BASE_URL = "https://raw.githubusercontent.com"
DEFAULT_REF = "main"

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_REF_RE = re.compile(r"@([^/]+)")


def parse_repo_url(url: str) -> ParsedRepoUrl:
    """Parse a repository reference into owner, repo, sub-path and ref.

    Accepted forms::

        https://github.com/owner/repo
        github.com/owner/repo/path/to/plugin
        github.com/owner/repo@v1.0.0
        github.com/owner/repo@v1.0.0/path/to/plugin
        github:owner/repo/path
    """
    cleaned = _SCHEME_RE.sub("", (url or "").strip())
    if cleaned.lower().startswith("github.com/"):
        cleaned = cleaned[len("github.com/"):]
    elif cleaned.lower().startswith("github:"):
        cleaned = cleaned[len("github:"):]

    ref = DEFAULT_REF
    ref_match = _REF_RE.search(cleaned)
    if ref_match:
        ref = ref_match.group(1)
        cleaned = cleaned[: ref_match.start()] + cleaned[ref_match.end():]

    parts = [part for part in cleaned.split("/") if part]
    if len(parts) < 2:
        raise InvalidSourceError(
            f"Invalid GitHub URL: {url}\n"
            "  Expected: github.com/owner/repo[@ref][/path/to/plugin]"
        )

    return ParsedRepoUrl(
        owner=parts[0],
        repo=parts[1],
        path="/".join(parts[2:]),
        ref=ref,
    )


def build_asset_url(parsed: ParsedRepoUrl, filename: str) -> str:
    path_prefix = f"{parsed.path}/" if parsed.path else ""
    return f"{RAW_CONTENT_BASE_URL}/{parsed.owner}/{parsed.repo}/{parsed.ref}/{path_prefix}{filename}"


class RemoteFetcher:
    """Fetch plugin assets from a repository's raw-content host."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self._timeout = timeout

    async def _get(self, url: str) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.get(url)
            async with httpx.AsyncClient(
                timeout=self._timeout or get_fetch_timeout(),
                follow_redirects=True,
            ) as client:
                return await client.get(url)
        except httpx.HTTPError as exc:
            raise NetworkError(
                f"Network error while fetching {url}: {exc}\n"
                "  Check your internet connection and try again.",
                url=url,
            ) from exc

    async def fetch_manifest(self, parsed: ParsedRepoUrl) -> Any:
        """Fetch and decode manifest.json without validating it."""
        url = build_asset_url(parsed, MANIFEST_FILENAME)
        response = await self._get(url)

        if response.status_code == 404:
            raise ManifestNotFoundError(
                f"Plugin manifest not found at {url}\n"
                "  Likely causes:\n"
                "  1. The path inside the repository is wrong\n"
                f"  2. The branch or tag '{parsed.ref}' does not exist\n"
                f"  3. The repository has no {MANIFEST_FILENAME} at that location",
                url=url,
                status_code=404,
            )
        if not response.is_success:
            raise NetworkError(
                f"Failed to fetch manifest from {url}: HTTP {response.status_code}\n"
                "  Private repositories cannot be installed from.",
                url=url,
                status_code=response.status_code,
            )

        try:
            return json.loads(response.text)
        except json.JSONDecodeError as exc:
            raise ManifestParseError(
                f"{MANIFEST_FILENAME} at {url} is not valid JSON: {exc.msg} "
                f"(line {exc.lineno}, column {exc.colno})"
            ) from exc

    async def fetch_bundle(self, parsed: ParsedRepoUrl) -> str:
        url = build_asset_url(parsed, BUNDLE_FILENAME)
        response = await self._get(url)

        if response.status_code == 404:
            raise BundleNotFoundError(
                f"Plugin bundle not built: {BUNDLE_FILENAME} was not found at {url}\n"
                f"  Run `{BUNDLE_BUILD_COMMAND}` in the plugin directory and commit "
                f"the generated {BUNDLE_FILENAME}.",
                url=url,
                status_code=404,
            )
        if not response.is_success:
            raise NetworkError(
                f"Failed to fetch {BUNDLE_FILENAME} from {url}: HTTP {response.status_code}",
                url=url,
                status_code=response.status_code,
            )
        return response.text

    async def fetch_styles_optional(
        self, parsed: ParsedRepoUrl, manifest: PluginManifest
    ) -> str | None:
        """Fetch styles.css when the manifest declares it; never raises."""
        if not manifest.has_styles:
            return None

        url = build_asset_url(parsed, STYLES_FILENAME)
        try:
            response = await self._get(url)
        except NetworkError as exc:
            logger.warning("Failed to fetch styles for plugin '%s': %s", manifest.id, exc)
            return None

        if not response.is_success:
            logger.warning(
                "Failed to fetch styles for plugin '%s': HTTP %s",
                manifest.id,
                response.status_code,
            )
            return None
        return response.text


_fetcher: RemoteFetcher | None = None


def get_remote_fetcher() -> RemoteFetcher:
    global _fetcher
    if _fetcher is None:
        _fetcher = RemoteFetcher()
    return _fetcher
