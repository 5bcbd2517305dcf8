"""Exception hierarchy shared across artifact resolution, download, and caching.

Artifact loading spans GitHub API listing calls, archive downloads, optional
post-download transforms, and on-disk cache commits.  This module groups the
failure modes into a small hierarchy so caller code can react to high-level
categories (for example, "nothing to serve" vs. transient API errors) while
still having access to the HTTP status when finer-grained handling is required.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "ArtifactDownloadError",
    "ConfigError",
    "ListingError",
    "DownloadFailure",
    "MissingArtifact",
    "CacheStorageError",
    "TransformError",
]


class ArtifactDownloadError(RuntimeError):
    """Base exception for artifact resolution, download, or cache failures."""


class ConfigError(ArtifactDownloadError):
    """Raised when CLI arguments, settings, or YAML configuration inputs are invalid."""


class _HttpFailure(ArtifactDownloadError):
    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ListingError(_HttpFailure):
    """Raised when workflow runs or artifacts cannot be listed or decoded."""


class DownloadFailure(_HttpFailure):
    """Raised when an artifact archive download fails."""


class MissingArtifact(ArtifactDownloadError):
    """Raised when no qualifying artifact exists and nothing is cached to fall back on.

    Also raised when a download succeeded but the transform rejected it.
    """


class CacheStorageError(ArtifactDownloadError):
    """Raised when the cache cannot read or commit an entry."""


class TransformError(ArtifactDownloadError):
    """Raised when a transform cannot process the downloaded file."""
# === NAVMAP v1 ===
# {
#   "module": "BuildFetch.ArtifactDownload.errors",
#   "purpose": "Define the exception hierarchy used across artifact resolution, download, and caching",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "configuration", "name": "Configuration Errors", "anchor": "CFG", "kind": "api"},
#     {"id": "transport", "name": "Listing & Download Errors", "anchor": "NET", "kind": "api"},
#     {"id": "cache", "name": "Cache & Transform Errors", "anchor": "CAC", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
