# === NAVMAP v1 ===
# {
#   "module": "BuildFetch.ArtifactDownload",
#   "purpose": "Package initialization and public API for BuildFetch.ArtifactDownload",
#   "sections": []
# }
# === /NAVMAP ===

"""Public API for downloading GitHub Actions build artifacts into a local cache.

The typical entry point is :func:`load`, which resolves the newest artifact
matching a :class:`Filter`, compares it against a :class:`CacheEntry`, and only
downloads when the cached copy is stale::

    cache = ArtifactCache(Path("~/.cache/artifetch").expanduser())
    reference = load(
        cache.entry("plugin"),
        "example",
        "plugin",
        Filter(workflow="Build", branch="main", artifact="plugin-jar"),
        ExtractMemberTransform("*.jar"),
    )
    print(reference.path)

:func:`fetch_one` and :func:`fetch_all` drive the same flow from YAML-declared
:class:`SourceSpec` entries.
"""

from __future__ import annotations

from importlib import metadata as importlib_metadata

from .api import FetchResult, fetch_all, fetch_one
from .cache import ArtifactCache, CacheEntry, CacheReference, CacheToken, CacheUpdater, Match, Mismatch
from .errors import (
    ArtifactDownloadError,
    CacheStorageError,
    ConfigError,
    DownloadFailure,
    ListingError,
    MissingArtifact,
    TransformError,
)
from .listing import ActionsClient
from .loader import load
from .models import Artifact, Filter, Project, ResolvedCandidate, SourceFile, WorkflowRun
from .resolver import find_latest
from .settings import ArtifetchSettings, SourceSpec, get_default_config, load_config
from .transform import ExtractMemberTransform, PassthroughTransform, Transform, build_transform

try:  # pragma: no cover - metadata may be unavailable during development
    __version__ = importlib_metadata.version("buildfetch-artifacts")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - local source tree
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    "load",
    "find_latest",
    "fetch_one",
    "fetch_all",
    "FetchResult",
    "ActionsClient",
    "ArtifactCache",
    "CacheEntry",
    "CacheReference",
    "CacheToken",
    "CacheUpdater",
    "Match",
    "Mismatch",
    "Filter",
    "Project",
    "Artifact",
    "WorkflowRun",
    "ResolvedCandidate",
    "SourceFile",
    "Transform",
    "PassthroughTransform",
    "ExtractMemberTransform",
    "build_transform",
    "ArtifetchSettings",
    "SourceSpec",
    "get_default_config",
    "load_config",
    "ArtifactDownloadError",
    "ConfigError",
    "ListingError",
    "DownloadFailure",
    "MissingArtifact",
    "CacheStorageError",
    "TransformError",
]
