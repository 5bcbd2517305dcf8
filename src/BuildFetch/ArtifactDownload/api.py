# === NAVMAP v1 ===
# {
#   "module": "BuildFetch.ArtifactDownload.api",
#   "purpose": "Batch helpers that run artifact loads for configured sources",
#   "sections": [
#     {"id": "fetchresult", "name": "FetchResult", "anchor": "class-fetchresult", "kind": "class"},
#     {"id": "fetch-one", "name": "fetch_one", "anchor": "function-fetch-one", "kind": "function"},
#     {"id": "fetch-all", "name": "fetch_all", "anchor": "function-fetch-all", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""High-level helpers used by the CLI to load configured artifact sources.

:func:`fetch_one` wraps :func:`~BuildFetch.ArtifactDownload.loader.load` for a
:class:`SourceSpec` and reports whether the cache was refreshed.
:func:`fetch_all` runs every source in order, optionally continuing past
failures so one broken source does not block the others.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .cache import ArtifactCache, CacheToken
from .errors import ArtifactDownloadError
from .listing import ActionsClient
from .loader import load
from .settings import SourceSpec
from .transform import build_transform

__all__ = ["FetchResult", "fetch_one", "fetch_all"]

LOGGER = logging.getLogger("BuildFetch.ArtifactDownload")

STATUS_DOWNLOADED = "downloaded"
STATUS_CACHED = "cached"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class FetchResult:
    """Outcome of loading one configured source."""

    name: str
    status: str
    path: Optional[Path] = None
    token: Optional[CacheToken] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != STATUS_FAILED


def fetch_one(
    spec: SourceSpec,
    *,
    cache: ArtifactCache,
    client: Optional[ActionsClient] = None,
) -> FetchResult:
    """Load ``spec`` into ``cache`` and describe what happened.

    Errors from :func:`load` propagate unchanged.
    """

    entry = cache.entry(spec.name)
    before = entry.get_existing()
    project = spec.project
    reference = load(
        entry,
        project.owner,
        project.repository,
        spec.filter,
        build_transform(spec.transform),
        client=client,
    )
    refreshed = before is None or before.token != reference.token or before.path != reference.path
    return FetchResult(
        name=spec.name,
        status=STATUS_DOWNLOADED if refreshed else STATUS_CACHED,
        path=reference.path,
        token=reference.token,
    )


def fetch_all(
    specs: Iterable[SourceSpec],
    *,
    cache: ArtifactCache,
    client: Optional[ActionsClient] = None,
    continue_on_error: bool = True,
) -> List[FetchResult]:
    """Load every source in order.

    Args:
        specs: Configured sources.
        cache: Cache receiving the artifacts.
        client: Shared listing client.
        continue_on_error: Record failures and keep going instead of raising.

    Returns:
        One :class:`FetchResult` per source, in input order.
    """

    client = client or ActionsClient()
    correlation_id = uuid.uuid4().hex[:12]
    results: List[FetchResult] = []
    for spec in specs:
        try:
            results.append(fetch_one(spec, cache=cache, client=client))
        except ArtifactDownloadError as exc:
            if not continue_on_error:
                raise
            LOGGER.error(
                "artifact load failed",
                extra={
                    "stage": "fetch",
                    "correlation_id": correlation_id,
                    "artifact": spec.name,
                    "error": str(exc),
                },
            )
            results.append(FetchResult(name=spec.name, status=STATUS_FAILED, error=str(exc)))
    return results
