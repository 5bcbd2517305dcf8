"""Resolve the latest matching artifact and make the cache reflect it.

``load`` is a single sequential pass::

    find_latest ──► none ──► existing cached file, else MissingArtifact
        │
        └─► candidate ──► try_update(token)
                              ├─ Match    ──► existing reference
                              └─ Mismatch ──► download ──► transform ──► commit

The token comparison always precedes the download, and the cache is only
written through the updater returned by that comparison, after the transform
produced a file.
"""

from __future__ import annotations

import logging
from typing import Optional

from .cache import CacheEntry, CacheReference, CacheToken, Match
from .errors import ConfigError, MissingArtifact
from .listing import ActionsClient
from .models import Filter, Project, SourceFile
from .resolver import find_latest
from .transform import Transform

__all__ = ["load"]

LOGGER = logging.getLogger("BuildFetch.ArtifactDownload.loader")


def load(
    cache_entry: CacheEntry,
    owner: str,
    repository: str,
    filter: Filter,
    transform: Transform,
    *,
    client: Optional[ActionsClient] = None,
) -> CacheReference:
    """Return a cache reference for the newest artifact matching ``filter``.

    Args:
        cache_entry: Cache slot that receives the artifact.
        owner: Repository owner.
        repository: Repository name.
        filter: Workflow, branch, and artifact name constraints.
        transform: Applied to the downloaded archive before it is cached.
        client: Listing and download client; defaults to :class:`ActionsClient`.

    Returns:
        Reference to the cached file, freshly committed or reused.

    Raises:
        ConfigError: ``owner`` or ``repository`` is not a valid GitHub slug.
        ListingError: Runs or artifacts could not be listed.
        DownloadFailure: The archive download failed; the cache is unchanged.
        MissingArtifact: Nothing matched and nothing is cached, or the
            transform rejected the download; the cache is unchanged.
        CacheStorageError: The commit failed.
    """

    try:
        project = Project(owner=owner, repository=repository)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    client = client or ActionsClient()
    candidate = find_latest(project, filter, client=client)

    if candidate is None:
        existing = cache_entry.get_existing()
        if existing is None:
            raise MissingArtifact(f"No artifact matching {filter} found for {project}")
        LOGGER.info(
            "no matching artifact; serving cached copy",
            extra={"stage": "load", "entry": cache_entry.name, "cache_token": str(existing.token)},
        )
        return existing

    result = cache_entry.try_update(CacheToken.for_artifact(candidate.artifact_id))
    if isinstance(result, Match):
        LOGGER.info(
            "cached artifact is current",
            extra={"stage": "load", "entry": cache_entry.name, "artifact_id": candidate.artifact_id},
        )
        return result.reference

    content = client.download(candidate.url)
    raw = SourceFile(name=f"{candidate.name}.zip", content=content)
    transformed = transform.apply(raw)
    if transformed is None:
        raise MissingArtifact(
            f"Artifact '{candidate.name}' ({candidate.artifact_id}) of {project} "
            f"produced no usable file"
        )
    return result.updater.update(transformed)
