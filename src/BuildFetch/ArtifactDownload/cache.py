# === NAVMAP v1 ===
# {
#   "module": "BuildFetch.ArtifactDownload.cache",
#   "purpose": "Token-based local artifact cache with match/mismatch update protocol",
#   "sections": [
#     {"id": "cachetoken", "name": "CacheToken", "anchor": "class-cachetoken", "kind": "class"},
#     {"id": "cachereference", "name": "CacheReference", "anchor": "class-cachereference", "kind": "class"},
#     {"id": "updateresult", "name": "Match / Mismatch", "anchor": "UPD", "kind": "class"},
#     {"id": "cacheupdater", "name": "CacheUpdater", "anchor": "class-cacheupdater", "kind": "class"},
#     {"id": "cacheentry", "name": "CacheEntry", "anchor": "class-cacheentry", "kind": "class"},
#     {"id": "artifactcache", "name": "ArtifactCache", "anchor": "class-artifactcache", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Local artifact cache driven by identity tokens.

Each named entry holds at most one file plus a manifest recording the
:class:`CacheToken` of the artifact it came from.  Callers never write to an
entry directly: :meth:`CacheEntry.try_update` compares a candidate token with
the stored one and returns either

- :class:`Match`, carrying a read-only :class:`CacheReference`, or
- :class:`Mismatch`, carrying a single-use :class:`CacheUpdater`.

Only an updater can commit, so a write cannot happen without a prior token
comparison.  Commits are atomic per file (temp file, ``fsync``,
``os.replace``); the manifest is replaced last so a reader never sees a
manifest pointing at a partially written file.

Layout::

    <root>/<entry>/.entry.json
    <root>/<entry>/<file name>

Concurrent loads of the same entry are not coordinated.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from .errors import CacheStorageError
from .models import SourceFile
from .settings import ArtifetchSettings

__all__ = [
    "CacheToken",
    "CacheReference",
    "Match",
    "Mismatch",
    "UpdateResult",
    "CacheUpdater",
    "CacheEntry",
    "ArtifactCache",
    "sanitize_filename",
]

LOGGER = logging.getLogger("BuildFetch.ArtifactDownload.cache")

MANIFEST_NAME = ".entry.json"


def sanitize_filename(filename: str) -> str:
    """Return a filesystem-safe filename derived from ``filename``."""

    original = filename
    safe = filename.replace(os.sep, "_").replace("/", "_").replace("\\", "_")
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", safe)
    safe = safe.strip("._") or "artifact"
    if len(safe) > 255:
        safe = safe[:255]
    if safe != original:
        LOGGER.warning(
            "sanitized unsafe filename",
            extra={"stage": "sanitize", "original": original, "sanitized": safe},
        )
    return safe


@dataclass(frozen=True)
class CacheToken:
    """Opaque identity of the artifact a cache entry was filled from."""

    kind: str
    value: str

    @classmethod
    def for_artifact(cls, artifact_id: int) -> "CacheToken":
        return cls(kind="artifact_id", value=str(artifact_id))

    def __str__(self) -> str:
        return f"{self.kind}:{self.value}"


@dataclass(frozen=True)
class CacheReference:
    """Handle to a cached file; only the cache constructs these."""

    entry: str
    path: Path
    token: CacheToken


@dataclass(frozen=True)
class Match:
    """The entry already holds the compared artifact."""

    reference: CacheReference


@dataclass(frozen=True)
class Mismatch:
    """The entry is empty or holds a different artifact; ``updater`` may commit one."""

    updater: "CacheUpdater"


UpdateResult = Union[Match, Mismatch]


class _Manifest(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    token_kind: str
    token_value: str
    file: str
    size: int
    sha256: str
    stored_at: datetime

    @property
    def token(self) -> CacheToken:
        return CacheToken(kind=self.token_kind, value=self.token_value)


def _sha256_of(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _write_atomic(target: Path, data: bytes) -> None:
    temp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        with temp_path.open("wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, target)
    finally:
        temp_path.unlink(missing_ok=True)


class CacheUpdater:
    """Single-use capability to commit a file for the token it was issued for."""

    def __init__(self, entry: "CacheEntry", token: CacheToken) -> None:
        self._entry = entry
        self._token = token
        self._used = False

    @property
    def token(self) -> CacheToken:
        return self._token

    def update(self, file: SourceFile) -> CacheReference:
        """Store ``file`` under the issuing entry and return its reference.

        Raises:
            CacheStorageError: If the file or manifest cannot be written, or
                the updater was already used.
        """

        if self._used:
            raise CacheStorageError(f"updater for cache entry '{self._entry.name}' already used")
        self._used = True
        return self._entry._commit(self._token, file)


class CacheEntry:
    """One named slot in the cache."""

    def __init__(self, directory: Path, name: str) -> None:
        self.name = name
        self.directory = directory

    def __repr__(self) -> str:
        return f"CacheEntry(name={self.name!r}, directory={str(self.directory)!r})"

    @property
    def manifest_path(self) -> Path:
        return self.directory / MANIFEST_NAME

    def _read_manifest(self) -> Optional[_Manifest]:
        try:
            payload = self.manifest_path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheStorageError(f"Cannot read cache manifest {self.manifest_path}") from exc
        try:
            return _Manifest.model_validate_json(payload)
        except PydanticValidationError:
            LOGGER.warning(
                "ignoring unreadable cache manifest",
                extra={"stage": "cache", "entry": self.name, "path": str(self.manifest_path)},
            )
            return None

    def _reference(self, manifest: _Manifest) -> CacheReference:
        return CacheReference(
            entry=self.name,
            path=self.directory / manifest.file,
            token=manifest.token,
        )

    def get_existing(self) -> Optional[CacheReference]:
        """Return the currently cached file, if any.

        The file must still match the size and digest recorded in the manifest;
        a commit interrupted between the file and manifest writes leaves bytes
        that no longer belong to the recorded token, and the entry then reads
        as empty.
        """

        manifest = self._read_manifest()
        if manifest is None:
            return None
        reference = self._reference(manifest)
        if not reference.path.is_file():
            LOGGER.warning(
                "cache manifest points at a missing file",
                extra={"stage": "cache", "entry": self.name, "path": str(reference.path)},
            )
            return None
        try:
            intact = (
                reference.path.stat().st_size == manifest.size
                and _sha256_of(reference.path) == manifest.sha256
            )
        except OSError as exc:
            raise CacheStorageError(f"Cannot read cached file {reference.path}") from exc
        if not intact:
            LOGGER.warning(
                "cached file does not match its manifest",
                extra={"stage": "cache", "entry": self.name, "path": str(reference.path)},
            )
            return None
        return reference

    def try_update(self, token: CacheToken) -> UpdateResult:
        """Compare ``token`` with the stored identity.

        Returns:
            ``Match`` with the existing reference when the entry already holds
            ``token``; otherwise ``Mismatch`` with an updater bound to ``token``.
        """

        existing = self.get_existing()
        if existing is not None and existing.token == token:
            LOGGER.debug(
                "cache token match",
                extra={"stage": "cache", "entry": self.name, "cache_token": str(token)},
            )
            return Match(existing)
        LOGGER.debug(
            "cache token mismatch",
            extra={
                "stage": "cache",
                "entry": self.name,
                "cache_token": str(token),
                "stored": str(existing.token) if existing else None,
            },
        )
        return Mismatch(CacheUpdater(self, token))

    def _commit(self, token: CacheToken, file: SourceFile) -> CacheReference:
        filename = sanitize_filename(file.name)
        previous = self._read_manifest()
        manifest = _Manifest(
            token_kind=token.kind,
            token_value=token.value,
            file=filename,
            size=file.size,
            sha256=hashlib.sha256(file.content).hexdigest(),
            stored_at=datetime.now(timezone.utc),
        )
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            _write_atomic(self.directory / filename, file.content)
            _write_atomic(self.manifest_path, manifest.model_dump_json(indent=2).encode("utf-8"))
            if previous is not None and previous.file != filename:
                (self.directory / previous.file).unlink(missing_ok=True)
        except OSError as exc:
            raise CacheStorageError(
                f"Failed to store '{filename}' in cache entry '{self.name}': {exc}"
            ) from exc

        LOGGER.info(
            "cache entry updated",
            extra={
                "stage": "cache",
                "entry": self.name,
                "cache_token": str(token),
                "file": filename,
                "bytes": file.size,
            },
        )
        return self._reference(manifest)


class ArtifactCache:
    """Directory of named cache entries."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @classmethod
    def from_settings(cls, settings: ArtifetchSettings) -> "ArtifactCache":
        return cls(settings.cache.dir)

    def __repr__(self) -> str:
        return f"ArtifactCache(root={str(self.root)!r})"

    def entry(self, name: str) -> CacheEntry:
        """Return the entry stored under ``name`` (created lazily on first commit)."""

        return CacheEntry(self.root / sanitize_filename(name), name)

    def entries(self) -> List[str]:
        """Return the directory names of entries holding a manifest."""

        if not self.root.is_dir():
            return []
        return sorted(path.parent.name for path in self.root.glob(f"*/{MANIFEST_NAME}"))

    def describe(self) -> Dict[str, Optional[CacheReference]]:
        """Map every entry directory to its current reference (``None`` if unusable)."""

        return {name: CacheEntry(self.root / name, name).get_existing() for name in self.entries()}
