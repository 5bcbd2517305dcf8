# === NAVMAP v1 ===
# {
#   "module": "BuildFetch.ArtifactDownload.transform",
#   "purpose": "Post-download transforms applied to artifact archives before caching",
#   "sections": [
#     {"id": "transform", "name": "Transform", "anchor": "class-transform", "kind": "class"},
#     {"id": "passthroughtransform", "name": "PassthroughTransform", "anchor": "class-passthroughtransform", "kind": "class"},
#     {"id": "extractmembertransform", "name": "ExtractMemberTransform", "anchor": "class-extractmembertransform", "kind": "class"},
#     {"id": "build-transform", "name": "build_transform", "anchor": "function-build-transform", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Post-download transforms.

GitHub serves every artifact as a zip archive.  A transform receives that
archive as a :class:`SourceFile` and returns the file that should be cached,
or ``None`` when the archive holds nothing usable.  Returning ``None`` is a
verdict, not an error: the loader reports it as a missing artifact and leaves
the cache untouched.  Archives that cannot be read safely raise
:class:`TransformError`.
"""

from __future__ import annotations

import fnmatch
import io
import logging
import stat
import zipfile
import zlib
from pathlib import PurePosixPath
from typing import Optional, Protocol, runtime_checkable

from .errors import TransformError
from .models import SourceFile
from .settings import TransformSpec

__all__ = [
    "Transform",
    "PassthroughTransform",
    "ExtractMemberTransform",
    "build_transform",
]

LOGGER = logging.getLogger("BuildFetch.ArtifactDownload.transform")

_MAX_COMPRESSION_RATIO = 100.0


@runtime_checkable
class Transform(Protocol):
    """Protocol implemented by post-download transforms."""

    def apply(self, file: SourceFile) -> Optional[SourceFile]:
        """Return the file to cache, or ``None`` if ``file`` is unusable."""
        ...


class PassthroughTransform:
    """Cache the downloaded archive unchanged."""

    def apply(self, file: SourceFile) -> Optional[SourceFile]:
        return file

    def __repr__(self) -> str:
        return "PassthroughTransform()"


def _validate_member_path(member_name: str) -> PurePosixPath:
    """Reject absolute or traversing archive member paths."""

    relative = PurePosixPath(member_name.replace("\\", "/"))
    if relative.is_absolute() or not relative.parts:
        raise TransformError(f"Unsafe path detected in archive: {member_name}")
    if any(part in {"", ".", ".."} for part in relative.parts):
        raise TransformError(f"Unsafe path detected in archive: {member_name}")
    return relative


class ExtractMemberTransform:
    """Pull a single member out of the downloaded zip archive.

    Members are considered in name order; the first regular file whose base
    name matches ``pattern`` (an :mod:`fnmatch` glob) is returned, renamed to
    ``rename`` when given.

    Attributes:
        pattern: Glob matched against member base names.
        rename: Optional name for the extracted file.
    """

    def __init__(self, pattern: str, rename: Optional[str] = None) -> None:
        if not pattern:
            raise ValueError("pattern must not be empty")
        self.pattern = pattern
        self.rename = rename

    def __repr__(self) -> str:
        return f"ExtractMemberTransform(pattern={self.pattern!r}, rename={self.rename!r})"

    def apply(self, file: SourceFile) -> Optional[SourceFile]:
        try:
            archive = zipfile.ZipFile(io.BytesIO(file.content))
        except zipfile.BadZipFile as exc:
            raise TransformError(f"{file.name} is not a valid zip archive") from exc

        with archive:
            for member in sorted(archive.infolist(), key=lambda info: info.filename):
                if member.is_dir():
                    continue
                path = _validate_member_path(member.filename)
                if not fnmatch.fnmatchcase(path.name, self.pattern):
                    continue
                mode = (member.external_attr >> 16) & 0xFFFF
                if stat.S_IFMT(mode) == stat.S_IFLNK:
                    raise TransformError(f"Unsafe link detected in archive: {member.filename}")
                if member.compress_size and member.file_size / member.compress_size > _MAX_COMPRESSION_RATIO:
                    raise TransformError(
                        f"{member.filename} expands beyond {_MAX_COMPRESSION_RATIO:.0f}:1 compression ratio"
                    )
                try:
                    content = archive.read(member)
                except (zipfile.BadZipFile, zlib.error, OSError) as exc:
                    raise TransformError(f"Failed to read {member.filename} from {file.name}") from exc

                name = self.rename or path.name
                LOGGER.debug(
                    "extracted archive member",
                    extra={
                        "stage": "transform",
                        "archive": file.name,
                        "member": member.filename,
                        "bytes": len(content),
                    },
                )
                return SourceFile(name=name, content=content)

        LOGGER.warning(
            "no archive member matched",
            extra={"stage": "transform", "archive": file.name, "pattern": self.pattern},
        )
        return None


def build_transform(spec: Optional[TransformSpec]) -> Transform:
    """Map a configured :class:`TransformSpec` to a transform instance."""

    if spec is None or spec.extract is None:
        return PassthroughTransform()
    return ExtractMemberTransform(spec.extract, rename=spec.rename)
