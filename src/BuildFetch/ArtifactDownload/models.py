# === NAVMAP v1 ===
# {
#   "module": "BuildFetch.ArtifactDownload.models",
#   "purpose": "Filter predicates, GitHub Actions listing records, and resolver result types",
#   "sections": [
#     {"id": "project", "name": "Project", "anchor": "class-project", "kind": "class"},
#     {"id": "filter", "name": "Filter", "anchor": "class-filter", "kind": "class"},
#     {"id": "workflowrun", "name": "WorkflowRun", "anchor": "class-workflowrun", "kind": "class"},
#     {"id": "artifact", "name": "Artifact", "anchor": "class-artifact", "kind": "class"},
#     {"id": "pages", "name": "WorkflowRunsPage / ArtifactsPage", "anchor": "PAGES", "kind": "class"},
#     {"id": "resolvedcandidate", "name": "ResolvedCandidate", "anchor": "class-resolvedcandidate", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Data structures exchanged between the listing client, resolver, and loader.

Listing records mirror the GitHub Actions REST payloads for
``/repos/{owner}/{repo}/actions/runs`` and
``/repos/{owner}/{repo}/actions/runs/{run_id}/artifacts``.  Only the fields the
resolver relies on are declared; unknown keys are ignored so additions to the
API do not break decoding.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

__all__ = [
    "Project",
    "Filter",
    "WorkflowRun",
    "Artifact",
    "WorkflowRunsPage",
    "ArtifactsPage",
    "ResolvedCandidate",
    "SourceFile",
]

_SLUG_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass(frozen=True)
class Project:
    """GitHub repository coordinates (``owner/repository``)."""

    owner: str
    repository: str

    def __post_init__(self) -> None:
        for label, value in (("owner", self.owner), ("repository", self.repository)):
            if not value or not _SLUG_PATTERN.match(value):
                raise ValueError(f"invalid {label} {value!r}")

    @classmethod
    def parse(cls, slug: str) -> "Project":
        """Build a project from an ``owner/repository`` string."""

        owner, sep, repository = slug.strip().partition("/")
        if not sep or "/" in repository:
            raise ValueError(f"expected 'owner/repository', got {slug!r}")
        return cls(owner=owner, repository=repository)

    def __str__(self) -> str:
        return f"{self.owner}/{self.repository}"


@dataclass(frozen=True)
class Filter:
    """Exact-match constraints on workflow, branch, and artifact names.

    ``None`` for a constraint means "match anything".  Comparisons are
    case-sensitive and no normalisation is applied.
    """

    workflow: Optional[str] = None
    branch: Optional[str] = None
    artifact: Optional[str] = None

    def test_workflow(self, workflow: Optional[str]) -> bool:
        return self.workflow is None or self.workflow == workflow

    def test_branch(self, branch: Optional[str]) -> bool:
        return self.branch is None or self.branch == branch

    def test_artifact(self, artifact: Optional[str]) -> bool:
        return self.artifact is None or self.artifact == artifact


def _assume_utc(value: datetime) -> datetime:
    """Treat offset-less API timestamps as UTC so they order against aware ones."""

    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_assume_utc)]


class _ApiRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class WorkflowRun(_ApiRecord):
    """One execution of a workflow as reported by the runs listing."""

    id: int
    name: Optional[str] = None
    head_branch: Optional[str] = None
    workflow_id: int
    artifacts_url: Optional[str] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime


class Artifact(_ApiRecord):
    """A file produced by a workflow run."""

    id: int
    node_id: str
    name: str
    size_in_bytes: int
    url: str
    archive_download_url: Optional[str] = None
    expired: bool
    created_at: Optional[UtcDatetime] = None
    expires_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None


class WorkflowRunsPage(_ApiRecord):
    total_count: int
    workflow_runs: List[WorkflowRun] = Field(default_factory=list)


class ArtifactsPage(_ApiRecord):
    total_count: int
    artifacts: List[Artifact] = Field(default_factory=list)


@dataclass(frozen=True)
class ResolvedCandidate:
    """The artifact selected by the resolver: enough to compare or download."""

    artifact_id: int
    url: str
    name: str


@dataclass(frozen=True)
class SourceFile:
    """A named blob moving between download, transform, and cache commit."""

    name: str
    content: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.content)
