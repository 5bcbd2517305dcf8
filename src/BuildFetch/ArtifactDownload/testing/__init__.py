"""Testing utilities for exercising artifact downloads without network access.

Provides an in-memory fake of the GitHub Actions listing endpoints served
through :class:`httpx.MockTransport`, and a context manager that installs an
HTTPX client backed by any transport as the shared client.
"""

from __future__ import annotations

import contextlib
import json
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import httpx

from ..net import EVENT_HOOKS, configure_http_client, reset_http_client
from ..settings import ArtifetchSettings

__all__ = [
    "RequestRecord",
    "FakeGitHubApi",
    "use_mock_http_client",
]


@contextlib.contextmanager
def use_mock_http_client(
    transport: httpx.BaseTransport,
    *,
    settings: Optional[ArtifetchSettings] = None,
    **client_kwargs,
) -> Iterator[httpx.Client]:
    """Temporarily install an HTTPX client backed by ``transport``.

    The client carries the production event hooks, so header injection and
    error-status handling behave as they do against the real API.
    """

    client_kwargs.setdefault("event_hooks", EVENT_HOOKS)
    client_kwargs.setdefault("follow_redirects", True)
    client = httpx.Client(transport=transport, **client_kwargs)
    configure_http_client(client=client, settings=settings)
    try:
        yield client
    finally:
        reset_http_client()
        client.close()


@dataclass
class RequestRecord:
    """Captured HTTP request emitted during tests."""

    method: str
    url: str
    path: str
    params: Dict[str, str]
    headers: Mapping[str, str]


@dataclass
class FakeGitHubApi:
    """Route table standing in for ``api.github.com`` and its storage redirects.

    Register runs with :meth:`add_run`, artifacts with :meth:`add_artifact`, and
    archive bytes with :meth:`add_archive`; then pass :attr:`transport` to
    :func:`use_mock_http_client`.  Unknown paths answer 404.  ``failures`` maps a
    path to a queue of status codes served before the normal response.
    """

    base_url: str = "https://api.github.com"
    storage_url: str = "https://storage.example.test"
    runs: Dict[Tuple[str, str], List[dict]] = field(default_factory=dict)
    artifacts: Dict[int, List[dict]] = field(default_factory=dict)
    archives: Dict[int, bytes] = field(default_factory=dict)
    failures: Dict[str, List[int]] = field(default_factory=dict)
    requests: List[RequestRecord] = field(default_factory=list)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def add_run(
        self,
        repo: str,
        run_id: int,
        *,
        name: Optional[str] = "Build",
        head_branch: Optional[str] = "main",
        updated_at: str = "2024-01-01T00:00:00Z",
        with_artifacts_url: bool = True,
    ) -> dict:
        owner, _, repository = repo.partition("/")
        run = {
            "id": run_id,
            "name": name,
            "head_branch": head_branch,
            "workflow_id": 1,
            "artifacts_url": (
                f"{self.base_url}/repos/{repo}/actions/runs/{run_id}/artifacts"
                if with_artifacts_url
                else None
            ),
            "created_at": updated_at,
            "updated_at": updated_at,
        }
        self.runs.setdefault((owner, repository), []).append(run)
        self.artifacts.setdefault(run_id, [])
        return run

    def add_artifact(
        self,
        run_id: int,
        artifact_id: int,
        name: str,
        *,
        updated_at: Optional[str] = "2024-01-01T00:00:00Z",
        expired: bool = False,
        downloadable: bool = True,
        archive: Optional[bytes] = None,
    ) -> dict:
        artifact = {
            "id": artifact_id,
            "node_id": f"MDg6QXJ0aWZhY3Q{artifact_id}",
            "name": name,
            "size_in_bytes": len(archive or b""),
            "url": f"{self.base_url}/artifacts/{artifact_id}",
            "archive_download_url": (
                f"{self.base_url}/artifacts/{artifact_id}/zip" if downloadable else None
            ),
            "expired": expired,
            "created_at": updated_at,
            "expires_at": None,
            "updated_at": updated_at,
        }
        self.artifacts.setdefault(run_id, []).append(artifact)
        if archive is not None:
            self.archives[artifact_id] = archive
        return artifact

    def add_archive(self, artifact_id: int, content: bytes) -> None:
        self.archives[artifact_id] = content

    def fail(self, path: str, *statuses: int) -> None:
        self.failures.setdefault(path, []).extend(statuses)

    def count(self, path_suffix: str) -> int:
        """Return how many recorded requests ended with ``path_suffix``."""

        return Counter(record.path.endswith(path_suffix) for record in self.requests)[True]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(
            RequestRecord(
                method=request.method,
                url=str(request.url),
                path=request.url.path,
                params=dict(request.url.params),
                headers=dict(request.headers),
            )
        )
        path = request.url.path
        pending = self.failures.get(path)
        if pending:
            return httpx.Response(pending.pop(0), json={"message": "injected failure"})

        if request.url.host == httpx.URL(self.storage_url).host:
            artifact_id = int(path.strip("/").split("/")[0])
            return httpx.Response(200, content=self.archives[artifact_id])

        parts = path.strip("/").split("/")
        if parts[:1] == ["artifacts"] and len(parts) == 3 and parts[2] == "zip":
            artifact_id = int(parts[1])
            if artifact_id not in self.archives:
                return httpx.Response(410, json={"message": "Artifact has expired"})
            location = f"{self.storage_url}/{artifact_id}/archive.zip"
            return httpx.Response(302, headers={"Location": location})

        if len(parts) == 5 and parts[0] == "repos" and parts[3:] == ["actions", "runs"]:
            runs = self.runs.get((parts[1], parts[2]))
            if runs is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return self._json({"total_count": len(runs), "workflow_runs": runs})

        if len(parts) == 7 and parts[0] == "repos" and parts[3:5] == ["actions", "runs"] and parts[6] == "artifacts":
            items = self.artifacts.get(int(parts[5]), [])
            return self._json({"total_count": len(items), "artifacts": items})

        return httpx.Response(404, json={"message": "Not Found"})

    @staticmethod
    def _json(payload: dict) -> httpx.Response:
        return httpx.Response(
            200,
            content=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
