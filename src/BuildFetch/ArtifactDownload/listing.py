# === NAVMAP v1 ===
# {
#   "module": "BuildFetch.ArtifactDownload.listing",
#   "purpose": "GitHub Actions listing client: workflow runs, run artifacts, and archive downloads",
#   "sections": [
#     {"id": "actionsclient", "name": "ActionsClient", "anchor": "class-actionsclient", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""GitHub Actions REST client used by the resolver and loader.

Each listing call requests a single page of ``per_page`` records and never
follows ``Link: rel="next"``.  The GitHub API returns workflow runs newest
first, so the first page is assumed to hold the most recent activity; runs
older than that page are invisible to the resolver.

Transient failures are retried through :mod:`.retry`; anything left over is
raised as :class:`ListingError` or :class:`DownloadFailure`.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import DownloadFailure, ListingError
from .models import ArtifactsPage, Project, WorkflowRun, WorkflowRunsPage
from .net import SETTINGS_EXTENSION, get_http_client
from .retry import create_http_retry_policy, is_retryable_error
from .settings import ArtifetchSettings, get_default_config

__all__ = ["ActionsClient"]

LOGGER = logging.getLogger("BuildFetch.ArtifactDownload.listing")

_PageT = TypeVar("_PageT", bound=BaseModel)


class ActionsClient:
    """Read-only access to workflow runs and artifacts of a repository."""

    def __init__(
        self,
        settings: Optional[ArtifetchSettings] = None,
        *,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings = settings or get_default_config()
        self._http_client = http_client

    @property
    def _extensions(self) -> dict:
        # Request hooks read these settings instead of the process-wide ones.
        return {SETTINGS_EXTENSION: self.settings}

    @property
    def http(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = get_http_client(self.settings)
        return self._http_client

    def _with_retry(self, call: Callable[[], httpx.Response]) -> httpx.Response:
        for attempt in create_http_retry_policy(self.settings.retry):
            with attempt:
                return call()
        raise AssertionError("retry policy exited without an outcome")  # pragma: no cover

    def _get_page(self, route: str, model: Type[_PageT]) -> _PageT:
        url = f"{self.settings.github.api_url}/{route}"
        params = {"per_page": self.settings.github.per_page}
        try:
            response = self._with_retry(
                lambda: self.http.get(url, params=params, extensions=self._extensions)
            )
        except httpx.HTTPStatusError as exc:
            raise ListingError(
                f"GitHub API request failed: GET {url} returned {exc.response.status_code}",
                status_code=exc.response.status_code,
                retryable=is_retryable_error(exc),
            ) from exc
        except httpx.HTTPError as exc:
            raise ListingError(
                f"GitHub API request failed: GET {url}: {exc}",
                retryable=is_retryable_error(exc),
            ) from exc

        try:
            return model.model_validate_json(response.content)
        except PydanticValidationError as exc:
            raise ListingError(f"Unexpected payload from GET {url}: {exc}") from exc

    def list_workflow_runs(self, project: Project) -> WorkflowRunsPage:
        """Return the first page of workflow runs for ``project``."""

        page = self._get_page(
            f"repos/{project.owner}/{project.repository}/actions/runs", WorkflowRunsPage
        )
        LOGGER.debug(
            "listed workflow runs",
            extra={
                "stage": "listing",
                "project": str(project),
                "total_count": page.total_count,
                "returned": len(page.workflow_runs),
            },
        )
        return page

    def list_artifacts(self, project: Project, run: WorkflowRun) -> ArtifactsPage:
        """Return the first page of artifacts produced by ``run``."""

        page = self._get_page(
            f"repos/{project.owner}/{project.repository}/actions/runs/{run.id}/artifacts",
            ArtifactsPage,
        )
        LOGGER.debug(
            "listed run artifacts",
            extra={
                "stage": "listing",
                "project": str(project),
                "run_id": run.id,
                "total_count": page.total_count,
                "returned": len(page.artifacts),
            },
        )
        return page

    def download(self, url: str) -> bytes:
        """Fetch the archive behind ``url`` and return its bytes."""

        try:
            response = self._with_retry(lambda: self.http.get(url, extensions=self._extensions))
        except httpx.HTTPStatusError as exc:
            raise DownloadFailure(
                f"Artifact download failed: GET {url} returned {exc.response.status_code}",
                status_code=exc.response.status_code,
                retryable=is_retryable_error(exc),
            ) from exc
        except httpx.HTTPError as exc:
            raise DownloadFailure(
                f"Artifact download failed: GET {url}: {exc}",
                retryable=is_retryable_error(exc),
            ) from exc

        content = response.content
        LOGGER.info(
            "downloaded artifact archive",
            extra={"stage": "download", "url": url, "bytes": len(content)},
        )
        return content
