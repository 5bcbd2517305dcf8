"""Select the most recent artifact that satisfies a :class:`Filter`.

Runs are not globally ordered by their artifacts' timestamps, so the search is
two-level: runs are scanned most-recently-updated first, and within each run
artifacts are scanned most-recently-updated first.  The first non-expired,
downloadable artifact that passes the filter wins.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .listing import ActionsClient
from .models import Artifact, Filter, Project, ResolvedCandidate, WorkflowRun

__all__ = ["find_latest", "order_runs", "order_artifacts"]

LOGGER = logging.getLogger("BuildFetch.ArtifactDownload.resolver")

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def order_runs(runs: Iterable[WorkflowRun], filter: Filter) -> List[WorkflowRun]:
    """Sort runs newest-updated first and keep those matching workflow and branch."""

    ordered = sorted(runs, key=lambda run: run.updated_at, reverse=True)
    return [
        run
        for run in ordered
        if filter.test_workflow(run.name) and filter.test_branch(run.head_branch)
    ]


def order_artifacts(artifacts: Iterable[Artifact], filter: Filter) -> List[Artifact]:
    """Sort artifacts newest-updated first, dropping expired or non-matching ones.

    The sort is stable: artifacts sharing an ``updated_at`` keep listing order.
    """

    ordered = sorted(artifacts, key=lambda item: item.updated_at or _NEVER, reverse=True)
    return [item for item in ordered if not item.expired and filter.test_artifact(item.name)]


def find_latest(
    project: Project,
    filter: Filter,
    *,
    client: Optional[ActionsClient] = None,
) -> Optional[ResolvedCandidate]:
    """Return the newest downloadable artifact matching ``filter``, or ``None``.

    Args:
        project: Repository whose workflow runs are searched.
        filter: Workflow, branch, and artifact name constraints.
        client: Listing client; a default :class:`ActionsClient` is used when omitted.

    Returns:
        The selected ``(artifact_id, url, name)`` candidate, or ``None`` when no
        run on the first listing page holds a qualifying artifact.

    Raises:
        ListingError: If any listing request fails. No partial result is returned.
    """

    client = client or ActionsClient()
    # Only the first page of runs is read; see ActionsClient.
    runs = order_runs(client.list_workflow_runs(project).workflow_runs, filter)

    for run in runs:
        if run.artifacts_url is None:
            continue

        artifacts = order_artifacts(client.list_artifacts(project, run).artifacts, filter)
        for artifact in artifacts:
            if artifact.archive_download_url:
                LOGGER.info(
                    "resolved artifact",
                    extra={
                        "stage": "resolve",
                        "project": str(project),
                        "run_id": run.id,
                        "artifact_id": artifact.id,
                        "artifact": artifact.name,
                    },
                )
                return ResolvedCandidate(
                    artifact_id=artifact.id,
                    url=artifact.archive_download_url,
                    name=artifact.name,
                )

    LOGGER.info(
        "no matching artifact",
        extra={"stage": "resolve", "project": str(project), "runs_scanned": len(runs)},
    )
    return None
