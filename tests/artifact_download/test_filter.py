"""Filter predicates and repository coordinate parsing."""

from __future__ import annotations

import pytest

from BuildFetch.ArtifactDownload.models import Filter, Project


def test_unset_filter_matches_everything():
    unrestricted = Filter()

    assert unrestricted.test_workflow("Build")
    assert unrestricted.test_branch("feature/x")
    assert unrestricted.test_artifact("anything")
    assert unrestricted.test_workflow(None)
    assert unrestricted.test_branch(None)


def test_constraints_require_exact_match():
    constrained = Filter(workflow="Build", branch="main", artifact="plugin-jar")

    assert constrained.test_workflow("Build")
    assert constrained.test_branch("main")
    assert constrained.test_artifact("plugin-jar")
    assert not constrained.test_workflow("Build and Test")
    assert not constrained.test_branch("main2")
    assert not constrained.test_artifact("plugin")


def test_constraints_are_case_sensitive_and_not_normalised():
    constrained = Filter(workflow="Build", branch="main")

    assert not constrained.test_workflow("build")
    assert not constrained.test_branch("Main")
    assert not constrained.test_branch(" main")


def test_set_constraint_rejects_missing_value():
    assert not Filter(branch="main").test_branch(None)
    assert not Filter(workflow="Build").test_workflow(None)


def test_constraints_are_independent():
    only_branch = Filter(branch="main")

    assert only_branch.test_workflow("Nightly")
    assert only_branch.test_artifact("docs")
    assert not only_branch.test_branch("dev")


def test_project_parse_round_trips_to_slug():
    project = Project.parse("octo/plugin")

    assert project == Project(owner="octo", repository="plugin")
    assert str(project) == "octo/plugin"


@pytest.mark.parametrize("slug", ["octo", "octo/", "/plugin", "octo/plugin/extra", "oc to/plugin"])
def test_project_parse_rejects_malformed_slugs(slug):
    with pytest.raises(ValueError):
        Project.parse(slug)
