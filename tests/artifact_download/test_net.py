# === NAVMAP v1 ===
# {
#   "module": "tests.artifact_download.test_net",
#   "purpose": "Validates the shared HTTPX client and its GitHub request/response hooks.",
#   "sections": [
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Validates the shared HTTPX client and its GitHub request/response hooks."""

from __future__ import annotations

import httpx
import pytest

from BuildFetch.ArtifactDownload import net
from BuildFetch.ArtifactDownload.listing import ActionsClient
from BuildFetch.ArtifactDownload.models import Project
from BuildFetch.ArtifactDownload.settings import build_settings
from BuildFetch.ArtifactDownload.testing import FakeGitHubApi, use_mock_http_client


def test_get_http_client_singleton(settings):
    records = []

    def handler(request: httpx.Request) -> httpx.Response:
        records.append(request)
        return httpx.Response(200, content=b"ok")

    with use_mock_http_client(httpx.MockTransport(handler), settings=settings) as client:
        assert net.get_http_client() is net.get_http_client() is client
        assert records == []


def test_reset_rebuilds_client_from_settings():
    settings = build_settings({"http": {"timeout_connect": 2.5}})
    custom = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(204)))
    net.configure_http_client(client=custom)
    assert net.get_http_client() is custom

    net.reset_http_client()
    rebuilt = net.get_http_client(settings)
    try:
        assert rebuilt is not custom
        assert rebuilt.timeout.connect == pytest.approx(2.5)
        assert rebuilt.follow_redirects is True
    finally:
        net.reset_http_client()


def test_configure_rejects_client_and_factory_together():
    client = httpx.Client()
    try:
        with pytest.raises(ValueError):
            net.configure_http_client(client=client, factory=lambda: client)
    finally:
        client.close()


def test_factory_supplies_shared_client():
    built = []

    def factory() -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(204)))
        built.append(client)
        return client

    net.configure_http_client(factory=factory)
    try:
        assert net.get_http_client() is net.get_http_client() is built[0]
        assert len(built) == 1
    finally:
        net.reset_http_client()


def test_api_requests_carry_github_headers_and_token():
    settings = build_settings({"github": {"token": "ghp_unit"}, "http": {"user_agent": "unit/1.0"}})
    github = FakeGitHubApi()
    github.add_run("octo/plugin", 1)

    with use_mock_http_client(github.transport, settings=settings):
        ActionsClient(settings).list_workflow_runs(Project.parse("octo/plugin"))

    headers = {key.lower(): value for key, value in github.requests[0].headers.items()}
    assert headers["accept"] == net.GITHUB_MEDIA_TYPE
    assert headers["x-github-api-version"] == "2022-11-28"
    assert headers["authorization"] == "Bearer ghp_unit"
    assert headers["user-agent"] == "unit/1.0"


def test_client_settings_apply_to_a_shared_client_built_from_defaults():
    github = FakeGitHubApi()
    github.add_run("octo/plugin", 1)
    scoped = build_settings({"github": {"token": "ghp_scoped"}, "http": {"user_agent": "scoped/1.0"}})

    with use_mock_http_client(github.transport):
        ActionsClient(scoped).list_workflow_runs(Project.parse("octo/plugin"))

    headers = {key.lower(): value for key, value in github.requests[0].headers.items()}
    assert headers["authorization"] == "Bearer ghp_scoped"
    assert headers["user-agent"] == "scoped/1.0"


def test_client_api_host_decides_where_credentials_go():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"total_count": 0, "workflow_runs": []})

    enterprise = build_settings(
        {"github": {"token": "ghp_enterprise", "api_url": "https://ghe.example.test/api/v3"}}
    )

    with use_mock_http_client(httpx.MockTransport(handler)):
        ActionsClient(enterprise).list_workflow_runs(Project.parse("octo/plugin"))

    assert seen[0].url.host == "ghe.example.test"
    assert seen[0].headers["Authorization"] == "Bearer ghp_enterprise"
    assert seen[0].headers["Accept"] == net.GITHUB_MEDIA_TYPE


def test_requests_without_token_are_anonymous(github, client):
    github.add_run("octo/plugin", 1)

    client.list_workflow_runs(Project.parse("octo/plugin"))

    headers = {key.lower() for key in github.requests[0].headers}
    assert "authorization" not in headers


def test_storage_redirect_does_not_receive_credentials():
    settings = build_settings({"github": {"token": "ghp_unit"}})
    github = FakeGitHubApi()
    github.add_archive(11, b"zip-bytes")

    with use_mock_http_client(github.transport, settings=settings):
        content = ActionsClient(settings).download("https://api.github.com/artifacts/11/zip")

    assert content == b"zip-bytes"
    api_request, storage_request = github.requests
    assert api_request.url == "https://api.github.com/artifacts/11/zip"
    assert "authorization" in {key.lower() for key in api_request.headers}
    assert storage_request.url.startswith(github.storage_url)
    storage_headers = {key.lower(): value for key, value in storage_request.headers.items()}
    assert "authorization" not in storage_headers


def test_error_status_raises_from_response_hook(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "boom"})

    with use_mock_http_client(httpx.MockTransport(handler), settings=settings) as client:
        with pytest.raises(httpx.HTTPStatusError):
            client.get("https://api.github.com/rate_limit")
