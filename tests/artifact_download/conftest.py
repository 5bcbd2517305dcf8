"""Shared fixtures for the artifact_download test suite."""

from __future__ import annotations

import io
import logging
import os
import zipfile
from pathlib import Path
from typing import Callable, Dict

import pytest

from BuildFetch.ArtifactDownload import net as net_mod
from BuildFetch.ArtifactDownload.cache import ArtifactCache
from BuildFetch.ArtifactDownload.listing import ActionsClient
from BuildFetch.ArtifactDownload.logging_utils import LOGGER_NAME
from BuildFetch.ArtifactDownload.settings import (
    ArtifetchSettings,
    build_settings,
    invalidate_default_config_cache,
)
from BuildFetch.ArtifactDownload.testing import FakeGitHubApi, use_mock_http_client


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Clear credentials and settings overrides, and point cache/logs at ``tmp_path``."""

    for name in list(os.environ):
        if name.upper().startswith("ARTIFETCH_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GH_TOKEN", raising=False)
    monkeypatch.setenv("ARTIFETCH_CACHE__DIR", str(tmp_path / "default-cache"))
    monkeypatch.setenv("ARTIFETCH_LOGGING__EMIT_JSON_LOGS", "false")
    monkeypatch.setenv("ARTIFETCH_LOGGING__DIR", str(tmp_path / "logs"))
    invalidate_default_config_cache()
    net_mod.reset_http_client()
    yield
    net_mod.reset_http_client()
    invalidate_default_config_cache()
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_artifetch_managed", False):
            logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def settings() -> ArtifetchSettings:
    """Settings with zero retry backoff so retried requests do not sleep."""

    return build_settings({"retry": {"backoff_max": 0}})


@pytest.fixture
def github() -> FakeGitHubApi:
    return FakeGitHubApi()


@pytest.fixture
def http(github: FakeGitHubApi, settings: ArtifetchSettings):
    with use_mock_http_client(github.transport, settings=settings) as client:
        yield client


@pytest.fixture
def client(settings: ArtifetchSettings, http) -> ActionsClient:
    return ActionsClient(settings)


@pytest.fixture
def cache(tmp_path: Path) -> ArtifactCache:
    return ArtifactCache(tmp_path / "artifacts")


@pytest.fixture
def make_zip() -> Callable[..., bytes]:
    """Return a builder producing zip archive bytes from a ``{name: content}`` mapping."""

    def _build(members: Dict[str, bytes], compression: int = zipfile.ZIP_STORED) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=compression) as archive:
            for name, content in members.items():
                archive.writestr(name, content)
        return buffer.getvalue()

    return _build
