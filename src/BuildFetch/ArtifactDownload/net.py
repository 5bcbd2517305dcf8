# === NAVMAP v1 ===
# {
#   "module": "BuildFetch.ArtifactDownload.net",
#   "purpose": "Provide the shared HTTPX client used for GitHub API listing and artifact downloads",
#   "sections": [
#     {"id": "constants", "name": "Constants & globals", "anchor": "CONST", "kind": "constants"},
#     {"id": "hooks", "name": "Request/response hooks", "anchor": "HOOK", "kind": "helpers"},
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Shared HTTPX client used for GitHub API requests and archive downloads.

The client is created lazily on first use and reused for the process.  Event
hooks apply the GitHub REST headers (``Accept``, ``X-GitHub-Api-Version``,
``User-Agent``) and bearer authentication, and turn error statuses into
``httpx.HTTPStatusError`` so callers and the retry policy see a single failure
type.  Credentials are only attached to requests aimed at the configured API
host: archive downloads redirect to a pre-signed storage URL that must be
fetched without them.
"""

from __future__ import annotations

import contextlib
import logging
import ssl
import threading
import time
from typing import Callable, Optional
from urllib.parse import urlsplit

import certifi
import httpx

from .settings import ArtifetchSettings, HttpSettings, get_default_config

LOGGER = logging.getLogger("BuildFetch.ArtifactDownload.net")

# --- Constants & globals -------------------------------------------------------

GITHUB_MEDIA_TYPE = "application/vnd.github+json"

_CLIENT_LOCK = threading.RLock()
_HTTP_CLIENT: Optional[httpx.Client] = None
_CLIENT_FACTORY: Optional[Callable[[], httpx.Client]] = None
_ACTIVE_SETTINGS: Optional[ArtifetchSettings] = None

# --- Request/response hooks ----------------------------------------------------


SETTINGS_EXTENSION = "artifetch_settings"


def _settings(request: Optional[httpx.Request] = None) -> ArtifetchSettings:
    if request is not None:
        carried = request.extensions.get(SETTINGS_EXTENSION)
        if isinstance(carried, ArtifetchSettings):
            return carried
    return _ACTIVE_SETTINGS or get_default_config()


def _request_hook(request: httpx.Request) -> None:
    settings = _settings(request)
    request.headers["User-Agent"] = settings.http.user_agent

    if request.url.host != urlsplit(settings.github.api_url).hostname:
        return

    # httpx sends "Accept: */*" unless the caller chose a media type.
    if request.headers.get("Accept", "*/*") == "*/*":
        request.headers["Accept"] = GITHUB_MEDIA_TYPE
    request.headers.setdefault("X-GitHub-Api-Version", settings.github.api_version)
    token = settings.github.token
    if token is not None and "Authorization" not in request.headers:
        request.headers["Authorization"] = f"Bearer {token.get_secret_value()}"
    request.extensions["artifetch_start"] = time.perf_counter()


def _response_hook(response: httpx.Response) -> None:
    start = response.request.extensions.get("artifetch_start")
    elapsed = time.perf_counter() - start if isinstance(start, float) else None
    LOGGER.debug(
        "github-http-response",
        extra={
            "stage": "http",
            "url": str(response.request.url),
            "status": response.status_code,
            "elapsed_sec": elapsed,
            "rate_limit_remaining": response.headers.get("X-RateLimit-Remaining"),
        },
    )
    if response.is_error:
        response.read()
        response.raise_for_status()


EVENT_HOOKS = {"request": [_request_hook], "response": [_response_hook]}

# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _timeout_for(config: HttpSettings) -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.timeout_connect,
        read=config.timeout_read,
        write=config.timeout_write,
        pool=config.timeout_pool,
    )


def _limits_for(config: HttpSettings) -> httpx.Limits:
    return httpx.Limits(
        max_connections=config.pool_max_connections,
        max_keepalive_connections=config.pool_keepalive_max,
        keepalive_expiry=config.keepalive_expiry,
    )


def _build_http_client(settings: ArtifetchSettings) -> httpx.Client:
    cfg = settings.http
    transport = httpx.HTTPTransport(
        verify=_build_ssl_context(),
        http2=cfg.http2,
        limits=_limits_for(cfg),
        trust_env=cfg.trust_env,
        retries=0,
    )
    return httpx.Client(
        transport=transport,
        timeout=_timeout_for(cfg),
        trust_env=cfg.trust_env,
        follow_redirects=True,
        event_hooks=EVENT_HOOKS,
    )


def _close_client_unlocked() -> None:
    global _HTTP_CLIENT
    if _HTTP_CLIENT is not None:
        with contextlib.suppress(Exception):
            _HTTP_CLIENT.close()
    _HTTP_CLIENT = None


# --- Public API ----------------------------------------------------------------


def configure_http_client(
    client: Optional[httpx.Client] = None,
    *,
    factory: Optional[Callable[[], httpx.Client]] = None,
    settings: Optional[ArtifetchSettings] = None,
) -> None:
    """Override the shared HTTPX client or register a factory for tests."""

    if client is not None and factory is not None:
        raise ValueError("provide either a client or factory, not both")

    with _CLIENT_LOCK:
        global _HTTP_CLIENT, _CLIENT_FACTORY, _ACTIVE_SETTINGS

        if settings is not None:
            _ACTIVE_SETTINGS = settings

        if client is None:
            _close_client_unlocked()
        elif _HTTP_CLIENT is not client:
            _close_client_unlocked()
            _HTTP_CLIENT = client

        _CLIENT_FACTORY = factory


def reset_http_client() -> None:
    """Close the shared client and forget overrides (test helper)."""

    with _CLIENT_LOCK:
        global _CLIENT_FACTORY, _ACTIVE_SETTINGS
        _CLIENT_FACTORY = None
        _ACTIVE_SETTINGS = None
        _close_client_unlocked()


def get_http_client(settings: Optional[ArtifetchSettings] = None) -> httpx.Client:
    """Return the shared HTTPX client, creating it if necessary.

    ``settings`` only takes effect when the client is built by this call; an
    already-initialised client is returned as is.
    """

    global _HTTP_CLIENT, _ACTIVE_SETTINGS

    with _CLIENT_LOCK:
        if _HTTP_CLIENT is not None:
            return _HTTP_CLIENT

        if settings is not None:
            _ACTIVE_SETTINGS = settings

        if _CLIENT_FACTORY is not None:
            candidate = _CLIENT_FACTORY()
            if not isinstance(candidate, httpx.Client):
                raise TypeError("client factory must return an httpx.Client")
            LOGGER.info(
                "using custom httpx client",
                extra={"factory": getattr(_CLIENT_FACTORY, "__qualname__", repr(_CLIENT_FACTORY))},
            )
            _HTTP_CLIENT = candidate
            return candidate

        _HTTP_CLIENT = _build_http_client(_settings())
        LOGGER.debug("HTTP client initialized", extra={"stage": "http"})
        return _HTTP_CLIENT


__all__ = [
    "GITHUB_MEDIA_TYPE",
    "SETTINGS_EXTENSION",
    "EVENT_HOOKS",
    "configure_http_client",
    "reset_http_client",
    "get_http_client",
]
