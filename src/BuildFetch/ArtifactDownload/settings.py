# === NAVMAP v1 ===
# {
#   "module": "BuildFetch.ArtifactDownload.settings",
#   "purpose": "Define configuration models, environment overrides, and YAML source configuration loading",
#   "sections": [
#     {"id": "httpsettings", "name": "HttpSettings", "anchor": "class-httpsettings", "kind": "class"},
#     {"id": "retrysettings", "name": "RetrySettings", "anchor": "class-retrysettings", "kind": "class"},
#     {"id": "githubsettings", "name": "GitHubSettings", "anchor": "class-githubsettings", "kind": "class"},
#     {"id": "cachesettings", "name": "CacheSettings", "anchor": "class-cachesettings", "kind": "class"},
#     {"id": "loggingsettings", "name": "LoggingSettings", "anchor": "class-loggingsettings", "kind": "class"},
#     {"id": "artifetchsettings", "name": "ArtifetchSettings", "anchor": "class-artifetchsettings", "kind": "class"},
#     {"id": "sourcespec", "name": "SourceSpec", "anchor": "class-sourcespec", "kind": "class"},
#     {"id": "get-default-config", "name": "get_default_config", "anchor": "function-get-default-config", "kind": "function"},
#     {"id": "load-config", "name": "load_config", "anchor": "function-load-config", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models and loaders for artifact downloads.

Settings are grouped into small frozen pydantic sections (HTTP, retry, GitHub,
cache, logging) aggregated by :class:`ArtifetchSettings`, a
``pydantic-settings`` model reading ``ARTIFETCH_*`` environment variables
(nested fields use ``__``, e.g. ``ARTIFETCH_HTTP__TIMEOUT_READ=60``).
Environment values take precedence over values supplied by a YAML file.

A YAML configuration file looks like::

    settings:
      cache:
        dir: ~/.cache/artifetch
    artifacts:
      - name: server-plugin
        repository: example/plugin
        workflow: Build
        branch: main
        artifact: plugin-jar
        transform:
          extract: "*.jar"
          rename: plugin.jar
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import platformdirs
import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .errors import ConfigError
from .models import Filter, Project

__all__ = [
    "CACHE_DIR",
    "LOG_DIR",
    "HttpSettings",
    "RetrySettings",
    "GitHubSettings",
    "CacheSettings",
    "LoggingSettings",
    "ArtifetchSettings",
    "TransformSpec",
    "SourceSpec",
    "ArtifetchConfig",
    "get_default_config",
    "invalidate_default_config_cache",
    "load_raw_yaml",
    "load_config",
]

LOGGER = logging.getLogger("BuildFetch.ArtifactDownload")

CACHE_DIR = Path(platformdirs.user_cache_dir("artifetch"))
LOG_DIR = Path(platformdirs.user_log_dir("artifetch"))

_TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


def _read_env_value(name: str) -> Optional[str]:
    """Fetch and normalise an environment variable, treating empty values as absent."""

    raw = os.environ.get(name)
    if raw is None:
        return None
    value = raw.strip()
    return value or None


def _token_from_environment() -> Optional[SecretStr]:
    for name in _TOKEN_ENV_VARS:
        value = _read_env_value(name)
        if value is not None:
            return SecretStr(value)
    return None


def _format_validation_error(exc: PydanticValidationError, prefix: str = "") -> List[str]:
    messages = []
    for error in exc.errors():
        location = " -> ".join(str(part) for part in error["loc"])
        if prefix:
            location = f"{prefix} -> {location}" if location else prefix
        messages.append(f"{location}: {error['msg']}")
    return messages


# --- Settings sections ---


class HttpSettings(BaseModel):
    """HTTP client settings: timeouts, pool limits, HTTP/2, and user agent."""

    model_config = ConfigDict(frozen=True)

    http2: bool = Field(default=False, description="Enable HTTP/2 support (requires h2)")
    timeout_connect: float = Field(default=5.0, gt=0.0, le=60.0)
    timeout_read: float = Field(default=30.0, gt=0.0, le=600.0)
    timeout_write: float = Field(default=30.0, gt=0.0, le=600.0)
    timeout_pool: float = Field(default=5.0, gt=0.0, le=60.0)
    pool_max_connections: int = Field(default=16, ge=1, le=1024)
    pool_keepalive_max: int = Field(default=8, ge=0, le=1024)
    keepalive_expiry: float = Field(default=30.0, ge=0.0, le=600.0)
    trust_env: bool = Field(
        default=True,
        description="Honor HTTP(S)_PROXY and NO_PROXY environment variables",
    )
    user_agent: str = Field(default="artifetch/0.1 (+https://github.com/buildfetch/artifetch)")


class RetrySettings(BaseModel):
    """Retry budget for idempotent GitHub API requests."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=4, ge=1, le=20, description="Attempts per request")
    max_delay_seconds: float = Field(
        default=60.0,
        gt=0.0,
        le=900.0,
        description="Overall deadline measured from the first attempt",
    )
    backoff_max: float = Field(default=10.0, ge=0.0, le=300.0, description="Backoff cap (seconds)")


class GitHubSettings(BaseModel):
    """GitHub REST API endpoint and credentials."""

    model_config = ConfigDict(frozen=True)

    api_url: str = Field(default="https://api.github.com")
    api_version: str = Field(default="2022-11-28", description="X-GitHub-Api-Version header")
    per_page: int = Field(
        default=30,
        ge=1,
        le=100,
        description="Records requested per listing call; only the first page is read",
    )
    token: Optional[SecretStr] = Field(
        default_factory=_token_from_environment,
        description="Bearer token; defaults to GITHUB_TOKEN or GH_TOKEN",
    )

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("https://", "http://")):
            raise ValueError(f"api_url must be an http(s) URL, got '{value}'")
        return value


class CacheSettings(BaseModel):
    """Local artifact cache location."""

    model_config = ConfigDict(frozen=True)

    dir: Path = Field(default_factory=lambda: CACHE_DIR / "artifacts")

    @field_validator("dir", mode="before")
    @classmethod
    def normalize_cache_dir(cls, v: Any) -> Path:
        """Normalize cache directory to absolute path."""
        return Path(v).expanduser().resolve()


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    emit_json_logs: bool = Field(default=True, description="Write JSONL log files")
    dir: Optional[Path] = Field(default=None, description="Log directory override")
    retention_days: int = Field(default=30, ge=1)
    max_log_size_mb: int = Field(default=20, ge=1)

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Normalize and validate logging level."""
        upper = str(v).upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {sorted(valid_levels)}, got '{v}'")
        return upper

    def level_int(self) -> int:
        """Convert level string to logging module integer."""
        return logging.getLevelName(self.level)

    def resolved_dir(self) -> Path:
        return (self.dir or LOG_DIR).expanduser()


class ArtifetchSettings(BaseSettings):
    """Effective process settings merged from defaults, file values, and environment."""

    http: HttpSettings = Field(default_factory=HttpSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix="ARTIFETCH_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings, file_secret_settings

    def redacted(self) -> Dict[str, Any]:
        """Return a JSON-compatible dump with credentials masked."""

        payload = self.model_dump(mode="json")
        if self.github.token is not None:
            payload["github"]["token"] = "***masked***"
        return payload


# --- Source configuration ---


class TransformSpec(BaseModel):
    """Post-download transform declared for a source."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    extract: Optional[str] = Field(default=None, description="Glob selecting a zip member")
    rename: Optional[str] = Field(default=None, description="Name given to the extracted file")

    @model_validator(mode="after")
    def rename_requires_extract(self) -> "TransformSpec":
        if self.rename is not None and self.extract is None:
            raise ValueError("'rename' requires 'extract'")
        return self


class SourceSpec(BaseModel):
    """One artifact source: where to look and how to filter."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    repository: str
    workflow: Optional[str] = None
    branch: Optional[str] = None
    artifact: Optional[str] = None
    transform: Optional[TransformSpec] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be empty")
        return value.strip()

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, value: str) -> str:
        Project.parse(value)
        return value.strip()

    @property
    def project(self) -> Project:
        return Project.parse(self.repository)

    @property
    def filter(self) -> Filter:
        return Filter(workflow=self.workflow, branch=self.branch, artifact=self.artifact)


class ArtifetchConfig(BaseModel):
    """Validated contents of a YAML configuration file."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    settings: ArtifetchSettings
    artifacts: List[SourceSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def unique_names(self) -> "ArtifetchConfig":
        seen = set()
        for spec in self.artifacts:
            if spec.name in seen:
                raise ValueError(f"duplicate artifact name '{spec.name}'")
            seen.add(spec.name)
        return self


# --- Loading ---

_DEFAULT_CONFIG_LOCK = threading.RLock()
_DEFAULT_CONFIG_CACHE: Optional[ArtifetchSettings] = None
_TOP_LEVEL_KEYS = {"settings", "artifacts"}


def build_settings(raw: Optional[Mapping[str, object]] = None) -> ArtifetchSettings:
    """Construct settings from a mapping, letting the environment override it."""

    try:
        return ArtifetchSettings(**dict(raw or {}))
    except PydanticValidationError as exc:
        messages = _format_validation_error(exc, "settings")
        raise ConfigError("Configuration validation failed:\n  " + "\n  ".join(messages)) from exc


def get_default_config(*, copy: bool = False) -> ArtifetchSettings:
    """Return memoised :class:`ArtifetchSettings` built from defaults and environment."""

    global _DEFAULT_CONFIG_CACHE  # noqa: PLW0603

    with _DEFAULT_CONFIG_LOCK:
        if _DEFAULT_CONFIG_CACHE is None:
            _DEFAULT_CONFIG_CACHE = build_settings()
        cached = _DEFAULT_CONFIG_CACHE
    if copy:
        return cached.model_copy(deep=True)
    return cached


def invalidate_default_config_cache() -> None:
    """Invalidate the cached default configuration."""

    global _DEFAULT_CONFIG_CACHE  # noqa: PLW0603

    with _DEFAULT_CONFIG_LOCK:
        _DEFAULT_CONFIG_CACHE = None


def load_raw_yaml(config_path: Path) -> Mapping[str, object]:
    """Read a YAML configuration file and return its top-level mapping."""

    normalized_path = Path(config_path).expanduser()
    if not normalized_path.exists():
        raise ConfigError(f"Configuration file not found: {normalized_path}")

    try:
        with normalized_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Configuration file '{normalized_path}' contains invalid YAML") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError("Configuration file must contain a mapping at the root")
    return data


def load_config(config_path: Path) -> ArtifetchConfig:
    """Load and validate a YAML configuration file."""

    raw = load_raw_yaml(config_path)

    unknown = sorted(str(key) for key in raw if key not in _TOP_LEVEL_KEYS)
    if unknown:
        raise ConfigError("Unknown top-level key(s): " + ", ".join(unknown))

    settings_section = raw.get("settings") or {}
    if not isinstance(settings_section, Mapping):
        raise ConfigError("'settings' section must be a mapping")
    settings = build_settings(settings_section)

    entries = raw.get("artifacts") or []
    if not isinstance(entries, list):
        raise ConfigError("'artifacts' must be a list")

    specs: List[SourceSpec] = []
    errors: List[str] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            errors.append(f"artifacts[{index}]: must be a mapping")
            continue
        try:
            specs.append(SourceSpec.model_validate(entry))
        except PydanticValidationError as exc:
            errors.extend(_format_validation_error(exc, f"artifacts[{index}]"))
    if errors:
        raise ConfigError("Configuration validation failed:\n  " + "\n  ".join(errors))

    try:
        config = ArtifetchConfig(settings=settings, artifacts=specs)
    except PydanticValidationError as exc:
        messages = _format_validation_error(exc)
        raise ConfigError("Configuration validation failed:\n  " + "\n  ".join(messages)) from exc

    LOGGER.debug(
        "configuration loaded",
        extra={"stage": "config", "path": str(config_path), "artifacts": len(specs)},
    )
    return config
