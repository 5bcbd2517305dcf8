# === NAVMAP v1 ===
# {
#   "module": "BuildFetch.ArtifactDownload.cli",
#   "purpose": "Expose the artifetch CLI for fetching, syncing, and inspecting artifact downloads",
#   "sections": [
#     {"id": "app", "name": "Typer application", "anchor": "APP", "kind": "api"},
#     {"id": "helpers", "name": "Command helpers", "anchor": "HLP", "kind": "helpers"},
#     {"id": "commands", "name": "Commands", "anchor": "CMD", "kind": "api"},
#     {"id": "entrypoint", "name": "CLI Entrypoint", "anchor": "ENT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Command-line interface for GitHub Actions artifact downloads.

Commands:

- ``artifetch fetch OWNER/REPO``: load a single artifact into the cache and
  print the cached path,
- ``artifetch sync --config FILE``: load every source declared in a YAML file,
- ``artifetch show``: print the effective settings with secrets redacted.

Exit codes: ``0`` on success, ``1`` when an artifact could not be loaded,
``2`` for invalid arguments or configuration.

Example:
    $ artifetch fetch example/plugin --workflow Build --branch main \\
        --artifact plugin-jar --extract "*.jar"
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .api import STATUS_FAILED, FetchResult, fetch_all, fetch_one
from .cache import ArtifactCache
from .errors import ArtifactDownloadError, ConfigError
from .listing import ActionsClient
from .logging_utils import setup_logging
from .settings import ArtifetchSettings, SourceSpec, TransformSpec, get_default_config, load_config

# --- Typer application ---------------------------------------------------------

app = typer.Typer(
    name="artifetch",
    help="Download GitHub Actions build artifacts into a local cache.",
    no_args_is_help=True,
    add_completion=False,
)

_STATUS_STYLES = {"downloaded": "green", "cached": "cyan", STATUS_FAILED: "red"}


@app.callback()
def main_callback(
    ctx: typer.Context,
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Override the configured log level (DEBUG, INFO, WARNING, ERROR)",
    ),
) -> None:
    """Download GitHub Actions build artifacts into a local cache."""

    ctx.obj = {"log_level": log_level.upper() if log_level else None}


# --- Command helpers -----------------------------------------------------------


def _stderr() -> Console:
    return Console(stderr=True)


def _configure_logging(ctx: typer.Context, settings: ArtifetchSettings) -> None:
    options = ctx.obj or {}
    setup_logging(settings.logging, level=options.get("log_level"))


def _fail(message: str, code: int) -> typer.Exit:
    _stderr().print(f"[red]error:[/red] {escape(message)}", highlight=False)
    return typer.Exit(code)


def _results_table(results: List[FetchResult]) -> Table:
    table = Table(title="Artifact sync")
    table.add_column("Name", style="bold", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Token", no_wrap=True)
    table.add_column("Path / error", overflow="fold")
    for result in results:
        style = _STATUS_STYLES.get(result.status, "")
        table.add_row(
            escape(result.name),
            f"[{style}]{result.status}[/{style}]" if style else result.status,
            str(result.token) if result.token else "",
            str(result.path) if result.path else escape(result.error or ""),
        )
    return table


# --- Commands ------------------------------------------------------------------


@app.command()
def fetch(
    ctx: typer.Context,
    repository: str = typer.Argument(..., help="Repository as OWNER/REPO"),
    workflow: Optional[str] = typer.Option(None, "--workflow", "-w", help="Workflow name"),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Head branch"),
    artifact: Optional[str] = typer.Option(None, "--artifact", "-a", help="Artifact name"),
    extract: Optional[str] = typer.Option(
        None, "--extract", help="Glob selecting a single file inside the artifact zip"
    ),
    rename: Optional[str] = typer.Option(None, "--rename", help="Name for the extracted file"),
    name: Optional[str] = typer.Option(
        None, "--name", help="Cache entry name (defaults to the artifact or repository name)"
    ),
    cache_dir: Optional[Path] = typer.Option(
        None, "--cache-dir", help="Cache directory (overrides settings)"
    ),
) -> None:
    """Load the newest matching artifact and print its cached path.

    Example:
        $ artifetch fetch example/plugin --artifact plugin-jar --extract "*.jar"
    """

    try:
        settings = get_default_config()
        _configure_logging(ctx, settings)
        transform = TransformSpec(extract=extract, rename=rename) if extract or rename else None
        spec = SourceSpec(
            name=name or artifact or repository.partition("/")[2] or repository,
            repository=repository,
            workflow=workflow,
            branch=branch,
            artifact=artifact,
            transform=transform,
        )
    except ConfigError as exc:
        raise _fail(str(exc), 2) from exc
    except PydanticValidationError as exc:
        messages = "; ".join(error["msg"] for error in exc.errors())
        raise _fail(f"invalid arguments: {messages}", 2) from exc

    cache = ArtifactCache(cache_dir.expanduser()) if cache_dir else ArtifactCache.from_settings(settings)
    try:
        result = fetch_one(spec, cache=cache, client=ActionsClient(settings))
    except ArtifactDownloadError as exc:
        raise _fail(str(exc), 1) from exc

    _stderr().print(escape(f"{result.name}: {result.status} ({result.token})"), highlight=False)
    typer.echo(str(result.path))


@app.command()
def sync(
    ctx: typer.Context,
    config: Path = typer.Option(..., "--config", "-c", help="YAML configuration file"),
    fail_fast: bool = typer.Option(
        False, "--fail-fast", help="Stop at the first source that fails"
    ),
) -> None:
    """Load every artifact declared in a configuration file.

    Example:
        $ artifetch sync --config artifacts.yaml
    """

    try:
        loaded = load_config(config)
    except ConfigError as exc:
        raise _fail(str(exc), 2) from exc

    _configure_logging(ctx, loaded.settings)
    if not loaded.artifacts:
        _stderr().print("[yellow]no artifacts configured[/yellow]")
        return

    cache = ArtifactCache.from_settings(loaded.settings)
    try:
        results = fetch_all(
            loaded.artifacts,
            cache=cache,
            client=ActionsClient(loaded.settings),
            continue_on_error=not fail_fast,
        )
    except ArtifactDownloadError as exc:
        raise _fail(str(exc), 1) from exc

    Console().print(_results_table(results))
    if any(not result.ok for result in results):
        raise typer.Exit(1)


@app.command()
def show(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="YAML configuration file to include"
    ),
) -> None:
    """Print the effective settings as JSON with secrets redacted."""

    try:
        settings = load_config(config).settings if config else get_default_config()
    except ConfigError as exc:
        raise _fail(str(exc), 2) from exc
    typer.echo(json.dumps(settings.redacted(), indent=2, sort_keys=True))


# --- CLI Entrypoint ------------------------------------------------------------


def main() -> None:
    """Console-script entry point."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()


__all__ = ["app", "main"]
