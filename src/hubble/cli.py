"""Typer CLI entry point for hubble."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from hubble import __version__
from hubble.config import Settings, format_validation_error
from hubble.exceptions import HubbleError
from hubble.github import GitHubClient
from hubble.logging import configure_logging, generate_cycle_id
from hubble.pipeline import ContentPipeline
from hubble.snapshots import SnapshotStore

if TYPE_CHECKING:
    from hubble.models import CategoryNode, IngestReport

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="hubble",
    help="Ingest an organization's article repositories into a content site.",
    no_args_is_help=True,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config YAML file."),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose logging."),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings(config_path: Path | None = None, **overrides: Any) -> Settings:
    """Load settings with error handling and user-friendly messages."""
    from pydantic import ValidationError

    try:
        return Settings.load(config_path=config_path, **overrides)
    except ValidationError as exc:
        err_console.print(
            Panel(
                format_validation_error(exc),
                title="Configuration Error",
                border_style="red",
            )
        )
        raise typer.Exit(code=1) from exc


def _setup(config_path: Path | None, verbose: bool) -> Settings:
    settings = _load_settings(config_path)
    level = "DEBUG" if verbose else settings.logging.level
    configure_logging(
        level=level,
        fmt=settings.logging.format,
        log_file=settings.logging.file,
        cycle_id=generate_cycle_id(),
    )
    return settings


def _build_pipeline(
    settings: Settings, github: GitHubClient | None = None
) -> ContentPipeline:
    return ContentPipeline(
        store=SnapshotStore(settings.snapshots.root),
        github=github,
        snapshot_settings=settings.snapshots,
        content_settings=settings.content,
    )


async def _ingest(settings: Settings, offline: bool) -> IngestReport:
    if offline:
        return await _build_pipeline(settings).ingest(download=False)
    async with GitHubClient(settings.github) as github:
        return await _build_pipeline(settings, github).ingest(download=True)


async def _load_cached(settings: Settings) -> ContentPipeline:
    pipeline = _build_pipeline(settings)
    await pipeline.load_all()
    pipeline.aggregate()
    return pipeline


def _display_report(report: IngestReport) -> None:
    table = Table(title="Ingestion results")
    table.add_column("Repository", style="cyan")
    table.add_column("Status")
    table.add_column("Stage")
    table.add_column("Details", overflow="fold")

    for outcome in sorted(report.outcomes, key=lambda o: o.name):
        if outcome.ok:
            status = "[green]ok[/green]"
            details = "; ".join(outcome.file_errors)
            if outcome.file_errors:
                status = "[yellow]partial[/yellow]"
        else:
            status = "[red]failed[/red]"
            details = outcome.error or ""
        table.add_row(outcome.name, status, outcome.stage or "", details)

    console.print(table)
    console.print(
        f"[bold]{len(report.succeeded)}[/bold] succeeded, "
        f"[bold]{len(report.failed)}[/bold] failed"
    )


def _add_category_nodes(tree: Tree, nodes: dict[str, CategoryNode]) -> None:
    for node in nodes.values():
        branch = tree.add(f"{node.name} [dim]({node.id})[/dim]")
        _add_category_nodes(branch, node.children)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"hubble {__version__}")
        raise typer.Exit


@app.callback()
def common(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Ingest an organization's article repositories into a content site."""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def ingest(
    config: ConfigOption = None,
    offline: Annotated[
        bool,
        typer.Option("--offline", help="Skip downloads; use the snapshot cache only."),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Download, load, aggregate and compose every repository."""
    settings = _setup(config, verbose)
    try:
        report = asyncio.run(_ingest(settings, offline))
    except HubbleError as exc:
        err_console.print(f"[red]Ingestion aborted:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    _display_report(report)
    if report.failed:
        raise typer.Exit(code=1)


@app.command()
def index(
    config: ConfigOption = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the composed index to this file."),
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """Compose the site index from the snapshot cache."""
    settings = _setup(config, verbose)
    pipeline = asyncio.run(_load_cached(settings))
    html = pipeline.compose()
    if output is None:
        console.print(html, markup=False, highlight=False)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(html, encoding="utf-8")
    console.print(f"[green]Index written to[/green] {output}")


@app.command()
def tags(config: ConfigOption = None, verbose: VerboseOption = False) -> None:
    """List tags and the articles filed under them."""
    settings = _setup(config, verbose)
    pipeline = asyncio.run(_load_cached(settings))

    table = Table(title="Tags")
    table.add_column("Tag", style="cyan")
    table.add_column("Articles", justify="right")
    table.add_column("Repositories", overflow="fold")
    for tag, repos in sorted(pipeline.tags.items()):
        table.add_row(tag, str(len(repos)), ", ".join(repo.name for repo in repos))
    console.print(table)


@app.command()
def contributors(config: ConfigOption = None, verbose: VerboseOption = False) -> None:
    """List contributors and the articles they wrote."""
    settings = _setup(config, verbose)
    pipeline = asyncio.run(_load_cached(settings))

    table = Table(title="Contributors")
    table.add_column("Name", style="cyan")
    table.add_column("Articles", justify="right")
    table.add_column("Repositories", overflow="fold")
    for name, contributor in sorted(pipeline.contributors.items()):
        table.add_row(
            name,
            str(len(contributor.repos)),
            ", ".join(repo.name for repo in contributor.repos),
        )
    console.print(table)


@app.command()
def categories(config: ConfigOption = None, verbose: VerboseOption = False) -> None:
    """Show the category tree."""
    settings = _setup(config, verbose)
    pipeline = asyncio.run(_load_cached(settings))

    tree = Tree("[bold]Categories[/bold]")
    _add_category_nodes(tree, pipeline.categories)
    console.print(tree)


def main() -> None:
    """Console script entry point."""
    app()
