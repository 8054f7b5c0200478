"""Typer-based CLI for route-impact analysis."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .changeset import DELETED, Change, normalize_changes, parse_name_status
from .engine import RouteImpactEngine
from .errors import RepositoryRootError
from .models import ImpactResult
from .storage import FactStore, ProjectManager

app = typer.Typer(
    help="Route-impact analysis for JavaScript / TypeScript front-end repositories.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"routegraph v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """routegraph: which routes does a change affect?"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _open_engine(repo: Path) -> Tuple[RouteImpactEngine, FactStore]:
    if not repo.is_dir():
        console.print(f"[red]Repository root not found: {repo}[/red]")
        raise typer.Exit(code=1)
    pm = ProjectManager()
    store = FactStore(pm.create_or_get_project(repo))
    try:
        engine = RouteImpactEngine(repo, store=store)
    except RepositoryRootError as exc:
        store.close()
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    return engine, store


def _ensure_indexed(engine: RouteImpactEngine, store: FactStore) -> None:
    if len(engine.cache) == 0:
        engine.index()
        _touch_metadata(engine, store)


def _touch_metadata(engine: RouteImpactEngine, store: FactStore) -> None:
    store.set_metadata({
        **store.get_metadata(),
        "source_path": str(engine.root.resolve()),
        "framework": engine.config.framework,
        "indexed_at": datetime.now().isoformat(),
    })


@app.command("index")
def index_repo(
    repo: Path = typer.Argument(..., help="Path to the repository root."),
    workers: int = typer.Option(0, "--workers", "-w", help="Parser threads (0 = CPU count)."),
    rebuild: bool = typer.Option(False, "--rebuild", help="Drop cached facts and parse everything."),
):
    """Index a repository, reusing cached facts for unchanged files."""
    engine, store = _open_engine(repo)
    try:
        if rebuild:
            engine.cache.clear()
        try:
            stats = engine.index(workers or None)
        except RepositoryRootError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=1)
        _touch_metadata(engine, store)
    finally:
        store.close()

    typer.echo(f"Indexed '{repo.resolve()}'.")
    typer.echo(
        f"Files: {stats.files} | Parsed: {stats.reindexed} | Edges: {stats.edges} "
        f"| Routes: {stats.routes}"
    )
    if stats.failed:
        typer.echo(f"Failed to parse: {', '.join(stats.failed)}")


@app.command("routes")
def list_routes(
    repo: Path = typer.Argument(..., help="Path to the repository root."),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of a table."),
):
    """List every route the repository declares."""
    engine, store = _open_engine(repo)
    try:
        _ensure_indexed(engine, store)
        snapshot = engine.snapshot()
    finally:
        store.close()

    routes = snapshot.routes
    if as_json:
        typer.echo(json.dumps({
            "routes": [route.to_dict() for route in routes],
            "unresolvableRoutes": [entry.to_dict() for entry in snapshot.unresolvable],
        }, indent=2))
        return

    if not routes:
        typer.echo("No routes found.")
        raise typer.Exit(code=0)

    table = Table(title=f"Routes ({len(routes)})")
    table.add_column("Route", style="cyan")
    table.add_column("Defined in")
    table.add_column("Component")
    table.add_column("Kind", style="magenta")
    table.add_column("Confidence")
    for route in routes:
        table.add_row(
            route.route_path,
            f"{route.defining_file}:{route.line}",
            route.component_file,
            route.declaration_kind,
            route.confidence,
        )
    console.print(table)


def _collect_changes(
    files: Optional[List[str]],
    deleted: Optional[List[str]],
    changes_file: Optional[Path],
) -> List[Change]:
    collected: List[Change] = []
    if changes_file is not None:
        if str(changes_file) == "-":
            text = sys.stdin.read()
        else:
            try:
                text = changes_file.read_text(encoding="utf-8")
            except OSError as exc:
                raise typer.BadParameter(f"Cannot read {changes_file}: {exc}")
        collected.extend(parse_name_status(text))
    collected.extend(Change(path) for path in files or [])
    collected.extend(Change(path, DELETED) for path in deleted or [])
    return normalize_changes(collected)


def _print_result(result: ImpactResult) -> None:
    for path, impacts in result.impacts.items():
        status = result.parse_status.get(path)
        suffix = f" [dim]({status})[/dim]" if status and status != "ok" else ""
        console.print(f"[bold]{path}[/bold]{suffix}")
        if not impacts:
            console.print(f"  [yellow]no routes[/yellow] ({result.reasons.get(path, '')})")
            continue
        for impact in impacts:
            chain = " -> ".join(impact.causal_chain) or "(declared here)"
            console.print(
                f"  [cyan]{impact.route.route_path}[/cyan] "
                f"[dim]{impact.reachability}[/dim] {chain}"
            )
    if result.affected_routes:
        console.print(f"\nAffected routes: {', '.join(result.affected_routes)}")
    for path, routes in result.shared_components.items():
        console.print(f"[magenta]shared:[/magenta] {path} ({', '.join(routes)})")
    for warning in result.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")
    for entry in result.unresolvable_routes:
        console.print(
            f"[yellow]unresolvable route path[/yellow] {entry.defining_file}:{entry.line} "
            f"{entry.expression}"
        )


@app.command("impact")
def impact(
    repo: Path = typer.Argument(..., help="Path to the repository root."),
    files: Optional[List[str]] = typer.Argument(None, help="Changed files (repo-relative)."),
    deleted: Optional[List[str]] = typer.Option(
        None, "--deleted", "-d", help="Deleted file (repeatable).",
    ),
    changes_file: Optional[Path] = typer.Option(
        None, "--changes", "-c", help="`git diff --name-status` output; '-' reads stdin.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON."),
):
    """Report the routes affected by a set of changed files."""
    changes = _collect_changes(files, deleted, changes_file)
    if not changes:
        raise typer.BadParameter("No changed files given.")

    engine, store = _open_engine(repo)
    try:
        _ensure_indexed(engine, store)
        result = engine.analyze(changes)
    finally:
        store.close()

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return
    _print_result(result)


@app.command("clear-cache")
def clear_cache(
    repo: Path = typer.Argument(..., help="Path to the repository root."),
):
    """Delete the cached facts for a repository."""
    pm = ProjectManager()
    name = pm.project_name(repo)
    if pm.delete_project(name):
        typer.echo(f"Cleared cache for '{repo.resolve()}'.")
    else:
        typer.echo(f"No cache for '{repo.resolve()}'.")
