"""Typer-based CLI for flattening source map chains."""

from __future__ import annotations

import logging
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config_manager, orchestrator
from .errors import MapchainError
from .models import FileSpec, MergeOptions

app = typer.Typer(
    help="🗺️  mapchain: flatten chains of source maps into a single map.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"mapchain v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    )
):
    """mapchain: resolve generated positions back through every transformation stage."""
    pass


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, show_time=False)],
        force=True,
    )


def _fail(exc: MapchainError) -> None:
    typer.echo(f"❌ {exc}", err=True)
    raise typer.Exit(code=1)


@app.command("merge")
def merge_command(
    ctx: typer.Context,
    files: Optional[List[str]] = typer.Argument(None, help="Generated files with source maps; updated in place."),
    inline_sources: Optional[bool] = typer.Option(
        None, "--inline-sources/--no-inline-sources", help="Inline original source code into each source map."
    ),
    inline_source_map: Optional[bool] = typer.Option(
        None, "--inline-source-map/--no-inline-source-map", help="Inline the source map into the generated file."
    ),
    ignore_missing_source_maps: Optional[bool] = typer.Option(
        None,
        "--ignore-missing-source-maps/--no-ignore-missing-source-maps",
        help="Ignore input files that are missing source maps.",
    ),
    ignore_missing_sources: Optional[bool] = typer.Option(
        None,
        "--ignore-missing-sources/--require-sources",
        help="Treat declared sources missing on disk as empty files.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Log every file and table opened."),
):
    """Merge each file's chain of source maps into one map.

    Example:
      mapchain merge dist/app.js
      mapchain merge dist/*.js --inline-sources --ignore-missing-source-maps
    """
    if not files:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=0)

    _configure_logging(verbose)
    options = MergeOptions(**config_manager.load_merge_defaults()).overlay(
        {
            "inline_sources": inline_sources,
            "inline_source_map": inline_source_map,
            "ignore_missing_source_maps": ignore_missing_source_maps,
            "ignore_missing_sources": ignore_missing_sources,
        }
    )

    try:
        results = orchestrator.merge([FileSpec(src=f, dest=f) for f in files], options)
    except MapchainError as exc:
        _fail(exc)

    for result in results:
        where = "inline" if result.inlined else result.table_path
        typer.echo(f"Merged {result.src} -> {where} ({result.mappings} mappings, {len(result.sources)} sources)")
    skipped = len(files) - len(results)
    if skipped:
        typer.echo(f"Skipped {skipped} file(s) without source maps.")


@app.command("trace")
def trace_command(
    file: str = typer.Argument(..., help="Generated file to follow."),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Log every file and table opened."),
):
    """Show the chain of files and source maps behind a generated file."""
    _configure_logging(verbose)
    try:
        links = orchestrator.trace_chain(file)
    except MapchainError as exc:
        _fail(exc)

    for index, link in enumerate(links, 1):
        if link.table_path is None:
            typer.echo(f"{index}. {link.path}  (original)")
            continue
        kind = "embedded" if link.embedded else link.table_path
        typer.echo(f"{index}. {link.path}  [map: {kind}]")
        for source in link.sources:
            typer.echo(f"     <- {source}")


@app.command("resolve")
def resolve_command(
    file: str = typer.Argument(..., help="Generated file."),
    line: int = typer.Argument(..., min=1, help="1-based line."),
    column: int = typer.Argument(..., min=0, help="0-based column."),
    tolerate_gaps: bool = typer.Option(False, "--tolerate-gaps", help="Print a partial result instead of failing."),
):
    """Resolve one generated position to its original position."""
    _configure_logging(False)
    try:
        position = orchestrator.resolve(file, line, column, tolerate_gaps=tolerate_gaps)
    except MapchainError as exc:
        _fail(exc)

    if position.is_empty:
        typer.echo("No original position found.")
        raise typer.Exit(code=0)
    suffix = f"  ({position.name})" if position.name else ""
    typer.echo(f"{position.source}:{position.line}:{position.column}{suffix}")


@app.command("show-config")
def show_config():
    """Show the default merge options and where each comes from."""
    table = Table(title="Merge defaults")
    table.add_column("Option", style="cyan", no_wrap=True)
    table.add_column("Value", no_wrap=True)
    table.add_column("Origin")
    for key, value, origin in config_manager.describe_config():
        table.add_row(key, "true" if value else "false", origin)
    console.print(table)


@app.command("set-default")
def set_default(
    option: str = typer.Argument(..., help="Merge option, e.g. inline-sources."),
    value: bool = typer.Argument(..., help="true or false."),
):
    """Store a default merge option in the global config file."""
    try:
        path = config_manager.save_merge_defaults({option: value})
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    typer.echo(f"Set {option.replace('-', '_')} = {'true' if value else 'false'} in {path}")


if __name__ == "__main__":
    app()
