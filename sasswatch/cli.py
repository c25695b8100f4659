"""Typer-based CLI for sasswatch."""

from __future__ import annotations

import asyncio
import warnings
from pathlib import Path
from typing import List, Optional

import typer
from rich.markup import escape
from rich.table import Table

from . import __version__, config_manager
from .cli_common import (
    build_options,
    console,
    console_emitter,
    err_console,
    make_renderer,
    run_watch,
    setup_logging,
)
from .cli_groups import config_grp
from .cli_watch import watch_app
from .errors import GraphBuildError, UnresolvedImportWarning
from .graph import ancestors_of, build_graph, descendants_of
from .models import is_partial, normalize_path
from .session import compile_once

app = typer.Typer(
    help="🎨 sasswatch: compile Sass stylesheets and keep them in sync while you edit.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(watch_app, name="watch")
app.add_typer(config_grp, name="config")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"sasswatch v{__version__}")
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
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logging."),
):
    """sasswatch: Sass compiler front-end with import-graph aware watch mode."""
    setup_logging(verbose)
    # unresolved imports are reported through the notification channel instead
    warnings.simplefilter("ignore", UnresolvedImportWarning)


@app.command("compile")
def compile_stylesheets(
    src: Path = typer.Argument(..., exists=True, help="Stylesheet file or directory."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory for CSS files."),
    output_file: Optional[Path] = typer.Option(None, "--output-file", help="CSS file for a single source file."),
    include_path: Optional[List[Path]] = typer.Option(None, "--include-path", "-I", help="Extra import search path."),
    style: Optional[str] = typer.Option(None, "--style", "-s", help="Output style: expanded, compressed, nested, compact."),
    source_map: Optional[bool] = typer.Option(None, "--source-map/--no-source-map", help="Emit source maps."),
    recursive: Optional[bool] = typer.Option(None, "--recursive/--no-recursive", help="Include subdirectories."),
    watch: bool = typer.Option(False, "--watch", "-w", help="Keep running and recompile on changes."),
    sass: Optional[str] = typer.Option(None, "--sass", help="Path to the sass executable."),
):
    """Compile a stylesheet, or every entry point in a directory."""
    if output_file is not None and src.is_dir():
        raise typer.BadParameter("--output-file needs a single source file, use --output for directories")

    cfg = config_manager.load_config()
    options = build_options(include_path, style, source_map)
    renderer = make_renderer(sass or cfg["render"]["sass_binary"])
    recursive = cfg["watch"]["recursive"] if recursive is None else recursive

    if watch:
        run_watch(
            src,
            options,
            renderer,
            output_dir=output,
            output_file=output_file,
            recursive=recursive,
            debounce=float(cfg["watch"]["debounce"]),
        )
        return

    emitter = console_emitter(watch=False)
    try:
        status = asyncio.run(
            compile_once(
                src,
                renderer,
                emitter,
                base_options=options,
                recursive=recursive,
                output_dir=str(output.resolve()) if output else None,
                output_file=str(output_file.resolve()) if output_file else None,
            )
        )
    except GraphBuildError:
        raise typer.Exit(1)
    if status:
        raise typer.Exit(status)


@app.command("graph")
def graph(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Stylesheet to inspect."),
    root: Optional[Path] = typer.Option(None, "--root", "-r", help="Directory to scan (default: the file's directory)."),
    include_path: Optional[List[Path]] = typer.Option(None, "--include-path", "-I", help="Extra import search path."),
    recursive: bool = typer.Option(True, "--recursive/--no-recursive", help="Include subdirectories."),
):
    """Show which stylesheets import a file and which files it imports."""
    include_paths = [str(p.resolve()) for p in include_path or []]
    try:
        import_graph = build_graph(root or file, include_paths=include_paths, recursive=recursive)
    except GraphBuildError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)

    target = normalize_path(file)
    ancestors = ancestors_of(import_graph, target)
    descendants = descendants_of(import_graph, target)

    typer.echo(f"{target}{' (partial)' if is_partial(target) else ''}")
    typer.echo("Imported by:")
    for path in ancestors[1:] or ["(nothing)"]:
        typer.echo(f"  |- {path}")
    typer.echo("Imports:")
    for path in descendants[1:] or ["(nothing)"]:
        typer.echo(f"  |- {path}")

    rebuilds = [p for p in ancestors if not is_partial(p)]
    typer.echo(f"\nA change rebuilds {len(rebuilds)} file(s).")

    for warning in import_graph.warnings:
        typer.echo(f"⚠️  {warning}", err=True)


# ── config group ─────────────────────────────────────────────

@config_grp.command("show")
def config_show():
    """Show effective render and watch defaults."""
    data = config_manager.load_config()
    table = Table(title="sasswatch configuration")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for section, values in data.items():
        for key, value in values.items():
            table.add_row(f"{section}.{key}", str(value))
    console.print(table)


@config_grp.command("set")
def config_set(
    key: str = typer.Argument(..., help="Dotted key, e.g. render.output_style."),
    value: str = typer.Argument(..., help="New value; lists are comma separated."),
):
    """Persist a default in the config file."""
    try:
        stored = config_manager.set_value(key, value)
    except KeyError:
        raise typer.BadParameter(f"Unknown config key '{key}'")
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    except OSError as exc:
        err_console.print(f"[red]✗[/red] {escape(str(exc))}")
        raise typer.Exit(code=1)
    typer.echo(f"Set {key} = {stored}")


@config_grp.command("reset")
def config_reset():
    """Delete the config file and fall back to defaults."""
    if config_manager.reset_config():
        typer.echo("Configuration reset to defaults.")
    else:
        typer.echo("No configuration file to reset.")


if __name__ == "__main__":
    app()
