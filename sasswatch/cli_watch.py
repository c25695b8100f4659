"""Watch mode: recompile affected stylesheets on file changes."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from . import config_manager
from .cli_common import build_options, make_renderer, run_watch

watch_app = typer.Typer(help="👀 Watch mode for incremental recompiles")


@watch_app.command("start")
def watch(
    src: Path = typer.Argument(..., exists=True, help="Stylesheet file or directory to watch."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory for CSS files."),
    output_file: Optional[Path] = typer.Option(None, "--output-file", help="CSS file for a single source file."),
    include_path: Optional[List[Path]] = typer.Option(None, "--include-path", "-I", help="Extra import search path."),
    style: Optional[str] = typer.Option(None, "--style", "-s", help="Output style."),
    source_map: Optional[bool] = typer.Option(None, "--source-map/--no-source-map", help="Emit source maps."),
    recursive: Optional[bool] = typer.Option(None, "--recursive/--no-recursive", help="Include subdirectories."),
    interval: Optional[float] = typer.Option(None, "--interval", "-i", min=0.0, help="Coalescing window in seconds."),
    sass: Optional[str] = typer.Option(None, "--sass", help="Path to the sass executable."),
):
    """👀 Watch mode: recompile every entry point affected by a change.

    Builds the import graph once, then recompiles the changed file and every
    stylesheet that imports it. Partials (``_name.scss``) are only rebuilt
    through their importers.

    Example:
      sasswatch watch start scss -o css
      sasswatch watch start main.scss --output-file site.css -I vendor
    """
    cfg = config_manager.load_config()
    options = build_options(include_path, style, source_map)
    run_watch(
        src,
        options,
        make_renderer(sass or cfg["render"]["sass_binary"]),
        output_dir=output,
        output_file=output_file,
        recursive=cfg["watch"]["recursive"] if recursive is None else recursive,
        debounce=float(cfg["watch"]["debounce"]) if interval is None else interval,
    )
