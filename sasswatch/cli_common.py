"""Helpers shared by the compile and watch commands."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from . import config_manager
from .config import OUTPUT_STYLES
from .emitter import DONE, ERROR, LOG, WARN, Emitter
from .errors import GraphBuildError
from .models import RenderOptions
from .render import Renderer, SassCliRenderer
from .session import WatchSession

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )
    logging.getLogger("sasswatch").setLevel(logging.DEBUG)


def make_renderer(binary: str) -> Renderer:
    return SassCliRenderer(binary)


def console_emitter(watch: bool) -> Emitter:
    """Emitter that prints notifications the way operators expect them."""
    emitter = Emitter(keep_history=False)
    emitter.on(ERROR, lambda msg: err_console.print(f"[red]✗[/red] {escape(str(msg))}"))
    emitter.on(WARN, lambda msg: err_console.print(f"[yellow]{escape(str(msg))}[/yellow]"))
    emitter.on(LOG, lambda msg: console.print(f"[dim]{escape(str(msg))}[/dim]"))
    if watch:
        emitter.on(DONE, lambda dest: console.print(f"  [green]✓[/green] {escape(str(dest))}"))
    return emitter


def build_options(
    include_paths: Optional[List[Path]],
    output_style: Optional[str],
    source_map: Optional[bool],
) -> RenderOptions:
    """Merge command line values over the ``[render]`` config section."""
    render_cfg = config_manager.load_config()["render"]
    style = output_style or render_cfg["output_style"]
    if style not in OUTPUT_STYLES:
        raise typer.BadParameter(f"Output style must be one of: {', '.join(OUTPUT_STYLES)}")

    paths = [str(p.resolve()) for p in include_paths or []]
    paths.extend(str(Path(p).expanduser().resolve()) for p in render_cfg["include_paths"])
    return RenderOptions(
        include_paths=list(dict.fromkeys(paths)),
        output_style=style,
        source_map=render_cfg["source_map"] if source_map is None else source_map,
    )


def run_watch(
    src: Path,
    options: RenderOptions,
    renderer: Renderer,
    output_dir: Optional[Path],
    output_file: Optional[Path],
    recursive: bool,
    debounce: float,
) -> None:
    """Run a watch session until Ctrl+C."""
    emitter = console_emitter(watch=True)
    session = WatchSession(
        src,
        renderer,
        emitter,
        base_options=options,
        recursive=recursive,
        output_dir=str(output_dir.resolve()) if output_dir else None,
        output_file=str(output_file.resolve()) if output_file else None,
        debounce=debounce,
    )

    console.print(f"\n[bold green]👀 Watching[/bold green] [cyan]{escape(str(src))}[/cyan] for changes...")
    console.print(f"[dim]  Style:     {options.output_style}")
    console.print(f"  Recursive: {'yes' if recursive else 'no'}")
    console.print("  Press Ctrl+C to stop[/dim]\n")

    try:
        asyncio.run(session.run())
    except GraphBuildError:
        raise typer.Exit(1)
    except KeyboardInterrupt:
        dispatcher = session.dispatcher
        count = dispatcher.render_count if dispatcher else 0
        console.print(f"\n[yellow]Stopped watching.[/yellow] Rendered {count} time(s).")
