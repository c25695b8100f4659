"""Render options derivation and the default ``sass`` executable renderer."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from typing import Awaitable, Callable, List, Optional, Union

from .emitter import WRITE, Emitter
from .errors import RenderError
from .models import RenderOptions, normalize_path

logger = logging.getLogger(__name__)

Renderer = Callable[[RenderOptions, Emitter], Union[Awaitable[None], None]]

# The sass executable only knows two styles
_CLI_STYLES = {
    "expanded": "expanded",
    "nested": "expanded",
    "compact": "expanded",
    "compressed": "compressed",
}
_DART_SASS_PRECISION = 10


def destination_for(
    src: str,
    output_dir: Optional[str] = None,
    output_file: Optional[str] = None,
    root_dir: Optional[str] = None,
) -> str:
    """Compute the CSS path for *src*.

    ``output_file`` wins when set. With ``output_dir`` the layout below
    ``root_dir`` is mirrored; files outside ``root_dir`` land at the top of the
    output directory. Without either, the CSS is written next to the source.
    """
    if output_file:
        return normalize_path(output_file)

    stem = os.path.splitext(src)[0]
    if not output_dir:
        return f"{stem}.css"

    relative = os.path.basename(stem)
    if root_dir:
        candidate = os.path.relpath(stem, root_dir)
        if not candidate.startswith(os.pardir):
            relative = candidate
    return normalize_path(os.path.join(output_dir, f"{relative}.css"))


def derive_options(
    base: RenderOptions,
    src: str,
    output_dir: Optional[str] = None,
    output_file: Optional[str] = None,
    root_dir: Optional[str] = None,
) -> RenderOptions:
    """Fresh options for rendering *src*; ``src`` and ``dest`` are always overridden."""
    src = normalize_path(src)
    dest = destination_for(src, output_dir, output_file, root_dir)
    return base.evolve(
        src=src,
        dest=dest,
        source_map_path=f"{dest}.map" if base.source_map else None,
        indented_syntax=src.endswith(".sass"),
    )


class SassCliRenderer:
    """Render a stylesheet by running the ``sass`` command line compiler.

    Raises :class:`RenderError` when the executable is missing or exits with
    a non-zero status; compiler warnings on stderr are forwarded as ``warn``.
    """

    def __init__(self, binary: str = "sass") -> None:
        self.binary = binary

    def build_command(self, options: RenderOptions) -> List[str]:
        style = _CLI_STYLES.get(options.output_style, "expanded")
        if style != options.output_style:
            logger.debug("Output style '%s' rendered as '%s'", options.output_style, style)
        if options.precision != _DART_SASS_PRECISION:
            logger.warning(
                "Dart Sass always uses %d digits of precision, ignoring precision=%d",
                _DART_SASS_PRECISION,
                options.precision,
            )
        if options.source_comments:
            logger.warning("Dart Sass does not emit source comments, ignoring source_comments")

        command = [self.binary, f"--style={style}"]
        for include_path in options.include_paths:
            command.append(f"--load-path={include_path}")
        command.append("--source-map" if options.source_map else "--no-source-map")
        if options.indented_syntax:
            command.append("--indented")
        command.append(f"{options.src}:{options.dest}")
        return command

    async def __call__(self, options: RenderOptions, emitter: Emitter) -> None:
        executable = shutil.which(self.binary)
        if executable is None:
            raise RenderError(options.src, f"'{self.binary}' command not found on PATH")

        os.makedirs(os.path.dirname(options.dest) or ".", exist_ok=True)
        command = self.build_command(options)
        command[0] = executable
        logger.debug("Running %s", " ".join(command))

        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await process.communicate()
        message = stderr.decode("utf-8", errors="replace").strip()

        if process.returncode != 0:
            raise RenderError(
                options.src,
                message or f"{self.binary} exited with status {process.returncode}",
            )
        if message:
            emitter.warn(message)

        emitter.log("Rendering complete, saving .css file...")
        emitter.emit(WRITE, options.dest)
        emitter.log(f"Wrote CSS to {options.dest}")
        if options.source_map_path:
            emitter.log(f"Wrote Source Map to {options.source_map_path}")
