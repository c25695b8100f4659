"""Watch session wiring and one-shot compilation.

A :class:`WatchSession` builds the import graph once, watches every file in
it and feeds changes from the watchdog thread into the asyncio loop where the
:class:`RebuildDispatcher` schedules renders. The graph is not updated while
the session runs: removed files are reported and new files are ignored until
the session is restarted.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from watchdog.observers import Observer

from .config import DEFAULT_DEBOUNCE, SASS_EXTENSIONS
from .dispatcher import RebuildDispatcher
from .emitter import Emitter
from .errors import GraphBuildError, RenderError, WatcherError
from .graph import DependencyGraph, build_graph
from .models import ChangeEvent, ChangeKind, RenderOptions, is_partial, normalize_path
from .parser import discover_files
from .render import Renderer
from .watcher import FileWatcher

logger = logging.getLogger(__name__)


def _layout(root: Path) -> tuple:
    """Return ``(root_dir, entry_file)`` for a file or directory root."""
    if root.is_file():
        return normalize_path(root.parent), normalize_path(root)
    return normalize_path(root), None


class WatchSession:
    """Single-root watch loop: graph, watcher and dispatcher for one run."""

    def __init__(
        self,
        root: "str | Path",
        render: Renderer,
        emitter: Emitter,
        base_options: Optional[RenderOptions] = None,
        recursive: bool = True,
        output_dir: Optional[str] = None,
        output_file: Optional[str] = None,
        extensions: Sequence[str] = SASS_EXTENSIONS,
        debounce: float = DEFAULT_DEBOUNCE,
        observer_factory: Callable[[], object] = Observer,
        shutdown_timeout: float = 10.0,
        health_interval: float = 1.0,
    ) -> None:
        self.root = Path(root).absolute()
        self.render = render
        self.emitter = emitter
        self.base_options = base_options or RenderOptions()
        self.recursive = recursive
        self.output_dir = output_dir
        self.output_file = output_file
        self.extensions = tuple(extensions)
        self.debounce = debounce
        self.observer_factory = observer_factory
        self.shutdown_timeout = shutdown_timeout
        self.health_interval = health_interval

        self.graph: Optional[DependencyGraph] = None
        self.dispatcher: Optional[RebuildDispatcher] = None
        self.watcher: Optional[FileWatcher] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stopped: Optional[asyncio.Event] = None

    def build(self) -> DependencyGraph:
        try:
            return build_graph(
                self.root,
                include_paths=self.base_options.include_paths,
                recursive=self.recursive,
                extensions=self.extensions,
                emitter=self.emitter,
            )
        except GraphBuildError as exc:
            self.emitter.error(exc)
            raise

    async def start(self) -> None:
        """Build the graph and start watching every file in it.

        Raises:
            GraphBuildError: the root path is missing or unreadable.
        """
        self._loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()

        self.graph = self.build()
        root_dir, entry_file = _layout(self.root)
        self.dispatcher = RebuildDispatcher(
            self.graph,
            self.render,
            self.emitter,
            base_options=self.base_options,
            output_dir=self.output_dir,
            output_file=self.output_file,
            root_dir=root_dir,
            entry_file=entry_file,
        )
        self.watcher = FileWatcher(
            self.graph.paths(),
            on_changed=self._threadsafe(self.handle_event),
            on_error=self._threadsafe(self.handle_error),
            debounce=self.debounce,
            observer_factory=self.observer_factory,
        )
        self.watcher.start()
        self.emitter.log(f"Watching {len(self.graph)} file(s) under {root_dir}")

    def _threadsafe(self, callback: Callable) -> Callable:
        loop = self._loop

        def deliver(arg) -> None:
            loop.call_soon_threadsafe(callback, arg)

        return deliver

    def handle_event(self, event: ChangeEvent) -> List[asyncio.Task]:
        """Process one watcher event on the loop thread."""
        if event.kind is ChangeKind.ERROR:
            self.handle_error(event.error or WatcherError("Unknown watcher error", event.file_path))
            return []
        if event.kind is ChangeKind.REMOVED:
            self.emitter.warn(
                f"=> removed: {event.file_path} (restart the watcher to refresh the import graph)"
            )
            return []
        return self.dispatcher.on_change(event.file_path)

    def handle_error(self, error: BaseException) -> None:
        self.emitter.error(error)

    def stop(self) -> None:
        """Ask :meth:`run` to finish; safe to call from any thread."""
        if self._loop is None or self._stopped is None:
            return
        self._loop.call_soon_threadsafe(self._stopped.set)

    async def close(self) -> None:
        """Stop watching and give running renders ``shutdown_timeout`` seconds."""
        if self.watcher is not None:
            await asyncio.get_running_loop().run_in_executor(None, self.watcher.stop)
        if self.dispatcher is None:
            return
        abandoned = await self.dispatcher.wait(self.shutdown_timeout)
        if abandoned:
            logger.warning("Abandoning %d render(s) still running at shutdown", abandoned)
            self.emitter.warn(f"Stopped with {abandoned} render(s) still running")

    async def run(self) -> None:
        """Start and block until :meth:`stop` is called or the task is cancelled.

        Every ``health_interval`` seconds the watch threads are checked and
        any that died are reported as errors.
        """
        await self.start()
        try:
            while not self._stopped.is_set():
                try:
                    await asyncio.wait_for(self._stopped.wait(), timeout=self.health_interval)
                except asyncio.TimeoutError:
                    self.watcher.check()
        finally:
            await self.close()


async def compile_once(
    root: "str | Path",
    render: Renderer,
    emitter: Emitter,
    base_options: Optional[RenderOptions] = None,
    recursive: bool = True,
    output_dir: Optional[str] = None,
    output_file: Optional[str] = None,
    extensions: Sequence[str] = SASS_EXTENSIONS,
) -> int:
    """Render a file, or every non-partial file of a directory, once.

    Returns the process exit status: ``0`` when every render succeeded,
    ``1`` as soon as one fails; the remaining files are not rendered. A
    missing root raises :class:`GraphBuildError`.
    """
    root_path = Path(root).absolute()
    if not root_path.exists():
        error = GraphBuildError(str(root_path), "path does not exist")
        emitter.error(error)
        raise error

    root_dir, entry_file = _layout(root_path)
    if entry_file is not None:
        targets = [entry_file]
    else:
        targets = [
            path for path in discover_files(root_path, recursive=recursive, extensions=extensions)
            if not is_partial(path)
        ]

    dispatcher = RebuildDispatcher(
        DependencyGraph(root=root_dir).freeze(),
        render,
        emitter,
        base_options=base_options,
        output_dir=output_dir,
        output_file=output_file,
        root_dir=root_dir,
        entry_file=entry_file,
    )
    for target in targets:
        if not await dispatcher.render_file(target):
            emitter.error(
                RenderError(
                    target,
                    f"Compilation stopped at {target} "
                    f"({dispatcher.render_count} of {len(targets)} file(s) compiled)",
                )
            )
            return 1
    emitter.log(f"Compiled {dispatcher.render_count} file(s)")
    return 0
