"""Rebuild dispatch: turn one changed file into renders of every affected entry point."""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import List, Optional, Set

from .emitter import Emitter
from .errors import RenderError
from .graph import DependencyGraph, ancestors_of
from .models import RenderOptions, is_partial, normalize_path
from .render import Renderer, derive_options

logger = logging.getLogger(__name__)


class DispatchState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    DISPATCHING = "dispatching"


class RebuildDispatcher:
    """Schedules renders for every non-partial file affected by a change.

    Each change runs its own Idle -> Resolving -> Dispatching -> Idle cycle
    and returns immediately after scheduling; renders run as asyncio tasks and
    may overlap with renders from earlier changes, including renders of the
    same destination (the last one to finish wins).
    """

    def __init__(
        self,
        graph: DependencyGraph,
        render: Renderer,
        emitter: Emitter,
        base_options: Optional[RenderOptions] = None,
        output_dir: Optional[str] = None,
        output_file: Optional[str] = None,
        root_dir: Optional[str] = None,
        entry_file: Optional[str] = None,
    ) -> None:
        self.graph = graph
        self.render = render
        self.emitter = emitter
        self.base_options = base_options or RenderOptions()
        self.output_dir = output_dir
        self.output_file = output_file
        self.root_dir = root_dir
        self.entry_file = normalize_path(entry_file) if entry_file else None
        self.state = DispatchState.IDLE
        self.render_count = 0
        self.failure_count = 0
        self._tasks: Set[asyncio.Task] = set()

    def targets_for(self, changed_path: str) -> List[str]:
        """Entry points to rebuild when *changed_path* changes."""
        return [path for path in ancestors_of(self.graph, changed_path) if not is_partial(path)]

    def options_for(self, src: str) -> RenderOptions:
        # an explicit output file only ever belongs to the entry file
        output_file = self.output_file
        if self.entry_file is not None and normalize_path(src) != self.entry_file:
            output_file = None
        return derive_options(
            self.base_options,
            src,
            output_dir=self.output_dir,
            output_file=output_file,
            root_dir=self.root_dir,
        )

    def on_change(self, changed_path: str) -> List[asyncio.Task]:
        """Schedule renders for *changed_path*; must run inside the event loop."""
        self.state = DispatchState.RESOLVING
        targets = self.targets_for(changed_path)
        logger.debug("%s affects %d entry point(s)", changed_path, len(targets))

        self.state = DispatchState.DISPATCHING
        tasks = []
        for target in targets:
            options = self.options_for(target)
            self.emitter.warn(f"=> changed: {target}")
            task = asyncio.ensure_future(self._render(options))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            tasks.append(task)

        self.state = DispatchState.IDLE
        return tasks

    async def render_file(self, src: str) -> bool:
        """Render a single file now; returns False if the render failed."""
        return await self._render(self.options_for(src))

    async def _render(self, options: RenderOptions) -> bool:
        try:
            result = self.render(options, self.emitter)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.failure_count += 1
            error = exc if isinstance(exc, RenderError) else RenderError(options.src, str(exc))
            logger.error("Render failed for %s: %s", options.src, error)
            self.emitter.error(error)
            return False
        else:
            self.render_count += 1
            return True
        finally:
            self.emitter.done(options.dest)

    def pending(self) -> int:
        return len(self._tasks)

    async def wait(self, timeout: Optional[float] = None) -> int:
        """Wait for every render scheduled so far.

        Returns the number of renders still running when *timeout* expired.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                break
            await asyncio.wait(list(self._tasks), timeout=remaining)
        return len(self._tasks)
