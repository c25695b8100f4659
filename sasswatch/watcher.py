"""Filesystem watcher adapter built on watchdog.

Only an explicit set of files is watched. Each parent directory is scheduled
non-recursively and events are filtered against the set, so files created
after start-up are never reported.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import DEFAULT_DEBOUNCE
from .errors import WatcherError
from .models import ChangeEvent, ChangeKind, normalize_path

logger = logging.getLogger(__name__)

ChangedCallback = Callable[[ChangeEvent], None]
ErrorCallback = Callable[[WatcherError], None]


def _event_path(raw: "str | bytes") -> str:
    return normalize_path(os.fsdecode(raw))


class _StylesheetEventHandler(FileSystemEventHandler):
    """Translate watchdog events into :class:`ChangeEvent` notifications."""

    def __init__(self, watcher: "FileWatcher") -> None:
        super().__init__()
        self._watcher = watcher

    def dispatch(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        try:
            super().dispatch(event)
        except Exception as exc:
            logger.exception("Watch handler failed for %s", event.src_path)
            self._watcher.report_error(
                WatcherError(f"Watch handler failed: {exc}", _event_path(event.src_path))
            )

    def on_modified(self, event: FileSystemEvent) -> None:
        self._watcher.notify(event.src_path, ChangeKind.CHANGED)

    def on_created(self, event: FileSystemEvent) -> None:
        self._watcher.notify(event.src_path, ChangeKind.CHANGED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._watcher.notify(event.src_path, ChangeKind.REMOVED)

    def on_moved(self, event: FileSystemEvent) -> None:
        # editors that save by renaming a temp file land here
        self._watcher.notify(event.src_path, ChangeKind.REMOVED)
        self._watcher.notify(event.dest_path, ChangeKind.CHANGED)


class FileWatcher:
    """Watch a fixed set of files and report changes, removals and errors.

    The first ``changed`` event for a path is reported at once. Further
    events within *debounce* seconds are collapsed into a single trailing
    ``changed`` sent when the window closes; ``debounce=0`` reports every
    event. Callbacks run on the observer thread, trailing ones on a timer
    thread.
    """

    def __init__(
        self,
        paths: Iterable[str],
        on_changed: ChangedCallback,
        on_error: Optional[ErrorCallback] = None,
        debounce: float = DEFAULT_DEBOUNCE,
        observer_factory: Callable[[], object] = Observer,
    ) -> None:
        normalized = [normalize_path(p) for p in paths]
        self._paths: FrozenSet[str] = frozenset(normalized)
        # watchdog may report symlink-resolved paths (e.g. /private/var on macOS)
        self._aliases: Dict[str, str] = {os.path.realpath(p): p for p in normalized}
        self._on_changed = on_changed
        self._on_error = on_error
        self.debounce = max(0.0, debounce)
        self._observer_factory = observer_factory
        self._observer = None
        self._lock = threading.Lock()
        self._last_seen: Dict[str, float] = {}
        self._trailing: Dict[str, threading.Timer] = {}
        self._dead: Set[str] = set()
        self.handler = _StylesheetEventHandler(self)

    @property
    def watched(self) -> FrozenSet[str]:
        return self._paths

    @property
    def running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = self._observer_factory()
        observer.start()
        self._observer = observer

        # scheduling on a running observer surfaces inotify limits as OSError here
        for directory in sorted({os.path.dirname(p) for p in self._paths}):
            try:
                observer.schedule(self.handler, directory, recursive=False)
                logger.debug("Watching directory %s", directory)
            except OSError as exc:
                self.report_error(WatcherError(f"Cannot watch {directory}: {exc}", directory))

    def stop(self, timeout: float = 5.0) -> None:
        self._cancel_trailing()
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout)

    def __enter__(self) -> "FileWatcher":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Event plumbing
    # ------------------------------------------------------------------

    def _match(self, raw_path: "str | bytes") -> Optional[str]:
        path = _event_path(raw_path)
        if path in self._paths:
            return path
        return self._aliases.get(os.path.realpath(path))

    def _coalesce(self, path: str) -> bool:
        if not self.debounce:
            return False
        now = time.monotonic()
        with self._lock:
            last = self._last_seen.get(path)
            if last is None or now - last >= self.debounce:
                self._last_seen[path] = now
                return False
            # later writes in the window are flushed once when it closes
            if path not in self._trailing:
                timer = threading.Timer(self.debounce - (now - last), self._flush, args=(path,))
                timer.daemon = True
                self._trailing[path] = timer
                timer.start()
        return True

    def _flush(self, path: str) -> None:
        with self._lock:
            if self._trailing.pop(path, None) is None:
                return
            self._last_seen[path] = time.monotonic()
        logger.debug("Flushing coalesced change for %s", path)
        self._deliver(ChangeEvent(file_path=path, kind=ChangeKind.CHANGED))

    def _cancel_trailing(self, path: Optional[str] = None) -> None:
        with self._lock:
            if path is None:
                timers = list(self._trailing.values())
                self._trailing.clear()
            else:
                timer = self._trailing.pop(path, None)
                timers = [timer] if timer is not None else []
        for timer in timers:
            timer.cancel()

    def _deliver(self, event: ChangeEvent) -> None:
        try:
            self._on_changed(event)
        except Exception as exc:
            logger.exception("Change callback failed for %s", event.file_path)
            self.report_error(WatcherError(f"Change callback failed: {exc}", event.file_path))

    def notify(self, raw_path: "str | bytes", kind: ChangeKind) -> None:
        """Deliver an event for *raw_path* if it is one of the watched files."""
        path = self._match(raw_path)
        if path is None:
            return
        if kind is ChangeKind.CHANGED and self._coalesce(path):
            logger.debug("Coalesced duplicate change for %s", path)
            return
        if kind is ChangeKind.REMOVED:
            self._cancel_trailing(path)
            with self._lock:
                self._last_seen.pop(path, None)
        self._on_changed(ChangeEvent(file_path=path, kind=kind))

    def check(self) -> bool:
        """Report observer or emitter threads that have died.

        Returns False when any watch thread is gone. Each dead thread is
        reported once.
        """
        observer = self._observer
        if observer is None:
            return False
        threads = [(observer, None)]
        threads.extend((emitter, emitter.watch.path) for emitter in list(getattr(observer, "emitters", ())))

        healthy = True
        for thread, directory in threads:
            if thread.is_alive():
                continue
            healthy = False
            label = directory or "observer"
            if label in self._dead:
                continue
            self._dead.add(label)
            self.report_error(WatcherError(f"Watch thread for {label} stopped", directory))
        return healthy

    def report_error(self, error: WatcherError) -> None:
        logger.warning("%s", error)
        if self._on_error is None:
            return
        self._on_error(error)
