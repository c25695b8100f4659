"""Process-wide notification channel shared by every component.

Components receive an :class:`Emitter` explicitly instead of writing to
stdout/stderr, so tests can inspect ``history`` and the CLI can decide how to
present each kind of message.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, DefaultDict, List, Tuple

logger = logging.getLogger(__name__)

ERROR = "error"
WARN = "warn"
LOG = "log"
DONE = "done"
WRITE = "write"

EVENT_KINDS = (ERROR, WARN, LOG, DONE, WRITE)

Listener = Callable[[object], None]


@dataclass(frozen=True)
class Notification:
    kind: str
    message: object


class Emitter:
    """Thread-safe, append-only event sink with per-kind listeners.

    Deliveries are serialized: a message is recorded and handed to every
    listener before the next ``emit`` proceeds, so concurrent render tasks and
    the watcher thread never interleave partial output.
    """

    def __init__(self, keep_history: bool = True) -> None:
        self._lock = threading.RLock()
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)
        self._history: List[Notification] = []
        self._keep_history = keep_history

    def on(self, kind: str, listener: Listener) -> None:
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind '{kind}'")
        with self._lock:
            self._listeners[kind].append(listener)

    def off(self, kind: str, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners.get(kind, []):
                self._listeners[kind].remove(listener)

    def emit(self, kind: str, message: object = None) -> None:
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind '{kind}'")
        with self._lock:
            if self._keep_history:
                self._history.append(Notification(kind, message))
            listeners = list(self._listeners.get(kind, ()))
            for listener in listeners:
                try:
                    listener(message)
                except Exception:
                    logger.exception("Listener for '%s' failed", kind)

    def error(self, message: object) -> None:
        self.emit(ERROR, message)

    def warn(self, message: object) -> None:
        self.emit(WARN, message)

    def log(self, message: object) -> None:
        self.emit(LOG, message)

    def done(self, message: object = None) -> None:
        self.emit(DONE, message)

    @property
    def history(self) -> List[Tuple[str, object]]:
        with self._lock:
            return [(n.kind, n.message) for n in self._history]

    def messages(self, kind: str) -> List[object]:
        with self._lock:
            return [n.message for n in self._history if n.kind == kind]
