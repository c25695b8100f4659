"""Exceptions raised by the graph builder, watcher and render pipeline."""

from __future__ import annotations

from typing import Optional


class SassWatchError(Exception):
    """Base class for sasswatch failures."""


class GraphBuildError(SassWatchError):
    """Raised when the root path is missing or unreadable."""

    def __init__(self, root: str, reason: str = "") -> None:
        self.root = root
        self.reason = reason
        message = f"Cannot build import graph for '{root}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnresolvedImportWarning(UserWarning):
    """An import target did not match any file in the search roots."""

    def __init__(self, importer: str, target: str) -> None:
        self.importer = importer
        self.target = target
        super().__init__(f"Cannot resolve import '{target}' in {importer}")


class WatcherError(SassWatchError):
    """Filesystem watch failure (permissions, watch limits, observer crash)."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.path = path
        super().__init__(message)


class RenderError(SassWatchError):
    """The render collaborator failed for *src*."""

    def __init__(self, src: str, message: str) -> None:
        self.src = src
        super().__init__(message)


__all__ = [
    "GraphBuildError",
    "RenderError",
    "SassWatchError",
    "UnresolvedImportWarning",
    "WatcherError",
]
