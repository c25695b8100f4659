"""Core data models shared by the graph builder, watcher and dispatcher."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class StylesheetFile:
    path: str
    is_partial: bool = False

    @classmethod
    def from_path(cls, path: str) -> "StylesheetFile":
        normalized = normalize_path(path)
        return cls(path=normalized, is_partial=is_partial(normalized))


@dataclass(frozen=True)
class ImportEdge:
    importer: str
    imported: str


@dataclass
class RenderOptions:
    """Options handed to the render collaborator for a single file.

    ``extensions`` is an opaque object (custom functions, importers) that is
    passed through untouched.
    """

    src: str = ""
    dest: str = ""
    include_paths: List[str] = field(default_factory=list)
    output_style: str = "expanded"
    source_map: bool = False
    source_map_path: Optional[str] = None
    indented_syntax: bool = False
    precision: int = 10
    source_comments: bool = False
    extensions: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def evolve(self, **changes: Any) -> "RenderOptions":
        """Return a copy with *changes* applied; list/dict fields are copied."""
        changes.setdefault("include_paths", list(self.include_paths))
        changes.setdefault("extra", dict(self.extra))
        return replace(self, **changes)


class ChangeKind(str, Enum):
    CHANGED = "changed"
    REMOVED = "removed"
    ERROR = "error"


@dataclass(frozen=True)
class ChangeEvent:
    file_path: str
    kind: ChangeKind = ChangeKind.CHANGED
    error: Optional[BaseException] = None


def normalize_path(path: "str | os.PathLike[str]") -> str:
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def is_partial(path: "str | os.PathLike[str]") -> bool:
    return os.path.basename(os.fspath(path)).startswith("_")
