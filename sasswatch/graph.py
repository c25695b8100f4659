"""Import graph over a tree of stylesheet files.

The graph keeps a forward index (file -> files it imports) and a reverse index
(file -> files importing it). Both are written together by
:meth:`DependencyGraph.add_edge`, so ancestor lookups only touch the files they
return.
"""

from __future__ import annotations

import logging
import os
import warnings
from collections import deque
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .config import SASS_EXTENSIONS
from .emitter import Emitter
from .errors import GraphBuildError, UnresolvedImportWarning
from .models import ImportEdge, StylesheetFile, normalize_path
from .parser import ImportParser, discover_files

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Stylesheet files and the import edges between them."""

    def __init__(self, root: str = "", include_paths: Sequence[str] = ()) -> None:
        self.root = root
        self.include_paths = list(include_paths)
        self.warnings: List[UnresolvedImportWarning] = []
        self._nodes: Dict[str, StylesheetFile] = {}
        self._imports: Dict[str, List[str]] = {}
        self._importers: Dict[str, List[str]] = {}
        self._frozen = False

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_file(self, path: str) -> StylesheetFile:
        self._check_mutable()
        key = normalize_path(path)
        node = self._nodes.get(key)
        if node is None:
            node = StylesheetFile.from_path(key)
            self._nodes[key] = node
            self._imports[key] = []
            self._importers[key] = []
        return node

    def add_edge(self, importer: str, imported: str) -> None:
        self._check_mutable()
        src = self.add_file(importer).path
        dst = self.add_file(imported).path
        if dst not in self._imports[src]:
            self._imports[src].append(dst)
            self._importers[dst].append(src)

    def freeze(self) -> "DependencyGraph":
        self._frozen = True
        return self

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("DependencyGraph is read-only after construction")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __contains__(self, path: object) -> bool:
        return isinstance(path, (str, os.PathLike)) and normalize_path(path) in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[StylesheetFile]:
        return iter(self._nodes.values())

    def get(self, path: str) -> Optional[StylesheetFile]:
        return self._nodes.get(normalize_path(path))

    def paths(self) -> List[str]:
        """Every node path, in discovery order."""
        return list(self._nodes)

    def imports_of(self, path: str) -> Tuple[str, ...]:
        return tuple(self._imports.get(normalize_path(path), ()))

    def importers_of(self, path: str) -> Tuple[str, ...]:
        return tuple(self._importers.get(normalize_path(path), ()))

    def edges(self) -> List[ImportEdge]:
        return [
            ImportEdge(importer=src, imported=dst)
            for src, targets in self._imports.items()
            for dst in targets
        ]

    def is_consistent(self) -> bool:
        """True when the forward and reverse indices mirror each other exactly."""
        forward = {(src, dst) for src, targets in self._imports.items() for dst in targets}
        reverse = {(src, dst) for dst, sources in self._importers.items() for src in sources}
        return forward == reverse


# ===================================================================
# Traversal
# ===================================================================

def _walk(start: str, neighbours) -> List[str]:
    origin = normalize_path(start)
    order = [origin]
    seen = {origin}
    queue = deque([origin])

    while queue:
        current = queue.popleft()
        for nxt in neighbours(current):
            if nxt not in seen:
                seen.add(nxt)
                order.append(nxt)
                queue.append(nxt)
    return order


def ancestors_of(graph: DependencyGraph, file_path: str) -> List[str]:
    """Return *file_path* followed by every file that transitively imports it.

    Each file appears once even when it is reachable through several import
    chains, and import cycles terminate. The first element is always
    *file_path* itself, even if it is not part of the graph.
    """
    return _walk(file_path, graph.importers_of)


def descendants_of(graph: DependencyGraph, file_path: str) -> List[str]:
    """Return *file_path* followed by every file it transitively imports."""
    return _walk(file_path, graph.imports_of)


# ===================================================================
# Builder
# ===================================================================

def _scan_root(root: Path) -> Path:
    if not root.exists():
        raise GraphBuildError(str(root), "path does not exist")
    scan_root = root.parent if root.is_file() else root
    if not os.access(scan_root, os.R_OK | os.X_OK):
        raise GraphBuildError(str(root), "directory is not readable")
    if root.is_file() and not os.access(root, os.R_OK):
        raise GraphBuildError(str(root), "file is not readable")
    return scan_root


def build_graph(
    root_path: "str | os.PathLike[str]",
    include_paths: Sequence[str] = (),
    recursive: bool = True,
    extensions: Sequence[str] = SASS_EXTENSIONS,
    emitter: Optional[Emitter] = None,
) -> DependencyGraph:
    """Scan *root_path* and build the import graph of every stylesheet found.

    A file root scans its containing directory. Imports that resolve outside
    the scanned tree (typically through *include_paths*) are followed and
    become nodes too. Unresolved imports are reported as
    :class:`UnresolvedImportWarning` and leave the importer's other edges
    intact.

    Raises:
        GraphBuildError: *root_path* does not exist or cannot be read.
    """
    root = Path(root_path).absolute()
    scan_root = _scan_root(root)

    try:
        discovered = discover_files(scan_root, recursive=recursive, extensions=extensions)
    except OSError as exc:
        raise GraphBuildError(str(root), str(exc)) from exc

    if root.is_file() and normalize_path(root) not in discovered:
        discovered.append(normalize_path(root))

    parser = ImportParser(include_paths, extensions)
    graph = DependencyGraph(root=normalize_path(root), include_paths=parser.include_paths)
    for path in discovered:
        graph.add_file(path)

    queue = deque(discovered)
    parsed = set()
    while queue:
        path = queue.popleft()
        if path in parsed:
            continue
        parsed.add(path)

        try:
            result = parser.parse_file(path)
        except OSError as exc:
            logger.warning("Could not read %s: %s", path, exc)
            continue

        for target in result.unresolved:
            warning = UnresolvedImportWarning(path, target)
            graph.warnings.append(warning)
            logger.warning("%s", warning)
            warnings.warn(warning, stacklevel=2)
            if emitter is not None:
                emitter.warn(str(warning))

        for imported in result.resolved:
            graph.add_edge(path, imported)
            if imported not in parsed:
                queue.append(imported)

    logger.debug(
        "Import graph for %s: %d files, %d edges", scan_root, len(graph), len(graph.edges())
    )
    return graph.freeze()
