"""Import statement extraction and import target resolution for Sass sources.

Handles both syntaxes:
- SCSS (``.scss``): directives end at ``;`` and may span several lines
- Indented syntax (``.sass``): directives end at the line break

``@import``, ``@use`` and ``@forward`` all create graph edges. Plain CSS
imports (``url(...)``, remote URLs, ``*.css``) and ``sass:`` built-in modules
are left to the compiler and never resolved against the filesystem.
"""

from __future__ import annotations

import bisect
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from .config import SASS_EXTENSIONS, SKIP_DIRS

logger = logging.getLogger(__name__)

_SCSS_DIRECTIVE = re.compile(r"@(import|use|forward)\s+([^;{}]+)")
_SASS_DIRECTIVE = re.compile(r"^[ \t]*@(import|use|forward)[ \t]+([^\n]+)", re.MULTILINE)
_QUOTED = re.compile(r"""^(["'])(.*?)\1""")
_SCHEME = re.compile(r"^(?:[a-zA-Z][a-zA-Z0-9+.-]*:)?//")


@dataclass
class ParsedFile:
    path: str
    targets: List[str] = field(default_factory=list)
    resolved: List[str] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)


# ===================================================================
# Source scanning
# ===================================================================

def strip_comments(source: str) -> str:
    """Remove ``//`` and ``/* */`` comments, leaving string literals intact.

    Line breaks inside block comments are kept so the indented syntax still
    sees the same line structure.
    """
    out: List[str] = []
    i = 0
    n = len(source)
    quote: Optional[str] = None
    while i < n:
        ch = source[i]
        if quote:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(source[i + 1])
                i += 2
                continue
            if ch == quote:
                quote = None
            i += 1
            continue
        if ch in ("'", '"'):
            quote = ch
            out.append(ch)
            i += 1
            continue
        if source.startswith("/*", i):
            end = source.find("*/", i + 2)
            end = n if end == -1 else end + 2
            out.append("\n" * source.count("\n", i, end))
            i = end
            continue
        if source.startswith("//", i) and not _is_url_context(source, i):
            end = source.find("\n", i)
            i = n if end == -1 else end
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _is_url_context(source: str, pos: int) -> bool:
    # ``url(http://...)`` unquoted
    line_start = source.rfind("\n", 0, pos) + 1
    prefix = source[line_start:pos]
    return prefix.rstrip().endswith(":") or "url(" in prefix[prefix.rfind(")") + 1:]


def _split_targets(arguments: str) -> Iterator[str]:
    """Split an ``@import`` argument list on commas outside quotes and parens."""
    depth = 0
    quote: Optional[str] = None
    current: List[str] = []
    for ch in arguments:
        if quote:
            current.append(ch)
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        elif ch == "," and depth == 0:
            yield "".join(current).strip()
            current = []
            continue
        current.append(ch)
    tail = "".join(current).strip()
    if tail:
        yield tail


def _string_spans(text: str) -> List[Tuple[int, int]]:
    """Return ``(start, end)`` offsets of every quoted string literal.

    Unescaped strings cannot span lines, so a stray quote only hides the rest
    of its own line.
    """
    spans: List[Tuple[int, int]] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch not in ("'", '"'):
            i += 1
            continue
        start = i
        i += 1
        while i < n and text[i] != ch and text[i] != "\n":
            i += 2 if text[i] == "\\" else 1
        spans.append((start, min(i + 1, n)))
        i += 1
    return spans


def _inside_string(pos: int, spans: List[Tuple[int, int]], starts: List[int]) -> bool:
    index = bisect.bisect_right(starts, pos) - 1
    return index >= 0 and spans[index][0] < pos < spans[index][1]


def _target_from_argument(argument: str, media_queries: bool = False) -> Optional[str]:
    """Extract the URL of one directive argument.

    With *media_queries*, anything after the URL makes it a plain CSS
    ``@import`` (``@import "print" print;``), which the compiler leaves alone.
    """
    if not argument or argument.lower().startswith("url("):
        return None
    match = _QUOTED.match(argument)
    if match:
        if media_queries and argument[match.end():].strip():
            return None
        return match.group(2)
    # unquoted target, indented syntax only
    words = argument.split()
    if media_queries and len(words) > 1:
        return None
    return words[0]


def is_css_import(target: str) -> bool:
    """Return True for imports the compiler passes through as plain CSS."""
    return (
        not target
        or target.startswith("sass:")
        or target.endswith(".css")
        or bool(_SCHEME.match(target))
    )


def parse_imports(source: str, indented: bool = False) -> List[str]:
    """Return import targets in source order, without duplicates."""
    text = strip_comments(source)
    pattern = _SASS_DIRECTIVE if indented else _SCSS_DIRECTIVE
    spans = _string_spans(text)
    starts = [start for start, _ in spans]

    targets: List[str] = []
    for match in pattern.finditer(text):
        if _inside_string(match.start(1) - 1, spans, starts):
            continue
        directive, arguments = match.group(1), match.group(2).strip()
        if directive == "import":
            candidates = [
                _target_from_argument(arg, media_queries=True) for arg in _split_targets(arguments)
            ]
        else:
            # @use "x" as y / @forward "x" show a, b: only the URL matters
            candidates = [_target_from_argument(arguments)]

        for target in candidates:
            if target is None or is_css_import(target):
                continue
            if target not in targets:
                targets.append(target)
    return targets


# ===================================================================
# Resolution
# ===================================================================

def candidate_names(target: str, extensions: Sequence[str] = SASS_EXTENSIONS) -> Iterator[str]:
    """Relative file names that may satisfy *target*, most specific first."""
    dirname, name = os.path.split(target)
    _, ext = os.path.splitext(name)

    if ext and ext[1:] in extensions:
        yield target
        if not name.startswith("_"):
            yield os.path.join(dirname, f"_{name}")
        return

    for extension in extensions:
        yield f"{target}.{extension}"
        if not name.startswith("_"):
            yield os.path.join(dirname, f"_{name}.{extension}")
    for extension in extensions:
        yield os.path.join(target, f"index.{extension}")
        yield os.path.join(target, f"_index.{extension}")


def resolve_import(
    target: str,
    importer: str,
    include_paths: Sequence[str] = (),
    extensions: Sequence[str] = SASS_EXTENSIONS,
) -> Optional[str]:
    """Resolve *target* to an absolute path or ``None``.

    Search order is the importer's own directory, then every include path in
    the order given; within one root the first existing candidate wins.
    """
    roots = [os.path.dirname(importer), *include_paths]
    for root in roots:
        for name in candidate_names(target, extensions):
            candidate = os.path.normpath(os.path.join(os.path.abspath(root), name))
            if os.path.isfile(candidate):
                return candidate
    return None


# ===================================================================
# Discovery
# ===================================================================

def discover_files(
    root: Path,
    recursive: bool = True,
    extensions: Iterable[str] = SASS_EXTENSIONS,
) -> List[str]:
    """List stylesheet files under *root*, sorted, skipping tool directories."""
    found: List[str] = []
    glob = root.rglob if recursive else root.glob
    for extension in extensions:
        for file_path in glob(f"*.{extension}"):
            if not file_path.is_file():
                continue
            relative = file_path.relative_to(root)
            if any(part in SKIP_DIRS for part in relative.parts[:-1]):
                continue
            found.append(os.path.normpath(str(file_path.absolute())))
    return sorted(set(found))


class ImportParser:
    """Parses stylesheet files and resolves their imports against load paths."""

    def __init__(
        self,
        include_paths: Sequence[str] = (),
        extensions: Sequence[str] = SASS_EXTENSIONS,
    ) -> None:
        self.include_paths = [os.path.abspath(p) for p in include_paths]
        self.extensions = tuple(extensions)

    def parse_file(self, file_path: str, source: Optional[str] = None) -> ParsedFile:
        if source is None:
            source = Path(file_path).read_text(encoding="utf-8", errors="ignore")

        parsed = ParsedFile(path=file_path)
        parsed.targets = parse_imports(source, indented=file_path.endswith(".sass"))
        for target in parsed.targets:
            resolved = resolve_import(target, file_path, self.include_paths, self.extensions)
            if resolved is None:
                parsed.unresolved.append(target)
                continue
            logger.debug("Resolved '%s' in %s -> %s", target, file_path, resolved)
            if resolved not in parsed.resolved:
                parsed.resolved.append(resolved)
        return parsed

