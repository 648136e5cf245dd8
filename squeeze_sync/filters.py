"""
Path-exclusion filters.

A filter line is either ``rx:<regex>`` (compiled as-is) or a glob pattern
translated to a regular expression that matches from the start of any path
component:

    ``**/`` at the start   -> any leading directories (or none)
    ``/**`` before ``/``   -> any trailing path (or none)
    ``**``                 -> anything, ``/`` included
    ``*``                  -> anything except ``/``

A glob that matches a directory also excludes everything below it, so
``build`` excludes ``build/x/y`` and ``src/build/x`` as well.

Paths are matched relative to the sync roots, with ``/`` separators.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Pattern, Tuple

from .errors import FilterFileError, InvalidPatternError

REGEX_PREFIX = "rx:"

# Applied in order to the re.escape()'d glob. Each rule rewrites the
# escaped form (``\*``) of the wildcard it targets.
_GLOB_RULES: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"^\\\*\\\*(?:$|/)"), "(.+($|/))?"),
    (re.compile(r"/\\\*\\\*(?=$|/)"), "(/.+)?"),
    (re.compile(r"\\\*\\\*"), "(.+)?"),
    (re.compile(r"\\\*"), "([^/]+)?"),
)


def glob_to_regex(pattern: str) -> str:
    """
    Translate a glob pattern into regex source.

    Example:
        >>> glob_to_regex("**/node_modules/**")
        '^(.+($|/))?node_modules(/.+)?(/|$)'
        >>> glob_to_regex("*.tmp")
        '(^|/)([^/]+)?\\.tmp(/|$)'
    """
    body = pattern.replace("\\", "/").rstrip("/")
    body = re.escape(body)
    # A leading ``**/`` already covers any depth; everything else may start
    # at any path component
    anchor = "^" if _GLOB_RULES[0][0].match(body) else "(^|/)"
    for rule, replacement in _GLOB_RULES:
        body = rule.sub(lambda _m, r=replacement: r, body)
    return f"{anchor}{body}(/|$)"


def compile_pattern(line: str) -> Pattern[str]:
    """
    Compile one filter line into a path predicate.

    Args:
        line: ``rx:<regex>`` or a glob pattern

    Returns:
        Compiled regular expression, matched with ``search``

    Raises:
        InvalidPatternError: If the resulting expression does not compile
    """
    line = line.strip()
    if line.startswith(REGEX_PREFIX):
        source = line[len(REGEX_PREFIX):].strip()
    else:
        source = glob_to_regex(line)

    try:
        return re.compile(source)
    except re.error as e:
        raise InvalidPatternError(f"The filter regexp '{source}' is not valid: {e}")


def read_filter_lines(path: str) -> List[str]:
    """Read the usable lines of a filter file (no blanks, no ``#`` comments)."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        raise FilterFileError(f"The filter file '{path}' does not exist")
    except OSError as e:
        raise FilterFileError(f"The filter file '{path}' cannot be read: {e}")

    lines: List[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if line and not line.startswith("#"):
            lines.append(line)
    return lines


class FilterSet:
    """
    Ordered set of compiled exclusion predicates.

    A path is excluded when any predicate matches. Order only affects how
    soon the check short-circuits.

    Example:
        >>> filters = FilterSet(["**/node_modules/**"])
        >>> filters.is_excluded("a/node_modules/x")
        True
        >>> filters.is_excluded("a/node_modules_other/x")
        False
    """

    def __init__(self, lines: Optional[Iterable[str]] = None) -> None:
        self._predicates: List[Pattern[str]] = []
        for line in lines or ():
            self.add(line)

    @classmethod
    def from_file(cls, path: str) -> "FilterSet":
        """Build a filter set from every pattern line in *path*."""
        return cls(read_filter_lines(path))

    def add(self, line: str) -> Pattern[str]:
        """Compile *line* and append it."""
        predicate = compile_pattern(line)
        self._predicates.append(predicate)
        return predicate

    def add_file(self, path: str) -> int:
        """Append every pattern of a filter file; returns how many were added."""
        lines = read_filter_lines(path)
        for line in lines:
            self.add(line)
        return len(lines)

    def exclude_subtree(self, rel_path: str) -> None:
        """Exclude every descendant of *rel_path* (but not the path itself)."""
        rel_path = rel_path.replace("\\", "/").strip("/")
        self._predicates.append(re.compile(f"^{re.escape(rel_path)}/"))

    def is_excluded(self, rel_path: str) -> bool:
        for predicate in self._predicates:
            if predicate.search(rel_path):
                return True
        return False

    def __iter__(self) -> Iterator[Pattern[str]]:
        return iter(self._predicates)

    def __len__(self) -> int:
        return len(self._predicates)

    def __repr__(self) -> str:
        return f"FilterSet({[p.pattern for p in self._predicates]!r})"
