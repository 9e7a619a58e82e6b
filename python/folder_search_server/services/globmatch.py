"""Segment-aware glob matching for exclusion patterns.

Patterns are split on ``/`` and matched segment by segment:

- ``**`` matches any number of path segments, including none
- ``*`` matches any run of characters inside one segment
- ``?`` matches exactly one character inside one segment

Everything else is literal (``.`` included). Backslashes in paths are
treated as separators so Windows paths match the same patterns.
"""
from fnmatch import fnmatchcase
from functools import lru_cache
from pathlib import PurePath
from typing import Iterable, List, Tuple, Union


def split_segments(path: Union[str, PurePath]) -> Tuple[str, ...]:
    """Normalize separators and split a path into non-empty segments."""
    normalized = str(path).replace("\\", "/")
    return tuple(segment for segment in normalized.split("/") if segment and segment != ".")


@lru_cache(maxsize=256)
def _compile(pattern: str) -> Tuple[str, ...]:
    segments = split_segments(pattern)
    # Collapse runs of ** so matching stays linear in the common case
    collapsed: List[str] = []
    for segment in segments:
        if segment == "**" and collapsed and collapsed[-1] == "**":
            continue
        collapsed.append(segment)
    return tuple(collapsed)


def _match_segments(pattern: Tuple[str, ...], path: Tuple[str, ...]) -> bool:
    memo = {}

    def match(p: int, s: int) -> bool:
        key = (p, s)
        if key in memo:
            return memo[key]

        if p == len(pattern):
            result = s == len(path)
        elif pattern[p] == "**":
            # Let ** swallow zero or more segments
            result = any(match(p + 1, k) for k in range(s, len(path) + 1))
        elif s == len(path):
            result = False
        else:
            result = fnmatchcase(path[s], pattern[p]) and match(p + 1, s + 1)

        memo[key] = result
        return result

    return match(0, 0)


def glob_match(pattern: str, path: Union[str, PurePath]) -> bool:
    """Return True if the whole path matches the glob pattern."""
    return _match_segments(_compile(pattern), split_segments(path))


class GlobMatcher:
    """A set of exclusion patterns tested against root-relative paths."""

    def __init__(self, patterns: Iterable[str] = ()):
        self.patterns = [pattern for pattern in patterns if pattern]

    def matches(self, path: Union[str, PurePath]) -> bool:
        """Return True if any pattern matches the path."""
        segments = split_segments(path)
        if not segments:
            return False
        return any(_match_segments(_compile(pattern), segments) for pattern in self.patterns)

    def __repr__(self) -> str:
        return f"GlobMatcher({self.patterns!r})"
