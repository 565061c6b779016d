"""Ready-made directory filters for recursive adds."""

import fnmatch
import os
from typing import Iterable, List, Optional

from .models import DirFilter


DEFAULT_IGNORE_PATTERNS: List[str] = [
    ".git",
    ".hg",
    ".svn",
    "__pycache__",
    "node_modules",
    ".venv",
]


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    """
    Check if a path matches any glob pattern.

    A pattern is tried against the entry name, against the path as a
    suffix (``*/pattern``) and against the whole path.

    Args:
        path: Path to check
        patterns: Glob patterns

    Returns:
        True if any pattern matches
    """
    name = os.path.basename(os.path.normpath(path))

    for pattern in patterns:
        if fnmatch.fnmatch(name, pattern):
            return True
        if fnmatch.fnmatch(path, f"*/{pattern}"):
            return True
        if fnmatch.fnmatch(path, pattern):
            return True

    return False


def ignore_filter(patterns: Optional[Iterable[str]] = None) -> DirFilter:
    """
    Build a filter that rejects directories matching any pattern.

    Args:
        patterns: Glob patterns (defaults to DEFAULT_IGNORE_PATTERNS)

    Returns:
        A DirFilter usable with Watcher.add_recursive
    """
    patterns = list(DEFAULT_IGNORE_PATTERNS if patterns is None else patterns)

    def dir_filter(path: str, info: os.stat_result) -> bool:
        return not matches_any(path, patterns)

    return dir_filter
