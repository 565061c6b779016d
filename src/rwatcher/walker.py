"""Directory tree walking for recursive watch registration."""

import os
import stat
from typing import FrozenSet, Iterator, Optional, Tuple

from .exceptions import WalkError
from .models import DirFilter


def walk_dirs(
    root: str,
    dir_filter: Optional[DirFilter] = None,
    follow_symlinks: bool = False,
) -> Iterator[str]:
    """
    Yield every directory under ``root``, pre-order depth-first.

    ``root`` itself comes first and children are visited in name order.
    Paths are joined onto ``root`` as given, so a relative root produces
    relative paths. Non-directory entries are skipped. A directory that is
    one of its own ancestors (a symlink loop) is not entered again.

    Args:
        root: Directory to start from
        dir_filter: Called for each directory; False skips it and its subtree
        follow_symlinks: Whether to descend into symlinked directories

    Yields:
        Directory paths accepted by the filter

    Raises:
        WalkError: If a directory cannot be stat'ed or listed
    """
    root = os.fspath(root)
    try:
        info = os.stat(root) if follow_symlinks else os.lstat(root)
    except OSError as e:
        raise WalkError(root, f"Cannot stat {e.strerror or e}") from e

    if not stat.S_ISDIR(info.st_mode):
        return

    yield from _walk(root, info, dir_filter, follow_symlinks, frozenset())


def _walk(
    path: str,
    info: os.stat_result,
    dir_filter: Optional[DirFilter],
    follow_symlinks: bool,
    ancestors: FrozenSet[Tuple[int, int]],
) -> Iterator[str]:
    # Only symlinks can form loops; st_ino is 0 where the platform does not report it.
    identity = (info.st_dev, info.st_ino) if follow_symlinks and info.st_ino else None
    if identity is not None and identity in ancestors:
        return
    if dir_filter is not None and not dir_filter(path, info):
        return

    yield path

    try:
        with os.scandir(path) as it:
            entries = sorted(it, key=lambda entry: entry.name)
    except OSError as e:
        raise WalkError(path, f"Cannot read directory {e.strerror or e}") from e

    if identity is not None:
        ancestors = ancestors | {identity}
    for entry in entries:
        try:
            if not entry.is_dir(follow_symlinks=follow_symlinks):
                continue
            child_info = entry.stat(follow_symlinks=follow_symlinks)
        except OSError as e:
            raise WalkError(entry.path, f"Cannot stat {e.strerror or e}") from e

        yield from _walk(entry.path, child_info, dir_filter, follow_symlinks, ancestors)
