"""
Recursive Watcher Package

Recursive directory-tree change notification built on non-recursive,
single-directory watches.

Features:
- Initial walk of a tree with optional directory filter
- Watches added for new subdirectories and dropped for removed ones
- One ordered event channel and one error channel per watcher
- Unbuffered or buffered event delivery with backpressure
- Idempotent close with end-of-stream on both channels
"""

from .models import Op, Event, DirFilter

from .config import WatcherConfig

from .exceptions import (
    WatcherError,
    PrimitiveInitError,
    ClosedError,
    WalkError,
    WatchError,
    WatchNotFoundError,
    ChannelClosedError,
)

from .channel import Channel
from .walker import walk_dirs
from .fs_watcher import DirectoryWatcher, FSEventHandler, create_directory_watcher
from .manager import RecursiveWatchManager
from .filters import ignore_filter, matches_any, DEFAULT_IGNORE_PATTERNS
from .watcher import Watcher, new_watcher, new_buffered_watcher


__all__ = [
    # Models
    "Op",
    "Event",
    "DirFilter",
    # Config
    "WatcherConfig",
    # Exceptions
    "WatcherError",
    "PrimitiveInitError",
    "ClosedError",
    "WalkError",
    "WatchError",
    "WatchNotFoundError",
    "ChannelClosedError",
    # Components
    "Channel",
    "walk_dirs",
    "DirectoryWatcher",
    "FSEventHandler",
    "create_directory_watcher",
    "RecursiveWatchManager",
    "ignore_filter",
    "matches_any",
    "DEFAULT_IGNORE_PATTERNS",
    # Public API
    "Watcher",
    "new_watcher",
    "new_buffered_watcher",
]

__version__ = "0.1.0"
