"""Public entry points for recursive directory watching."""

import os
from typing import List, Optional

from .channel import Channel
from .config import WatcherConfig
from .exceptions import ClosedError
from .manager import RecursiveWatchManager
from .models import DirFilter


class Watcher:
    """
    Recursive directory watcher.

    Events arrive on ``events`` and asynchronous errors on ``errors``.
    Both channels end once close() has been called and the background
    thread has finished tearing down.

    The error channel is unbuffered: an unread error blocks the background
    thread, and with it all watch maintenance, so readers must drain both
    channels (cli.consume does this).

    Example:
        with new_buffered_watcher(100) as watcher:
            watcher.add_recursive("src")
            while True:
                try:
                    print(watcher.events.get(timeout=0.1))
                except queue.Empty:
                    pass
                except ChannelClosedError:
                    break
                try:
                    print("error:", watcher.errors.get_nowait())
                except (queue.Empty, ChannelClosedError):
                    pass
    """

    def __init__(self, manager: RecursiveWatchManager):
        self._manager = manager

    @property
    def events(self) -> Channel:
        """Channel of Event objects."""
        return self._manager.events

    @property
    def errors(self) -> Channel:
        """Channel of exceptions the background thread could not act on."""
        return self._manager.errors

    @property
    def is_closed(self) -> bool:
        return self._manager.is_closed

    def _check_open(self) -> None:
        if self._manager.is_closed:
            raise ClosedError("Watcher instance already closed")

    def add(self, path) -> None:
        """
        Start watching the named file or directory (non-recursively).

        Raises:
            ClosedError: If the watcher is closed
        """
        self._check_open()
        self._manager.add(os.fspath(path))

    def add_recursive(self, root, dir_filter: Optional[DirFilter] = None) -> None:
        """
        Start watching the named directory and all sub-directories.

        The filter only applies to this walk; directories created later
        are always watched.

        Args:
            root: Directory to watch
            dir_filter: Called with (path, stat_result); False skips the
                directory and everything below it

        Raises:
            ClosedError: If the watcher is closed
            WalkError: If the tree cannot be traversed
        """
        self._check_open()
        self._manager.add_recursive(os.fspath(root), dir_filter)

    def remove(self, path) -> None:
        """
        Stop watching the named file or directory (non-recursively).

        Raises:
            ClosedError: If the watcher is closed
            WatchNotFoundError: If the path is not watched
        """
        self._check_open()
        self._manager.remove(os.fspath(path))

    def remove_recursive(self, root) -> None:
        """
        Stop watching the named directory and all sub-directories.

        Directories below the root that have no watch are skipped.

        Raises:
            ClosedError: If the watcher is closed
            WatchNotFoundError: If the root itself is not watched
            WalkError: If the tree cannot be traversed
        """
        self._check_open()
        self._manager.remove_recursive(os.fspath(root))

    def watched_paths(self) -> List[str]:
        """
        Get the currently watched paths.

        Returns:
            Sorted list of normalized paths
        """
        return self._manager.watched_paths()

    def close(self) -> None:
        """Stop watching and close the channels. Safe to call repeatedly."""
        self._manager.close()

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Block until the channels have been closed."""
        return self._manager.wait_closed(timeout)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def new_watcher(config: Optional[WatcherConfig] = None) -> Watcher:
    """
    Create a watcher whose event channel is unbuffered.

    Raises:
        PrimitiveInitError: If the filesystem observer cannot be started
    """
    return Watcher(RecursiveWatchManager(0, config))


def new_buffered_watcher(capacity: int, config: Optional[WatcherConfig] = None) -> Watcher:
    """
    Create a watcher whose event channel holds up to ``capacity`` events.

    Raises:
        ValueError: If capacity is not a positive integer
        PrimitiveInitError: If the filesystem observer cannot be started
    """
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
        raise ValueError(f"capacity must be a positive integer: {capacity!r}")
    return Watcher(RecursiveWatchManager(capacity, config))
