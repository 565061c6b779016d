"""Non-recursive single-directory watches using the watchdog library."""

import errno
import logging
import os
import queue
import sys
import threading
from typing import Dict, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch
from watchdog.observers.polling import PollingObserver

from .config import WatcherConfig
from .exceptions import PrimitiveInitError, WatchError, WatchNotFoundError
from .models import Event, Op


logger = logging.getLogger(__name__)


def normalize(path) -> str:
    """Key used for a path in the watch table."""
    return os.path.normpath(os.fsdecode(path))


def reported_by_parent(owner, watch_key: str) -> bool:
    """Check if the parent of a watched path is watched too, and so reports its changes."""
    parent = normalize(os.path.dirname(watch_key) or os.curdir)
    return parent != watch_key and owner.is_watching(parent)


def create_directory_watcher(config: Optional[WatcherConfig] = None):
    """
    Create the primitive for this platform and configuration.

    On Linux the native backend shares one inotify instance across all
    watches; elsewhere, and whenever polling is requested, watchdog
    observers are used.

    Raises:
        PrimitiveInitError: If the backend cannot be started
    """
    config = config or WatcherConfig()
    if not config.use_polling and sys.platform.startswith("linux"):
        from .inotify_watcher import InotifyDirectoryWatcher
        return InotifyDirectoryWatcher(config)
    return DirectoryWatcher(config)


class FSEventHandler(FileSystemEventHandler):
    """Handler that converts watchdog events for one watched directory to Event."""

    def __init__(self, owner: "DirectoryWatcher", watch_path: str):
        super().__init__()
        self.owner = owner
        self.watch_path = watch_path

    def dispatch(self, event: FileSystemEvent) -> None:
        try:
            super().dispatch(event)
        except Exception as e:
            self.owner.errors.put(e)

    def _emit(self, path, op: Op) -> None:
        self.owner.events.put(Event(path=os.fsdecode(path), op=op))

    def _reported_by_parent(self, path) -> bool:
        """Self events are dropped when the parent watch already reports them."""
        if normalize(path) != self.watch_path:
            return False
        return reported_by_parent(self.owner, self.watch_path)

    def on_created(self, event):
        self._emit(event.src_path, Op.CREATE)

    def on_deleted(self, event):
        if self._reported_by_parent(event.src_path):
            return
        self._emit(event.src_path, Op.REMOVE)

    def on_modified(self, event):
        # watchdog flags the parent directory as modified whenever a child changes
        if event.is_directory:
            return
        self._emit(event.src_path, Op.WRITE)

    def on_moved(self, event):
        if self._reported_by_parent(event.src_path):
            return
        self._emit(event.src_path, Op.RENAME)
        if event.dest_path:
            self._emit(event.dest_path, Op.CREATE)


class DirectoryWatcher:
    """
    Watches individual paths, never their subdirectories.

    Each path gets its own non-recursive watchdog watch. Translated events
    and errors are published on two unbounded queues, ``events`` and
    ``errors``, for a single consumer to drain.

    Native watchdog observers open one emitter per watch, which on Linux
    means one inotify instance per directory; create_directory_watcher()
    only picks this class there when polling is requested.
    """

    def __init__(self, config: Optional[WatcherConfig] = None):
        """
        Initialize and start the underlying observer.

        Args:
            config: Watcher configuration

        Raises:
            PrimitiveInitError: If the observer cannot be created or started
        """
        self.config = config or WatcherConfig()
        self.events: "queue.Queue[Event]" = queue.Queue()
        self.errors: "queue.Queue[Exception]" = queue.Queue()
        self._watches: Dict[str, ObservedWatch] = {}
        self._lock = threading.Lock()
        self._closed = False

        try:
            self._observer = self._create_observer()
            self._observer.start()
        except (OSError, RuntimeError) as e:
            raise PrimitiveInitError(f"Unable to start filesystem observer: {e}") from e

    def _create_observer(self) -> BaseObserver:
        if self.config.use_polling:
            return PollingObserver(timeout=self.config.polling_interval)
        return Observer()

    def add(self, path) -> None:
        """
        Start watching a path. Adding a watched path again is a no-op.

        Args:
            path: File or directory to watch

        Raises:
            FileNotFoundError: If the path does not exist
            WatchError: If the watcher is closed
            OSError: If the observer refuses the watch (e.g. watch limit)
        """
        path = os.fsdecode(path)
        key = normalize(path)

        with self._lock:
            if self._closed:
                raise WatchError("Directory watcher is closed")
            if key in self._watches:
                return
            if not os.path.exists(path):
                raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)

            handler = FSEventHandler(self, key)
            self._watches[key] = self._observer.schedule(handler, path, recursive=False)

        logger.debug(f"Watch added: {path}")

    def remove(self, path) -> None:
        """
        Stop watching a path.

        Args:
            path: Path previously passed to add()

        Raises:
            WatchNotFoundError: If no watch exists for the path
        """
        key = normalize(path)

        with self._lock:
            watch = self._watches.pop(key, None)
            if watch is None:
                raise WatchNotFoundError(f"No watch registered for: {os.fsdecode(path)}")
            try:
                self._observer.unschedule(watch)
            except KeyError as e:
                raise WatchNotFoundError(f"Observer has no watch for: {os.fsdecode(path)}") from e

        logger.debug(f"Watch removed: {os.fsdecode(path)}")

    def is_watching(self, path) -> bool:
        """Check if a path currently has a watch."""
        # Lock-free: handlers call this while the observer holds its own lock.
        return normalize(path) in self._watches

    def watched_paths(self) -> List[str]:
        """
        Get the currently watched paths.

        Returns:
            Sorted list of normalized paths
        """
        with self._lock:
            return sorted(self._watches)

    def close(self) -> None:
        """
        Drop all watches and stop the observer thread.

        Raises:
            WatchError: If the observer thread does not stop in time
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._watches.clear()

        self._observer.stop()
        self._observer.join(timeout=self.config.close_timeout)
        if self._observer.is_alive():
            raise WatchError(
                f"Observer thread did not stop within {self.config.close_timeout}s"
            )

    def __len__(self) -> int:
        """Return the number of active watches."""
        with self._lock:
            return len(self._watches)
