"""Non-recursive single-directory watches sharing one inotify instance (Linux)."""

import errno
import logging
import os
import queue
import threading
from typing import Dict, List, Optional

from inotify_simple import INotify, flags

from .config import WatcherConfig
from .exceptions import PrimitiveInitError, WatchError, WatchNotFoundError
from .fs_watcher import normalize, reported_by_parent
from .models import Event, Op


logger = logging.getLogger(__name__)


WATCH_MASK = (
    flags.CREATE
    | flags.MODIFY
    | flags.DELETE
    | flags.DELETE_SELF
    | flags.MOVED_FROM
    | flags.MOVED_TO
    | flags.MOVE_SELF
)


def translate(mask: int) -> Op:
    """Map an inotify event mask to the Op bits it carries."""
    op = Op(0)
    if mask & (flags.CREATE | flags.MOVED_TO):
        op |= Op.CREATE
    if mask & flags.MODIFY:
        op |= Op.WRITE
    if mask & (flags.DELETE | flags.DELETE_SELF):
        op |= Op.REMOVE
    if mask & (flags.MOVED_FROM | flags.MOVE_SELF):
        op |= Op.RENAME
    return op


class InotifyDirectoryWatcher:
    """
    Watches individual paths, never their subdirectories.

    All watches live on a single inotify file descriptor, so the number of
    watched directories is bounded by ``fs.inotify.max_user_watches`` rather
    than by the per-user instance limit. A reader thread translates raw
    events and publishes them on ``events``; read failures and queue
    overflows go to ``errors``.
    """

    def __init__(self, config: Optional[WatcherConfig] = None):
        """
        Initialize the inotify instance and start the reader thread.

        Args:
            config: Watcher configuration

        Raises:
            PrimitiveInitError: If the inotify instance cannot be created
        """
        self.config = config or WatcherConfig()
        self.events: "queue.Queue[Event]" = queue.Queue()
        self.errors: "queue.Queue[Exception]" = queue.Queue()
        self._wds: Dict[str, int] = {}
        self._paths: Dict[int, str] = {}
        self._lock = threading.Lock()
        self._closed = False
        self._stop_event = threading.Event()

        try:
            self._inotify = INotify()
        except OSError as e:
            raise PrimitiveInitError(f"Unable to create inotify instance: {e}") from e

        self._thread = threading.Thread(
            target=self._read_loop,
            name="InotifyReader",
            daemon=True,
        )
        self._thread.start()

    def add(self, path) -> None:
        """
        Start watching a path. Adding a watched path again is a no-op.

        Args:
            path: File or directory to watch

        Raises:
            FileNotFoundError: If the path does not exist
            WatchError: If the watcher is closed
            OSError: If the kernel refuses the watch (e.g. ENOSPC at the watch limit)
        """
        path = os.fsdecode(path)
        key = normalize(path)

        with self._lock:
            if self._closed:
                raise WatchError("Directory watcher is closed")
            if key in self._wds:
                return

            wd = self._inotify.add_watch(path, WATCH_MASK)
            self._wds[key] = wd
            # The same inode reached through another path shares the wd.
            self._paths.setdefault(wd, path)

        logger.debug(f"Watch added: {path} (wd={wd})")

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
            wd = self._wds.pop(key, None)
            if wd is None:
                raise WatchNotFoundError(f"No watch registered for: {os.fsdecode(path)}")

            others = [k for k, other in self._wds.items() if other == wd]
            if others:
                if normalize(self._paths[wd]) == key:
                    self._paths[wd] = others[0]
            else:
                del self._paths[wd]
                self._rm_watch(wd)

        logger.debug(f"Watch removed: {os.fsdecode(path)}")

    def _rm_watch(self, wd: int) -> None:
        try:
            self._inotify.rm_watch(wd)
        except OSError as e:
            # EINVAL: the kernel already dropped it (path deleted or unmounted).
            if e.errno != errno.EINVAL:
                raise

    def is_watching(self, path) -> bool:
        """Check if a path currently has a watch."""
        return normalize(path) in self._wds

    def watched_paths(self) -> List[str]:
        """
        Get the currently watched paths.

        Returns:
            Sorted list of normalized paths
        """
        with self._lock:
            return sorted(self._wds)

    def close(self) -> None:
        """
        Stop the reader thread and release the inotify instance.

        Raises:
            WatchError: If the reader thread does not stop in time
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._wds.clear()
            self._paths.clear()

        self._stop_event.set()
        self._thread.join(timeout=self.config.close_timeout)
        if self._thread.is_alive():
            raise WatchError(
                f"Reader thread did not stop within {self.config.close_timeout}s"
            )
        self._inotify.close()

    def __len__(self) -> int:
        """Return the number of active watches."""
        with self._lock:
            return len(self._wds)

    def _read_loop(self) -> None:
        timeout_ms = max(1, int(self.config.poll_interval * 1000))

        while not self._stop_event.is_set():
            try:
                raw_events = self._inotify.read(timeout=timeout_ms)
            except OSError as e:
                if self._stop_event.is_set():
                    break
                logger.error(f"Error reading inotify events: {e}")
                self.errors.put(e)
                self._stop_event.wait(self.config.poll_interval)
                continue

            for raw in raw_events:
                try:
                    self._handle(raw)
                except Exception as e:
                    self.errors.put(e)

    def _handle(self, raw) -> None:
        if raw.mask & flags.Q_OVERFLOW:
            self.errors.put(WatchError("inotify event queue overflowed, events were lost"))
            return

        with self._lock:
            watch_path = self._paths.get(raw.wd)
            if raw.mask & flags.IGNORED:
                self._forget(raw.wd)

        # Events still queued for a watch that was removed meanwhile.
        if watch_path is None or raw.mask & flags.IGNORED:
            return

        op = translate(raw.mask)
        if not op:
            return

        if raw.name:
            path = os.path.join(watch_path, raw.name)
        elif reported_by_parent(self, normalize(watch_path)):
            return
        else:
            path = watch_path

        self.events.put(Event(path=path, op=op))

    def _forget(self, wd: int) -> None:
        """Drop table entries for a watch the kernel has removed. Caller holds the lock."""
        if self._paths.pop(wd, None) is None:
            return
        for key in [k for k, other in self._wds.items() if other == wd]:
            del self._wds[key]
            logger.debug(f"Watch dropped by the kernel: {key}")
