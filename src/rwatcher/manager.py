"""Recursive watch management on top of non-recursive directory watches."""

import logging
import os
import queue
import threading
from typing import Any, List, Optional

from .channel import Channel
from .config import WatcherConfig
from .exceptions import WalkError, WatchError, WatchNotFoundError
from .fs_watcher import create_directory_watcher, normalize
from .models import DirFilter, Event, Op
from .walker import walk_dirs


logger = logging.getLogger(__name__)


class RecursiveWatchManager:
    """
    Keeps a watch on every directory of the trees added to it.

    A single dispatch thread drains the directory watcher, extends the
    watch set when a directory is created, prunes it when one is removed
    or renamed away, and republishes every event on ``events`` and every
    error on ``errors``. That thread is the only place where event-driven
    watch changes happen.

    Forwarding blocks while the event channel is full, so a slow reader
    throttles the whole pipeline, watch maintenance included.
    """

    def __init__(self, event_capacity: int = 0, config: Optional[WatcherConfig] = None):
        """
        Initialize the manager and start the dispatch thread.

        Args:
            event_capacity: Capacity of the event channel (0 = unbuffered)
            config: Watcher configuration

        Raises:
            PrimitiveInitError: If the directory watcher cannot be started
        """
        self.config = config or WatcherConfig()
        self._primitive = create_directory_watcher(self.config)

        self.events = Channel(event_capacity)
        self.errors = Channel(0)

        self._done = threading.Event()
        self._closed = False
        self._lock = threading.Lock()

        self._thread = threading.Thread(
            target=self._dispatch_loop,
            name="RecursiveWatchDispatch",
            daemon=True,
        )
        self._thread.start()

    @property
    def is_closed(self) -> bool:
        """Check if close() has been called."""
        return self._closed

    def add(self, path: str) -> None:
        """Watch a single path, non-recursively."""
        self._primitive.add(path)

    def add_recursive(self, root: str, dir_filter: Optional[DirFilter] = None) -> None:
        """
        Watch ``root`` and every directory below it accepted by ``dir_filter``.

        Stops at the first failure; watches added before it are kept.
        """
        self._watch_recursive(root, unwatch=False, dir_filter=dir_filter)

    def remove(self, path: str) -> None:
        """Stop watching a single path."""
        self._primitive.remove(path)

    def remove_recursive(self, root: str) -> None:
        """
        Stop watching ``root`` and every directory below it.

        Unwatched directories below the root are skipped; an unwatched
        root raises WatchNotFoundError.
        """
        self._watch_recursive(root, unwatch=True)

    def watched_paths(self) -> List[str]:
        return self._primitive.watched_paths()

    def close(self) -> None:
        """
        Signal the dispatch thread to shut down.

        Does not wait for teardown; use wait_closed() for that.
        Closing twice is a no-op.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._done.set()

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the dispatch thread to finish its teardown.

        Args:
            timeout: Maximum seconds to wait (None waits forever)

        Returns:
            True if the thread has exited
        """
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _watch_recursive(
        self,
        root: str,
        unwatch: bool,
        dir_filter: Optional[DirFilter] = None,
    ) -> None:
        # Racy by nature: entries created before their watch lands are missed.
        for path in walk_dirs(root, dir_filter, self.config.follow_symlinks):
            if unwatch:
                try:
                    self._primitive.remove(path)
                except WatchNotFoundError:
                    if path == root:
                        raise
                    logger.debug(f"No watch to remove for: {path}")
            else:
                self._primitive.add(path)

    def _dispatch_loop(self) -> None:
        """Worker loop that reacts to raw events and republishes them."""
        logger.debug("Dispatch loop started")

        while not self._done.is_set():
            try:
                event = self._primitive.events.get(timeout=self.config.poll_interval)
            except queue.Empty:
                pass
            else:
                self._handle_event(event)

            try:
                error = self._primitive.errors.get_nowait()
            except queue.Empty:
                pass
            else:
                self._forward(self.errors, error)

        self._teardown()

    def _handle_event(self, event: Event) -> None:
        # Watch changes go first so a forwarded CREATE is already covered.
        if event.has(Op.CREATE) and os.path.isdir(event.path):
            self._watch_new_directory(event.path)

        # A removed path cannot be stat'ed; try it as a directory regardless.
        if event.has(Op.REMOVE | Op.RENAME):
            self._unwatch_path(event.path)

        self._forward(self.events, event)

    def _watch_new_directory(self, path: str) -> None:
        try:
            self._watch_recursive(path, unwatch=False)
        except (WalkError, WatchError, OSError) as e:
            if _is_vanished(e):
                logger.debug(f"Directory vanished before it could be watched: {path}")
                return
            self._report(e, f"Error while adding a recursive watch on {path}")

    def _unwatch_path(self, path: str) -> None:
        key = normalize(path)
        prefix = key + os.sep
        stale = [p for p in self._primitive.watched_paths() if p.startswith(prefix)]

        for target in [path] + stale:
            try:
                self._primitive.remove(target)
            except WatchNotFoundError:
                pass
            except (WatchError, OSError) as e:
                self._report(e, f"Error while removing the watch on {target}")

    def _report(self, error: Exception, message: str) -> None:
        logger.warning(f"{message} ({error})")
        self._forward(self.errors, error)

    def _forward(self, channel: Channel, item: Any) -> bool:
        """Deliver an item, giving up only once shutdown has been requested."""
        while True:
            try:
                channel.put(item, timeout=self.config.poll_interval)
                return True
            except queue.Full:
                if self._done.is_set():
                    logger.debug(f"Dropping undelivered item on shutdown: {item}")
                    return False

    def _teardown(self) -> None:
        try:
            self._primitive.close()
        except (WatchError, OSError, RuntimeError) as e:
            logger.error(f"Error while closing the underlying watcher: {e}")

        self.events.close()
        self.errors.close()
        logger.debug("Dispatch loop stopped")


def _is_vanished(error: Exception) -> bool:
    """Check whether a failure only means the path disappeared meanwhile."""
    vanished = (FileNotFoundError, NotADirectoryError)
    return isinstance(error, vanished) or isinstance(error.__cause__, vanished)
