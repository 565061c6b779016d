"""Custom exceptions for the recursive watcher package."""


class WatcherError(Exception):
    """Base exception for all watcher errors."""
    pass


class PrimitiveInitError(WatcherError):
    """The underlying filesystem observer could not be created."""
    pass


class ClosedError(WatcherError):
    """Operation attempted on a watcher that has already been closed."""
    pass


class WalkError(WatcherError):
    """Directory traversal failed partway through a recursive operation."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{message}: {path}")
        self.path = path


class WatchError(WatcherError):
    """Error related to registering or unregistering a single watch."""
    pass


class WatchNotFoundError(WatchError):
    """No watch is registered for the given path."""
    pass


class ChannelClosedError(WatcherError):
    """Channel has been closed and holds no more items."""
    pass
