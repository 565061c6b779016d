"""Configuration for the recursive watcher package."""

from dataclasses import dataclass


@dataclass
class WatcherConfig:
    """
    Configuration options for the recursive watcher.
    
    Attributes:
        poll_interval: Seconds the dispatch loop waits on its inputs before
            re-checking the done signal
        close_timeout: Seconds to wait for the observer thread on teardown
        use_polling: Use watchdog's polling observer instead of the native one
        polling_interval: Seconds between scans when polling
        follow_symlinks: Whether recursive walks descend into symlinked
            directories
    """
    poll_interval: float = 0.05
    close_timeout: float = 5.0
    use_polling: bool = False
    polling_interval: float = 1.0
    follow_symlinks: bool = False

    def __post_init__(self):
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive: {self.poll_interval}")
        if self.close_timeout < 0:
            raise ValueError(f"close_timeout must not be negative: {self.close_timeout}")
        if self.polling_interval <= 0:
            raise ValueError(f"polling_interval must be positive: {self.polling_interval}")
