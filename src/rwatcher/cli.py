#!/usr/bin/env python3
"""
CLI for watching a directory tree and printing its changes.

Usage:
    rwatcher /path/to/folder
    rwatcher . --ignore .git node_modules --buffer 500
    python -m src.rwatcher.cli . --polling -v
"""

import argparse
import logging
import queue
import signal
import sys
from typing import Callable, List, Optional

from .channel import Channel
from .config import WatcherConfig
from .exceptions import ChannelClosedError, WatcherError
from .filters import ignore_filter
from .watcher import Watcher, new_buffered_watcher


logger = logging.getLogger("rwatcher")


class GracefulShutdown:
    """Close the watcher on SIGINT/SIGTERM."""

    def __init__(self, watcher: Watcher):
        self.watcher = watcher
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.watcher.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rwatcher",
        description="Recursively watch a directory tree for changes",
    )
    parser.add_argument("path", nargs="?", default=".", help="Directory to watch")
    parser.add_argument(
        "--ignore",
        nargs="*",
        default=[".git"],
        metavar="PATTERN",
        help="Glob patterns of directories to skip on the initial walk",
    )
    parser.add_argument(
        "--buffer",
        type=int,
        default=100,
        help="Event channel capacity",
    )
    parser.add_argument(
        "--polling",
        action="store_true",
        help="Use the polling observer instead of native notifications",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def _poll(channel: Channel, timeout: float):
    """Return (item, open) for one read attempt on a channel."""
    try:
        return channel.get(timeout=timeout), True
    except queue.Empty:
        return None, True
    except ChannelClosedError:
        return None, False


def consume(
    watcher: Watcher,
    on_event: Callable = lambda event: logger.info(f"event: {event}"),
    on_error: Callable = lambda error: logger.error(f"error: {error}"),
    poll_interval: float = 0.1,
) -> None:
    """
    Drain both channels until they have been closed.

    Args:
        watcher: Watcher to read from
        on_event: Called for each event
        on_error: Called for each asynchronous error
        poll_interval: Seconds to wait on the event channel per round
    """
    events_open = errors_open = True

    while events_open or errors_open:
        if events_open:
            event, events_open = _poll(watcher.events, poll_interval)
            if event is not None:
                on_event(event)
        if errors_open:
            error, errors_open = _poll(watcher.errors, 0 if events_open else poll_interval)
            if error is not None:
                on_error(error)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    config = WatcherConfig(use_polling=args.polling)

    logger.info("Creating watcher ...")
    try:
        watcher = new_buffered_watcher(args.buffer, config)
    except (ValueError, WatcherError) as e:
        logger.error(f"Could not create the watcher: {e}")
        return 1

    with watcher:
        logger.info(f"Adding {args.path} ...")
        try:
            watcher.add_recursive(args.path, ignore_filter(args.ignore))
        except (WatcherError, OSError) as e:
            logger.error(f"Could not add the folder: {e}")
            return 1

        GracefulShutdown(watcher)
        logger.info(f"Watching {len(watcher.watched_paths())} path(s), press Ctrl+C to stop")
        consume(watcher)

    logger.info("Watcher stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
