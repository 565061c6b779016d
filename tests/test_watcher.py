"""Tests for the public watcher API, end to end on the real filesystem."""

import os
import pytest
import queue
import time
from pathlib import Path

from src.rwatcher.config import WatcherConfig
from src.rwatcher.exceptions import (
    ClosedError,
    PrimitiveInitError,
    WalkError,
    WatchNotFoundError,
)
from src.rwatcher.fs_watcher import DirectoryWatcher
from src.rwatcher.models import Op
from src.rwatcher.watcher import Watcher, new_buffered_watcher, new_watcher


def wait_for(channel, path, op: Op, timeout: float = 5.0):
    """Read events until one matches; return everything seen."""
    seen = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            event = channel.get(timeout=max(0.01, deadline - time.monotonic()))
        except queue.Empty:
            break
        seen.append(event)
        if event.path == str(path) and event.has(op):
            return seen
    raise AssertionError(f"No {op!r} event for {path}; saw {seen}")


def drain(channel, duration: float = 0.3):
    seen = []
    deadline = time.monotonic() + duration
    while time.monotonic() < deadline:
        try:
            seen.append(channel.get(timeout=0.05))
        except queue.Empty:
            continue
    return seen


def wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def config():
    return WatcherConfig(poll_interval=0.01)


@pytest.fixture
def watcher(config):
    w = new_buffered_watcher(100, config)
    yield w
    w.close()
    w.wait_closed(5)


class TestConstruction:
    """Tests for new_watcher / new_buffered_watcher."""

    def test_new_watcher(self, config):
        w = new_watcher(config)
        
        assert isinstance(w, Watcher)
        assert w.events.capacity == 0
        assert w.is_closed is False
        
        w.close()
        assert w.wait_closed(5)

    def test_new_buffered_watcher(self, config):
        w = new_buffered_watcher(16, config)
        
        assert w.events.capacity == 16
        assert w.errors.capacity == 0
        
        w.close()
        assert w.wait_closed(5)

    @pytest.mark.parametrize("capacity", [0, -1, True, 2.5])
    def test_invalid_capacity(self, capacity):
        with pytest.raises(ValueError):
            new_buffered_watcher(capacity)

    def test_primitive_init_failure(self, monkeypatch):
        def broken(self):
            raise OSError(24, "Too many open files")
        
        monkeypatch.setattr(DirectoryWatcher, "_create_observer", broken)
        
        with pytest.raises(PrimitiveInitError) as exc_info:
            new_watcher(WatcherConfig(use_polling=True))
        
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_context_manager_closes(self, config):
        with new_watcher(config) as w:
            pass
        
        assert w.is_closed
        assert w.wait_closed(5)


class TestWatchSet:
    """Tests for which directories end up watched."""

    def test_add_recursive_watches_all_directories(self, watcher, tmp_path):
        (tmp_path / "a" / "b").mkdir(parents=True)
        (tmp_path / "c").mkdir()
        (tmp_path / "file.txt").touch()
        
        watcher.add_recursive(tmp_path)
        
        assert watcher.watched_paths() == sorted([
            str(tmp_path),
            str(tmp_path / "a"),
            str(tmp_path / "a" / "b"),
            str(tmp_path / "c"),
        ])

    def test_filter_rejection_is_subtree_absolute(self, watcher, tmp_path):
        (tmp_path / "keep").mkdir()
        (tmp_path / ".git" / "objects" / "keep").mkdir(parents=True)
        
        watcher.add_recursive(tmp_path, lambda path, info: os.path.basename(path) != ".git")
        
        watched = watcher.watched_paths()
        assert str(tmp_path / "keep") in watched
        assert not any(p.startswith(str(tmp_path / ".git")) for p in watched)

    def test_add_single_path(self, watcher, tmp_path):
        (tmp_path / "sub").mkdir()
        
        watcher.add(tmp_path)
        
        assert watcher.watched_paths() == [str(tmp_path)]

    def test_remove(self, watcher, tmp_path):
        watcher.add(tmp_path)
        watcher.remove(tmp_path)
        
        assert watcher.watched_paths() == []

    def test_remove_not_watched(self, watcher, tmp_path):
        with pytest.raises(WatchNotFoundError):
            watcher.remove(tmp_path)

    def test_remove_recursive(self, watcher, tmp_path):
        (tmp_path / "a" / "b").mkdir(parents=True)
        watcher.add_recursive(tmp_path)
        
        watcher.remove_recursive(tmp_path)
        
        assert watcher.watched_paths() == []

    def test_remove_recursive_unwatched_root(self, watcher, tmp_path):
        (tmp_path / "never").mkdir()
        
        with pytest.raises(WatchNotFoundError):
            watcher.remove_recursive(tmp_path / "never")

    def test_add_recursive_missing_root(self, watcher, tmp_path):
        with pytest.raises(WalkError):
            watcher.add_recursive(tmp_path / "missing")


class TestEvents:
    """Tests for events delivered through the watcher."""

    def test_create_and_remove_file(self, watcher, tmp_path):
        watcher.add_recursive(tmp_path)
        temp = tmp_path / "temp.txt"
        
        temp.touch()
        wait_for(watcher.events, temp, Op.CREATE)
        
        temp.unlink()
        wait_for(watcher.events, temp, Op.REMOVE)

    def test_create_and_remove_folder_relative(self, watcher, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        watcher.add_recursive(".")
        test_dir = os.path.join(".", "test")
        temp = os.path.join(".", "test", "temp.txt")
        
        os.mkdir("test")
        wait_for(watcher.events, test_dir, Op.CREATE)
        
        with open(os.path.join("test", "temp.txt"), "w"):
            pass
        wait_for(watcher.events, temp, Op.CREATE)
        
        os.remove(os.path.join("test", "temp.txt"))
        wait_for(watcher.events, temp, Op.REMOVE)
        
        os.rmdir("test")
        wait_for(watcher.events, test_dir, Op.REMOVE)

    def test_new_subdirectory_becomes_watched(self, watcher, tmp_path):
        watcher.add_recursive(tmp_path)
        subdir = tmp_path / "sub"
        
        subdir.mkdir()
        wait_for(watcher.events, subdir, Op.CREATE)
        
        assert str(subdir) in watcher.watched_paths()
        
        (subdir / "nested.txt").touch()
        wait_for(watcher.events, subdir / "nested.txt", Op.CREATE)

    def test_nested_directories_created_at_once(self, watcher, tmp_path):
        watcher.add_recursive(tmp_path)
        deep = tmp_path / "x" / "y"
        
        deep.mkdir(parents=True)
        
        assert wait_until(lambda: str(deep) in watcher.watched_paths())
        (deep / "file.txt").touch()
        wait_for(watcher.events, deep / "file.txt", Op.CREATE)

    def test_directory_moved_in_is_watched(self, watcher, tmp_path):
        root = tmp_path / "root"
        outside = tmp_path / "outside"
        root.mkdir()
        (outside / "moved" / "inner").mkdir(parents=True)
        watcher.add_recursive(root)
        
        (outside / "moved").rename(root / "moved")
        
        wait_for(watcher.events, root / "moved", Op.CREATE)
        assert str(root / "moved" / "inner") in watcher.watched_paths()

    def test_removed_directory_pruned(self, watcher, tmp_path):
        subdir = tmp_path / "sub"
        subdir.mkdir()
        watcher.add_recursive(tmp_path)
        
        subdir.rmdir()
        wait_for(watcher.events, subdir, Op.REMOVE)
        
        assert str(subdir) not in watcher.watched_paths()
        assert str(tmp_path) in watcher.watched_paths()

    def test_file_removal_reported_once(self, watcher, tmp_path):
        temp = tmp_path / "temp.txt"
        temp.touch()
        watcher.add_recursive(tmp_path)
        
        temp.unlink()
        seen = wait_for(watcher.events, temp, Op.REMOVE)
        seen += drain(watcher.events)
        
        removes = [e for e in seen if e.path == str(temp) and e.has(Op.REMOVE)]
        assert len(removes) == 1
        with pytest.raises(queue.Empty):
            watcher.errors.get(timeout=0.1)

    def test_file_creation_reported_once(self, watcher, tmp_path):
        watcher.add_recursive(tmp_path)
        temp = tmp_path / "temp.txt"
        
        temp.touch()
        seen = wait_for(watcher.events, temp, Op.CREATE)
        seen += drain(watcher.events)
        
        creates = [e for e in seen if e.path == str(temp) and e.has(Op.CREATE)]
        assert len(creates) == 1

    def test_unbuffered_watcher_delivers(self, config, tmp_path):
        w = new_watcher(config)
        try:
            w.add_recursive(tmp_path)
            (tmp_path / "temp.txt").touch()
            wait_for(w.events, tmp_path / "temp.txt", Op.CREATE)
        finally:
            w.close()
            assert w.wait_closed(5)


class TestLifecycle:
    """Tests for close semantics."""

    @pytest.mark.parametrize("operation", ["add", "add_recursive", "remove", "remove_recursive"])
    def test_operations_after_close_raise(self, watcher, tmp_path, operation):
        watcher.close()
        
        with pytest.raises(ClosedError):
            getattr(watcher, operation)(tmp_path)

    def test_close_twice(self, watcher):
        watcher.close()
        watcher.close()
        
        assert watcher.is_closed
        assert watcher.wait_closed(5)

    def test_streams_end_after_close(self, watcher, tmp_path):
        watcher.add_recursive(tmp_path)
        
        watcher.close()
        
        assert watcher.wait_closed(5)
        list(watcher.events)
        assert list(watcher.errors) == []
        assert watcher.events.closed
        assert watcher.errors.closed

    def test_close_with_unread_events(self, config, tmp_path):
        w = new_watcher(config)
        w.add_recursive(tmp_path)
        (tmp_path / "unread.txt").touch()
        time.sleep(0.2)
        
        w.close()
        
        assert w.wait_closed(5)
