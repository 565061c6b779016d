"""Data models for the recursive watcher package."""

import os
from dataclasses import dataclass
from enum import IntFlag
from typing import Callable


class Op(IntFlag):
    """Filesystem operations carried by an event, combinable as a bitmask."""
    CREATE = 1
    WRITE = 2
    REMOVE = 4
    RENAME = 8

    def describe(self) -> str:
        """Render the set bits as ``CREATE|WRITE``."""
        names = [member.name for member in Op if self & member]
        return "|".join(names) if names else "NONE"


# Called with the directory path and its stat result; False prunes the subtree.
DirFilter = Callable[[str, os.stat_result], bool]


@dataclass(frozen=True)
class Event:
    """
    A single filesystem change notification.
    
    Attributes:
        path: Path of the affected entry, as reported by the observer
        op: Operation bitmask
    """
    path: str
    op: Op

    def has(self, op: Op) -> bool:
        """Check whether any bit of ``op`` is set on this event."""
        return bool(self.op & op)

    def __str__(self) -> str:
        return f'{self.op.describe()} "{self.path}"'

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "path": self.path,
            "op": int(self.op),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        """Create from dictionary."""
        return cls(path=data["path"], op=Op(data["op"]))
