"""Data models for the log tail watcher package."""

from dataclasses import dataclass, field
from enum import Enum, IntFlag
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Set
import os
import time

if TYPE_CHECKING:
    from .state_machine import LogFileStateMachine


# Empty line injected into the line stream at every rotation boundary.
ROTATION_SENTINEL = ""


class LogState(Enum):
    """States of a per-file log state machine."""
    NORMAL = "normal"
    ROTATING = "rotating"
    RESET = "reset"
    UNWATCHED = "unwatched"


class WatchMask(IntFlag):
    """Event masks understood by a watch backend."""
    FILE_CREATED = 0x1
    FILE_DELETED = 0x2
    FILE_MODIFIED = 0x4
    FILE_RENAMED = 0x8
    FILE_ANY = FILE_CREATED | FILE_DELETED | FILE_MODIFIED | FILE_RENAMED


class WatchEventType(Enum):
    """Types of notifications delivered by a watch backend."""
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass(frozen=True)
class WatchEvent:
    """
    A typed notification from the watch backend.

    Attributes:
        event_type: What happened
        path: Directory for CREATED/RENAMED events, file path otherwise
        name: Entry name for CREATED events
        old_name: Previous entry name for RENAMED events
        new_name: New entry name for RENAMED events
        timestamp: Unix timestamp when the event was observed
    """
    event_type: WatchEventType
    path: str
    name: Optional[str] = None
    old_name: Optional[str] = None
    new_name: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class FileIdentity:
    """Device/inode pair identifying one concrete file behind a path."""
    device: int
    inode: int

    @classmethod
    def from_stat(cls, st: os.stat_result) -> "FileIdentity":
        return cls(device=st.st_dev, inode=st.st_ino)

    @classmethod
    def of_path(cls, path: str) -> Optional["FileIdentity"]:
        """Identity of the file currently at ``path``, or None if absent."""
        try:
            return cls.from_stat(os.stat(path))
        except FileNotFoundError:
            return None


@dataclass
class TrackedFile:
    """
    A log file under active tailing.

    Attributes:
        path: Absolute path of the file (unique key)
        state_machine: State machine owned by this file
        descriptor: Backend watch handle, present only while watched
    """
    path: str
    state_machine: "LogFileStateMachine"
    descriptor: Optional[int] = None

    @property
    def parent_path(self) -> str:
        return parent_path_of(self.path)


@dataclass
class ParentWatch:
    """
    Backend watch on a directory used to detect file (re)creation.

    Attributes:
        parent_path: Directory path (unique key)
        descriptor: Backend watch handle
        children: Tracked file paths living under this directory
    """
    parent_path: str
    descriptor: int
    children: Set[str] = field(default_factory=set)


def normalize_path(path) -> str:
    """Return an absolute, normalized string form of ``path``."""
    return os.path.abspath(os.fspath(path))


def parent_path_of(path: str) -> str:
    """Return the absolute containing directory of ``path``."""
    return str(Path(normalize_path(path)).parent)
