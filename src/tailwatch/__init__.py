"""
Log Tail Watcher Package

The filesystem-watch front end of a log-shipping agent. Detects log file
appends and rotations and forwards complete lines to a downstream sink.

Features:
- Change-notification driven tailing via watchdog
- Rotation detection from file re-creation in a watched parent directory
- Per-file state machine deciding when content is read
- Polling tail dispatcher with equivalent rotation semantics
- Empty-line sentinel marking every rotation boundary
- SQLite spool for at-least-once hand-off to the transport
"""

from .models import (
    ROTATION_SENTINEL,
    LogState,
    WatchMask,
    WatchEventType,
    WatchEvent,
    FileIdentity,
    TrackedFile,
    ParentWatch,
)

from .config import TailConfig

from .exceptions import (
    TailwatchError,
    WatchError,
    WatchRegistrationError,
    WatchRemovalError,
    SpoolError,
    SpoolClosedError,
    TailerError,
    TailerAlreadyRunningError,
)

from .descriptor_table import WatchDescriptorTable
from .reader import LineSink, LineSplitter, FileLogReader
from .state_machine import LogFileStateMachine
from .backend import WatchListener, WatchBackend, WatchdogBackend
from .coordinator import FileWatchCoordinator
from .tailer import TailListener, LogTailerListener, PollingTailDispatcher
from .spool import LineSpool, SpoolSink, PrintSink
from .agent import TailAgent


__all__ = [
    # Models
    "ROTATION_SENTINEL",
    "LogState",
    "WatchMask",
    "WatchEventType",
    "WatchEvent",
    "FileIdentity",
    "TrackedFile",
    "ParentWatch",
    # Config
    "TailConfig",
    # Exceptions
    "TailwatchError",
    "WatchError",
    "WatchRegistrationError",
    "WatchRemovalError",
    "SpoolError",
    "SpoolClosedError",
    "TailerError",
    "TailerAlreadyRunningError",
    # Components
    "WatchDescriptorTable",
    "LineSink",
    "LineSplitter",
    "FileLogReader",
    "LogFileStateMachine",
    "WatchListener",
    "WatchBackend",
    "WatchdogBackend",
    "FileWatchCoordinator",
    "TailListener",
    "LogTailerListener",
    "PollingTailDispatcher",
    "LineSpool",
    "SpoolSink",
    "PrintSink",
    # Agent
    "TailAgent",
]

__version__ = "0.1.0"
