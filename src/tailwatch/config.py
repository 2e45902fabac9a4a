"""Configuration for the log tail watcher package."""

import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

MODES = ("notify", "poll")


@dataclass
class TailConfig:
    """
    Configuration options for log tailing.

    Attributes:
        mode: "notify" for backend change notifications, "poll" for the
            polling tail dispatcher
        poll_interval_ms: Interval between polls of the tail dispatcher
        read_chunk_size: Maximum bytes pulled from a file per read call
        encoding: Text encoding of the tailed log files
        tail_from_end: Start the first read at end of file instead of offset 0.
            Lines written before registration are then never delivered; a
            file that does not exist yet is still read from its start
        use_polling_observer: Use watchdog's PollingObserver as the backend
        release_parent_watches: Reference count directory watches and drop
            them once no tracked file needs them
        recovery_interval_ms: Interval at which unwatched files are re-registered
        spool_path: SQLite database used to spool lines for shipment
        ignore_patterns: Glob patterns for directory entries never worth tracking
    """
    mode: str = "notify"
    poll_interval_ms: int = 1000
    read_chunk_size: int = 65536
    encoding: str = "utf-8"
    tail_from_end: bool = False
    use_polling_observer: bool = False
    release_parent_watches: bool = False
    recovery_interval_ms: int = 5000
    spool_path: Optional[Path] = None
    ignore_patterns: List[str] = field(default_factory=lambda: [
        "*.tmp",
        "*.swp",
        "*.swo",
        "*~",
        ".DS_Store",
    ])

    def __post_init__(self):
        if self.mode not in MODES:
            raise ValueError(f"mode must be one of {MODES}: {self.mode!r}")
        if self.poll_interval_ms <= 0:
            raise ValueError(f"poll_interval_ms must be positive: {self.poll_interval_ms}")
        if self.read_chunk_size <= 0:
            raise ValueError(f"read_chunk_size must be positive: {self.read_chunk_size}")
        if self.recovery_interval_ms <= 0:
            raise ValueError(f"recovery_interval_ms must be positive: {self.recovery_interval_ms}")
        if self.spool_path is not None:
            self.spool_path = Path(self.spool_path)

    @property
    def poll_interval(self) -> float:
        """Poll interval in seconds."""
        return self.poll_interval_ms / 1000.0

    @property
    def recovery_interval(self) -> float:
        """Recovery interval in seconds."""
        return self.recovery_interval_ms / 1000.0

    def should_ignore(self, path) -> bool:
        """
        Check if a path should be ignored based on ignore patterns.

        Args:
            path: Path to check

        Returns:
            True if the path should be ignored
        """
        name = os.path.basename(os.fspath(path))
        return any(fnmatch.fnmatch(name, pattern) for pattern in self.ignore_patterns)

    @classmethod
    def from_env(cls, prefix: str = "TAILWATCH_") -> "TailConfig":
        """
        Build a config from environment variables.

        Recognised variables (with the default prefix): TAILWATCH_MODE,
        TAILWATCH_POLL_INTERVAL_MS, TAILWATCH_READ_CHUNK_SIZE,
        TAILWATCH_ENCODING, TAILWATCH_TAIL_FROM_END,
        TAILWATCH_USE_POLLING_OBSERVER, TAILWATCH_RELEASE_PARENT_WATCHES,
        TAILWATCH_RECOVERY_INTERVAL_MS, TAILWATCH_SPOOL_PATH.

        Args:
            prefix: Prefix of the variable names

        Returns:
            A TailConfig with defaults for unset variables
        """
        def get(name: str) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}")

        def flag(value: str) -> bool:
            return value.strip().lower() in ("1", "true", "yes", "on")

        kwargs = {}
        if get("MODE"):
            kwargs["mode"] = get("MODE")
        for name, key in (
            ("POLL_INTERVAL_MS", "poll_interval_ms"),
            ("READ_CHUNK_SIZE", "read_chunk_size"),
            ("RECOVERY_INTERVAL_MS", "recovery_interval_ms"),
        ):
            if get(name):
                kwargs[key] = int(get(name))
        for name, key in (
            ("TAIL_FROM_END", "tail_from_end"),
            ("USE_POLLING_OBSERVER", "use_polling_observer"),
            ("RELEASE_PARENT_WATCHES", "release_parent_watches"),
        ):
            if get(name):
                kwargs[key] = flag(get(name))
        if get("ENCODING"):
            kwargs["encoding"] = get("ENCODING")
        if get("SPOOL_PATH"):
            kwargs["spool_path"] = Path(get("SPOOL_PATH"))
        return cls(**kwargs)
