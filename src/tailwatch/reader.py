"""Raw byte-level reading of tailed log files into complete lines."""

import logging
import os
from typing import BinaryIO, List, Optional, Protocol

from .config import TailConfig
from .models import FileIdentity

logger = logging.getLogger(__name__)


class LineSink(Protocol):
    """Downstream consumer of tailed lines.

    An empty string is the rotation-boundary sentinel, never log content.
    """

    def process(self, line: str) -> None:
        ...


class LineSplitter:
    """
    Splits a byte stream into decoded lines.

    Bytes after the last newline are held back until the rest of the line
    arrives or the splitter is flushed. Blank lines are skipped so that an
    empty string always means a rotation boundary downstream.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding
        self._pending = b""

    def feed(self, data: bytes) -> List[str]:
        """
        Add bytes and return every line completed by them.

        Args:
            data: Newly read bytes

        Returns:
            Complete lines without their line terminators
        """
        if not data:
            return []
        chunks = (self._pending + data).split(b"\n")
        self._pending = chunks.pop()
        return [line for line in (self._decode(c) for c in chunks) if line]

    def flush(self) -> Optional[str]:
        """Return the held-back partial line, if any, and forget it."""
        pending, self._pending = self._pending, b""
        line = self._decode(pending)
        return line or None

    def reset(self) -> None:
        """Discard any held-back partial line."""
        self._pending = b""

    def _decode(self, raw: bytes) -> str:
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        return raw.decode(self.encoding, errors="replace")


class FileLogReader:
    """
    Pulls appended bytes from one log file and hands complete lines to a sink.

    The reader keeps its file handle open between reads, so after a
    rename-style rotation the tail of the old file can still be drained
    through the handle before switching to the new file.
    """

    def __init__(self, path: str, sink: LineSink, config: Optional[TailConfig] = None):
        """
        Initialize the reader.

        Args:
            path: Absolute path of the log file
            sink: Downstream line consumer
            config: Tail configuration
        """
        self.path = path
        self.sink = sink
        self.config = config if config is not None else TailConfig()
        self._splitter = LineSplitter(self.config.encoding)
        self._handle: Optional[BinaryIO] = None
        self._identity: Optional[FileIdentity] = None
        self._position = 0
        self._opened_once = False

    @property
    def position(self) -> int:
        """Offset of the next byte to read."""
        return self._position

    @property
    def identity(self) -> Optional[FileIdentity]:
        """Identity of the file behind the open handle."""
        return self._identity

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def open(self) -> bool:
        """
        Open the file if it is not open yet.

        Only the first attempt honours ``tail_from_end``, and only when the
        file already exists then; content present at that moment is skipped.
        A file that appears later, or the new file after a rotation, is read
        from offset 0.

        Returns:
            True if a handle is open afterwards
        """
        if self._handle is not None:
            return True
        try:
            handle = open(self.path, "rb")
        except FileNotFoundError:
            logger.debug(f"Log file not present yet: {self.path}")
            self._opened_once = True
            return False
        self._handle = handle
        self._identity = FileIdentity.from_stat(os.fstat(handle.fileno()))
        self._splitter.reset()
        if self.config.tail_from_end and not self._opened_once:
            self._position = handle.seek(0, os.SEEK_END)
        else:
            self._position = 0
        self._opened_once = True
        return True

    def read_available(self) -> int:
        """
        Read from the last offset to end of file and emit complete lines.

        A file that shrank below the read offset was truncated in place;
        reading restarts from offset 0.

        Returns:
            Number of lines delivered to the sink
        """
        if not self.open():
            return 0
        size = os.fstat(self._handle.fileno()).st_size
        if size < self._position:
            logger.warning(f"{self.path} truncated from {self._position} to {size} bytes, rereading")
            self._position = 0
            self._splitter.reset()
        self._handle.seek(self._position)
        delivered = 0
        while True:
            data = self._handle.read(self.config.read_chunk_size)
            if not data:
                break
            self._position += len(data)
            for line in self._splitter.feed(data):
                self.sink.process(line)
                delivered += 1
        return delivered

    def drain(self) -> int:
        """
        Read everything left in the open file, including a final partial line.

        Returns:
            Number of lines delivered to the sink
        """
        if self._handle is None:
            return 0
        delivered = self.read_available()
        tail = self._splitter.flush()
        if tail is not None:
            self.sink.process(tail)
            delivered += 1
        return delivered

    def reopen(self) -> bool:
        """
        Switch to whatever file now lives at the path, starting at offset 0.

        Returns:
            True if the new file could be opened
        """
        self._close_handle()
        self._position = 0
        self._splitter.reset()
        return self.open()

    def close(self) -> None:
        """Close the handle and release the read offset."""
        self._close_handle()
        self._position = 0
        self._splitter.reset()

    def _close_handle(self) -> None:
        if self._handle is not None:
            try:
                self._handle.close()
            except OSError as e:
                logger.error(f"Error closing {self.path}: {e}")
        self._handle = None
        self._identity = None
