"""Polling tail dispatcher for hosts without kernel change notification."""

import logging
import os
import threading
from typing import BinaryIO, Optional, Protocol

from .config import TailConfig
from .exceptions import TailerAlreadyRunningError
from .models import ROTATION_SENTINEL, FileIdentity, normalize_path
from .reader import LineSink, LineSplitter

logger = logging.getLogger(__name__)


class TailListener(Protocol):
    """Callbacks a PollingTailDispatcher reports to."""

    def file_not_found(self) -> None:
        ...

    def file_rotated(self) -> None:
        ...

    def handle(self, line: str) -> None:
        ...

    def handle_error(self, error: Exception) -> None:
        ...


class LogTailerListener:
    """
    TailListener forwarding lines to a line sink.

    A rotation is forwarded as the empty sentinel line, so the downstream
    consumer can tell apart content of successive file instances.
    """

    def __init__(self, path: str, sink: LineSink):
        self.path = path
        self.sink = sink

    def file_not_found(self) -> None:
        logger.warning(f"File {self.path} not found")

    def file_rotated(self) -> None:
        self.sink.process(ROTATION_SENTINEL)
        logger.info(f"File {self.path} rotation is detected")

    def handle(self, line: str) -> None:
        self.sink.process(line)

    def handle_error(self, error: Exception) -> None:
        logger.error(f"Error tailing {self.path}: {error}", exc_info=error)


class PollingTailDispatcher:
    """
    Periodically polls one file for new lines and for rotation.

    A rotation is recognised when the file behind the path is no longer the
    one held open (device/inode changed) or when the file shrank below the
    read position. The old file is drained first, then ``file_rotated`` is
    reported once, then the new file is read from the start. A rotation
    that completes entirely between two polls may go unnoticed when the
    replacement reuses the same identity. While the path is missing,
    ``file_not_found`` is reported on every poll.
    """

    def __init__(self, path, listener: TailListener, config: Optional[TailConfig] = None):
        """
        Initialize the dispatcher.

        Args:
            path: File to tail
            listener: Receiver of lines and conditions
            config: Tail configuration (poll interval, encoding, start position)
        """
        self.path = normalize_path(path)
        self.listener = listener
        self.config = config if config is not None else TailConfig()
        self._splitter = LineSplitter(self.config.encoding)
        self._handle: Optional[BinaryIO] = None
        self._identity: Optional[FileIdentity] = None
        self._position = 0
        self._first_open = True
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def position(self) -> int:
        return self._position

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """
        Start polling in a background thread.

        Raises:
            TailerAlreadyRunningError: If already running
        """
        with self._lock:
            if self.is_running:
                raise TailerAlreadyRunningError(f"Already tailing {self.path}")
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                name=f"Tailer-{os.path.basename(self.path)}",
                daemon=True,
            )
            self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop polling and close the file."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None
        self._close()

    def poll_once(self) -> int:
        """
        Run a single poll cycle.

        Returns:
            Number of lines delivered (the rotation sentinel not included)
        """
        if self._handle is None and not self._open():
            # A file created after the first poll is read from its start.
            self._first_open = False
            self.listener.file_not_found()
            return 0

        delivered = 0
        current = FileIdentity.of_path(self.path)
        if current is None:
            # Keep the old handle so a re-created file is seen as a rotation.
            delivered += self._drain()
            self.listener.file_not_found()
            return delivered
        if self._rotated(current):
            delivered += self._drain()
            self._close()
            self.listener.file_rotated()
            if not self._open():
                self.listener.file_not_found()
                return delivered

        delivered += self._read_lines()
        return delivered

    def _run(self) -> None:
        logger.debug(f"Tailing {self.path} every {self.config.poll_interval}s")
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception as e:
                self.listener.handle_error(e)
            self._stop_event.wait(timeout=self.config.poll_interval)
        logger.debug(f"Stopped tailing {self.path}")

    def _rotated(self, current: FileIdentity) -> bool:
        if current != self._identity:
            return True
        try:
            size = os.stat(self.path).st_size
        except FileNotFoundError:
            return False
        return size < self._position

    def _open(self) -> bool:
        try:
            handle = open(self.path, "rb")
        except FileNotFoundError:
            return False
        self._handle = handle
        self._identity = FileIdentity.from_stat(os.fstat(handle.fileno()))
        self._splitter.reset()
        if self._first_open and self.config.tail_from_end:
            self._position = handle.seek(0, os.SEEK_END)
        else:
            self._position = 0
        self._first_open = False
        return True

    def _read_lines(self) -> int:
        self._handle.seek(self._position)
        delivered = 0
        while True:
            data = self._handle.read(self.config.read_chunk_size)
            if not data:
                break
            self._position += len(data)
            for line in self._splitter.feed(data):
                self.listener.handle(line)
                delivered += 1
        return delivered

    def _drain(self) -> int:
        # Truncated in place: nothing left to read past the old position.
        if FileIdentity.of_path(self.path) == self._identity:
            return 0
        delivered = self._read_lines()
        tail = self._splitter.flush()
        if tail is not None:
            self.listener.handle(tail)
            delivered += 1
        return delivered

    def _close(self) -> None:
        if self._handle is not None:
            try:
                self._handle.close()
            except OSError as e:
                logger.error(f"Error closing {self.path}: {e}")
        self._handle = None
        self._identity = None
        self._splitter.reset()
