"""Per-file log state machine governing when tailed content is read."""

import logging
import threading

from .models import ROTATION_SENTINEL, LogState
from .reader import FileLogReader

logger = logging.getLogger(__name__)


class LogFileStateMachine:
    """
    Encodes the append / rotate / reset lifecycle of one tracked log file.

    The machine decides when a read is due; the reader decides how bytes
    are pulled. Transitions:

        RESET|UNWATCHED -> NORMAL      force_append_check()
        NORMAL -> NORMAL               append_check()
        NORMAL -> ROTATING -> NORMAL   begin_rotate() (synchronous)
        any -> RESET                   reset()
        any -> UNWATCHED               mark_unwatched()
    """

    def __init__(self, reader: FileLogReader):
        """
        Initialize the state machine.

        Args:
            reader: Reader pulling bytes from the tracked file
        """
        self.reader = reader
        self._state = LogState.RESET
        self._lock = threading.RLock()

    @property
    def path(self) -> str:
        return self.reader.path

    @property
    def state(self) -> LogState:
        with self._lock:
            return self._state

    def force_append_check(self) -> int:
        """
        Enter NORMAL and read whatever the file already holds.

        Called once when the file is registered, so content written before
        the first modify notification is not lost.

        Returns:
            Number of lines delivered
        """
        with self._lock:
            if self._state is not LogState.NORMAL:
                logger.debug(f"{self.path}: {self._state.value} -> normal (forced)")
            self._state = LogState.NORMAL
            return self._read()

    def append_check(self) -> int:
        """
        Read from the last offset to end of file.

        Ignored unless NORMAL; a modify arriving mid-rotation or after reset
        is dropped and the post-rotation read re-establishes correctness.

        Returns:
            Number of lines delivered
        """
        with self._lock:
            if self._state is not LogState.NORMAL:
                logger.debug(f"{self.path}: append ignored in state {self._state.value}")
                return 0
            return self._read()

    def begin_rotate(self) -> None:
        """
        Hand off from the old file to the newly created one.

        Drains the old file's tail, emits the rotation sentinel exactly once,
        then reads the new file from offset 0.
        """
        with self._lock:
            if self._state is not LogState.NORMAL:
                logger.warning(f"{self.path}: rotation ignored in state {self._state.value}")
                return
            self._state = LogState.ROTATING
            try:
                drained = self.reader.drain()
                if drained:
                    logger.debug(f"{self.path}: drained {drained} line(s) from rotated file")
            except OSError as e:
                logger.error(f"{self.path}: could not drain rotated file: {e}")
            self.reader.sink.process(ROTATION_SENTINEL)
            if not self.reader.reopen():
                logger.warning(f"{self.path}: new file vanished right after rotation")
            self._state = LogState.NORMAL
            self._read()

    def reset(self) -> None:
        """
        Flush pending content best-effort, close the reader and go idle.

        Safe to call repeatedly and from any state.
        """
        with self._lock:
            if self._state is LogState.RESET:
                return
            try:
                self.reader.drain()
            except OSError as e:
                logger.error(f"{self.path}: could not flush on reset: {e}")
            self.reader.close()
            self._state = LogState.RESET

    def mark_unwatched(self) -> None:
        """Record that the file lost its backend watch and needs re-registration."""
        with self._lock:
            logger.debug(f"{self.path}: {self._state.value} -> unwatched")
            self._state = LogState.UNWATCHED

    def _read(self) -> int:
        try:
            return self.reader.read_available()
        except OSError as e:
            logger.error(f"{self.path}: read failed: {e}")
            return 0
