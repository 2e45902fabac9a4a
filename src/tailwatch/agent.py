"""Tail agent orchestrating watch-driven and polling-driven log tailing."""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .backend import WatchBackend, WatchdogBackend
from .config import TailConfig
from .coordinator import FileWatchCoordinator
from .models import normalize_path
from .reader import FileLogReader, LineSink
from .spool import LineSpool, SpoolSink, open_spool
from .state_machine import LogFileStateMachine
from .tailer import LogTailerListener, PollingTailDispatcher

logger = logging.getLogger(__name__)

SinkFactory = Callable[[str], LineSink]


@dataclass
class _Tail:
    """Everything the agent holds for one tailed file."""
    path: str
    sink: LineSink
    state_machine: Optional[LogFileStateMachine] = None
    dispatcher: Optional[PollingTailDispatcher] = None


class TailAgent:
    """
    Registrar in front of the coordinator and the polling dispatchers.

    In "notify" mode every file gets a reader and a state machine and is
    registered with the FileWatchCoordinator; a recovery loop re-registers
    files whose watch was lost during rotation. In "poll" mode every file
    gets its own PollingTailDispatcher.
    """

    def __init__(
        self,
        config: Optional[TailConfig] = None,
        backend: Optional[WatchBackend] = None,
        sink_factory: Optional[SinkFactory] = None,
    ):
        """
        Initialize the agent.

        Args:
            config: Tail configuration
            backend: Watch backend (defaults to a WatchdogBackend)
            sink_factory: Builds the line sink for a file path; defaults to
                spooling into ``config.spool_path``
        """
        self.config = config if config is not None else TailConfig()
        self.spool: Optional[LineSpool] = None
        if sink_factory is None:
            self.spool = open_spool(self.config.spool_path)
            if self.spool is None:
                raise ValueError("sink_factory or config.spool_path is required")

            def sink_factory(path: str) -> LineSink:
                return SpoolSink(self.spool, path)
        self.sink_factory = sink_factory

        self.backend = backend if backend is not None else WatchdogBackend(self.config)
        self.coordinator = FileWatchCoordinator(self.backend, self.config)

        self._tails: Dict[str, _Tail] = {}
        self._lock = threading.Lock()
        self._running = False
        self._stop_event = threading.Event()
        self._recovery_thread: Optional[threading.Thread] = None

    @property
    def polling(self) -> bool:
        return self.config.mode == "poll"

    @property
    def is_running(self) -> bool:
        return self._running

    def add_file(self, path) -> bool:
        """
        Start tailing a file.

        Args:
            path: Log file path

        Returns:
            True if the file is tailed afterwards
        """
        path = normalize_path(path)
        if self.config.should_ignore(path):
            logger.warning(f"Refusing to tail ignored file {path}")
            return False

        with self._lock:
            if path in self._tails:
                logger.info(f"Already tailing {path}")
                return True
            sink = self.sink_factory(path)
            tail = _Tail(path=path, sink=sink)

            if self.polling:
                tail.dispatcher = PollingTailDispatcher(path, LogTailerListener(path, sink), self.config)
                if self._running:
                    tail.dispatcher.start()
            else:
                tail.state_machine = LogFileStateMachine(FileLogReader(path, sink, self.config))
                if not self.coordinator.register(path, tail.state_machine):
                    return False

            self._tails[path] = tail
            logger.info(f"Tailing {path} ({self.config.mode})")
            return True

    def remove_file(self, path) -> bool:
        """
        Stop tailing a file.

        Returns:
            True if the file was being tailed
        """
        path = normalize_path(path)
        with self._lock:
            tail = self._tails.pop(path, None)
        if tail is None:
            return False
        if tail.dispatcher is not None:
            tail.dispatcher.stop()
        if tail.state_machine is not None:
            self.coordinator.unregister(path, tail.state_machine)
        logger.info(f"Stopped tailing {path}")
        return True

    def files(self) -> List[str]:
        with self._lock:
            return list(self._tails)

    def recover(self) -> int:
        """
        Re-register files that lost their watch.

        Returns:
            Number of files successfully re-registered
        """
        recovered = 0
        for path in self.coordinator.unwatched_paths():
            with self._lock:
                tail = self._tails.get(path)
            if tail is None or tail.state_machine is None:
                continue
            if self.coordinator.register(path, tail.state_machine):
                logger.info(f"Recovered watch on {path}")
                recovered += 1
        return recovered

    def start(self) -> None:
        """Start the backend (or the pollers) and the recovery loop."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._stop_event.clear()
            tails = list(self._tails.values())

        if self.polling:
            for tail in tails:
                if tail.dispatcher is not None and not tail.dispatcher.is_running:
                    tail.dispatcher.start()
        else:
            self.backend.start()
            self._recovery_thread = threading.Thread(
                target=self._recovery_loop, name="WatchRecovery", daemon=True,
            )
            self._recovery_thread.start()
        logger.info(f"Tail agent started with {len(tails)} file(s)")

    def stop(self) -> None:
        """Stop tailing everything; lines read so far are flushed to the sinks."""
        with self._lock:
            was_running = self._running
            self._running = False
        self._stop_event.set()

        for path in self.files():
            self.remove_file(path)
        if was_running and not self.polling:
            self.backend.stop()
        if self._recovery_thread is not None:
            self._recovery_thread.join(timeout=2.0)
            self._recovery_thread = None
        logger.info("Tail agent stopped")

    def close(self) -> None:
        """Stop the agent and release the spool."""
        self.stop()
        if self.spool is not None:
            self.spool.close()

    def _recovery_loop(self) -> None:
        interval = self.config.recovery_interval
        logger.debug(f"Recovery loop started, interval={interval}s")
        while not self._stop_event.wait(timeout=interval):
            try:
                self.recover()
            except Exception as e:
                logger.error(f"Recovery loop error: {e}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
