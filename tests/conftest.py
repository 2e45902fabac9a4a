"""Shared fixtures for tailwatch tests."""

import threading
from typing import Callable, List, Optional, Set

import pytest

from tailwatch.backend import WatchBackend
from tailwatch.config import TailConfig
from tailwatch.coordinator import FileWatchCoordinator
from tailwatch.exceptions import WatchRegistrationError, WatchRemovalError
from tailwatch.models import WatchEvent, WatchEventType
from tailwatch.reader import FileLogReader
from tailwatch.state_machine import LogFileStateMachine


class ListSink:
    """Line sink collecting lines in memory."""

    def __init__(self):
        self.lines: List[str] = []
        self._lock = threading.Lock()

    def process(self, line: str) -> None:
        with self._lock:
            self.lines.append(line)


class FakeBackend(WatchBackend):
    """In-memory watch backend that fires events synchronously."""

    def __init__(self):
        super().__init__()
        self.fail_paths: Set[str] = set()
        self.fail_detach: Set[str] = set()
        self.attached: List[str] = []
        self.detached: List[str] = []
        self.on_attach: Optional[Callable[[str], None]] = None

    def _attach(self, path: str, recursive: bool) -> str:
        if path in self.fail_paths:
            raise WatchRegistrationError(f"Simulated failure watching {path}")
        self.attached.append(path)
        if self.on_attach is not None:
            self.on_attach(path)
        return path

    def _detach(self, token: str) -> None:
        if token in self.fail_detach:
            raise WatchRemovalError(f"Simulated failure unwatching {token}")
        self.detached.append(token)

    def descriptors_for(self, path: str) -> List[int]:
        return [w.descriptor for w in self.watches() if w.path == path]

    def fire_created(self, parent_path: str, name: str) -> None:
        self.dispatch(WatchEvent(WatchEventType.CREATED, path=str(parent_path), name=name))

    def fire_modified(self, path: str) -> None:
        self.dispatch(WatchEvent(WatchEventType.MODIFIED, path=str(path)))


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def config():
    return TailConfig()


@pytest.fixture
def coordinator(backend, config):
    return FileWatchCoordinator(backend, config)


@pytest.fixture
def sink():
    return ListSink()


@pytest.fixture
def make_machine(sink, config):
    def factory(path, line_sink=None) -> LogFileStateMachine:
        return LogFileStateMachine(FileLogReader(str(path), line_sink or sink, config))
    return factory
