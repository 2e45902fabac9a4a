"""Filesystem change-notification backends built on the watchdog library."""

import itertools
import logging
import os
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from watchdog.events import (
    DirModifiedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch
from watchdog.observers.polling import PollingObserver

from .config import TailConfig
from .exceptions import WatchRegistrationError, WatchRemovalError
from .models import WatchEvent, WatchEventType, WatchMask, normalize_path

logger = logging.getLogger(__name__)


class WatchListener(Protocol):
    """Receiver of backend notifications, called on the notification thread."""

    def file_created(self, parent_path: str, name: str) -> None:
        ...

    def file_modified(self, path: str) -> None:
        ...

    def file_deleted(self, path: str) -> None:
        ...

    def file_renamed(self, path: str, old_name: str, new_name: str) -> None:
        ...


@dataclass(frozen=True)
class Watch:
    """One registered watch: a path, the events of interest and who to tell."""
    descriptor: int
    path: str
    mask: WatchMask
    recursive: bool
    listener: WatchListener
    token: object = None

    def covers(self, path: str) -> bool:
        """Check if events on ``path`` fall inside this watch."""
        if path == self.path:
            return True
        return self.recursive and path.startswith(self.path.rstrip(os.sep) + os.sep)


class WatchBackend:
    """
    Base class for watch backends.

    Keeps the descriptor registry and routes typed WatchEvents to the
    listeners whose mask asks for them. Subclasses attach the actual OS
    watches in ``_attach`` / ``_detach``.
    """

    def __init__(self):
        self._watches: Dict[int, Watch] = {}
        self._next_descriptor = itertools.count(1)
        self._lock = threading.Lock()

    def add_watch(self, path: str, mask: WatchMask, recursive: bool, listener: WatchListener) -> int:
        """
        Start watching a path.

        Args:
            path: File or directory to watch
            mask: Events of interest
            recursive: Whether a directory watch covers its subtree
            listener: Receiver of the notifications

        Returns:
            Descriptor identifying the new watch

        Raises:
            WatchRegistrationError: If the backend cannot watch the path
        """
        path = normalize_path(path)
        with self._lock:
            descriptor = next(self._next_descriptor)
            token = self._attach(path, recursive)
            self._watches[descriptor] = Watch(descriptor, path, WatchMask(mask), recursive, listener, token)
        logger.debug(f"Added watch {descriptor} on {path} mask={WatchMask(mask)!r}")
        return descriptor

    def remove_watch(self, descriptor: int) -> None:
        """
        Stop a watch.

        Args:
            descriptor: Descriptor returned by add_watch

        Raises:
            WatchRemovalError: If the descriptor is unknown or detaching fails
        """
        with self._lock:
            watch = self._watches.pop(descriptor, None)
            if watch is None:
                raise WatchRemovalError(f"Invalid watch descriptor: {descriptor}")
            self._detach(watch.token)
        logger.debug(f"Removed watch {descriptor} on {watch.path}")

    def watches(self) -> List[Watch]:
        """Return a snapshot of active watches."""
        with self._lock:
            return list(self._watches.values())

    def dispatch(self, event: WatchEvent) -> None:
        """
        Deliver an event to every interested listener.

        Listener faults are logged and swallowed so the notification
        thread keeps processing later events.

        Args:
            event: Typed notification
        """
        with self._lock:
            watches = list(self._watches.values())
        for watch in watches:
            try:
                self._deliver(watch, event)
            except Exception:
                logger.exception(f"Listener failed handling {event.event_type.value} on {event.path}")

    def _deliver(self, watch: Watch, event: WatchEvent) -> None:
        if event.event_type is WatchEventType.CREATED:
            if WatchMask.FILE_CREATED in watch.mask and watch.covers(event.path):
                watch.listener.file_created(event.path, event.name)
        elif event.event_type is WatchEventType.MODIFIED:
            if WatchMask.FILE_MODIFIED in watch.mask and watch.covers(event.path):
                watch.listener.file_modified(event.path)
        elif event.event_type is WatchEventType.DELETED:
            if WatchMask.FILE_DELETED in watch.mask and (
                watch.covers(event.path) or watch.covers(os.path.dirname(event.path))
            ):
                watch.listener.file_deleted(event.path)
        elif event.event_type is WatchEventType.RENAMED:
            if WatchMask.FILE_RENAMED in watch.mask and watch.covers(event.path):
                watch.listener.file_renamed(event.path, event.old_name, event.new_name)

    def start(self) -> None:
        """Begin delivering notifications."""

    def stop(self) -> None:
        """Stop delivering notifications."""

    def _attach(self, path: str, recursive: bool) -> object:
        """Attach an OS-level watch and return a token for detaching it."""
        raise NotImplementedError

    def _detach(self, token: object) -> None:
        raise NotImplementedError

    def __len__(self) -> int:
        with self._lock:
            return len(self._watches)


class WatchdogEventBridge(FileSystemEventHandler):
    """Handler that converts watchdog events to WatchEvents."""

    def __init__(self, callback: Callable[[WatchEvent], None]):
        super().__init__()
        self.callback = callback

    def on_created(self, event: FileSystemEvent):
        src = os.fsdecode(event.src_path)
        self.callback(WatchEvent(
            event_type=WatchEventType.CREATED,
            path=os.path.dirname(src),
            name=os.path.basename(src),
        ))

    def on_modified(self, event: FileSystemEvent):
        if isinstance(event, DirModifiedEvent):
            return
        self.callback(WatchEvent(
            event_type=WatchEventType.MODIFIED,
            path=os.fsdecode(event.src_path),
        ))

    def on_deleted(self, event: FileSystemEvent):
        self.callback(WatchEvent(
            event_type=WatchEventType.DELETED,
            path=os.fsdecode(event.src_path),
        ))

    def on_moved(self, event: FileSystemEvent):
        src = os.fsdecode(event.src_path)
        dest = os.fsdecode(event.dest_path)
        self.callback(WatchEvent(
            event_type=WatchEventType.RENAMED,
            path=os.path.dirname(src),
            old_name=os.path.basename(src),
            new_name=os.path.basename(dest),
        ))


class WatchdogBackend(WatchBackend):
    """
    Watch backend driven by a single watchdog observer.

    Watches are realised as directory schedules: a file watch schedules
    its parent directory and a directory watch schedules the directory
    itself. Schedules are reference counted so any number of descriptors
    can share one.

    watchdog holds its observer lock while running handlers, so the
    bridge only queues events. One notifier thread drains the queue and
    dispatches events strictly one at a time.
    """

    def __init__(self, config: Optional[TailConfig] = None):
        """
        Initialize the backend.

        Args:
            config: Tail configuration (selects the polling observer)
        """
        super().__init__()
        self.config = config if config is not None else TailConfig()
        observer_class = PollingObserver if self.config.use_polling_observer else Observer
        self._observer = observer_class()
        self._bridge = WatchdogEventBridge(self._events_put)
        self._schedules: Dict[Tuple[str, bool], Tuple[ObservedWatch, int]] = {}
        self._events: "queue.Queue[Optional[WatchEvent]]" = queue.Queue()
        self._notifier: Optional[threading.Thread] = None
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._notifier = threading.Thread(target=self._notify_loop, name="WatchNotifier", daemon=True)
        self._notifier.start()
        self._observer.start()
        self._started = True
        logger.info(f"Watch backend started ({type(self._observer).__name__})")

    def stop(self) -> None:
        if not self._started:
            return
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._events.put(None)
        if self._notifier is not None:
            self._notifier.join(timeout=5.0)
            self._notifier = None
        self._started = False
        logger.info("Watch backend stopped")

    @property
    def is_running(self) -> bool:
        return self._started

    def pending_events(self) -> int:
        """Number of notifications queued but not yet dispatched."""
        return self._events.qsize()

    def _events_put(self, event: WatchEvent) -> None:
        self._events.put(event)

    def _notify_loop(self) -> None:
        logger.debug("Notifier loop started")
        while True:
            event = self._events.get()
            if event is None:
                break
            self.dispatch(event)
        logger.debug("Notifier loop stopped")

    def _attach(self, path: str, recursive: bool) -> Tuple[str, bool]:
        if not os.path.exists(path):
            raise WatchRegistrationError(f"No such file or directory: {path}")
        key = self._schedule_key(path, recursive)
        existing = self._schedules.get(key)
        if existing is not None:
            observed, refs = existing
            self._schedules[key] = (observed, refs + 1)
            return key
        try:
            observed = self._observer.schedule(self._bridge, key[0], recursive=key[1])
        except OSError as e:
            raise WatchRegistrationError(f"Failed to watch {path}: {e}") from e
        self._schedules[key] = (observed, 1)
        return key

    def _detach(self, token: Tuple[str, bool]) -> None:
        key = token
        existing = self._schedules.get(key)
        if existing is None:
            raise WatchRemovalError(f"No schedule for {key[0]}")
        observed, refs = existing
        if refs > 1:
            self._schedules[key] = (observed, refs - 1)
            return
        del self._schedules[key]
        try:
            self._observer.unschedule(observed)
        except (KeyError, OSError) as e:
            raise WatchRemovalError(f"Failed to unwatch {key[0]}: {e}") from e

    @staticmethod
    def _schedule_key(path: str, recursive: bool) -> Tuple[str, bool]:
        if os.path.isdir(path):
            return path, recursive
        return os.path.dirname(path), False
