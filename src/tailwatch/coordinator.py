"""Coordinates backend watches, tracked files and their state machines."""

import logging
import os
import threading
from typing import Dict, List, Optional

from .backend import WatchBackend
from .config import TailConfig
from .descriptor_table import WatchDescriptorTable
from .exceptions import WatchError
from .models import FileIdentity, LogState, ParentWatch, TrackedFile, WatchMask, normalize_path, parent_path_of
from .state_machine import LogFileStateMachine

logger = logging.getLogger(__name__)


class FileWatchCoordinator:
    """
    Owns the watch registration lifecycle and turns backend notifications
    into state machine transitions.

    A single re-entrant guard is the exclusivity domain: every compound
    sequence touching the descriptor table (register, unregister, rotation)
    and every state machine trigger runs under it, so the notification
    thread never sees a half-updated table.

    Rotation is inferred only from a creation event in a watched parent
    directory naming a tracked path; delete and rename notifications do
    not change any state.
    """

    def __init__(self, backend: WatchBackend, config: Optional[TailConfig] = None):
        """
        Initialize the coordinator.

        Args:
            backend: Filesystem watch backend
            config: Tail configuration
        """
        self.backend = backend
        self.config = config if config is not None else TailConfig()
        self.table = WatchDescriptorTable()
        self._files: Dict[str, TrackedFile] = {}
        self._parents: Dict[str, ParentWatch] = {}
        self._guard = threading.RLock()

    # -- registrar side -------------------------------------------------

    def register(self, path, state_machine: LogFileStateMachine) -> bool:
        """
        Start tracking a log file.

        Watches the parent directory for creations (once per directory),
        watches the file for modifications, records the descriptor and
        forces an initial read.

        Args:
            path: Log file path
            state_machine: State machine that will own the file's reads

        Returns:
            True if the file is tracked afterwards, False on backend failure
        """
        path = normalize_path(path)
        parent_path = parent_path_of(path)

        with self._guard:
            tracked = self._files.get(path)
            if tracked is not None:
                if tracked.state_machine.state is not LogState.UNWATCHED:
                    logger.info(f"Watch path {path} is already registered")
                    return True
                logger.info(f"Re-registering unwatched path {path}")
                return self._rewatch(tracked)

            tracked = TrackedFile(path=path, state_machine=state_machine)
            self._files[path] = tracked

            parent = self._parents.get(parent_path)
            if parent is None:
                try:
                    descriptor = self.backend.add_watch(parent_path, WatchMask.FILE_CREATED, False, self)
                except WatchError as e:
                    logger.error(f"Failed to add watch for {parent_path}: {e}")
                    del self._files[path]
                    return False
                parent = ParentWatch(parent_path=parent_path, descriptor=descriptor)
                self._parents[parent_path] = parent
                self.table.put(parent_path, descriptor)
                logger.info(f"Monitoring parent path {parent_path} for file creation")
            else:
                logger.debug(f"Parent path {parent_path} is already monitored")

            try:
                descriptor = self.backend.add_watch(path, WatchMask.FILE_MODIFIED, False, self)
            except WatchError as e:
                logger.error(f"Failed to add watch for {path}: {e}")
                del self._files[path]
                return False

            parent.children.add(path)
            tracked.descriptor = descriptor
            self.table.put(path, descriptor)
            state_machine.force_append_check()
            logger.info(f"Monitoring tail file {path} for modification")
            return True

    def unregister(self, path, state_machine: LogFileStateMachine) -> None:
        """
        Stop tracking a log file.

        Unregistering an unknown path is tolerated. The parent directory
        watch is kept unless ``release_parent_watches`` is set.

        Args:
            path: Log file path
            state_machine: State machine owning the file's reads
        """
        path = normalize_path(path)

        with self._guard:
            descriptor = self.table.remove(path)
            tracked = self._files.get(path)
            if descriptor is None:
                if tracked is not None and tracked.state_machine.state is LogState.UNWATCHED:
                    state_machine.reset()
                    self._forget(path)
                    logger.info(f"Dropped unwatched path {path}")
                return
            state_machine.reset()
            if tracked is not None:
                tracked.descriptor = None

            try:
                self.backend.remove_watch(descriptor)
                logger.info(f"Unregistered watch path {path}")
            except WatchError as e:
                logger.error(f"Failed to remove watch {descriptor} for {path}, descriptor may be stale: {e}")
            self._forget(path)

    def close(self) -> int:
        """
        Unregister every tracked file.

        Returns:
            Number of files unregistered
        """
        with self._guard:
            tracked = list(self._files.values())
        for item in tracked:
            self.unregister(item.path, item.state_machine)
        return len(tracked)

    # -- notification side ---------------------------------------------

    def file_created(self, parent_path: str, name: str) -> None:
        """
        Handle a new directory entry in a watched parent; detects rotation.

        The new descriptor is stored in the table strictly before the state
        machine is told to rotate, so a modify event for the new file that
        races in is routed to the new file.
        """
        created_path = os.path.join(parent_path, name)
        try:
            with self._guard:
                tracked = self._files.get(created_path)
                if tracked is None:
                    logger.debug(f"Created file {created_path} is not tracked")
                    return
                if tracked.state_machine.state is LogState.UNWATCHED:
                    logger.info(f"Unwatched file {created_path} was re-created, re-watching")
                    self._rewatch(tracked)
                    return
                logger.info(f"Rotation detected for {created_path}")
                self._rotate(tracked)
        except Exception:
            logger.exception(f"Unexpected error handling creation of {created_path}")

    def file_modified(self, path: str) -> None:
        """Handle a content change; reads appended lines of a tracked file."""
        try:
            with self._guard:
                tracked = self._files.get(path)
                if tracked is None:
                    return
                tracked.state_machine.append_check()
        except Exception:
            logger.exception(f"Unexpected error handling modification of {path}")

    def file_deleted(self, path: str) -> None:
        logger.debug(f"Deleted: {path}")

    def file_renamed(self, path: str, old_name: str, new_name: str) -> None:
        logger.debug(f"Renamed in {path}: {old_name} -> {new_name}")

    # -- introspection --------------------------------------------------

    def is_tracked(self, path) -> bool:
        with self._guard:
            return normalize_path(path) in self._files

    def tracked_paths(self) -> List[str]:
        with self._guard:
            return list(self._files)

    def parent_watches(self) -> Dict[str, ParentWatch]:
        """Return a snapshot of directory watches keyed by directory."""
        with self._guard:
            return dict(self._parents)

    def unwatched_paths(self) -> List[str]:
        """Return tracked paths whose watch was lost and need re-registration."""
        with self._guard:
            return [
                path for path, tracked in self._files.items()
                if tracked.state_machine.state is LogState.UNWATCHED
            ]

    def descriptor_for(self, path) -> Optional[int]:
        return self.table.get(normalize_path(path))

    def __len__(self) -> int:
        with self._guard:
            return len(self._files)

    # -- internals ------------------------------------------------------

    def _rotate(self, tracked: TrackedFile) -> None:
        path = tracked.path
        old_descriptor = self.table.remove(path)
        tracked.descriptor = None
        if old_descriptor is None:
            logger.critical(f"Failed to get watch descriptor for {path}")
        else:
            try:
                self.backend.remove_watch(old_descriptor)
            except WatchError as e:
                logger.error(f"Failed to remove old watch {old_descriptor} for {path}: {e}")

        try:
            descriptor = self.backend.add_watch(path, WatchMask.FILE_MODIFIED, False, self)
        except WatchError as e:
            logger.critical(f"Failed to re-watch {path} after rotation, file is no longer watched: {e}")
            tracked.state_machine.mark_unwatched()
            return

        tracked.descriptor = descriptor
        self.table.put(path, descriptor)
        tracked.state_machine.begin_rotate()
        logger.info(f"Re-monitoring {path} for modification after rotation")

    def _rewatch(self, tracked: TrackedFile) -> bool:
        try:
            descriptor = self.backend.add_watch(tracked.path, WatchMask.FILE_MODIFIED, False, self)
        except WatchError as e:
            logger.error(f"Failed to add watch for {tracked.path}: {e}")
            return False
        tracked.descriptor = descriptor
        self.table.put(tracked.path, descriptor)

        state_machine = tracked.state_machine
        state_machine.force_append_check()
        opened = state_machine.reader.identity
        if opened is not None and FileIdentity.of_path(tracked.path) != opened:
            state_machine.begin_rotate()
        return True

    def _forget(self, path: str) -> None:
        self._files.pop(path, None)
        parent_path = parent_path_of(path)
        parent = self._parents.get(parent_path)
        if parent is None:
            return
        parent.children.discard(path)
        if parent.children or not self.config.release_parent_watches:
            return
        del self._parents[parent_path]
        self.table.remove(parent_path)
        try:
            self.backend.remove_watch(parent.descriptor)
            logger.info(f"Released parent watch on {parent_path}")
        except WatchError as e:
            logger.error(f"Failed to remove parent watch for {parent_path}: {e}")
