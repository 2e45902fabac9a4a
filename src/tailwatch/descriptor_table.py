"""Thread-safe record of watched paths and their backend descriptors."""

import threading
from typing import Dict, Optional

class WatchDescriptorTable:
    """
    Bidirectional map between watched paths and backend watch descriptors.

    A path is present if and only if a live backend watch exists for it.
    Every method is atomic on its own; multi-step sequences (register,
    unregister, rotation) are serialized by the coordinator's guard.
    """

    def __init__(self):
        """Initialize an empty table."""
        self._by_path: Dict[str, int] = {}
        self._by_descriptor: Dict[int, str] = {}
        self._lock = threading.Lock()

    def put(self, path: str, descriptor: int) -> None:
        """
        Record the descriptor for a path, replacing any previous one.

        Args:
            path: Watched file or directory path
            descriptor: Backend watch handle
        """
        with self._lock:
            previous = self._by_path.get(path)
            if previous is not None:
                self._by_descriptor.pop(previous, None)
            self._by_path[path] = descriptor
            self._by_descriptor[descriptor] = path

    def get(self, path: str) -> Optional[int]:
        """Return the descriptor recorded for ``path``, or None."""
        with self._lock:
            return self._by_path.get(path)

    def path_for(self, descriptor: int) -> Optional[str]:
        """Return the path a descriptor watches, or None."""
        with self._lock:
            return self._by_descriptor.get(descriptor)

    def remove(self, path: str) -> Optional[int]:
        """
        Forget the descriptor recorded for a path.

        Args:
            path: Watched path

        Returns:
            The removed descriptor, or None if the path was not recorded
        """
        with self._lock:
            descriptor = self._by_path.pop(path, None)
            if descriptor is not None:
                self._by_descriptor.pop(descriptor, None)
            return descriptor

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._by_path

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_path)
