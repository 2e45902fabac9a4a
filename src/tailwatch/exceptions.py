"""Custom exceptions for the log tail watcher package."""


class TailwatchError(Exception):
    """Base exception for all tailwatch errors."""
    pass


class WatchError(TailwatchError):
    """Error reported by the filesystem watch backend."""
    pass


class WatchRegistrationError(WatchError):
    """The backend could not add a watch."""
    pass


class WatchRemovalError(WatchError):
    """The backend could not remove a watch (descriptor may be stale)."""
    pass


class SpoolError(TailwatchError):
    """Error related to the line spool."""
    pass


class SpoolClosedError(SpoolError):
    """Operation attempted on a closed spool."""
    pass


class TailerError(TailwatchError):
    """Error related to a polling tail dispatcher."""
    pass


class TailerAlreadyRunningError(TailerError):
    """Tail dispatcher is already running."""
    pass
