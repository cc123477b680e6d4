"""Exception hierarchy for livesync."""


class LiveSyncError(Exception):
    """Base class for all livesync errors."""


class ChannelOpenError(LiveSyncError):
    """Raised when a change channel cannot be established synchronously."""

    def __init__(self, resource: str, cause: BaseException | None = None) -> None:
        self.resource = resource
        self.cause = cause
        message = f"Failed to open change channel for '{resource}'"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class CursorDiscoveryError(LiveSyncError):
    """Raised when schema metadata could not be read for a resource.

    The failure is transient: nothing is cached and discovery is retried
    on a later poll tick.
    """

    def __init__(self, resource: str, cause: BaseException | None = None) -> None:
        self.resource = resource
        self.cause = cause
        super().__init__(f"Cursor discovery failed for '{resource}': {cause}")


class InvalidTransitionError(LiveSyncError):
    """Raised on a subscription state transition that is not in the table."""

    def __init__(self, current: object, target: object) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Illegal subscription transition {current} -> {target}")
