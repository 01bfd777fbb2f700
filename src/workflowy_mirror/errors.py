"""Exceptions raised by the outline mirror."""


class MirrorError(Exception):
    """Base class for mirror errors."""


class NodeNotFoundError(MirrorError):
    """A requested node does not exist in the mirror."""


class PathNotFoundError(NodeNotFoundError):
    """A path segment could not be resolved."""

    def __init__(self, segment: str, path: str | None = None) -> None:
        self.segment = segment
        self.path = path
        msg = f"Path segment not found: {segment!r}"
        if path is not None and path != segment:
            msg += f" (in {path!r})"
        super().__init__(msg)


class SyncError(MirrorError):
    """A full or partial sync failed."""


class SyncTimeoutError(SyncError):
    """A full sync exceeded its deadline."""


class InvalidQueryError(MirrorError, ValueError):
    """A search query could not be compiled."""


class ApiError(MirrorError):
    """The remote API rejected a request or could not be reached."""
