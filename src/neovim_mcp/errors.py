"""Exception types raised by the Neovim façade."""


class NeovimMcpError(Exception):
    """Base class for failures surfaced by the façade.

    ``operation`` is attached by the façade once the error leaves a public
    operation, so callers see which call failed.
    """

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation

    def __str__(self) -> str:
        if self.operation:
            return f"failed to {self.operation}: {self.message}"
        return self.message


class NvimConnectionError(NeovimMcpError):
    """The transport to Neovim is unreachable or closed."""


class BufferNotFoundError(NeovimMcpError):
    """A buffer title or handle does not resolve."""


class WindowNotFoundError(NeovimMcpError):
    """A window handle does not resolve."""


class InvalidRangeError(NeovimMcpError):
    """A line or column range is malformed."""


class AggregationError(NeovimMcpError):
    """A member of a batched read failed, so the composite result is unavailable."""

    def __init__(
        self,
        message: str,
        *,
        index: int | None = None,
        method: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(message, operation=operation)
        self.index = index
        self.method = method


class ResultShapeError(NeovimMcpError):
    """A Lua script returned a value of the wrong shape."""


class SearchError(ResultShapeError):
    """The search script returned a value of the wrong shape."""


class RemoteCallError(NeovimMcpError):
    """A single remote call was rejected by Neovim."""


class OperationCancelledError(NeovimMcpError):
    """The caller cancelled the operation before it started."""


class DeadlineExceededError(NeovimMcpError):
    """The caller's deadline passed before the operation started."""
