"""Cancellation and deadline signal passed into façade operations."""

import threading
import time
from dataclasses import dataclass, field

from neovim_mcp.errors import DeadlineExceededError, OperationCancelledError


@dataclass
class CallContext:
    """Best-effort cancellation signal.

    The façade checks it once, before issuing any remote call. A round trip
    that is already in flight always runs to completion.
    """

    deadline: float | None = None
    cancelled: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def with_timeout(cls, timeout: float | None) -> "CallContext":
        """Create a context whose deadline is ``timeout`` seconds from now."""
        if timeout is None:
            return cls()
        return cls(deadline=time.monotonic() + timeout)

    def cancel(self) -> None:
        self.cancelled.set()

    def check(self) -> None:
        """Raise if the context was cancelled or its deadline has passed."""
        if self.cancelled.is_set():
            msg = "operation cancelled"
            raise OperationCancelledError(msg)
        if self.deadline is not None and time.monotonic() >= self.deadline:
            msg = "deadline exceeded"
            raise DeadlineExceededError(msg)
