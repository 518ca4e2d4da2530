"""Grouping several Neovim API calls into one round trip."""

from typing import Any

from loguru import logger
from pynvim.api import NvimError

from neovim_mcp.errors import AggregationError
from neovim_mcp.protocols import NvimSessionProtocol


class Batch:
    """Collects API calls and sends them as a single ``nvim_call_atomic`` request.

    The batch saves network round trips only; other clients may still mutate
    the session between its members. If any member fails, ``execute`` raises
    and no results are returned.
    """

    def __init__(self, session: NvimSessionProtocol) -> None:
        self._session = session
        self._calls: list[tuple[str, list[Any]]] = []

    def __len__(self) -> int:
        return len(self._calls)

    def add(self, method: str, *args: Any) -> int:
        """Queue ``method(*args)`` and return the index of its result."""
        self._calls.append((method, list(args)))
        return len(self._calls) - 1

    def execute(self) -> list[Any]:
        """Send the queued calls and return their results in order."""
        if not self._calls:
            return []

        logger.trace("Executing batch of {} calls", len(self._calls))
        try:
            response = self._session.request(
                "nvim_call_atomic", [[method, args] for method, args in self._calls]
            )
        except NvimError as e:
            msg = f"batch request rejected: {e}"
            raise AggregationError(msg) from e

        results, error = response
        if error is not None:
            index, _kind, message = error
            method = self._calls[index][0] if 0 <= index < len(self._calls) else None
            msg = f"batched call {index} ({method}) failed: {message}"
            raise AggregationError(msg, index=index, method=method)

        if len(results) != len(self._calls):
            msg = f"batch returned {len(results)} results for {len(self._calls)} calls"
            raise AggregationError(msg)

        return list(results)
