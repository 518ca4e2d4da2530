"""Protocols for dependency injection of the Neovim transport."""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class NvimSessionProtocol(Protocol):
    """Protocol for msgpack-RPC sessions to a Neovim instance.

    ``pynvim.Nvim`` satisfies it; tests use an in-memory fake.
    """

    def request(self, name: str, *args: Any) -> Any:
        """Invoke a Neovim API method and return its decoded result."""
        ...

    def close(self) -> None:
        """Release the underlying transport."""
        ...
