"""Opening msgpack-RPC sessions to Neovim."""

import os
from dataclasses import dataclass
from typing import Any

import pynvim
from loguru import logger

from neovim_mcp.errors import NvimConnectionError
from neovim_mcp.protocols import NvimSessionProtocol


@dataclass(frozen=True)
class NvimAddress:
    """Where a Neovim instance listens: a socket/pipe path or a TCP endpoint."""

    path: str | None = None
    host: str | None = None
    port: int | None = None

    @property
    def is_tcp(self) -> bool:
        return self.port is not None

    def __str__(self) -> str:
        if self.is_tcp:
            return f"{self.host}:{self.port}"
        return self.path or ""


def parse_address(address: str) -> NvimAddress:
    """Parse ``address`` as ``host:port`` or a filesystem path.

    Anything containing a path separator, or without a numeric port after the
    last colon, is treated as a path.
    """
    address = address.strip()
    if not address:
        msg = "empty neovim address"
        raise NvimConnectionError(msg)

    if os.sep not in address and "/" not in address:
        host, sep, port = address.rpartition(":")
        if sep and host and port.isdigit():
            return NvimAddress(host=host.strip("[]"), port=int(port))

    return NvimAddress(path=address)


def connect(address: str) -> NvimSessionProtocol:
    """Attach to the Neovim instance listening at ``address``."""
    target = parse_address(address)
    logger.debug("Attaching to neovim at {}", target)
    try:
        if target.is_tcp:
            return pynvim.attach("tcp", address=target.host, port=target.port)
        return pynvim.attach("socket", path=target.path)
    except (OSError, EOFError) as e:
        msg = f"cannot connect to neovim at {target}: {e}"
        raise NvimConnectionError(msg) from e


def to_handle(obj: Any) -> int:
    """Return the integer handle of a pynvim ``Buffer``/``Window`` or a plain int."""
    handle = getattr(obj, "handle", obj)
    return int(handle)
