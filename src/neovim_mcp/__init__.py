"""Model Context Protocol server for a running Neovim instance."""

from neovim_mcp.nvim.client import NeovimClient
from neovim_mcp.nvim.context import CallContext
from neovim_mcp.protocols import NvimSessionProtocol

__all__ = ["CallContext", "NeovimClient", "NvimSessionProtocol"]
