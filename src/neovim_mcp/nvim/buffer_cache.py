"""Directory of open buffers and resolution of user-supplied buffer titles."""

from loguru import logger
from pynvim.api import NvimError

from neovim_mcp.errors import BufferNotFoundError
from neovim_mcp.nvim.session import to_handle
from neovim_mcp.protocols import NvimSessionProtocol

_EXACT, _SUFFIX, _SUBSTRING = 0, 1, 2


class BufferDirectory:
    """Maps buffer handles to their paths.

    The mapping is rebuilt from scratch on every refresh rather than patched,
    so closed buffers disappear without explicit invalidation. ``resolve``
    refreshes before matching because other clients may open or close buffers
    at any time.
    """

    def __init__(self, session: NvimSessionProtocol) -> None:
        self._session = session
        self.entries: dict[int, str] = {}

    def refresh(self) -> dict[int, str]:
        """Reload the handle -> path mapping.

        A buffer whose name cannot be read is skipped; failing to list
        buffers at all propagates.
        """
        buffers = self._session.request("nvim_list_bufs")

        entries: dict[int, str] = {}
        for buf in buffers:
            handle = to_handle(buf)
            try:
                entries[handle] = self._session.request("nvim_buf_get_name", handle)
            except NvimError as e:
                logger.debug("Skipping buffer {}: {}", handle, e)

        self.entries = entries
        return entries

    def resolve(self, query: str) -> int:
        """Return the handle of the buffer whose path best matches ``query``.

        Candidates are paths equal to, ending with, or containing ``query``.
        Exact matches beat suffix matches, which beat substring matches; then
        the shortest path wins, then the lowest handle.
        """
        self.refresh()

        if not query:
            msg = "empty buffer title"
            raise BufferNotFoundError(msg)

        candidates: list[tuple[int, int, int]] = []
        for handle, path in self.entries.items():
            if path == query:
                rank = _EXACT
            elif path.endswith(query):
                rank = _SUFFIX
            elif query in path:
                rank = _SUBSTRING
            else:
                continue
            candidates.append((rank, len(path), handle))

        if not candidates:
            msg = f"no buffer matches {query!r}"
            raise BufferNotFoundError(msg)

        candidates.sort()
        if len(candidates) > 1:
            logger.debug(
                "Title {!r} matched {} buffers, using {}", query, len(candidates), candidates[0][2]
            )
        return candidates[0][2]
