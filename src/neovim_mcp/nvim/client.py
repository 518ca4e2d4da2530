"""Façade over a Neovim msgpack-RPC session.

Every public operation checks its ``CallContext`` once on entry, resolves
buffer titles against a freshly rebuilt buffer directory, and raises errors
tagged with the operation name. Line numbers and columns are 1-based at this
boundary; Neovim's line ranges are 0-based with an exclusive end, so a range
``start..end`` becomes ``start - 1..end`` on the wire.
"""

import functools
from collections.abc import Callable, Sequence
from typing import Any, TypeVar, cast

from loguru import logger
from pynvim.api import NvimError

from neovim_mcp.errors import (
    AggregationError,
    InvalidRangeError,
    NeovimMcpError,
    NvimConnectionError,
    RemoteCallError,
    WindowNotFoundError,
)
from neovim_mcp.models.editor import (
    BufferInfo,
    CursorPosition,
    Diagnostic,
    SearchMatch,
    WindowInfo,
    title_from_path,
)
from neovim_mcp.nvim.batch import Batch
from neovim_mcp.nvim.buffer_cache import BufferDirectory
from neovim_mcp.nvim.context import CallContext
from neovim_mcp.nvim.lua import (
    DIAGNOSTICS_SCRIPT,
    build_search_script,
    decode_diagnostics,
    decode_search_matches,
    plain_value,
)
from neovim_mcp.nvim.session import connect, to_handle
from neovim_mcp.protocols import NvimSessionProtocol

# Passed as an end line to mean "through the last line".
END_OF_BUFFER = -1

SPLIT_HORIZONTAL = "horizontal"
SPLIT_VERTICAL = "vertical"

F = TypeVar("F", bound=Callable[..., Any])


def _operation(name: str) -> Callable[[F], F]:
    """Check the caller's context on entry and tag failures with ``name``."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(
            self: "NeovimClient", *args: Any, ctx: CallContext | None = None, **kwargs: Any
        ) -> Any:
            try:
                if ctx is not None:
                    ctx.check()
                return func(self, *args, **kwargs)
            except NeovimMcpError as e:
                if e.operation is None:
                    e.operation = name
                raise
            except NvimError as e:
                raise RemoteCallError(str(e), operation=name) from e
            except (OSError, EOFError) as e:
                raise NvimConnectionError(str(e), operation=name) from e

        return cast(F, wrapper)

    return decorator


def _check_range(start: int, end: int, *, allow_empty: bool = False) -> None:
    if start < 1:
        msg = f"start line {start} must be >= 1"
        raise InvalidRangeError(msg)
    if end == END_OF_BUFFER:
        return
    if end < (start - 1 if allow_empty else start):
        msg = f"end line {end} is before start line {start}"
        raise InvalidRangeError(msg)


class NeovimClient:
    """Unified operations against one Neovim session.

    Not safe for concurrent use; callers must serialise access to a shared
    instance. pynvim sessions must also be driven from the thread that
    attached them.
    """

    def __init__(self, session: NvimSessionProtocol) -> None:
        self._session = session
        self.buffers = BufferDirectory(session)

    @classmethod
    def connect(cls, address: str) -> "NeovimClient":
        """Attach to Neovim and load the buffer directory.

        If the initial directory refresh fails the transport is closed again
        and ``NvimConnectionError`` is raised.
        """
        session = connect(address)
        client = cls(session)
        try:
            client.buffers.refresh()
        except (NvimError, OSError, EOFError) as e:
            try:
                session.close()
            except (OSError, EOFError) as close_error:
                logger.error("Failed to close neovim connection: {}", close_error)
            msg = f"failed to refresh buffer cache: {e}"
            raise NvimConnectionError(msg) from e
        return client

    def close(self) -> None:
        """Release the transport. Call at most once."""
        self.buffers.entries = {}
        self._session.close()

    def _request(self, method: str, *args: Any) -> Any:
        return self._session.request(method, *args)

    def _fnameescape(self, path: str) -> str:
        return cast(str, self._request("nvim_call_function", "fnameescape", [path]))

    def _buffer_info(self, handle: int) -> BufferInfo:
        batch = Batch(self._session)
        batch.add("nvim_buf_get_name", handle)
        batch.add("nvim_get_option_value", "buflisted", {"buf": handle})
        batch.add("nvim_get_option_value", "modified", {"buf": handle})
        batch.add("nvim_buf_line_count", handle)
        path, listed, modified, line_count = batch.execute()

        return BufferInfo(
            handle=handle,
            title=title_from_path(path),
            path=path,
            loaded=bool(listed),
            changed=bool(modified),
            line_count=line_count,
        )

    def _require_window(self, handle: int) -> None:
        if handle not in {to_handle(w) for w in self._request("nvim_list_wins")}:
            msg = f"no window with id {handle}"
            raise WindowNotFoundError(msg)

    def _window_info(self, handle: int) -> WindowInfo:
        batch = Batch(self._session)
        batch.add("nvim_win_get_buf", handle)
        batch.add("nvim_win_get_width", handle)
        batch.add("nvim_win_get_height", handle)
        buf, width, height = batch.execute()

        return WindowInfo(
            handle=handle,
            buffer=self._buffer_info(to_handle(buf)),
            width=width,
            height=height,
        )

    # --- Buffer directory ---

    @_operation("refresh buffer cache")
    def refresh_buffer_cache(self) -> dict[int, str]:
        return dict(self.buffers.refresh())

    @_operation("resolve buffer title")
    def resolve_title(self, title: str) -> int:
        return self.buffers.resolve(title)

    @_operation("get buffer info")
    def get_buffer_info(self, handle: int) -> BufferInfo:
        """Fetch path, listed/modified flags and line count in one round trip."""
        return self._buffer_info(handle)

    @_operation("get window info")
    def get_window_info(self, handle: int) -> WindowInfo:
        """Fetch a window's buffer and size, plus a fresh ``BufferInfo``."""
        self._require_window(handle)
        return self._window_info(handle)

    # --- Buffers ---

    @_operation("get buffers")
    def get_buffers(self) -> list[BufferInfo]:
        """Return info for every open buffer, ordered by handle.

        Buffers whose info cannot be fetched are left out.
        """
        entries = self.buffers.refresh()
        results: list[BufferInfo] = []
        for handle in sorted(entries):
            try:
                results.append(self._buffer_info(handle))
            except AggregationError as e:
                logger.debug("Skipping buffer {}: {}", handle, e)
        return results

    @_operation("get buffer by title")
    def get_buffer_by_title(self, title: str) -> BufferInfo:
        return self._buffer_info(self.buffers.resolve(title))

    @_operation("get current buffer")
    def get_current_buffer(self) -> BufferInfo:
        return self._buffer_info(to_handle(self._request("nvim_get_current_buf")))

    @_operation("open buffer")
    def open_buffer(self, path: str) -> BufferInfo:
        """Edit ``path`` in the current window and return the resulting buffer."""
        self._request("nvim_command", f"edit {self._fnameescape(path)}")
        return self._buffer_info(to_handle(self._request("nvim_get_current_buf")))

    @_operation("close buffer")
    def close_buffer(self, title: str, *, force: bool = False) -> None:
        handle = self.buffers.resolve(title)
        self._request("nvim_command", f"bdelete{'!' if force else ''} {handle}")

    @_operation("switch buffer")
    def switch_buffer(self, title: str) -> None:
        self._request("nvim_set_current_buf", self.buffers.resolve(title))

    # --- Text ---

    @_operation("get buffer lines")
    def get_buffer_lines(self, title: str, start: int, end: int) -> list[str]:
        """Return lines ``start..end`` (1-based, inclusive; ``end=-1`` reads to the end)."""
        _check_range(start, end)
        handle = self.buffers.resolve(title)
        return list(self._request("nvim_buf_get_lines", handle, start - 1, end, True))

    @_operation("set buffer lines")
    def set_buffer_lines(self, title: str, start: int, end: int, lines: Sequence[str]) -> None:
        """Replace lines ``start..end`` (1-based, inclusive) with ``lines``.

        ``end == start - 1`` inserts before ``start`` without replacing anything.
        """
        _check_range(start, end, allow_empty=True)
        handle = self.buffers.resolve(title)
        self._request("nvim_buf_set_lines", handle, start - 1, end, True, list(lines))

    @_operation("insert text")
    def insert_text(self, text: str) -> None:
        """Feed ``text`` to Neovim as typed input at the cursor."""
        written = self._request("nvim_input", text)
        logger.debug("Wrote {} bytes at cursor", written)

    @_operation("delete lines")
    def delete_lines(self, title: str, start: int, end: int) -> None:
        _check_range(start, end)
        handle = self.buffers.resolve(title)
        self._request("nvim_buf_set_lines", handle, start - 1, end, True, [])

    # --- Cursor ---

    @_operation("get cursor position")
    def get_cursor_position(self) -> CursorPosition:
        # Neovim reports a 1-based line and a 0-based column.
        line, column = self._request("nvim_win_get_cursor", 0)
        return CursorPosition(line=line, column=column + 1)

    @_operation("set cursor position")
    def set_cursor_position(self, line: int, column: int) -> None:
        if line < 1 or column < 1:
            msg = f"cursor position ({line}, {column}) must be >= (1, 1)"
            raise InvalidRangeError(msg)
        self._request("nvim_win_set_cursor", 0, [line, column - 1])

    @_operation("goto line")
    def goto_line(self, line: int) -> None:
        if line < 1:
            msg = f"line {line} must be >= 1"
            raise InvalidRangeError(msg)
        self._request("nvim_command", str(line))

    @_operation("search")
    def search(self, pattern: str, flags: str = "") -> list[SearchMatch]:
        """Find every match of the Vim regex ``pattern`` from the cursor onwards.

        The cursor is left on the last match.
        """
        raw = self._request("nvim_exec_lua", build_search_script(pattern, flags), [])
        return decode_search_matches(raw)

    # --- Windows ---

    @_operation("get windows")
    def get_windows(self) -> list[WindowInfo]:
        results: list[WindowInfo] = []
        for win in self._request("nvim_list_wins"):
            handle = to_handle(win)
            try:
                results.append(self._window_info(handle))
            except AggregationError as e:
                logger.debug("Skipping window {}: {}", handle, e)
        return results

    @_operation("split window")
    def split_window(
        self, direction: str = SPLIT_HORIZONTAL, buffer_title: str = ""
    ) -> WindowInfo:
        """Split the current window and return the new one.

        ``buffer_title`` is opened in the new window when given.
        """
        command = "vsplit" if direction == SPLIT_VERTICAL else "split"
        if buffer_title:
            command = f"{command} {self._fnameescape(buffer_title)}"
        self._request("nvim_command", command)
        return self._window_info(to_handle(self._request("nvim_get_current_win")))

    @_operation("close window")
    def close_window(self, window_id: int, *, force: bool = True) -> None:
        self._require_window(window_id)
        self._request("nvim_win_close", window_id, force)

    @_operation("resize window")
    def resize_window(self, window_id: int, width: int = 0, height: int = 0) -> None:
        """Set a window's width and/or height; 0 keeps the current value."""
        if width < 0 or height < 0:
            msg = f"window size ({width}x{height}) must not be negative"
            raise InvalidRangeError(msg)
        self._require_window(window_id)

        batch = Batch(self._session)
        if width > 0:
            batch.add("nvim_win_set_width", window_id, width)
        if height > 0:
            batch.add("nvim_win_set_height", window_id, height)
        batch.execute()

    # --- Commands ---

    @_operation("exec command")
    def exec_command(self, command: str) -> str:
        """Run an Ex command and return its captured output."""
        result = self._request("nvim_exec2", command, {"output": True})
        return cast(str, (result or {}).get("output", ""))

    @_operation("exec lua")
    def exec_lua(self, code: str, args: Sequence[Any] | None = None) -> Any:
        return plain_value(self._request("nvim_exec_lua", code, list(args or [])))

    @_operation("call function")
    def call_function(self, name: str, args: Sequence[Any] | None = None) -> Any:
        return plain_value(self._request("nvim_call_function", name, list(args or [])))

    # --- Diagnostics ---

    @_operation("get diagnostics")
    def get_diagnostics(self, title: str | None = None) -> list[Diagnostic]:
        """Return ``vim.diagnostic`` entries for one buffer, or all buffers."""
        handle = self.buffers.resolve(title) if title else None
        return decode_diagnostics(self._request("nvim_exec_lua", DIAGNOSTICS_SCRIPT, [handle]))
