"""MCP server exposing Neovim buffer, text, cursor, window and command tools."""

import asyncio
import functools
import json
from collections.abc import AsyncIterator, Callable
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from neovim_mcp.config import Settings
from neovim_mcp.errors import NeovimMcpError
from neovim_mcp.nvim.client import END_OF_BUFFER, SPLIT_HORIZONTAL, NeovimClient
from neovim_mcp.nvim.context import CallContext

JSON_MIME_TYPE = "application/json"


def _error(e: NeovimMcpError) -> dict[str, Any]:
    logger.warning("{}", e)
    return {"error": str(e)}


def _write_error(e: NeovimMcpError) -> dict[str, Any]:
    logger.warning("{}", e)
    return {"success": False, "error": str(e)}


# --- Core functions (testable without MCP context) ---


def nvim_get_buffers(client: NeovimClient, *, ctx: CallContext | None = None) -> dict[str, Any]:
    """List all open buffers with title, listed state, modified state and line count."""
    try:
        buffers = client.get_buffers(ctx=ctx)
    except NeovimMcpError as e:
        return _error(e)
    return {"buffers": [b.to_dict() for b in buffers]}


def nvim_get_current_buffer(
    client: NeovimClient, *, ctx: CallContext | None = None
) -> dict[str, Any]:
    try:
        buffer = client.get_current_buffer(ctx=ctx)
    except NeovimMcpError as e:
        return _error(e)
    return {"buffer": buffer.to_dict()}


def nvim_open_buffer(
    client: NeovimClient, *, path: str, ctx: CallContext | None = None
) -> dict[str, Any]:
    try:
        buffer = client.open_buffer(path, ctx=ctx)
    except NeovimMcpError as e:
        return _error(e)
    return {"buffer": buffer.to_dict()}


def nvim_close_buffer(
    client: NeovimClient, *, title: str, force: bool = False, ctx: CallContext | None = None
) -> dict[str, Any]:
    try:
        client.close_buffer(title, force=force, ctx=ctx)
    except NeovimMcpError as e:
        return _write_error(e)
    return {"success": True, "message": f"Closed buffer matching {title!r}"}


def nvim_switch_buffer(
    client: NeovimClient, *, buffer_title: str, ctx: CallContext | None = None
) -> dict[str, Any]:
    try:
        client.switch_buffer(buffer_title, ctx=ctx)
    except NeovimMcpError as e:
        return _write_error(e)
    return {"success": True}


def nvim_get_buffer_lines(
    client: NeovimClient,
    *,
    buffer_title: str,
    start_line: int = 1,
    end_line: int = END_OF_BUFFER,
    ctx: CallContext | None = None,
) -> dict[str, Any]:
    """Read lines from a buffer.

    Args:
        buffer_title: Buffer title or path fragment.
        start_line: First line (1-based, inclusive).
        end_line: Last line (1-based, inclusive, -1 for end of file).
    """
    try:
        lines = client.get_buffer_lines(buffer_title, start_line, end_line, ctx=ctx)
    except NeovimMcpError as e:
        return _error(e)
    return {"lines": lines}


def nvim_set_buffer_lines(
    client: NeovimClient,
    *,
    buffer_title: str,
    start_line: int,
    end_line: int,
    lines: list[str],
    ctx: CallContext | None = None,
) -> dict[str, Any]:
    try:
        client.set_buffer_lines(buffer_title, start_line, end_line, lines, ctx=ctx)
    except NeovimMcpError as e:
        return _write_error(e)
    return {"success": True}


def nvim_insert_text(
    client: NeovimClient, *, text: str, ctx: CallContext | None = None
) -> dict[str, Any]:
    try:
        client.insert_text(text, ctx=ctx)
    except NeovimMcpError as e:
        return _write_error(e)
    return {"success": True}


def nvim_delete_lines(
    client: NeovimClient,
    *,
    buffer_title: str,
    start_line: int,
    end_line: int,
    ctx: CallContext | None = None,
) -> dict[str, Any]:
    try:
        client.delete_lines(buffer_title, start_line, end_line, ctx=ctx)
    except NeovimMcpError as e:
        return _write_error(e)
    return {"success": True}


def nvim_get_cursor_position(
    client: NeovimClient, *, ctx: CallContext | None = None
) -> dict[str, Any]:
    """Return the cursor position together with the current buffer's path."""
    try:
        position = client.get_cursor_position(ctx=ctx)
        buffer = client.get_current_buffer(ctx=ctx)
    except NeovimMcpError as e:
        return _error(e)
    return {"path": buffer.path, **position.to_dict()}


def nvim_set_cursor_position(
    client: NeovimClient, *, line: int, column: int, ctx: CallContext | None = None
) -> dict[str, Any]:
    try:
        client.set_cursor_position(line, column, ctx=ctx)
    except NeovimMcpError as e:
        return _write_error(e)
    return {"success": True}


def nvim_goto_line(
    client: NeovimClient, *, line: int, ctx: CallContext | None = None
) -> dict[str, Any]:
    try:
        client.goto_line(line, ctx=ctx)
    except NeovimMcpError as e:
        return _write_error(e)
    return {"success": True}


def nvim_search(
    client: NeovimClient, *, pattern: str, flags: str = "", ctx: CallContext | None = None
) -> dict[str, Any]:
    try:
        matches = client.search(pattern, flags, ctx=ctx)
    except NeovimMcpError as e:
        return _error(e)
    return {"matches": [m.to_dict() for m in matches], "count": len(matches)}


def nvim_get_windows(client: NeovimClient, *, ctx: CallContext | None = None) -> dict[str, Any]:
    try:
        windows = client.get_windows(ctx=ctx)
    except NeovimMcpError as e:
        return _error(e)
    return {"windows": [w.to_dict() for w in windows]}


def nvim_split_window(
    client: NeovimClient,
    *,
    direction: str = SPLIT_HORIZONTAL,
    buffer_title: str = "",
    ctx: CallContext | None = None,
) -> dict[str, Any]:
    try:
        window = client.split_window(direction, buffer_title, ctx=ctx)
    except NeovimMcpError as e:
        return _error(e)
    return {"window": window.to_dict()}


def nvim_close_window(
    client: NeovimClient, *, window_id: int, ctx: CallContext | None = None
) -> dict[str, Any]:
    try:
        client.close_window(window_id, ctx=ctx)
    except NeovimMcpError as e:
        return _write_error(e)
    return {"success": True}


def nvim_resize_window(
    client: NeovimClient,
    *,
    window_id: int,
    width: int = 0,
    height: int = 0,
    ctx: CallContext | None = None,
) -> dict[str, Any]:
    try:
        client.resize_window(window_id, width, height, ctx=ctx)
    except NeovimMcpError as e:
        return _write_error(e)
    return {"success": True}


def nvim_exec_command(
    client: NeovimClient, *, command: str, ctx: CallContext | None = None
) -> dict[str, Any]:
    try:
        output = client.exec_command(command, ctx=ctx)
    except NeovimMcpError as e:
        return _error(e)
    return {"output": output}


def nvim_exec_lua(
    client: NeovimClient,
    *,
    code: str,
    args: list[Any] | None = None,
    ctx: CallContext | None = None,
) -> dict[str, Any]:
    try:
        result = client.exec_lua(code, args, ctx=ctx)
    except NeovimMcpError as e:
        return _error(e)
    return {"result": result}


def nvim_call_function(
    client: NeovimClient,
    *,
    function_name: str,
    args: list[Any] | None = None,
    ctx: CallContext | None = None,
) -> dict[str, Any]:
    try:
        result = client.call_function(function_name, args, ctx=ctx)
    except NeovimMcpError as e:
        return _error(e)
    return {"result": result}


# --- Resource bodies ---


def buffers_resource(client: NeovimClient, *, ctx: CallContext | None = None) -> str:
    return json.dumps([b.to_dict() for b in client.get_buffers(ctx=ctx)])


def windows_resource(client: NeovimClient, *, ctx: CallContext | None = None) -> str:
    return json.dumps([w.to_dict() for w in client.get_windows(ctx=ctx)])


def diagnostics_resource(client: NeovimClient, *, ctx: CallContext | None = None) -> str:
    return json.dumps([d.to_dict() for d in client.get_diagnostics(ctx=ctx)])


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime.

    ``executor`` has a single worker: the client is attached on that thread
    and every call is submitted there, so operations never overlap.
    """

    client: NeovimClient
    executor: ThreadPoolExecutor
    settings: Settings

    async def run(self, func: Callable[..., Any], /, **kwargs: Any) -> Any:
        """Run ``func(client, ctx=..., **kwargs)`` on the client's worker thread."""
        call_ctx = CallContext.with_timeout(self.settings.timeout)
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(
            self.executor, functools.partial(func, self.client, ctx=call_ctx, **kwargs)
        )
        try:
            return await future
        except asyncio.CancelledError:
            call_ctx.cancel()
            raise


@asynccontextmanager
async def open_server_context(settings: Settings) -> AsyncIterator[ServerContext]:
    """Connect to Neovim on startup, disconnect on shutdown."""
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="nvim")
    loop = asyncio.get_running_loop()
    try:
        client = await loop.run_in_executor(
            executor, NeovimClient.connect, settings.socket_address
        )
    except NeovimMcpError as e:
        logger.error("Failed to connect to Neovim: {}", e)
        executor.shutdown(wait=False)
        raise

    logger.info("Connected to Neovim at {}", settings.socket_address)
    try:
        yield ServerContext(client=client, executor=executor, settings=settings)
    finally:
        try:
            await loop.run_in_executor(executor, client.close)
        except (OSError, EOFError) as e:
            logger.error("Failed to close Neovim connection: {}", e)
        executor.shutdown(wait=True)


INSTRUCTIONS = """\
These tools drive a live Neovim instance that a person may be editing at the
same time. Re-read buffers instead of relying on earlier results.

- Buffers are addressed by title: a file name or any fragment of the full path.
  An exact path wins over a suffix match, which wins over a substring match.
- Line and column numbers are 1-based. end_line is inclusive; -1 means the end
  of the buffer.
- search starts at the cursor and moves it to the last match.
- insert_text feeds keys to Neovim; keycodes such as <CR> or <Esc> are
  interpreted, so enter insert mode first when inserting literal text.
"""


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[no-any-return]


# --- MCP Tool Wrappers ---


async def get_buffers(ctx: Context) -> dict[str, Any]:
    """List all open buffers in the Neovim instance with metadata including title,
    loaded status, modification state, and line count."""
    return await _ctx(ctx).run(nvim_get_buffers)


async def get_current_buffer(ctx: Context) -> dict[str, Any]:
    """Get information about the currently active buffer."""
    return await _ctx(ctx).run(nvim_get_current_buffer)


async def open_buffer(ctx: Context, path: str) -> dict[str, Any]:
    """Open a file in a new buffer.

    Args:
        path: File path to open.
    """
    return await _ctx(ctx).run(nvim_open_buffer, path=path)


async def close_buffer(ctx: Context, title: str, force: bool = False) -> dict[str, Any]:
    """Close a buffer by its title or filename.

    Args:
        title: Buffer title or filename to close.
        force: Discard unsaved changes.
    """
    return await _ctx(ctx).run(nvim_close_buffer, title=title, force=force)


async def switch_buffer(ctx: Context, buffer_title: str) -> dict[str, Any]:
    """Switch to a different buffer by its title or filename.

    Args:
        buffer_title: Buffer title or filename.
    """
    return await _ctx(ctx).run(nvim_switch_buffer, buffer_title=buffer_title)


async def get_buffer_lines(
    ctx: Context, buffer_title: str, start_line: int = 1, end_line: int = END_OF_BUFFER
) -> dict[str, Any]:
    """Read lines from a buffer with 1-based line indexing.

    Args:
        buffer_title: Buffer title or filename.
        start_line: Starting line number (1-based, inclusive).
        end_line: Ending line number (1-based, inclusive, -1 for end of file).
    """
    return await _ctx(ctx).run(
        nvim_get_buffer_lines, buffer_title=buffer_title, start_line=start_line, end_line=end_line
    )


async def set_buffer_lines(
    ctx: Context, buffer_title: str, start_line: int, end_line: int, lines: list[str]
) -> dict[str, Any]:
    """Write or replace lines in a buffer with 1-based line indexing.

    Args:
        buffer_title: Buffer title or filename.
        start_line: Starting line number (1-based, inclusive).
        end_line: Ending line number (1-based, inclusive, -1 for end of file).
            Use start_line - 1 to insert before start_line.
        lines: New line contents.
    """
    return await _ctx(ctx).run(
        nvim_set_buffer_lines,
        buffer_title=buffer_title,
        start_line=start_line,
        end_line=end_line,
        lines=lines,
    )


async def insert_text(ctx: Context, text: str) -> dict[str, Any]:
    """Insert text at the current cursor position.

    Args:
        text: Text to feed to Neovim at the cursor.
    """
    return await _ctx(ctx).run(nvim_insert_text, text=text)


async def delete_lines(
    ctx: Context, buffer_title: str, start_line: int, end_line: int
) -> dict[str, Any]:
    """Delete a range of lines from a buffer.

    Args:
        buffer_title: Buffer title or filename.
        start_line: Starting line number (1-based).
        end_line: Ending line number (1-based, inclusive, -1 for end of file).
    """
    return await _ctx(ctx).run(
        nvim_delete_lines, buffer_title=buffer_title, start_line=start_line, end_line=end_line
    )


async def get_cursor_position(ctx: Context) -> dict[str, Any]:
    """Get the current cursor position with 1-based line and column indexing."""
    return await _ctx(ctx).run(nvim_get_cursor_position)


async def set_cursor_position(ctx: Context, line: int, column: int) -> dict[str, Any]:
    """Move the cursor to a specific position with 1-based indexing.

    Args:
        line: Line number (1-based).
        column: Column number (1-based).
    """
    return await _ctx(ctx).run(nvim_set_cursor_position, line=line, column=column)


async def goto_line(ctx: Context, line: int) -> dict[str, Any]:
    """Jump to a specific line number in the current buffer.

    Args:
        line: Line number to jump to (1-based).
    """
    return await _ctx(ctx).run(nvim_goto_line, line=line)


async def search(ctx: Context, pattern: str, flags: str = "") -> dict[str, Any]:
    """Search for a pattern in the current buffer using Vim regex.

    Args:
        pattern: Search pattern (Vim regex).
        flags: Extra searchpos() flags, e.g. 'b' for backward.
    """
    return await _ctx(ctx).run(nvim_search, pattern=pattern, flags=flags)


async def get_windows(ctx: Context) -> dict[str, Any]:
    """List all windows with their buffer information and dimensions."""
    return await _ctx(ctx).run(nvim_get_windows)


async def split_window(
    ctx: Context, direction: str = SPLIT_HORIZONTAL, buffer_title: str = ""
) -> dict[str, Any]:
    """Create a new window split horizontally or vertically.

    Args:
        direction: 'horizontal' or 'vertical'.
        buffer_title: Optional file to open in the new window.
    """
    return await _ctx(ctx).run(nvim_split_window, direction=direction, buffer_title=buffer_title)


async def close_window(ctx: Context, window_id: int) -> dict[str, Any]:
    """Close a window by its handle/ID.

    Args:
        window_id: Window handle/ID to close.
    """
    return await _ctx(ctx).run(nvim_close_window, window_id=window_id)


async def resize_window(
    ctx: Context, window_id: int, width: int = 0, height: int = 0
) -> dict[str, Any]:
    """Resize a window's dimensions.

    Args:
        window_id: Window handle/ID to resize.
        width: New width in columns (0 to keep current).
        height: New height in rows (0 to keep current).
    """
    return await _ctx(ctx).run(
        nvim_resize_window, window_id=window_id, width=width, height=height
    )


async def exec_command(ctx: Context, command: str) -> dict[str, Any]:
    """Execute a Vim Ex command and return its output.

    Args:
        command: Ex command to execute (e.g., 'w', 'q', 'tabnew').
    """
    return await _ctx(ctx).run(nvim_exec_command, command=command)


async def exec_lua(ctx: Context, code: str, args: list[Any] | None = None) -> dict[str, Any]:
    """Execute Lua code in Neovim's Lua runtime.

    Args:
        code: Lua code to execute; use `...` to read args and `return` a result.
        args: Optional arguments passed to the code.
    """
    return await _ctx(ctx).run(nvim_exec_lua, code=code, args=args)


async def call_function(
    ctx: Context, function_name: str, args: list[Any] | None = None
) -> dict[str, Any]:
    """Call a Vim/Neovim function.

    Args:
        function_name: Vim/Neovim function name.
        args: Function arguments.
    """
    return await _ctx(ctx).run(nvim_call_function, function_name=function_name, args=args)


TOOLS: tuple[Callable[..., Any], ...] = (
    get_buffers,
    get_current_buffer,
    open_buffer,
    close_buffer,
    switch_buffer,
    get_buffer_lines,
    set_buffer_lines,
    insert_text,
    delete_lines,
    get_cursor_position,
    set_cursor_position,
    goto_line,
    search,
    get_windows,
    split_window,
    close_window,
    resize_window,
    exec_command,
    exec_lua,
    call_function,
)

RESOURCES: tuple[tuple[str, str, Callable[..., str]], ...] = (
    ("nvim://buffers", "buffers", buffers_resource),
    ("nvim://windows", "windows", windows_resource),
    ("nvim://diagnostics", "diagnostics", diagnostics_resource),
)


def create_server(settings: Settings) -> FastMCP:
    """Build a FastMCP server bound to the Neovim instance named by ``settings``."""

    @asynccontextmanager
    async def lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
        async with open_server_context(settings) as server_ctx:
            yield server_ctx

    server = FastMCP("neovim-mcp", instructions=INSTRUCTIONS, lifespan=lifespan)

    for tool in TOOLS:
        server.add_tool(tool)

    for uri, name, body in RESOURCES:
        server.resource(uri, name=name, mime_type=JSON_MIME_TYPE)(_resource_reader(server, body))

    return server


def _resource_reader(server: FastMCP, body: Callable[..., str]) -> Callable[[], Any]:
    async def read_resource() -> str:
        return await _ctx(server.get_context()).run(body)  # type: ignore[no-any-return]

    read_resource.__name__ = body.__name__
    return read_resource


def run_mcp_server(settings: Settings) -> None:
    """Run the MCP server with stdio transport."""
    create_server(settings).run(transport="stdio")
