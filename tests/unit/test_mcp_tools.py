"""Tests for MCP tool core functions and server wiring."""

import asyncio
import json
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pytest

from neovim_mcp.config import Settings
from neovim_mcp.errors import NvimConnectionError
from neovim_mcp.mcp.server import (
    RESOURCES,
    TOOLS,
    ServerContext,
    buffers_resource,
    create_server,
    diagnostics_resource,
    get_buffer_lines,
    nvim_close_buffer,
    nvim_delete_lines,
    nvim_exec_command,
    nvim_get_buffer_lines,
    nvim_get_buffers,
    nvim_get_cursor_position,
    nvim_get_windows,
    nvim_resize_window,
    nvim_search,
    nvim_set_buffer_lines,
    nvim_split_window,
    nvim_switch_buffer,
    open_server_context,
    windows_resource,
)
from neovim_mcp.nvim.client import NeovimClient
from neovim_mcp.nvim.context import CallContext
from tests.unit.fakes import NOTES_PATH, FakeNvim, literal_search_handler


@pytest.fixture
def server_ctx(client: NeovimClient) -> Iterator[ServerContext]:
    executor = ThreadPoolExecutor(max_workers=1)
    yield ServerContext(client=client, executor=executor, settings=Settings(timeout=5))
    executor.shutdown(wait=True)


def test_nvim_get_buffers_returns_metadata(client: NeovimClient) -> None:
    result = nvim_get_buffers(client)
    assert [b["title"] for b in result["buffers"]] == ["notes.txt", "main.py"]
    first = result["buffers"][0]
    assert first == {
        "handle": 1,
        "title": "notes.txt",
        "name": NOTES_PATH,
        "loaded": True,
        "changed": False,
        "line_count": 4,
    }


def test_nvim_get_buffer_lines_defaults_to_whole_buffer(client: NeovimClient) -> None:
    result = nvim_get_buffer_lines(client, buffer_title="notes.txt")
    assert result == {"lines": ["line1", "line2", "line3", "line4"]}


def test_nvim_get_buffer_lines_unknown_buffer(client: NeovimClient) -> None:
    result = nvim_get_buffer_lines(client, buffer_title="nope.txt")
    assert result == {"error": "failed to get buffer lines: no buffer matches 'nope.txt'"}


def test_nvim_set_and_delete_lines(client: NeovimClient, fake_nvim: FakeNvim) -> None:
    result = nvim_set_buffer_lines(
        client, buffer_title="notes.txt", start_line=1, end_line=1, lines=["first"]
    )
    assert result == {"success": True}

    result = nvim_delete_lines(client, buffer_title="notes.txt", start_line=2, end_line=3)
    assert result == {"success": True}
    assert fake_nvim.buffers[1].lines == ["first", "line4"]


def test_nvim_set_buffer_lines_invalid_range(client: NeovimClient) -> None:
    result = nvim_set_buffer_lines(
        client, buffer_title="notes.txt", start_line=0, end_line=1, lines=[]
    )
    assert result["success"] is False
    assert result["error"].startswith("failed to set buffer lines: ")


def test_nvim_switch_and_close_buffer(client: NeovimClient, fake_nvim: FakeNvim) -> None:
    assert nvim_switch_buffer(client, buffer_title="main.py") == {"success": True}
    assert fake_nvim.windows[1000].buffer == 2

    result = nvim_close_buffer(client, title="notes.txt")
    assert result["success"] is True
    assert not fake_nvim.buffers[1].listed


def test_nvim_get_cursor_position_includes_path(client: NeovimClient) -> None:
    assert nvim_get_cursor_position(client) == {"path": NOTES_PATH, "line": 1, "column": 1}


class _CountingContext(CallContext):
    checks = 0

    def check(self) -> None:
        self.checks += 1
        super().check()


def test_nvim_get_cursor_position_checks_context_for_each_call(client: NeovimClient) -> None:
    ctx = _CountingContext()
    assert nvim_get_cursor_position(client, ctx=ctx)["path"] == NOTES_PATH
    assert ctx.checks == 2


def test_nvim_get_cursor_position_stops_when_cancelled(
    client: NeovimClient, fake_nvim: FakeNvim
) -> None:
    ctx = CallContext()
    ctx.cancel()
    result = nvim_get_cursor_position(client, ctx=ctx)
    assert result == {"error": "failed to get cursor position: operation cancelled"}
    assert fake_nvim.calls == []


def test_nvim_search_counts_matches(client: NeovimClient, fake_nvim: FakeNvim) -> None:
    fake_nvim.lua_handler = literal_search_handler(fake_nvim)
    result = nvim_search(client, pattern="line")
    assert result["count"] == 3
    assert result["matches"][0] == {"line": 2, "column": 1, "match_text": "line2"}


def test_nvim_windows(client: NeovimClient) -> None:
    split = nvim_split_window(client, direction="vertical")
    assert split["window"]["buffer"]["title"] == "notes.txt"

    result = nvim_get_windows(client)
    assert [w["handle"] for w in result["windows"]] == [1000, 1001]


def test_nvim_resize_unknown_window(client: NeovimClient) -> None:
    result = nvim_resize_window(client, window_id=9, width=10)
    assert result == {"success": False, "error": "failed to resize window: no window with id 9"}


def test_nvim_exec_command(client: NeovimClient, fake_nvim: FakeNvim) -> None:
    fake_nvim.command_output["ls"] = '  1 %a   "notes.txt"'
    assert nvim_exec_command(client, command="ls") == {"output": '  1 %a   "notes.txt"'}


def test_core_function_honours_cancelled_context(
    client: NeovimClient, fake_nvim: FakeNvim
) -> None:
    ctx = CallContext()
    ctx.cancel()
    result = nvim_get_buffers(client, ctx=ctx)
    assert result == {"error": "failed to get buffers: operation cancelled"}
    assert fake_nvim.calls == []


def test_resources_serialise_to_json(client: NeovimClient, fake_nvim: FakeNvim) -> None:
    fake_nvim.lua_handler = lambda code, args: []

    assert [b["handle"] for b in json.loads(buffers_resource(client))] == [1, 2]
    assert json.loads(windows_resource(client))[0]["handle"] == 1000
    assert json.loads(diagnostics_resource(client)) == []


def test_server_context_runs_on_worker(server_ctx: ServerContext) -> None:
    result = asyncio.run(
        server_ctx.run(nvim_get_buffer_lines, buffer_title="notes.txt", start_line=2, end_line=2)
    )
    assert result == {"lines": ["line2"]}


def test_tool_wrapper_uses_lifespan_context(server_ctx: ServerContext) -> None:
    mcp_ctx = MagicMock()
    mcp_ctx.request_context.lifespan_context = server_ctx

    result = asyncio.run(get_buffer_lines(mcp_ctx, "notes.txt", 1, 2))
    assert result == {"lines": ["line1", "line2"]}


def test_open_server_context_connects_and_closes(
    client: NeovimClient, fake_nvim: FakeNvim
) -> None:
    async def scenario() -> list[str]:
        async with open_server_context(Settings(socket_address="/tmp/test.sock")) as ctx:
            return [b["title"] for b in (await ctx.run(nvim_get_buffers))["buffers"]]

    with patch("neovim_mcp.mcp.server.NeovimClient.connect", return_value=client) as connect:
        titles = asyncio.run(scenario())

    connect.assert_called_once_with("/tmp/test.sock")
    assert titles == ["notes.txt", "main.py"]
    assert fake_nvim.closed


def test_open_server_context_propagates_connection_failure() -> None:
    async def scenario() -> None:
        async with open_server_context(Settings()):
            pass

    with patch(
        "neovim_mcp.mcp.server.NeovimClient.connect",
        side_effect=NvimConnectionError("cannot connect to neovim at /tmp/nvim.sock"),
    ):
        with pytest.raises(NvimConnectionError):
            asyncio.run(scenario())


def test_create_server_registers_tools_and_resources() -> None:
    server = create_server(Settings())

    tools = asyncio.run(server.list_tools())
    assert {t.name for t in tools} == {t.__name__ for t in TOOLS}
    assert "search" in {t.name for t in tools}

    resources = asyncio.run(server.list_resources())
    assert {r.name for r in resources} == {name for _, name, _ in RESOURCES}
