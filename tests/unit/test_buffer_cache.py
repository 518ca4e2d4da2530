"""Tests for the buffer directory and title resolution."""

import pytest

from neovim_mcp.errors import BufferNotFoundError
from neovim_mcp.nvim.buffer_cache import BufferDirectory
from tests.unit.fakes import FakeNvim


def test_refresh_maps_handles_to_paths(fake_nvim: FakeNvim) -> None:
    directory = BufferDirectory(fake_nvim)
    entries = directory.refresh()
    assert entries == {
        1: "/home/user/project/notes.txt",
        2: "/home/user/project/src/main.py",
    }
    assert directory.entries == entries


def test_refresh_drops_closed_buffers(fake_nvim: FakeNvim) -> None:
    directory = BufferDirectory(fake_nvim)
    directory.refresh()
    del fake_nvim.buffers[2]

    assert directory.refresh() == {1: "/home/user/project/notes.txt"}


def test_refresh_skips_buffers_whose_name_fails(fake_nvim: FakeNvim) -> None:
    fake_nvim.broken_buffers.add(1)
    assert BufferDirectory(fake_nvim).refresh() == {2: "/home/user/project/src/main.py"}


def test_resolve_by_file_name(fake_nvim: FakeNvim) -> None:
    assert BufferDirectory(fake_nvim).resolve("main.py") == 2


def test_resolve_by_path_fragment(fake_nvim: FakeNvim) -> None:
    assert BufferDirectory(fake_nvim).resolve("project/src") == 2


def test_resolve_sees_buffers_opened_since_last_refresh(fake_nvim: FakeNvim) -> None:
    directory = BufferDirectory(fake_nvim)
    directory.refresh()
    handle = fake_nvim.add_buffer("/tmp/scratch.md")

    assert directory.resolve("scratch.md") == handle


def test_resolve_prefers_exact_over_suffix() -> None:
    fake = FakeNvim()
    fake.add_buffer("/work/app/main.py")
    exact = fake.add_buffer("main.py")

    assert BufferDirectory(fake).resolve("main.py") == exact


def test_resolve_prefers_suffix_over_substring() -> None:
    fake = FakeNvim()
    fake.add_buffer("/a/notes.txt.bak")
    suffix = fake.add_buffer("/a/very/long/directory/name/notes.txt")

    assert BufferDirectory(fake).resolve("notes.txt") == suffix


def test_resolve_prefers_shortest_path_then_lowest_handle() -> None:
    fake = FakeNvim()
    fake.add_buffer("/project/data.txt")
    short = fake.add_buffer("/p/a.txt")
    tie = fake.add_buffer("/q/a.txt")

    directory = BufferDirectory(fake)
    assert directory.resolve("a.txt") == short
    del fake.buffers[short]
    assert directory.resolve("a.txt") == tie


def test_resolve_unknown_title_raises(fake_nvim: FakeNvim) -> None:
    with pytest.raises(BufferNotFoundError, match="no buffer matches"):
        BufferDirectory(fake_nvim).resolve("missing.rs")


def test_resolve_empty_title_raises(fake_nvim: FakeNvim) -> None:
    with pytest.raises(BufferNotFoundError):
        BufferDirectory(fake_nvim).resolve("")
