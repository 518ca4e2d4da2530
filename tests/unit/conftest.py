"""Shared test fixtures."""

import pytest

from neovim_mcp.nvim.client import NeovimClient
from tests.unit.fakes import MAIN_PATH, NOTES_PATH, FakeNvim


@pytest.fixture
def fake_nvim() -> FakeNvim:
    """Return a fake Neovim with two buffers and one window showing notes.txt."""
    fake = FakeNvim()
    notes = fake.add_buffer(NOTES_PATH, ["line1", "line2", "line3", "line4"])
    fake.add_buffer(MAIN_PATH, ["import os", "", "print(os.getcwd())"], modified=True)
    fake.add_window(notes)
    return fake


@pytest.fixture
def client(fake_nvim: FakeNvim) -> NeovimClient:
    return NeovimClient(fake_nvim)
