"""Tests for batched API calls."""

import pytest

from neovim_mcp.errors import AggregationError
from neovim_mcp.nvim.batch import Batch
from tests.unit.fakes import FakeNvim


def test_batch_returns_results_in_order(fake_nvim: FakeNvim) -> None:
    batch = Batch(fake_nvim)
    assert batch.add("nvim_buf_get_name", 1) == 0
    assert batch.add("nvim_buf_line_count", 1) == 1
    assert len(batch) == 2

    assert batch.execute() == ["/home/user/project/notes.txt", 4]


def test_batch_is_one_round_trip(fake_nvim: FakeNvim) -> None:
    batch = Batch(fake_nvim)
    batch.add("nvim_buf_get_name", 1)
    batch.add("nvim_buf_get_name", 2)
    batch.add("nvim_buf_line_count", 2)
    batch.execute()

    assert fake_nvim.methods_called() == ["nvim_call_atomic"]


def test_empty_batch_sends_nothing(fake_nvim: FakeNvim) -> None:
    assert Batch(fake_nvim).execute() == []
    assert fake_nvim.calls == []


def test_failed_member_raises_with_index_and_method(fake_nvim: FakeNvim) -> None:
    batch = Batch(fake_nvim)
    batch.add("nvim_buf_get_name", 1)
    batch.add("nvim_buf_line_count", 99)

    with pytest.raises(AggregationError) as exc_info:
        batch.execute()

    assert exc_info.value.index == 1
    assert exc_info.value.method == "nvim_buf_line_count"
    assert "Invalid buffer id" in str(exc_info.value)


def test_rejected_batch_raises(fake_nvim: FakeNvim) -> None:
    fake_nvim.fail["nvim_call_atomic"] = "channel closed"
    batch = Batch(fake_nvim)
    batch.add("nvim_buf_get_name", 1)

    with pytest.raises(AggregationError, match="batch request rejected"):
        batch.execute()
