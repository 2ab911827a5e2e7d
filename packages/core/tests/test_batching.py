"""Tests for batch planning."""

import math

import pytest

from rulelens_core.batching import plan_batches
from rulelens_core.models import FileChange


def _files(n):
    return [FileChange(path=f"src/f{i}.py", status="modified", additions=1, deletions=0, changes=1) for i in range(n)]


@pytest.mark.parametrize("count,size", [(0, 1), (1, 1), (5, 2), (6, 3), (7, 10), (10, 1)])
def test_batch_count_and_order(count, size):
    files = _files(count)
    batches = plan_batches(files, size)
    assert len(batches) == math.ceil(count / size)
    assert [f for b in batches for f in b.files] == files
    assert all(b.files for b in batches)
    assert all(len(b.files) == size for b in batches[:-1])


def test_indices_and_totals():
    batches = plan_batches(_files(5), 2)
    assert [b.index for b in batches] == [0, 1, 2]
    assert {b.total for b in batches} == {3}
    assert len(batches[-1].files) == 1


@pytest.mark.parametrize("size", [0, -1])
def test_non_positive_size_raises(size):
    with pytest.raises(ValueError):
        plan_batches(_files(3), size)
