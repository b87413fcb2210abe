import math

import pytest

from ledger_core.domain.exceptions import ValidationError
from ledger_core.domain.table import MAX_BATCH_CHANGE, TableEntity
from ledger_core.infrastructure.storage.batching import chunked, group_by_partition


def _entity(pk: str, rk: str) -> TableEntity:
    return TableEntity(partition_key=pk, row_key=rk, properties={"v": f"{pk}/{rk}"})


def test_group_by_partition_keeps_order_and_loses_nothing():
    entities = [
        _entity("b", "1"),
        _entity("a", "1"),
        _entity("b", "2"),
        _entity("c", "1"),
        _entity("a", "2"),
        _entity("b", "3"),
    ]
    groups = group_by_partition(entities)

    assert list(groups) == ["b", "a", "c"]
    assert [e.row_key for e in groups["b"]] == ["1", "2", "3"]
    assert [e.row_key for e in groups["a"]] == ["1", "2"]

    flattened = [e for group in groups.values() for e in group]
    assert sorted(flattened, key=lambda e: e.key) == sorted(entities, key=lambda e: e.key)
    assert len(flattened) == len(entities)


def test_group_by_partition_empty():
    assert group_by_partition([]) == {}


@pytest.mark.parametrize("count", [0, 1, 99, 100, 101, 250, 400])
def test_chunk_count_matches_ceil(count):
    items = list(range(count))
    chunks = list(chunked(items, MAX_BATCH_CHANGE))
    assert len(chunks) == math.ceil(count / MAX_BATCH_CHANGE)
    assert all(len(c) <= MAX_BATCH_CHANGE for c in chunks)
    assert [i for c in chunks for i in c] == items


def test_chunked_rejects_non_positive_size():
    with pytest.raises(ValidationError):
        list(chunked([1, 2, 3], 0))
