"""批量写入的两个纯函数：按 partition 分组、按固定大小切块。

两者都不依赖存储，可以单独测试。
"""

from typing import Dict, Iterable, Iterator, List, Sequence, TypeVar

from ledger_core.domain.exceptions import ValidationError
from ledger_core.domain.table import TableEntity

T = TypeVar("T")


def group_by_partition(entities: Iterable[TableEntity]) -> Dict[str, List[TableEntity]]:
    """按 partition_key 分组。

    单次遍历；分组内保持输入的相对顺序，分组按首次出现的顺序排列。
    所有分组拼接起来恰好是输入的一个排列（不丢不重）。
    """

    groups: Dict[str, List[TableEntity]] = {}
    for entity in entities:
        groups.setdefault(entity.partition_key, []).append(entity)
    return groups


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """按顺序切成最多 size 个元素的块，空输入不产出任何块。"""

    if size < 1:
        raise ValidationError(code="INVALID_CHUNK_SIZE", message=f"chunk size must be >= 1, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])
