from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Literal, Optional, Protocol, Sequence


# create: 只创建，行已存在则整个事务失败；upsert: 无条件整体替换；delete: 只按主键删除
TransactionOperation = Literal["create", "upsert", "delete"]

# 单个事务最多包含的操作数（存储的硬上限）
MAX_BATCH_CHANGE = 100


@dataclass(frozen=True)
class TableEntity:
    """表中的一行。

    (partition_key, row_key) 共同构成唯一标识，构造后不再修改；
    主键变化即视为一个新实体。
    """

    partition_key: str
    row_key: str
    properties: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return self.partition_key, self.row_key


@dataclass(frozen=True)
class TransactionAction:
    """事务中的单个操作。delete 只使用实体的主键。"""

    operation: TransactionOperation
    entity: TableEntity


class TableClient(Protocol):
    """后端表存储客户端协议。

    要求：
    - submit_transaction 对单次调用是“全部成功或全部失败”的；
    - 单次事务最多 MAX_BATCH_CHANGE 个操作，且必须属于同一个 partition。
    """

    table_name: str

    def create_table(self) -> None:
        ...

    def list_entities(
        self,
        partition_key: Optional[str] = None,
        row_key: Optional[str] = None,
        select: Optional[Sequence[str]] = None,
    ) -> Iterator[TableEntity]:
        ...

    def create_entity(self, entity: TableEntity) -> None:
        ...

    def submit_transaction(self, actions: Iterable[TransactionAction]) -> List[TableEntity]:
        ...
