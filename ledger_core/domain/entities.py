"""带主键生成规则的实体。

两种生成方式：

- EntityKeyGenerator：PartitionKey / RowKey 可同步算出，构造即可用。
- DeferredEntityKeyGenerator：RowKey 依赖一次外部查询（例如当前分区内的序号），
  必须先调用 init() 才能取到实体，未 init 前访问 value 会抛 ValidationError。

例：
    entity = MessageEntity(user_id="1234567890", text="Hello").value
    # TableEntity(partition_key="2021-1234567890", row_key="20210101000000000000-user-000", ...)
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo

from ledger_core.domain.exceptions import ValidationError
from ledger_core.domain.table import TableEntity


# 给定 partition_key 和 RowKey 日期前缀，返回该日期下一个可用序号
SequenceResolver = Callable[[str, str], int]


def _iso_utc(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class EntityKeyGenerator(ABC):
    """同步主键生成。"""

    @abstractmethod
    def partition_key(self) -> str:
        ...

    @abstractmethod
    def row_key(self) -> str:
        ...

    @abstractmethod
    def properties(self) -> Dict[str, Any]:
        ...

    @property
    def value(self) -> TableEntity:
        return TableEntity(
            partition_key=self.partition_key(),
            row_key=self.row_key(),
            properties=self.properties(),
        )


class DeferredEntityKeyGenerator(ABC):
    """需要外部查询才能确定主键的实体。"""

    def __init__(self) -> None:
        self._value: Optional[TableEntity] = None

    @abstractmethod
    def partition_key(self) -> str:
        ...

    @abstractmethod
    def resolve_row_key(self) -> str:
        ...

    @abstractmethod
    def properties(self) -> Dict[str, Any]:
        ...

    def init(self) -> TableEntity:
        if self._value is None:
            self._value = TableEntity(
                partition_key=self.partition_key(),
                row_key=self.resolve_row_key(),
                properties=self.properties(),
            )
        return self._value

    @property
    def value(self) -> TableEntity:
        if self._value is None:
            raise ValidationError(code="ENTITY_NOT_INITIALIZED", message=f"{type(self).__name__}.init() not called")
        return self._value


class MessageEntity(EntityKeyGenerator):
    """聊天消息记录，按 年份-用户 分区，按时间排序。"""

    def __init__(
        self,
        user_id: str,
        text: str,
        role: str = "user",
        message_type: str = "text",
        created_at: Optional[datetime] = None,
        seq: int = 0,
    ):
        self.user_id = str(user_id)
        self.text = text
        self.role = role
        self.message_type = message_type
        self.created_at = created_at or datetime.now(timezone.utc)
        self.seq = seq

    def partition_key(self) -> str:
        return f"{self.created_at.astimezone(timezone.utc):%Y}-{self.user_id}"

    def row_key(self) -> str:
        return f"{self.created_at.astimezone(timezone.utc):%Y%m%d%H%M%S%f}-{self.role}-{self.seq:03d}"

    def properties(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "role": self.role,
            "type": self.message_type,
            "message": self.text,
            "created_at": _iso_utc(self.created_at),
        }


class ExpenseEntity(DeferredEntityKeyGenerator):
    """一条支出记录，按 用户-年月 分区，RowKey 为 日期 + 当日序号。

    年月与日期按 timezone_name 所在时区计算，和用户看到的日期一致。
    """

    def __init__(
        self,
        user_id: str,
        memo: str,
        amount: float,
        category: str,
        spent_at: datetime,
        sequence: SequenceResolver,
        timezone_name: str = "UTC",
    ):
        super().__init__()
        self.user_id = str(user_id)
        self.memo = memo
        self.amount = amount
        self.category = category
        self.spent_at = spent_at
        self._sequence = sequence
        self._local = spent_at.astimezone(ZoneInfo(timezone_name))

    def partition_key(self) -> str:
        return f"{self.user_id}-{self._local:%Y%m}"

    def day_prefix(self) -> str:
        return f"{self._local:%Y%m%d}"

    def resolve_row_key(self) -> str:
        seq = self._sequence(self.partition_key(), self.day_prefix())
        return f"{self.day_prefix()}-{seq:06d}"

    def properties(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "memo": self.memo,
            "amount": self.amount,
            "category": self.category,
            "spent_at": _iso_utc(self.spent_at),
        }
