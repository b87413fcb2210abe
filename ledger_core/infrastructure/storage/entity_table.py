"""通用实体表：在 TableClient 之上提供分区批量写入。

批量写入流程（insert / upsert / delete 相同）：

1. 按 partition_key 分组（事务内的操作必须属于同一分区）。
2. 每个分组按 MAX_BATCH_CHANGE（100）切块，保持顺序。
3. 每块作为一个原子事务顺序提交，前一块完成后才提交下一块。

某一块失败时立即抛出 BatchSubmissionFailure：之前提交的块保持已提交，
之后的块不再提交，这里不做补偿回滚。不同分区之间没有顺序和原子性保证。
"""

import logging
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ledger_core.domain.exceptions import BatchSubmissionFailure, BusinessError, ValidationError
from ledger_core.domain.table import (
    MAX_BATCH_CHANGE,
    TableClient,
    TableEntity,
    TransactionAction,
    TransactionOperation,
)
from ledger_core.infrastructure.logging.logger import logger
from ledger_core.infrastructure.storage.batching import chunked, group_by_partition


class EntityTable:
    def __init__(self, client: TableClient, max_batch_change: int = MAX_BATCH_CHANGE):
        if not 1 <= max_batch_change <= MAX_BATCH_CHANGE:
            raise ValidationError(
                code="INVALID_BATCH_SIZE",
                message=f"max_batch_change must be within 1..{MAX_BATCH_CHANGE}",
            )
        self.client = client
        self.max_batch_change = max_batch_change

    def create_table(self) -> None:
        self.client.create_table()

    def list(
        self,
        partition_key: Optional[str] = None,
        row_key: Optional[str] = None,
        select: Optional[Sequence[str]] = None,
    ) -> Iterator[TableEntity]:
        return self.client.list_entities(partition_key=partition_key, row_key=row_key, select=select)

    def list_all(
        self,
        partition_key: Optional[str] = None,
        row_key: Optional[str] = None,
        select: Optional[Sequence[str]] = None,
    ) -> List[TableEntity]:
        return list(self.list(partition_key=partition_key, row_key=row_key, select=select))

    def count(self, partition_key: Optional[str] = None, row_key: Optional[str] = None) -> int:
        return sum(1 for _ in self.list(partition_key=partition_key, row_key=row_key))

    def insert(self, entity: TableEntity) -> None:
        self.client.create_entity(entity)

    def insert_batch(self, entities: Sequence[TableEntity]) -> None:
        """create-only：块内任一行已存在则该块失败。"""
        self.write_batch(entities, "create")

    def upsert_batch(self, entities: Sequence[TableEntity]) -> None:
        self.write_batch(entities, "upsert")

    def delete_batch(self, entities: Sequence[TableEntity]) -> None:
        """只按 (partition_key, row_key) 删除，payload 会被忽略。"""
        self.write_batch(entities, "delete")

    def write_batch(self, entities: Sequence[TableEntity], op: TransactionOperation) -> None:
        if op not in ("create", "upsert", "delete"):
            raise ValidationError(code="UNKNOWN_OPERATION", message=str(op))
        if not entities:
            return
        groups = group_by_partition(entities)
        log_ctx: Dict[str, Any] = {
            "table": self.client.table_name,
            "operation": op,
            "entity_count": len(entities),
            "partition_count": len(groups),
        }
        self._log(logging.INFO, "Writing batch", log_ctx)
        for partition_key, group in groups.items():
            chunks = list(chunked(group, self.max_batch_change))
            for index, chunk in enumerate(chunks):
                actions = [TransactionAction(operation=op, entity=self._action_entity(e, op)) for e in chunk]
                try:
                    self.client.submit_transaction(actions)
                except BusinessError as e:
                    self._log(
                        logging.ERROR,
                        "Batch chunk rejected",
                        log_ctx,
                        partition_key=partition_key,
                        chunk_index=index,
                        chunk_count=len(chunks),
                        error_code=e.code,
                        error=e.message,
                    )
                    raise BatchSubmissionFailure(
                        code="BATCH_SUBMISSION_FAILED",
                        message=f"chunk {index + 1}/{len(chunks)} of partition {partition_key!r} rejected: {e.message}",
                        http_status=e.http_status,
                        partition_key=partition_key,
                        chunk_index=index,
                        committed_chunks_in_partition=index,
                        cause_code=e.code,
                    ) from e
        self._log(logging.INFO, "Batch written", log_ctx)

    @staticmethod
    def _action_entity(entity: TableEntity, op: TransactionOperation) -> TableEntity:
        if op == "delete":
            return TableEntity(partition_key=entity.partition_key, row_key=entity.row_key)
        return entity

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
