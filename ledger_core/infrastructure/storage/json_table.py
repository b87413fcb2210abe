import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence
from urllib.parse import quote, unquote
from uuid import uuid4

from ledger_core.config.settings import settings
from ledger_core.domain.exceptions import (
    EntityExistsError,
    EntityNotFoundError,
    StoreError,
    ValidationError,
)
from ledger_core.domain.table import MAX_BATCH_CHANGE, TableClient, TableEntity, TransactionAction


class JsonTableClient(TableClient):
    """基于本地 JSON 文件的分区表。

    目录结构：<root>/tables/<table_name>/<quoted partition_key>.json，
    每个分区一个文件，事务通过“写临时文件 + os.replace”一次性落盘，
    因此单个事务要么全部生效要么完全不生效。
    """

    def __init__(self, table_name: str, root: str | Path | None = None):
        self.table_name = table_name
        self._root = Path(root or settings.storage_root).resolve()
        self._table_dir = self._root / "tables" / table_name
        self._lock = threading.Lock()

    def create_table(self) -> None:
        """创建表目录，已存在时不报错。"""
        try:
            self._table_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(code="STORE_WRITE_ERROR", message=str(e), table=self.table_name)

    def list_entities(
        self,
        partition_key: Optional[str] = None,
        row_key: Optional[str] = None,
        select: Optional[Sequence[str]] = None,
    ) -> Iterator[TableEntity]:
        """按 (partition_key, row_key) 顺序惰性遍历实体。"""
        self._ensure_table()
        if partition_key is not None:
            paths = [self._partition_path(partition_key)]
        else:
            paths = sorted(self._table_dir.glob("*.json"), key=lambda p: unquote(p.stem))
        for path in paths:
            rows = self._read_partition(path)
            pk = unquote(path.stem)
            for rk in sorted(rows):
                if row_key is not None and rk != row_key:
                    continue
                props = rows[rk]
                if select is not None:
                    props = {k: v for k, v in props.items() if k in select}
                yield TableEntity(partition_key=pk, row_key=rk, properties=dict(props))

    def create_entity(self, entity: TableEntity) -> None:
        self.submit_transaction([TransactionAction(operation="create", entity=entity)])

    def submit_transaction(self, actions: Iterable[TransactionAction]) -> List[TableEntity]:
        """原子地执行一组同分区操作，任何一个失败则什么都不写。"""
        actions = list(actions)
        self._validate_transaction(actions)
        self._ensure_table()
        partition_key = actions[0].entity.partition_key
        path = self._partition_path(partition_key)
        now = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

        with self._lock:
            rows = self._read_partition(path)
            written: List[TableEntity] = []
            for index, action in enumerate(actions):
                entity = action.entity
                if action.operation == "create":
                    if entity.row_key in rows:
                        raise EntityExistsError(
                            code="ENTITY_ALREADY_EXISTS",
                            message=f"{partition_key}/{entity.row_key}",
                            http_status=409,
                            action_index=index,
                        )
                    rows[entity.row_key] = {**entity.properties, "timestamp": now}
                    written.append(entity)
                elif action.operation == "upsert":
                    rows[entity.row_key] = {**entity.properties, "timestamp": now}
                    written.append(entity)
                else:
                    if entity.row_key not in rows:
                        raise EntityNotFoundError(
                            code="ENTITY_NOT_FOUND",
                            message=f"{partition_key}/{entity.row_key}",
                            http_status=404,
                            action_index=index,
                        )
                    del rows[entity.row_key]
            self._write_partition(path, rows)
        return written

    # ---- 辅助方法 ----

    def _validate_transaction(self, actions: List[TransactionAction]) -> None:
        if not actions:
            raise ValidationError(code="EMPTY_TRANSACTION", message="transaction has no actions")
        if len(actions) > MAX_BATCH_CHANGE:
            raise ValidationError(
                code="TRANSACTION_TOO_LARGE",
                message=f"{len(actions)} actions exceeds limit {MAX_BATCH_CHANGE}",
            )
        partitions = {a.entity.partition_key for a in actions}
        if len(partitions) > 1:
            raise ValidationError(
                code="MIXED_PARTITION_TRANSACTION",
                message=f"all actions must target one partition, got {sorted(partitions)}",
            )
        row_keys = [a.entity.row_key for a in actions]
        if len(set(row_keys)) != len(row_keys):
            raise ValidationError(code="DUPLICATE_ROW_IN_TRANSACTION", message="row_key repeated in transaction")
        for a in actions:
            if a.operation not in ("create", "upsert", "delete"):
                raise ValidationError(code="UNKNOWN_OPERATION", message=str(a.operation))

    def _ensure_table(self) -> None:
        if not self._table_dir.is_dir():
            raise StoreError(code="TABLE_NOT_FOUND", message=self.table_name, http_status=404)

    def _partition_path(self, partition_key: str) -> Path:
        return self._table_dir / f"{quote(partition_key, safe='')}.json"

    def _read_partition(self, path: Path) -> Dict[str, Dict[str, Any]]:
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(code="STORE_READ_ERROR", message=str(e), path=str(path))
        return data.get("rows") or {}

    def _write_partition(self, path: Path, rows: Dict[str, Dict[str, Any]]) -> None:
        tmp_path = path.with_name(f"{path.stem}.{uuid4().hex}.json.tmp")
        obj = {"partition_key": unquote(path.stem), "rows": rows}
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            tmp_path.unlink(missing_ok=True)
            raise StoreError(code="STORE_WRITE_ERROR", message=str(e), path=str(path))
