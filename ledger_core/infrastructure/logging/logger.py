import json
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Any, Dict

from ledger_core.config.settings import settings

# 可能包含用户聊天内容或消费明细的结构化字段
CONTENT_FIELDS = ("text", "reply", "memo", "payload")
REDACT_LIMIT = 64


def redact_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """开启 log_redact_content 时截断内容字段，其余字段原样保留。"""
    if not settings.log_redact_content:
        return fields
    redacted = dict(fields)
    for key in CONTENT_FIELDS:
        if key in redacted and redacted[key] is not None:
            redacted[key] = str(redacted[key])[:REDACT_LIMIT]
    return redacted


class JsonFormatter(logging.Formatter):
    """一行一个 JSON 对象；结构化字段通过 extra={"extra": {...}} 传入。"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(redact_fields(extra))
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("ledger_core")
    logger.setLevel(settings.log_level.upper())
    if logger.handlers:
        return logger
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "ledger.log", encoding="utf-8")
    fh.setFormatter(JsonFormatter())
    logger.addHandler(fh)
    return logger


logger = setup_logger()
