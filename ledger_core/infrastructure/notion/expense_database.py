"""Notion 记账数据库。

数据库字段约定：

- Memo: title
- Category: rich_text
- Date: date
- Amount: number

只实现“创建一条记录并返回 page id”，查询与修改不在这里做。
"""

from typing import Any, Dict

import httpx

from ledger_core.config.settings import settings
from ledger_core.domain.exceptions import SinkError, ValidationError
from ledger_core.domain.models import ChatAiResponse


class NotionExpenseDatabase:
    name = "notion"

    def __init__(self, cfg=settings, database_id: str | None = None):
        self._settings = cfg
        self._database_id = database_id or getattr(cfg, "notion_database_id", None)

    def create(self, expense: ChatAiResponse) -> str:
        """写入一条支出，返回 Notion page id。"""

        if not getattr(self._settings, "notion_key", None):
            raise ValidationError(code="MISSING_API_KEY", message="NOTION_KEY not set")
        if not self._database_id:
            raise ValidationError(code="MISSING_DATABASE_ID", message="NOTION_DATABASE_ID not set")
        if not expense.is_complete_expense:
            raise ValidationError(code="INCOMPLETE_EXPENSE", message="memo, amount, category and date are required")

        payload = self._build_payload(expense)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{self._settings.notion_base_url}/pages",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._settings.notion_key}",
                        "Notion-Version": self._settings.notion_version,
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise SinkError(code="NETWORK_ERROR", message=str(e), sink=self.name)
        if resp.status_code >= 400:
            raise SinkError(code="API_ERROR", message=resp.text, http_status=resp.status_code, sink=self.name)
        try:
            body = resp.json()
        except ValueError as e:
            raise SinkError(code="MALFORMED_RESPONSE", message=f"Notion response is not JSON: {e}", sink=self.name)
        page_id = body.get("id") if isinstance(body, dict) else None
        if not page_id:
            raise SinkError(code="MISSING_PAGE_ID", message="Notion response has no page id", sink=self.name)
        return page_id

    def _build_payload(self, expense: ChatAiResponse) -> Dict[str, Any]:
        return {
            "parent": {"database_id": self._database_id},
            "properties": {
                "Memo": {"title": [{"text": {"content": expense.memo}}]},
                "Category": {"rich_text": [{"text": {"content": expense.category}}]},
                "Date": {"date": {"start": expense.date.isoformat()}},
                "Amount": {"number": expense.amount},
            },
        }
