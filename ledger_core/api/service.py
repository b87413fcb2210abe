"""对外服务模块。

聊天通道（Telegram 等）只需要调用 handle_text / handle_image，
把返回的字符串列表逐条发给用户即可。
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from ledger_core.agents.expense_agent import ChatMode, ExpenseAgent
from ledger_core.agents.formatting import (
    NOT_UNDERSTOOD_MESSAGE,
    SOMETHING_WENT_WRONG_MESSAGE,
    format_expense_message,
    split_sentences,
)
from ledger_core.config.settings import settings
from ledger_core.domain.entities import ExpenseEntity, MessageEntity
from ledger_core.domain.exceptions import BusinessError
from ledger_core.domain.models import ChatAiResponse, PreviousMessage
from ledger_core.domain.table import TableEntity
from ledger_core.infrastructure.logging.logger import logger
from ledger_core.infrastructure.notion.expense_database import NotionExpenseDatabase
from ledger_core.infrastructure.storage.entity_table import EntityTable
from ledger_core.infrastructure.storage.json_table import JsonTableClient
from ledger_core.providers import create_provider


class ExpenseBotService:
    def __init__(
        self,
        agent: ExpenseAgent,
        messages: EntityTable,
        expenses: EntityTable,
        notion: Optional[NotionExpenseDatabase] = None,
        timezone_name: str = settings.timezone,
        split_sentence: bool = settings.split_sentence,
    ):
        self._agent = agent
        self._messages = messages
        self._expenses = expenses
        self._notion = notion
        self._tz = timezone_name
        self._split_sentence = split_sentence

    def create_tables(self) -> None:
        self._messages.create_table()
        self._expenses.create_table()

    def handle_text(
        self,
        user_id: str,
        text: str,
        role_key: str = "expense",
        chat_mode: ChatMode = "natural",
        history_limit: Optional[int] = None,
    ) -> List[str]:
        """处理一条文本消息，返回要发给用户的回复列表。"""

        now = datetime.now(timezone.utc)
        previous = self.previous_messages(user_id, history_limit)
        self._messages.insert_batch([MessageEntity(user_id, text, created_at=now).value])
        logger.info("Received text message", extra={"extra": {"user_id": user_id, "text": text, "chat_mode": chat_mode}})
        try:
            result = self._agent.chat(role_key, chat_mode, [text], previous)
        except BusinessError as e:
            logger.error(
                f"Chat failed: {e}",
                extra={"extra": {"user_id": user_id, "error_code": e.code, "error": e.message}},
            )
            return [SOMETHING_WENT_WRONG_MESSAGE]
        return self._finish(user_id, result, chat_mode)

    def handle_image(
        self,
        user_id: str,
        image_url: str,
        caption: Optional[str] = None,
        role_key: str = "expense",
        history_limit: Optional[int] = None,
    ) -> List[str]:
        """处理一张图片（可带说明文字），例如小票照片。"""

        now = datetime.now(timezone.utc)
        previous = self.previous_messages(user_id, history_limit)
        self._messages.insert_batch([MessageEntity(user_id, image_url, message_type="image", created_at=now).value])
        texts = [caption] if caption else []
        try:
            result = self._agent.chat_with_image(role_key, texts, image_url, previous)
        except BusinessError as e:
            logger.error(
                f"Image chat failed: {e}",
                extra={"extra": {"user_id": user_id, "error_code": e.code, "error": e.message}},
            )
            return [SOMETHING_WENT_WRONG_MESSAGE]
        return self._finish(user_id, result, "default")

    def previous_messages(self, user_id: str, limit: Optional[int] = None) -> List[PreviousMessage]:
        """读取当年最近的 N 条历史消息，按时间从旧到新排列。

        ExpenseAgent 只取前 N 条，因此这里先截取最近的 N 条再恢复时间顺序。
        文本只保留助手回复，图片保留用户发送的图片。
        """

        limit = self._agent.config.previous_message_limit if limit is None else limit
        partition_key = f"{datetime.now(timezone.utc):%Y}-{user_id}"
        items: List[PreviousMessage] = []
        for entity in reversed(self._messages.list_all(partition_key=partition_key)):
            props = entity.properties
            if props.get("type") == "image":
                items.append(PreviousMessage(type="image", content=props.get("message", "")))
            elif props.get("role") == "assistant":
                items.append(PreviousMessage(type="text", content=props.get("message", "")))
            if len(items) >= limit:
                break
        items.reverse()
        return items

    def render_reply(self, result: ChatAiResponse, chat_mode: ChatMode) -> List[str]:
        if result.is_expense:
            return [format_expense_message(result, self._tz)]
        if not result.message:
            return [NOT_UNDERSTOOD_MESSAGE]
        if chat_mode == "natural" and self._split_sentence:
            return split_sentences(result.message) or [NOT_UNDERSTOOD_MESSAGE]
        return [result.message]

    def record_expense(self, user_id: str, result: ChatAiResponse) -> TableEntity:
        """先把支出落到 expenses 表，成功后再写 Notion（若已配置）并回填 page id。"""

        entity = ExpenseEntity(
            user_id=user_id,
            memo=result.memo,
            amount=result.amount,
            category=result.category,
            spent_at=result.date,
            sequence=self._next_sequence,
            timezone_name=self._tz,
        ).init()
        self._expenses.insert_batch([entity])
        if self._notion is None:
            return entity

        page_id = self._notion.create(result)
        logger.info("Created Notion expense page", extra={"extra": {"user_id": user_id, "page_id": page_id}})
        entity = replace(entity, properties={**entity.properties, "notion_page_id": page_id})
        self._expenses.upsert_batch([entity])
        return entity

    def _next_sequence(self, partition_key: str, day_prefix: str) -> int:
        """同一天已有的最大序号 + 1。"""

        last = 0
        for entity in self._expenses.list(partition_key=partition_key, select=()):
            day, _, seq = entity.row_key.partition("-")
            if day == day_prefix and seq.isdigit():
                last = max(last, int(seq))
        return last + 1

    def import_expenses(self, entities: Sequence[TableEntity]) -> None:
        """批量导入（例如从旧账本迁移），已存在的行整体覆盖。"""

        self._expenses.upsert_batch(entities)

    def _finish(self, user_id: str, result: ChatAiResponse, chat_mode: ChatMode) -> List[str]:
        if result.is_complete_expense:
            try:
                self.record_expense(user_id, result)
            except BusinessError as e:
                logger.error(
                    f"Failed to record expense: {e}",
                    extra={"extra": {"user_id": user_id, "error_code": e.code, "error": e.message}},
                )
                raise
        replies = self.render_reply(result, chat_mode)
        now = datetime.now(timezone.utc)
        self._messages.insert_batch(
            [MessageEntity(user_id, r, role="assistant", created_at=now, seq=i).value for i, r in enumerate(replies)]
        )
        return replies


_service: Optional[ExpenseBotService] = None


def get_default_service() -> ExpenseBotService:
    """按 settings 组装默认服务实例（单例）。"""
    global _service
    if _service is None:
        agent = ExpenseAgent(provider_client=create_provider())
        messages = EntityTable(JsonTableClient(f"{settings.table_prefix}Bot", root=settings.storage_root))
        expenses = EntityTable(JsonTableClient(f"{settings.table_prefix}Expenses", root=settings.storage_root))
        notion = NotionExpenseDatabase(settings) if settings.notion_key and settings.notion_database_id else None
        _service = ExpenseBotService(agent=agent, messages=messages, expenses=expenses, notion=notion)
        _service.create_tables()
    return _service
