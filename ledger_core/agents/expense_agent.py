"""记账对话引擎。

模型 API 是无状态的，每次调用都要把上下文完整带上。请求消息顺序固定为：

1. 系统角色指令（RoleLibrary.system）
2. 人设指令（RoleLibrary.character）
3. 一条写明当前 UTC 时间的 system 消息（用于推算“昨天”“上周五”等相对日期）
4. 历史消息，取前 previous_message_limit 条
5. 本次用户输入

模型按 ExpenseAgentResponse 返回结构化结果，这里再映射为 ChatAiResponse。
调用失败（超时、网络、响应不合契约）直接抛 ModelUnavailable，不会降级为 Default。
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence
from uuid import uuid4

from ledger_core.agents.context_window import ContextWindow
from ledger_core.config.settings import settings
from ledger_core.domain.expense_schema import DEFAULT_AGENT, ExpenseAgentResponse, response_format
from ledger_core.domain.models import (
    ChatAiResponse,
    ChatMessage,
    ChatRequest,
    ChatResult,
    PreviousMessage,
    parse_date_time,
)
from ledger_core.infrastructure.logging.logger import logger
from ledger_core.prompts import RoleLibrary, default_role_library
from ledger_core.providers.base import ProviderClient


# natural: 回复不长不短，按 ~ 拆成多条消息；default: 原样回复
ChatMode = Literal["natural", "default"]


@dataclass
class AgentConfig:
    provider: str = "openai"
    model: str = "expense-chat"
    vision_model: str = "expense-vision"
    character_role: str = "Riko"
    previous_message_limit: int = 10


class ExpenseAgent:
    def __init__(
        self,
        provider_client: ProviderClient,
        role_library: Optional[RoleLibrary] = None,
        config: Optional[AgentConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._provider_client = provider_client
        self._roles = role_library or default_role_library()
        self._config = config or AgentConfig(
            provider=provider_client.name,
            character_role=settings.character_role,
            previous_message_limit=settings.previous_message_limit,
        )
        self._window = ContextWindow(limit=self._config.previous_message_limit)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def config(self) -> AgentConfig:
        return self._config

    def chat(
        self,
        role_key: str,
        chat_mode: ChatMode,
        messages: Sequence[str],
        previous_messages: Sequence[PreviousMessage] = (),
    ) -> ChatAiResponse:
        """文本对话。chat_mode 只影响上层如何展示回复，不改变请求内容。"""

        chat_messages = self.build_messages(role_key, messages, previous_messages)
        log_ctx = self._log_ctx(role_key, chat_mode=chat_mode)
        return self._complete(chat_messages, self._config.model, "expense", log_ctx)

    def chat_with_image(
        self,
        role_key: str,
        messages: Sequence[str],
        image_url: str,
        previous_messages: Sequence[PreviousMessage] = (),
    ) -> ChatAiResponse:
        """带一张图片的对话（例如拍小票），使用能力更强的视觉模型。

        消息顺序：系统角色、本次文本、历史消息，最后是图片。
        """

        chat_messages: List[ChatMessage] = [
            *self._roles.system(role_key),
            *self._user_messages(messages),
            *self._window.to_messages(previous_messages),
            ChatMessage.image(image_url),
        ]
        log_ctx = self._log_ctx(role_key, with_image=True)
        return self._complete(chat_messages, self._config.vision_model, "agentType", log_ctx)

    def build_messages(
        self,
        role_key: str,
        messages: Sequence[str],
        previous_messages: Sequence[PreviousMessage] = (),
    ) -> List[ChatMessage]:
        return [
            *self._roles.system(role_key),
            *self._roles.character(self._config.character_role),
            ChatMessage(role="system", content=f"Current Date (UTC): {self._now_iso()}"),
            *self._window.to_messages(previous_messages),
            *self._user_messages(messages),
        ]

    # ---- 辅助方法 ----

    def _complete(
        self,
        chat_messages: List[ChatMessage],
        model: str,
        schema_name: str,
        log_ctx: Dict[str, Any],
    ) -> ChatAiResponse:
        req = ChatRequest(
            provider=self._config.provider,
            model=model,
            messages=chat_messages,
            response_format=response_format(schema_name),
        )
        self._log(
            logging.INFO,
            "Calling provider",
            log_ctx,
            provider=self._config.provider,
            model=model,
            message_count=len(chat_messages),
        )
        try:
            result: ChatResult = self._provider_client.chat(req)
        except Exception as e:
            self._log(logging.ERROR, "Provider call failed", log_ctx, error=str(e))
            raise

        parsed: Optional[ExpenseAgentResponse] = result.parsed
        self._log(
            logging.INFO,
            "Parsed structured payload",
            log_ctx,
            payload=parsed.model_dump(by_alias=True) if parsed is not None else None,
        )
        if result.usage:
            self._log(
                logging.INFO,
                "Token usage",
                log_ctx,
                prompt_tokens=result.usage.prompt_tokens,
                completion_tokens=result.usage.completion_tokens,
                total_tokens=result.usage.total_tokens,
            )
        return self._to_response(parsed)

    @staticmethod
    def _to_response(parsed: Optional[ExpenseAgentResponse]) -> ChatAiResponse:
        if parsed is None:
            return ChatAiResponse(agent=DEFAULT_AGENT)
        return ChatAiResponse(
            agent=parsed.agent or DEFAULT_AGENT,
            message=parsed.message,
            date_time_utc=parsed.date_time_utc,
            date=parse_date_time(parsed.date_time_utc),
            amount=parsed.amount,
            category=parsed.category,
            memo=parsed.memo,
        )

    @staticmethod
    def _user_messages(messages: Sequence[str]) -> List[ChatMessage]:
        return [ChatMessage(role="user", content=m) for m in messages]

    def _now_iso(self) -> str:
        now = self._clock().astimezone(timezone.utc)
        return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def _log_ctx(self, role_key: str, **fields: Any) -> Dict[str, Any]:
        ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "role_key": role_key}
        ctx.update(fields)
        return ctx

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
