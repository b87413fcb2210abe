"""统一的对话与结果数据模型。

本模块定义了对话引擎与 Provider 之间共享的标准数据结构：

- ChatMessage: 一条发给模型的消息（system/user/assistant），文本或图片。
- PreviousMessage: 调用方回传的历史消息（text/image）。
- ChatRequest: 发给底层 LLM Provider 的完整请求。
- ChatResult: 从 Provider 解析后的统一响应结果，含结构化 payload。
- ChatAiResponse: 对话引擎对外返回的分类结果。

Provider 适配器（如 OpenAIClient）只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional

from ledger_core.domain.expense_schema import DEFAULT_AGENT, EXPENSE_AGENT, AgentType, ResponseFormat


# LLM 消息角色类型（与 OpenAI 的 role 字段对应）
Role = Literal["system", "user", "assistant"]

# 历史消息类型：文本或图片 URL
PreviousMessageType = Literal["text", "image"]


@dataclass(frozen=True)
class ChatMessage:
    """一条请求消息，构造后不可修改。

    - role: 消息角色。
    - content: 纯文本内容；图片消息时为空串。
    - image_url: 图片消息的 URL（或 data URL），为 None 时是纯文本消息。
    """

    role: Role
    content: str = ""
    image_url: Optional[str] = None

    @classmethod
    def image(cls, url: str, role: Role = "user") -> "ChatMessage":
        return cls(role=role, image_url=url)

    @property
    def is_image(self) -> bool:
        return self.image_url is not None


@dataclass(frozen=True)
class PreviousMessage:
    """调用方保存的一条历史消息。"""

    type: PreviousMessageType
    content: str


@dataclass
class ChatRequest:
    """一次完整的聊天请求。

    response_format 为 None 时按普通文本对话处理；
    否则 Provider 需要按该契约请求结构化输出并在返回前完成校验。
    """

    provider: str  # 逻辑 Provider 名，如 "openai"
    model: str  # 逻辑模型名，如 "expense-chat"（再由 registry 映射为真实模型名）
    messages: List[ChatMessage]
    response_format: Optional[ResponseFormat] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatChoice:
    """单个候选回答（目前只用 index=0 的一条）。

    - parsed: 已按 response_format 校验过的结构化结果，
      模型拒答或内容为空时为 None。
    - refusal: 模型拒答时的说明文字。
    """

    index: int
    content: str
    parsed: Optional[Any] = None
    refusal: Optional[str] = None
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """一次对话调用的最终结果。"""

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def parsed(self) -> Optional[Any]:
        """第一条候选的结构化结果，没有候选时为 None。"""

        if not self.choices:
            return None
        return self.choices[0].parsed


# 任意两个时区之间的偏移都小于一天
_ZONE_SHIFT_MARGIN = timedelta(days=1)


def parse_date_time(value: Optional[str]) -> Optional[datetime]:
    """解析模型给出的 ISO-8601 时间，缺失或无法解析时返回 None。

    不带时区的时间按 UTC 处理（字段本身就是 dateTimeUtc）。
    接近 datetime 上下限、无法换算到其他时区的时间同样视为无效。
    """

    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        parsed - _ZONE_SHIFT_MARGIN
        parsed + _ZONE_SHIFT_MARGIN
    except OverflowError:
        return None
    return parsed


@dataclass
class ChatAiResponse:
    """一次对话的分类结果。

    agent 为 ExpenseTracker 时 memo/amount/category/date 理应齐全，
    但模型可能漏填，调用方格式化时需要自行降级。
    date 为 date_time_utc 的解析结果，无效时为 None。
    """

    agent: AgentType = DEFAULT_AGENT
    message: Optional[str] = None
    date_time_utc: Optional[str] = None
    date: Optional[datetime] = None
    amount: Optional[float] = None
    category: Optional[str] = None
    memo: Optional[str] = None

    @property
    def is_expense(self) -> bool:
        return self.agent == EXPENSE_AGENT

    @property
    def is_complete_expense(self) -> bool:
        return (
            self.is_expense
            and self.memo is not None
            and self.amount is not None
            and self.category is not None
            and self.date is not None
        )
