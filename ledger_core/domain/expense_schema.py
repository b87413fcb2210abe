"""记账 Agent 的结构化响应契约。

模型返回的 JSON 必须符合 ExpenseAgentResponse：

- agent: "Default"（闲聊）或 "ExpenseTracker"（记账）。
- 其余字段全部可选，但出现时必须类型正确：
  amount 必须是数字（不接受 "50" 这样的字符串），dateTimeUtc 必须是字符串。

类型不符的 payload 在 Provider 层就会被拒绝（MalformedResponse）；
仅仅缺少可选字段的 payload 会被原样放行，由上层降级处理。
"""

from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr


AgentType = Literal["Default", "ExpenseTracker"]

DEFAULT_AGENT: AgentType = "Default"
EXPENSE_AGENT: AgentType = "ExpenseTracker"


class ExpenseAgentResponse(BaseModel):
    """模型结构化输出。字段名与线上 JSON 保持一致（dateTimeUtc 为别名）。"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    agent: Optional[AgentType] = None
    message: Optional[StrictStr] = None
    date_time_utc: Optional[StrictStr] = Field(default=None, alias="dateTimeUtc")
    amount: Optional[Union[StrictInt, StrictFloat]] = None
    category: Optional[StrictStr] = None
    memo: Optional[StrictStr] = None


# 字段描述同时写入 JSON schema，作为给模型的提示
_FIELD_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "agent": {
        "type": "string",
        "enum": [DEFAULT_AGENT, EXPENSE_AGENT],
        "description": "Default for small talk, ExpenseTracker when the user reports spending money",
    },
    "message": {"type": ["string", "null"], "description": "Reply to the user"},
    "dateTimeUtc": {
        "type": ["string", "null"],
        "description": "ISO-8601 UTC date time of the expense",
    },
    "amount": {"type": ["number", "null"], "description": "Amount of money spent"},
    "category": {"type": ["string", "null"], "description": "Expense category"},
    "memo": {"type": ["string", "null"], "description": "Short note of what was paid for"},
}


@dataclass(frozen=True)
class ResponseFormat:
    """发给 Provider 的结构化输出描述。

    name 对应 OpenAI json_schema 的 name，model 用于在返回后校验 payload。
    """

    name: str
    model: Type[BaseModel] = ExpenseAgentResponse

    def json_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {k: dict(v) for k, v in _FIELD_SCHEMAS.items()},
            "required": list(_FIELD_SCHEMAS),
            "additionalProperties": False,
        }

    def to_payload(self) -> Dict[str, Any]:
        """渲染为 OpenAI chat/completions 的 response_format 字段。"""

        return {
            "type": "json_schema",
            "json_schema": {
                "name": self.name,
                "strict": True,
                "schema": self.json_schema(),
            },
        }


def response_format(name: str = "expense") -> ResponseFormat:
    return ResponseFormat(name=name)


def prompt_hint() -> str:
    """给模型的分类说明，追加在 expense 系统角色之后。"""

    return (
        f"Set agent to {DEFAULT_AGENT} for conversational small talk and put your reply in message. "
        f"Set agent to {EXPENSE_AGENT} when the user tells you about money they spent, "
        "and fill memo, amount, category and dateTimeUtc."
    )
