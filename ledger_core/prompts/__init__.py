"""角色指令库。

每次请求都会在最前面拼上两层指令：

- 系统角色（system role）：决定本次对话做什么，例如闲聊 friend、记账 expense。
- 人设角色（character role）：决定以什么口吻回答，例如 Riko。

RoleLibrary 在启动时构造一次，之后只读，通过参数注入给 ExpenseAgent。
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Tuple

from ledger_core.domain.exceptions import ValidationError
from ledger_core.domain.expense_schema import prompt_hint
from ledger_core.domain.models import ChatMessage


# 人设要求每句话以 ~ 结尾，回复时据此拆成多条消息
SENTENCE_END = "~"
SEPARATE_SENTENCE = f", Always use {SENTENCE_END} at the end of sentence"

LANGUAGE = "Thai"


@dataclass(frozen=True)
class RoleLibrary:
    system_roles: Mapping[str, Tuple[ChatMessage, ...]]
    character_roles: Mapping[str, Tuple[ChatMessage, ...]]

    @classmethod
    def build(
        cls,
        system_roles: Mapping[str, Iterable[ChatMessage]],
        character_roles: Mapping[str, Iterable[ChatMessage]],
    ) -> "RoleLibrary":
        """复制输入并冻结，外部之后再改原字典也不会影响本对象。"""

        return cls(
            system_roles=MappingProxyType({k: tuple(v) for k, v in system_roles.items()}),
            character_roles=MappingProxyType({k: tuple(v) for k, v in character_roles.items()}),
        )

    def system(self, key: str) -> Tuple[ChatMessage, ...]:
        try:
            return self.system_roles[key]
        except KeyError:
            raise ValidationError(code="UNKNOWN_SYSTEM_ROLE", message=key)

    def character(self, key: str) -> Tuple[ChatMessage, ...]:
        try:
            return self.character_roles[key]
        except KeyError:
            raise ValidationError(code="UNKNOWN_CHARACTER_ROLE", message=key)


def default_role_library() -> RoleLibrary:
    return RoleLibrary.build(
        system_roles={
            "friend": [ChatMessage(role="system", content="You are friendly nice friend")],
            "expense": [
                ChatMessage(
                    role="system",
                    content="Extract memo, amount and category, get dateTimeUtc based on the conversation relative to the current date",
                ),
                ChatMessage(role="system", content=prompt_hint()),
            ],
        },
        character_roles={
            "Riko": [
                ChatMessage(
                    role="system",
                    content=f"I'm Riko, 29-year female with happy, friendly and playful, Speaking {LANGUAGE} {SEPARATE_SENTENCE}",
                )
            ],
        },
    )
