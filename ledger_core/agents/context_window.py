"""历史消息窗口。

注意：窗口取的是调用方传入列表的“前 N 条”，不是最近 N 条。
如果需要最近 N 条，调用方应在传入前自行排序/截断。
"""

from dataclasses import dataclass
from typing import List, Sequence

from ledger_core.domain.models import ChatMessage, PreviousMessage


@dataclass(frozen=True)
class ContextWindow:
    limit: int = 10

    def take_first(self, previous_messages: Sequence[PreviousMessage]) -> List[PreviousMessage]:
        return list(previous_messages[: max(self.limit, 0)])

    def to_messages(self, previous_messages: Sequence[PreviousMessage]) -> List[ChatMessage]:
        """文本历史视为助手自己之前的回复，图片历史作为用户发送的图片。"""

        messages: List[ChatMessage] = []
        for prev in self.take_first(previous_messages):
            if prev.type == "text":
                messages.append(ChatMessage(role="assistant", content=prev.content))
            else:
                # TODO: 图片历史按 token 计费很贵，可以考虑只保留最近一张
                messages.append(ChatMessage.image(prev.content))
        return messages
