"""Provider 抽象接口。

上层 ExpenseAgent 不直接依赖具体厂商的 HTTP API，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 OpenAIClient）。
- 负责：将 ChatRequest 转成具体 API 请求，把响应解析为 ChatResult，
  并在返回前按 ChatRequest.response_format 校验结构化输出。
"""

from typing import Protocol
from ledger_core.domain.models import ChatRequest, ChatResult


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - chat(req): 执行一次非流式对话调用，返回统一的 ChatResult；
      失败时抛出 ModelUnavailable 及其子类。
    """

    name: str

    def chat(self, req: ChatRequest) -> ChatResult:
        ...
