"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供具体实现 (openai_client)。
"""

from typing import Optional

from ledger_core.config.settings import settings
from ledger_core.providers.base import ProviderClient
from ledger_core.providers.openai_client import OpenAIClient
from ledger_core.providers.registry import get_provider_config


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认 openai，未注册的名称抛 KeyError。"""

    cfg = get_provider_config(name or "openai")
    if cfg.name == "openai":
        return OpenAIClient(settings)
    raise KeyError(f"No client for provider: {cfg.name!r}")
