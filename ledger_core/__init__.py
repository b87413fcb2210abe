"""Ledger Core 顶层包。

该包提供记账聊天助手的核心实现，
包括配置加载、领域模型、Provider 适配、对话引擎、
角色指令库、分区批量写入的表存储与 Notion 记录等能力。
"""

from ledger_core.agents.expense_agent import ExpenseAgent
from ledger_core.infrastructure.storage.entity_table import EntityTable

__all__ = ["ExpenseAgent", "EntityTable"]
