"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / ChatRequest / ChatResult 模型。
- expense_schema: 模型结构化响应契约 ExpenseAgentResponse。
- table: 表实体 TableEntity、事务动作及 TableClient 抽象。
- entities: 带主键生成规则的具体实体（消息、支出）。
- exceptions: 业务异常类型定义。
"""
