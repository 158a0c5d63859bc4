"""领域层模型与协议。

包含：
- models: Message / ModelConfig / StreamFrame / BrainstormSlot 等数据模型。
- conversation: 会话摘要、会话详情与 ConversationApi 协议。
- exceptions: 业务异常类型定义。
"""
