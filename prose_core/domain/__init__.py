"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / ChatRequest / ChatResult / ExecutionResult 模型。
- conversation: 会话模型及 ConversationStore 协议。
- resources: 资源请求解析结果与资源提供方协议。
- cancellation: 批处理使用的协作式取消令牌。
- exceptions: 业务异常类型定义。
"""
