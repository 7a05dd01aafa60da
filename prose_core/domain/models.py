"""统一的对话与结果数据模型。

本模块定义了编排层与 Provider 之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant）。
- ChatRequest: 发给底层补全接口的完整请求。
- ChatResult: 从 Provider 解析后的统一响应结果。
- ExecutionResult: 编排器三种执行模式的统一输出。

Provider 适配器（如 OpenRouterClient）只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional


# 补全接口只接受这三种角色
Role = Literal["system", "user", "assistant"]


@dataclass
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于响应。

    - role: 消息角色，如 system/user/assistant。
    - content: 纯文本内容。
    - meta: 附加元数据，不直接发给 Provider，主要用于日志。
    """

    role: Role
    content: str
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatRequest:
    """一次完整的聊天请求。

    Provider 适配层负责把本结构转换成各家 API 的 JSON 请求体。
    """

    provider: str  # 逻辑 Provider 名，如 "openrouter"
    model: str  # 逻辑模型名，如 "assistant"（再由 registry 映射为真实模型名）
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost_usd: Optional[float] = None

    def add(self, other: Optional["ChatUsage"]) -> "ChatUsage":
        """返回两次调用用量之和，不修改自身。"""

        if other is None:
            return ChatUsage(self.prompt_tokens, self.completion_tokens, self.total_tokens, self.cost_usd)
        cost: Optional[float] = None
        if self.cost_usd is not None or other.cost_usd is not None:
            cost = (self.cost_usd or 0.0) + (other.cost_usd or 0.0)
        return ChatUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            cost_usd=cost,
        )


def sum_usage(total: Optional[ChatUsage], turn: Optional[ChatUsage]) -> Optional[ChatUsage]:
    """累加多轮调用的用量，任意一方为空时返回另一方。"""

    if turn is None:
        return total
    if total is None:
        return turn.add(None)
    return total.add(turn)


@dataclass
class ChatChoice:
    """单个候选回答（目前通常只用 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """一次对话调用的最终结果。

    - provider: 逻辑 Provider 名。
    - model: 逻辑模型名。
    - choices: 一个或多个候选回答。
    - usage: 可选的 token 使用统计。
    - raw: 原始响应 JSON，用于调试或日志记录。
    """

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None

    @property
    def content(self) -> str:
        return self.choices[0].message.content if self.choices else ""

    @property
    def finish_reason(self) -> Optional[str]:
        return self.choices[0].finish_reason if self.choices else None


@dataclass
class ChatStreamChoice:
    """流式返回中的单个候选增量。"""

    index: int
    delta: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatStreamChunk:
    """流式对话的增量结果，结构与 ChatResult 类似。"""

    provider: str
    model: str
    choices: List[ChatStreamChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None


@dataclass
class ExecutionResult:
    """编排器对外输出契约，三种执行模式共用。

    - content: 已剥离请求标签的最终回答。
    - used_resource_ids: 本次调用实际投喂给模型的资源 ID（跨所有轮次展平）。
    - requested_resource_ids: 模型请求过的资源 ID。
    - usage: 所有轮次的 token 用量之和。
    """

    content: str
    used_resource_ids: List[str] = field(default_factory=list)
    requested_resource_ids: List[str] = field(default_factory=list)
    usage: Optional[ChatUsage] = None
    finish_reason: Optional[str] = None
    turns: int = 0


@dataclass
class StatusEvent:
    """状态/进度通道上的一条通知，仅供观察，不影响正确性。

    - message: 人类可读的状态文本。
    - detail: 附加展示信息，例如请求中的指南名称列表。
    - progress: 批处理时的 (current, total)。
    """

    message: str
    detail: Optional[str] = None
    progress: Optional[tuple] = None


StatusCallback = Callable[[StatusEvent], None]
TokenUsageCallback = Callable[[ChatUsage], None]
TokenCallback = Callable[[str], None]
