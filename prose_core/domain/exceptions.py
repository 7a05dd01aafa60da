"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或 UI 层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "CONVERSATION_NOT_FOUND"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 trace_id、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """补全接口返回非 2xx/429 错误时抛出，message 为响应体原文。"""


class EmptyCompletionError(ApiError):
    """补全接口返回 2xx 但没有任何候选回答。"""


class RateLimitError(BusinessError):
    """Provider 限流错误，由上层负责重试/退避策略。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class ConversationNotFoundError(BusinessError):
    """对未知会话 ID 执行 append/snapshot 时抛出。

    这属于调用方违反契约，正常流程中不应出现。
    """

    def __init__(self, conversation_id: str):
        super().__init__(
            code="CONVERSATION_NOT_FOUND",
            message=f"Conversation {conversation_id} not found",
            http_status=404,
            conversation_id=conversation_id,
        )
        self.conversation_id = conversation_id
