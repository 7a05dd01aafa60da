"""OpenRouter Provider 适配器。

本模块负责：

1. 接收统一的 ChatRequest。
2. 将其转换为 OpenRouter（OpenAI 兼容）的 HTTP API 请求格式。
3. 调用 HTTP 接口并处理网络/API 异常。
4. 将响应 JSON 解析为统一的 ChatResult / ChatMessage 结构。

非 2xx 响应一律包装为带状态码和响应体的异常，重试策略交给调用方。
"""

import json
from typing import Any, Dict, Iterable, Optional

import httpx

from prose_core.domain.exceptions import (
    ApiError,
    EmptyCompletionError,
    NetworkError,
    RateLimitError,
    ValidationError,
)
from prose_core.domain.models import (
    ChatChoice,
    ChatMessage,
    ChatRequest,
    ChatResult,
    ChatStreamChoice,
    ChatStreamChunk,
    ChatUsage,
)
from prose_core.providers.registry import OPENROUTER_CONFIG, ModelConfig


class OpenRouterClient:
    """OpenRouter 客户端实现。

    - name: Provider 名称（供日志/调试使用）。
    - chat: 对外统一调用入口，返回 ChatResult。
    """

    name = "openrouter"

    def __init__(self, settings):
        # Settings 里包含 base_url、api_key、超时等配置
        self._settings = settings

    def chat(self, req: ChatRequest) -> ChatResult:
        """执行一次非流式对话调用。

        步骤：
        1. 读取模型配置（logical model -> provider model）。
        2. 构造 HTTP 请求 payload。
        3. 发送请求并捕获网络错误/限流/服务端错误。
        4. 使用统一的解析函数构造 ChatResult。
        """

        self._ensure_api_key()
        model_cfg = OPENROUTER_CONFIG.resolve_model(req.model)
        payload = self._build_payload(req, model_cfg)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{self._base_url()}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="OpenRouter rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(
                code="API_ERROR",
                message=f"OpenRouter API error: {resp.status_code} - {resp.text}",
                http_status=resp.status_code,
            )
        data = resp.json()
        if not data.get("choices"):
            raise EmptyCompletionError(code="EMPTY_COMPLETION", message="No response from OpenRouter API", http_status=502)
        return self._parse_response(data, req)

    def chat_stream(self, req: ChatRequest) -> Iterable[ChatStreamChunk]:
        """执行一次流式对话调用，逐步 yield ChatStreamChunk。"""

        self._ensure_api_key()
        model_cfg = OPENROUTER_CONFIG.resolve_model(req.model)
        payload = self._build_payload(req, model_cfg)
        payload["stream"] = True
        payload["stream_options"] = {"include_usage": True}
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{self._base_url()}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                ) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(code="RATE_LIMIT", message="OpenRouter rate limit", http_status=429)
                    if resp.status_code >= 400:
                        resp.read()
                        raise ApiError(
                            code="API_ERROR",
                            message=f"OpenRouter API error: {resp.status_code} - {resp.text}",
                            http_status=resp.status_code,
                        )
                    for line in resp.iter_lines():
                        if not line:
                            continue
                        data_str = line.strip()
                        if not data_str.startswith("data:"):
                            # OpenRouter 会发送 ": OPENROUTER PROCESSING" 之类的注释行
                            continue
                        data_str = data_str[5:].strip()
                        if data_str == "[DONE]":
                            return
                        try:
                            payload_chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        yield self._parse_stream_chunk(payload_chunk, req)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    def _ensure_api_key(self) -> None:
        if not getattr(self._settings, "openrouter_api_key", None):
            # 配置缺失走 ValidationError，方便上层统一处理
            raise ValidationError(code="MISSING_API_KEY", message="OPENROUTER_API_KEY not set")

    def _base_url(self) -> str:
        return (getattr(self._settings, "openrouter_base_url", None) or OPENROUTER_CONFIG.base_url).rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._settings.openrouter_api_key}",
            "Content-Type": "application/json",
        }
        referer = getattr(self._settings, "app_referer", None)
        title = getattr(self._settings, "app_title", None)
        if referer:
            headers["HTTP-Referer"] = referer
        if title:
            headers["X-Title"] = title
        return headers

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> dict:
        """将 ChatRequest 转成 OpenRouter 所需的请求 JSON。"""

        temperature = req.temperature if req.temperature is not None else model_cfg.default_temperature
        return {
            "model": model_cfg.provider_model,
            "messages": [{"role": m.role, "content": m.content} for m in req.messages],
            "temperature": temperature,
            "max_tokens": req.max_tokens or model_cfg.max_tokens,
            "usage": {"include": True},
        }

    def _parse_response(self, data: dict, req: ChatRequest) -> ChatResult:
        """将原始响应 JSON 解析为统一的 ChatResult。"""

        choices: list[ChatChoice] = []
        for i, ch in enumerate(data.get("choices", [])):
            msg = ch.get("message") or {}
            cm = ChatMessage(role=msg.get("role") or "assistant", content=msg.get("content") or "")
            choices.append(ChatChoice(index=i, message=cm, finish_reason=ch.get("finish_reason")))
        return ChatResult(
            provider=self.name,
            model=req.model,
            choices=choices,
            usage=self._parse_usage(data.get("usage")),
            raw=data,
        )

    def _parse_stream_chunk(self, data: dict, req: ChatRequest) -> ChatStreamChunk:
        """解析流式响应中的单条增量。"""

        choices: list[ChatStreamChoice] = []
        for i, ch in enumerate(data.get("choices", [])):
            delta_payload = ch.get("delta") or {}
            choices.append(
                ChatStreamChoice(
                    index=ch.get("index", i),
                    delta=ChatMessage(
                        role=delta_payload.get("role") or "assistant",
                        content=delta_payload.get("content") or "",
                    ),
                    finish_reason=ch.get("finish_reason"),
                )
            )
        return ChatStreamChunk(
            provider=self.name,
            model=req.model,
            choices=choices,
            usage=self._parse_usage(data.get("usage")),
            raw=data,
        )

    @staticmethod
    def _parse_usage(usage_raw: Optional[Dict[str, Any]]) -> Optional[ChatUsage]:
        """解析 usage 字段；OpenRouter 在部分模型上额外返回 cost。"""

        if not usage_raw:
            return None
        raw_cost = usage_raw.get("cost", usage_raw.get("cost_usd"))
        cost: Optional[float] = None
        if raw_cost is not None:
            try:
                cost = float(raw_cost)
            except (TypeError, ValueError):
                cost = None
        return ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
            cost_usd=cost,
        )
