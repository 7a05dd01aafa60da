"""会话编排器。

负责一次完整的模型交互：创建会话、追加消息、调用 provider、
识别回答里的资源请求标签并补充资源后继续对话，最后剥离标签返回。

三种执行模式共用 ExecutionResult 作为输出：

- execute_with_guides: 可多轮加载写作指南（LangGraph 驱动，最多 max_turns 次调用）。
- execute_single_turn: 单轮，不检查请求标签；类别检索使用此模式。
- execute_with_context_resources: 最多一次项目资料补充回合。

网络/接口错误原样抛给调用方，不在内部重试；无论成功失败，
会话 ID 都在 finally 中删除。
"""

import logging
import time
from typing import Any, Dict, List, Optional
from uuid import uuid4

from prose_core.config.settings import settings
from prose_core.domain.conversation import ConversationStore
from prose_core.domain.models import (
    ChatChoice,
    ChatMessage,
    ChatRequest,
    ChatResult,
    ChatUsage,
    ExecutionResult,
    StatusCallback,
    StatusEvent,
    TokenCallback,
    TokenUsageCallback,
    sum_usage,
)
from prose_core.domain.resources import (
    ContextResourceContent,
    ContextResourceProvider,
    GuideCatalog,
    GuideSource,
)
from prose_core.flows.graph import build_guide_flow
from prose_core.flows.state import GuideFlowState
from prose_core.infrastructure.logging.logger import log_event, preview
from prose_core.infrastructure.storage.memory_store import ConversationSweeper, InMemoryConversationStore
from prose_core.parsers import (
    format_names_for_status,
    parse_context_request,
    parse_guide_request,
    strip_context_tags,
    strip_guide_tags,
)
from prose_core.providers.base import ProviderClient
from prose_core.resources.context import normalize_key
from prose_core.utils.text import count_words, trim_to_word_limit


TRUNCATION_NOTE = "\n\n---\n\n⚠️ Response truncated. Increase Max Tokens in settings."


def truncation_note(finish_reason: Optional[str]) -> str:
    return TRUNCATION_NOTE if finish_reason == "length" else ""


class ResourceOrchestrator:
    def __init__(
        self,
        provider_client: ProviderClient,
        store: Optional[ConversationStore] = None,
        guide_registry: Optional[GuideCatalog] = None,
        guide_loader: Optional[GuideSource] = None,
        status_callback: Optional[StatusCallback] = None,
        token_usage_callback: Optional[TokenUsageCallback] = None,
        model: Optional[str] = None,
        max_turns: Optional[int] = None,
        apply_context_window_trimming: Optional[bool] = None,
        max_resource_words: Optional[int] = None,
        sweep_interval_seconds: Optional[float] = None,
        max_age_seconds: Optional[float] = None,
    ):
        self._provider_client = provider_client
        self._store: ConversationStore = store if store is not None else InMemoryConversationStore()
        self._guide_registry = guide_registry
        self._guide_loader = guide_loader
        self.status_callback = status_callback
        self.token_usage_callback = token_usage_callback
        self._model = model or settings.default_model
        self._max_turns = max_turns if max_turns is not None else settings.max_turns
        self._apply_trimming = (
            apply_context_window_trimming
            if apply_context_window_trimming is not None
            else settings.apply_context_window_trimming
        )
        self._max_resource_words = max_resource_words or settings.max_resource_words

        interval = sweep_interval_seconds if sweep_interval_seconds is not None else settings.conversation_sweep_interval_seconds
        max_age = max_age_seconds if max_age_seconds is not None else settings.conversation_max_age_seconds
        self._sweeper: Optional[ConversationSweeper] = None
        if interval and interval > 0:
            self._sweeper = ConversationSweeper(self._store, interval, max_age)
            self._sweeper.start()

        self._guide_flow = build_guide_flow(self._call_model_node, parse_guide_request, self._fulfill_guides)

    @property
    def store(self) -> ConversationStore:
        return self._store

    @property
    def max_turns(self) -> int:
        return self._max_turns

    # ---- 生命周期 -------------------------------------------------

    def close(self) -> None:
        """停止空闲清扫线程；可重复调用。"""

        if self._sweeper is not None:
            self._sweeper.stop()

    def __enter__(self) -> "ResourceOrchestrator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---- Mode A ---------------------------------------------------

    def execute_with_guides(
        self,
        tool_name: str,
        system_message: str,
        user_message: str,
        include_catalog: bool = True,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        status_callback: Optional[StatusCallback] = None,
    ) -> ExecutionResult:
        """可按需加载写作指南的对话。

        include_catalog=False 时既不附加指南目录，也不检查请求标签，只调用一次。
        status_callback 只作用于本次调用，未传入时使用实例上的回调。
        """

        start_time = time.time()
        conversation_id = self._store.start(tool_name, system_message)
        log_ctx = self._log_ctx(tool_name, conversation_id, "guides")
        self._log(logging.INFO, "Starting guided conversation", log_ctx, model=self._model)

        try:
            first_message = user_message
            if include_catalog and self._guide_registry is not None:
                guides = self._guide_registry.list_available_guides()
                catalog = self._guide_registry.format_guide_list_for_prompt(guides)
                first_message = f"{user_message}\n\n{catalog}"
                self._log(logging.INFO, "Added guide catalog", log_ctx, guides=len(guides), preview=preview(catalog, 800))
            self._store.append(conversation_id, ChatMessage(role="user", content=first_message))

            state: GuideFlowState = {
                "conversation_id": conversation_id,
                "tool_name": tool_name,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "max_turns": self._max_turns if include_catalog else 1,
                "turns": 0,
                "reply": "",
                "finish_reason": None,
                "pending_ids": [],
                "used_ids": [],
                "usage": None,
                "log_ctx": log_ctx,
                "status_callback": status_callback,
            }
            final = self._guide_flow.invoke(state, config={"recursion_limit": self._max_turns * 3 + 5})

            used = list(final.get("used_ids") or [])
            content = strip_guide_tags(final.get("reply", "")) + truncation_note(final.get("finish_reason"))
            self._log(
                logging.INFO,
                "Guided conversation complete",
                log_ctx,
                turns=final.get("turns", 0),
                used=len(used),
                latency_ms=int((time.time() - start_time) * 1000),
            )
            return ExecutionResult(
                content=content,
                used_resource_ids=used,
                requested_resource_ids=list(used),
                usage=final.get("usage"),
                finish_reason=final.get("finish_reason"),
                turns=final.get("turns", 0),
            )
        except Exception as exc:
            self._log(logging.ERROR, "Guided conversation failed", log_ctx, error=str(exc))
            raise
        finally:
            self._release(conversation_id, log_ctx)

    def _call_model_node(self, state: GuideFlowState) -> GuideFlowState:
        result = self._complete(
            state["conversation_id"],
            state.get("temperature"),
            state.get("max_tokens"),
            state.get("log_ctx", {}),
        )
        state["reply"] = result.content
        state["finish_reason"] = result.finish_reason
        state["usage"] = sum_usage(state.get("usage"), result.usage)
        return state

    def _fulfill_guides(self, state: GuideFlowState, guide_paths: List[str]) -> None:
        conversation_id = state["conversation_id"]
        log_ctx = state.get("log_ctx", {})
        self._notify(
            state.get("status_callback"),
            "Loading requested craft guides...",
            detail=format_names_for_status(guide_paths),
        )

        # 原样保留带标签的回答，模型需要看到自己的请求
        self._store.append(conversation_id, ChatMessage(role="assistant", content=state.get("reply", "")))

        loaded: Dict[str, str] = {}
        for path in guide_paths:
            try:
                if self._guide_loader is None:
                    raise FileNotFoundError(path)
                loaded[path] = self._guide_loader.load_guide(path)
                self._log(logging.INFO, "Loaded guide", log_ctx, path=path, chars=len(loaded[path]))
            except (OSError, ValueError) as exc:
                self._log(logging.WARNING, "Failed to load guide", log_ctx, path=path, error=str(exc))
                loaded[path] = f"[Guide not found: {path}]"

        self._store.append(
            conversation_id,
            ChatMessage(role="user", content=self._build_guide_message(loaded, log_ctx)),
        )

    def _build_guide_message(self, guides: Dict[str, str], log_ctx: Dict[str, Any]) -> str:
        lines = ["Here are the requested craft guides:", ""]

        if self._apply_trimming:
            combined = "\n\n".join(guides.values())
            total = count_words(combined)
            if total > self._max_resource_words:
                trim = trim_to_word_limit(combined, self._max_resource_words)
                self._log(
                    logging.INFO,
                    "Trimmed guide content",
                    log_ctx,
                    original_words=trim.original_words,
                    trimmed_words=trim.trimmed_words,
                )
                lines.append(trim.trimmed)
                lines.extend(["", "---", ""])
                lines.append("**Note**: Guide content was trimmed to fit context window limits.")
                return "\n".join(lines)

        for path, content in guides.items():
            lines.extend([f"## Guide: {path}", ""])
            lines.append(content)
            lines.extend(["", "---", ""])
        return "\n".join(lines)

    # ---- Mode B ---------------------------------------------------

    def execute_single_turn(
        self,
        tool_name: str,
        system_message: str,
        user_message: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        on_token: Optional[TokenCallback] = None,
    ) -> ExecutionResult:
        """system + user 一轮调用，不检查资源请求。传入 on_token 时走流式接口。"""

        conversation_id = self._store.start(tool_name, system_message)
        log_ctx = self._log_ctx(tool_name, conversation_id, "single")
        try:
            self._store.append(conversation_id, ChatMessage(role="user", content=user_message))
            if on_token is not None:
                result = self._complete_streaming(conversation_id, temperature, max_tokens, on_token, log_ctx)
            else:
                result = self._complete(conversation_id, temperature, max_tokens, log_ctx)
            return ExecutionResult(
                content=result.content + truncation_note(result.finish_reason),
                usage=result.usage,
                finish_reason=result.finish_reason,
                turns=1,
            )
        except Exception as exc:
            self._log(logging.ERROR, "Single-turn request failed", log_ctx, error=str(exc))
            raise
        finally:
            self._release(conversation_id, log_ctx)

    # ---- Mode C ---------------------------------------------------

    def execute_with_context_resources(
        self,
        tool_name: str,
        system_message: str,
        user_message: str,
        resource_provider: ContextResourceProvider,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        status_callback: Optional[StatusCallback] = None,
    ) -> ExecutionResult:
        """最多一次项目资料补充回合：首轮回答若含 context-request，批量加载后再调用一次。"""

        conversation_id = self._store.start(tool_name, system_message)
        log_ctx = self._log_ctx(tool_name, conversation_id, "context")
        self._log(logging.INFO, "Starting context conversation", log_ctx, model=self._model)
        try:
            self._store.append(conversation_id, ChatMessage(role="user", content=user_message))
            result = self._complete(conversation_id, temperature, max_tokens, log_ctx)
            usage = result.usage

            request = parse_context_request(result.content)
            if not request.present:
                self._log(logging.INFO, "No context request found", log_ctx)
                return ExecutionResult(
                    content=strip_context_tags(result.content) + truncation_note(result.finish_reason),
                    usage=usage,
                    finish_reason=result.finish_reason,
                    turns=1,
                )

            requested = list(request.requested_ids)
            self._log(logging.INFO, "Context resources requested", log_ctx, requested=requested)
            self._store.append(conversation_id, ChatMessage(role="assistant", content=result.content))
            self._notify(status_callback, "Loading project reference files...")

            loaded = resource_provider.load_resources(requested)
            delivered = [r.path for r in loaded]
            self._log(logging.INFO, "Loaded context resources", log_ctx, delivered=delivered)

            self._store.append(
                conversation_id,
                ChatMessage(role="user", content=self._build_context_message(loaded, requested, log_ctx)),
            )
            second = self._complete(conversation_id, temperature, max_tokens, log_ctx)
            usage = sum_usage(usage, second.usage)

            return ExecutionResult(
                content=strip_context_tags(second.content) + truncation_note(second.finish_reason),
                used_resource_ids=delivered,
                requested_resource_ids=requested,
                usage=usage,
                finish_reason=second.finish_reason,
                turns=2,
            )
        except Exception as exc:
            self._log(logging.ERROR, "Context conversation failed", log_ctx, error=str(exc))
            raise
        finally:
            self._release(conversation_id, log_ctx)

    def _build_context_message(
        self,
        resources: List[ContextResourceContent],
        requested: List[str],
        log_ctx: Dict[str, Any],
    ) -> str:
        if not resources:
            missing_list = ", ".join(requested) if requested else "unknown paths"
            return f"No project resources were found for the requested paths ({missing_list}). Please continue without them."

        delivered = {normalize_key(r.path) for r in resources}
        missing = [p for p in requested if normalize_key(p) not in delivered]
        lines = ["Here are the requested project resources:", ""]

        trimmed = None
        if self._apply_trimming:
            combined = "\n\n".join(r.content for r in resources)
            if count_words(combined) > self._max_resource_words:
                trimmed = trim_to_word_limit(combined, self._max_resource_words)
                self._log(
                    logging.INFO,
                    "Trimmed context resources",
                    log_ctx,
                    original_words=trimmed.original_words,
                    trimmed_words=trimmed.trimmed_words,
                )

        if trimmed is not None:
            lines.extend(["```markdown", trimmed.trimmed, "```", ""])
            lines.append("**Note**: Context resources were trimmed to fit context window limits.")
            lines.append("")
        else:
            for resource in resources:
                lines.append(f"### Resource: {resource.path}")
                lines.append(f"Group: {resource.group}")
                if resource.workspace_folder:
                    lines.append(f"Workspace Folder: {resource.workspace_folder}")
                lines.extend(["", "```markdown", resource.content.strip(), "```", ""])

        if missing:
            lines.extend(["The following requested paths could not be located:", ""])
            lines.extend(f"- {path}" for path in missing)
            lines.append("")

        lines.append("Please incorporate these references into the context summary.")
        return "\n".join(lines)

    # ---- 调用与辅助 -------------------------------------------------

    def _request(self, conversation_id: str, temperature: Optional[float], max_tokens: Optional[int]) -> ChatRequest:
        return ChatRequest(
            provider=self._provider_client.name,
            model=self._model,
            messages=self._store.snapshot(conversation_id),
            temperature=temperature,
            max_tokens=max_tokens,
        )

    def _complete(
        self,
        conversation_id: str,
        temperature: Optional[float],
        max_tokens: Optional[int],
        log_ctx: Dict[str, Any],
    ) -> ChatResult:
        req = self._request(conversation_id, temperature, max_tokens)
        self._log(logging.INFO, "Calling provider", log_ctx, messages=len(req.messages))
        start = time.time()
        result = self._provider_client.chat(req)
        self._log(
            logging.INFO,
            "Provider response",
            log_ctx,
            chars=len(result.content),
            finish_reason=result.finish_reason,
            latency_ms=int((time.time() - start) * 1000),
            usage=result.usage.__dict__ if result.usage else None,
        )
        self._emit_usage(result.usage)
        return result

    def _complete_streaming(
        self,
        conversation_id: str,
        temperature: Optional[float],
        max_tokens: Optional[int],
        on_token: TokenCallback,
        log_ctx: Dict[str, Any],
    ) -> ChatResult:
        req = self._request(conversation_id, temperature, max_tokens)
        self._log(logging.INFO, "Calling provider (stream)", log_ctx, messages=len(req.messages))
        parts: List[str] = []
        finish_reason: Optional[str] = None
        usage: Optional[ChatUsage] = None
        for chunk in self._provider_client.chat_stream(req):
            for choice in chunk.choices:
                if choice.delta.content:
                    parts.append(choice.delta.content)
                    on_token(choice.delta.content)
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
            if chunk.usage is not None:
                usage = chunk.usage
        content = "".join(parts)
        self._log(logging.INFO, "Provider stream complete", log_ctx, chars=len(content), finish_reason=finish_reason)
        self._emit_usage(usage)
        return ChatResult(
            provider=self._provider_client.name,
            model=self._model,
            choices=[ChatChoice(index=0, message=ChatMessage(role="assistant", content=content), finish_reason=finish_reason)],
            usage=usage,
        )

    def _release(self, conversation_id: str, log_ctx: Dict[str, Any]) -> None:
        info = self._store.info(conversation_id)
        if info is not None:
            self._log(
                logging.INFO,
                "Conversation released",
                log_ctx,
                messages=info.message_count,
                duration_ms=int((info.last_activity - info.created_at) * 1000),
            )
        self._store.delete(conversation_id)

    def _emit_usage(self, usage: Optional[ChatUsage]) -> None:
        if usage is not None and self.token_usage_callback is not None:
            self.token_usage_callback(usage)

    def _notify(
        self,
        callback: Optional[StatusCallback],
        message: str,
        detail: Optional[str] = None,
        progress: Optional[tuple] = None,
    ) -> None:
        callback = callback or self.status_callback
        if callback is not None:
            callback(StatusEvent(message=message, detail=detail, progress=progress))

    @staticmethod
    def _log_ctx(tool_name: str, conversation_id: str, mode: str) -> Dict[str, Any]:
        return {
            "trace_id": f"tr-{uuid4().hex}",
            "tool_name": tool_name,
            "conversation_id": conversation_id,
            "mode": mode,
        }

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        log_event(level, message, log_ctx, **fields)
