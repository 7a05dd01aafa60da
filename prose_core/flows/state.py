"""State definition for the guide-fulfilling LangGraph flow."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, TypedDict

from prose_core.domain.models import ChatUsage, StatusCallback


class GuideFlowState(TypedDict, total=False):
    """State shared across LangGraph nodes for one guided exchange."""

    conversation_id: str
    tool_name: str
    temperature: Optional[float]
    max_tokens: Optional[int]
    max_turns: int
    turns: int
    reply: str
    finish_reason: Optional[str]
    pending_ids: List[str]
    used_ids: List[str]
    usage: Optional[ChatUsage]
    log_ctx: Dict[str, Any]
    status_callback: Optional[StatusCallback]
