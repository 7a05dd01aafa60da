"""模型输出中嵌入的资源请求标签解析器。"""

from prose_core.parsers.resource_request import (
    CONTEXT_REQUEST,
    GUIDE_REQUEST,
    ResourceTagGrammar,
    extract_display_names,
    format_names_for_status,
    parse_context_request,
    parse_guide_request,
    strip_context_tags,
    strip_guide_tags,
)

__all__ = [
    "CONTEXT_REQUEST",
    "GUIDE_REQUEST",
    "ResourceTagGrammar",
    "extract_display_names",
    "format_names_for_status",
    "parse_context_request",
    "parse_guide_request",
    "strip_context_tags",
    "strip_guide_tags",
]
