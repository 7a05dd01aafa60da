"""Prose Core 顶层包。

该包实现与外部大模型补全接口的会话编排：会话存储与空闲回收、
模型输出中资源请求标签的解析、按需加载写作指南/项目资料的多轮对话，
以及带批处理、取消与幻觉过滤的类别检索。
"""

from prose_core.agents.orchestrator import ResourceOrchestrator
from prose_core.search.category_search import CategorySearchOptions, CategorySearchService

__all__ = ["CategorySearchOptions", "CategorySearchService", "ResourceOrchestrator"]
