"""对外 API 服务模块。

提供简化的函数接口供上层应用调用；默认的编排器与检索服务懒加载为单例。
status_callback 逐次传入，不会改动单例上的共享回调。
"""

from typing import Any, Dict, Optional

from prose_core.agents.orchestrator import ResourceOrchestrator
from prose_core.config.settings import settings
from prose_core.domain.cancellation import CancellationToken
from prose_core.domain.models import StatusCallback
from prose_core.infrastructure.logging.logger import logger
from prose_core.providers import create_provider
from prose_core.resources import GuideLoader, GuideRegistry, LocalContextResourceProvider, format_catalog_for_prompt
from prose_core.search.category_search import CategorySearchOptions, CategorySearchResult, CategorySearchService


_orchestrator: Optional[ResourceOrchestrator] = None
_category_search: Optional[CategorySearchService] = None


def get_default_orchestrator() -> ResourceOrchestrator:
    """获取默认的编排器实例（单例）。"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ResourceOrchestrator(
            provider_client=create_provider(),
            guide_registry=GuideRegistry(settings.guides_root),
            guide_loader=GuideLoader(settings.guides_root),
        )
    return _orchestrator


def get_category_search_service() -> CategorySearchService:
    global _category_search
    if _category_search is None:
        _category_search = CategorySearchService(get_default_orchestrator())
    return _category_search


def run_guided_analysis(
    tool_name: str,
    system_message: str,
    user_message: str,
    include_catalog: bool = True,
    status_callback: Optional[StatusCallback] = None,
) -> Dict[str, Any]:
    """运行可加载写作指南的分析。

    Returns:
        包含 content、used_guides、usage 的字典
    """
    orchestrator = get_default_orchestrator()
    try:
        result = orchestrator.execute_with_guides(
            tool_name,
            system_message,
            user_message,
            include_catalog=include_catalog,
            status_callback=status_callback,
        )
    except Exception as e:
        logger.error(f"Guided analysis failed: {e}", extra={"extra": {"tool_name": tool_name, "error": str(e)}})
        raise
    return {
        "content": result.content,
        "used_guides": result.used_resource_ids,
        "usage": result.usage.__dict__ if result.usage else None,
    }


def run_context_assistant(
    system_message: str,
    user_message: str,
    project_root: Optional[str] = None,
    status_callback: Optional[StatusCallback] = None,
) -> Dict[str, Any]:
    """运行上下文助手：附带项目资料目录，模型可再请求一次具体文件。"""
    orchestrator = get_default_orchestrator()
    provider = LocalContextResourceProvider(project_root or settings.project_root, settings.context_path_patterns)
    catalog = format_catalog_for_prompt(provider.list_resources())
    try:
        result = orchestrator.execute_with_context_resources(
            "context_assistant",
            system_message,
            f"{user_message}\n\n{catalog}",
            provider,
            status_callback=status_callback,
        )
    except Exception as e:
        logger.error(f"Context assistant failed: {e}", extra={"extra": {"error": str(e)}})
        raise
    return {
        "content": result.content,
        "requested_resources": result.requested_resource_ids,
        "delivered_resources": result.used_resource_ids,
        "usage": result.usage.__dict__ if result.usage else None,
    }


def run_category_search(
    query: str,
    text: str,
    options: Optional[CategorySearchOptions] = None,
    cancel_token: Optional[CancellationToken] = None,
    status_callback: Optional[StatusCallback] = None,
) -> CategorySearchResult:
    """运行类别检索；失败、取消与上限都体现在结果里，不会抛出。"""
    result = get_category_search_service().search_by_category(
        query, text, options, cancel_token, status_callback=status_callback
    )
    if result.error:
        logger.error(f"Category search failed: {result.error}", extra={"extra": {"query": query, "error": result.error}})
    return result


def shutdown() -> None:
    """停止默认编排器的清扫线程并丢弃单例。"""
    global _orchestrator, _category_search
    if _orchestrator is not None:
        _orchestrator.close()
    _orchestrator = None
    _category_search = None
