"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供具体实现 (openrouter_client)。
"""

from typing import Optional

from prose_core.config.settings import settings
from prose_core.providers.base import ProviderClient
from prose_core.providers.openrouter_client import OpenRouterClient


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    provider_name = (name or getattr(settings, "default_provider", "openrouter")).lower()
    if provider_name != "openrouter":
        raise KeyError(f"Unknown provider: {provider_name!r}")
    return OpenRouterClient(settings)
