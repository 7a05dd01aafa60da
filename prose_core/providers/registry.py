"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "assistant"、"context"。
- provider_model：厂商实际提供的模型 ID，例如 "z-ai/glm-4.6"。

上层只关心逻辑名，具体用哪个底层模型由这里集中配置；
未登记的名称会被当作厂商模型 ID 直接透传，便于用户在配置里写任意 OpenRouter 模型。"""

from dataclasses import dataclass
from typing import Dict, Mapping


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str
    max_tokens: int
    default_temperature: float


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]

    def resolve_model(self, name: str) -> ModelConfig:
        cfg = self.models.get(name)
        if cfg is not None:
            return cfg
        return ModelConfig(
            logical_name=name,
            provider_model=name,
            max_tokens=10000,
            default_temperature=0.7,
        )


OPENROUTER_CONFIG = ProviderConfig(
    name="openrouter",
    base_url="https://openrouter.ai/api/v1",
    models={
        # 写作分析类工具（支持指南请求）
        "assistant": ModelConfig(
            logical_name="assistant",
            provider_model="z-ai/glm-4.6",
            max_tokens=10000,
            default_temperature=0.7,
        ),
        # 上下文助手与类别搜索
        "context": ModelConfig(
            logical_name="context",
            provider_model="z-ai/glm-4.6",
            max_tokens=10000,
            default_temperature=0.5,
        ),
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "openrouter": OPENROUTER_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
