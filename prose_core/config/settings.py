"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CONTEXT_PATTERNS: Dict[str, List[str]] = {
    "characters": ["characters/**/*.md", "**/characters/*.md"],
    "locations": ["locations/**/*.md", "**/locations/*.md"],
    "themes": ["themes/**/*.md"],
    "things": ["things/**/*.md", "items/**/*.md"],
    "chapters": ["chapters/**/*.md"],
    "manuscript": ["manuscript/**/*.md"],
    "projectBrief": ["brief/**/*.md", "project-brief*.md"],
    "general": ["notes/**/*.md"],
}


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("PROSE_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except Exception as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 补全接口 ----
    openrouter_api_key: Optional[str] = Field(default=None, description="OpenRouter API 密钥")
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenRouter API 基础URL",
    )
    app_referer: str = Field(default="https://github.com/prose-core/prose-core", description="HTTP-Referer 头")
    app_title: str = Field(default="Prose Core", description="X-Title 头")
    default_provider: str = Field(default="openrouter", description="默认 Provider 名称")
    default_model: str = Field(
        default="assistant",
        description="逻辑模型名，由 registry 映射为具体厂商模型；未登记的名称原样透传",
    )
    http_timeout: float = Field(default=120.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 会话编排 ----
    max_turns: int = Field(
        default=3,
        ge=1,
        le=10,
        description="单次调用内补全接口的最大调用次数（含首轮）",
    )
    conversation_max_age_seconds: float = Field(default=300.0, gt=0, description="空闲会话回收阈值（秒）")
    conversation_sweep_interval_seconds: float = Field(
        default=300.0,
        ge=0,
        description="空闲会话清扫间隔（秒），0 表示不启动清扫线程",
    )
    apply_context_window_trimming: bool = Field(default=True, description="是否裁剪投喂给模型的资源正文")
    max_resource_words: int = Field(default=50000, ge=100, description="单轮投喂资源的最大词数")

    # ---- 类别搜索 ----
    category_batch_size: int = Field(default=400, ge=1, description="每批发送给模型的候选词数量")
    category_word_limit: int = Field(default=100, ge=1, description="匹配词数上限，达到后提前停止")
    category_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    category_max_tokens: int = Field(default=4000, ge=1)

    # ---- 资源目录 ----
    guides_root: str = Field(default="resources/craft-guides", description="写作指南根目录")
    project_root: str = Field(
        default_factory=lambda: str(Path.cwd()),
        description="项目参考资料的根目录",
    )
    context_path_patterns: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CONTEXT_PATTERNS.items()},
        description="资料分组 -> glob 模式列表",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openrouter_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
