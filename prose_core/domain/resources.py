"""资源请求与外部资源提供方的领域模型。

模型可以在回答中嵌入请求标签，要求编排器先加载指南或项目文件，
这里定义解析结果以及两类资源提供方需要满足的协议。
"""

from dataclasses import dataclass, field
from typing import List, Optional, Protocol


@dataclass(frozen=True)
class ResourceRequest:
    """从助手回答中解析出的资源请求。

    requested_ids 已去重并保持首次出现顺序；present 当且仅当列表非空。
    """

    present: bool = False
    requested_ids: List[str] = field(default_factory=list)

    @classmethod
    def none(cls) -> "ResourceRequest":
        return cls(present=False, requested_ids=[])


@dataclass(frozen=True)
class GuideMetadata:
    """一篇写作指南的目录信息。"""

    path: str  # 相对 guides_root 的路径，如 "scene-example-guides/basketball-game.md"
    display_name: str  # 展示名，如 "Basketball Game"
    category: str  # 顶层目录名，根目录下的指南归为 "general"


@dataclass(frozen=True)
class ContextResourceSummary:
    """项目参考资料的目录条目（不含正文）。"""

    group: str
    path: str
    label: str
    workspace_folder: Optional[str] = None


@dataclass(frozen=True)
class ContextResourceContent:
    """已加载正文的项目参考资料。"""

    group: str
    path: str
    label: str
    content: str
    workspace_folder: Optional[str] = None


class GuideCatalog(Protocol):
    """指南目录：列出可用指南并格式化为提示词片段。"""

    def list_available_guides(self) -> List[GuideMetadata]:
        ...

    def format_guide_list_for_prompt(self, guides: List[GuideMetadata]) -> str:
        ...


class GuideSource(Protocol):
    """按 ID 逐个加载指南正文，找不到时抛出异常。"""

    def load_guide(self, guide_path: str) -> str:
        ...


class ContextResourceProvider(Protocol):
    """项目参考资料提供方：批量加载，未找到的路径直接省略。"""

    def list_resources(self) -> List[ContextResourceSummary]:
        ...

    def load_resources(self, paths: List[str]) -> List[ContextResourceContent]:
        ...
