"""资源请求标签的解析与剥离。

模型可以在回答中嵌入如下标签，请求编排器先加载资源再继续作答：

    <guide-request path=["scene-example-guides/basketball-game.md", "dialogue-tags.md"] />
    <context-request path=['characters/anna.md'] />

约定（与已按该格式训练过的模型保持兼容）：

- 标签名大小写不敏感，引号可以是单引号或双引号。
- 一条回答里可以出现多个同类标签，ID 列表按出现顺序拼接后去重。
- 格式错误的标签（括号不配对、缺少引号）视为“没有请求”，解析永不抛异常。
- 返回给用户之前必须剥离标签，并把 3 个以上连续换行压缩为 2 个。
"""

import re
from typing import Iterable, List

from prose_core.domain.resources import ResourceRequest


_QUOTED_ID = re.compile(r"""["']([^"']+)["']""")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


class ResourceTagGrammar:
    """一种请求标签的语法；guide 与 context 两种标签共用同一套规则。"""

    def __init__(self, tag_name: str):
        self.tag_name = tag_name
        self._pattern = re.compile(
            rf"<{re.escape(tag_name)}\s+path=\[([^\]]*)\]\s*/>",
            re.IGNORECASE,
        )

    def parse(self, text: str) -> ResourceRequest:
        if not text:
            return ResourceRequest.none()
        collected: List[str] = []
        for match in self._pattern.finditer(text):
            collected.extend(_parse_id_list(match.group(1)))
        ids = _dedupe(collected)
        return ResourceRequest(present=bool(ids), requested_ids=ids)

    def strip(self, text: str) -> str:
        cleaned = self._pattern.sub("", text or "")
        cleaned = _EXCESS_NEWLINES.sub("\n\n", cleaned)
        return cleaned.strip()


GUIDE_REQUEST = ResourceTagGrammar("guide-request")
CONTEXT_REQUEST = ResourceTagGrammar("context-request")


def parse_guide_request(text: str) -> ResourceRequest:
    return GUIDE_REQUEST.parse(text)


def strip_guide_tags(text: str) -> str:
    return GUIDE_REQUEST.strip(text)


def parse_context_request(text: str) -> ResourceRequest:
    return CONTEXT_REQUEST.parse(text)


def strip_context_tags(text: str) -> str:
    return CONTEXT_REQUEST.strip(text)


def extract_display_names(resource_ids: Iterable[str]) -> List[str]:
    """把资源 ID 转成展示名。

    "scene-example-guides/basketball-game.md" -> "Basketball Game"
    """

    names: List[str] = []
    for resource_id in resource_ids:
        filename = re.split(r"[\\/]", resource_id)[-1] or resource_id
        stem = re.sub(r"\.[A-Za-z0-9]+$", "", filename)
        words = [w for w in stem.split("-") if w]
        names.append(" ".join(w[:1].upper() + w[1:] for w in words))
    return names


def format_names_for_status(resource_ids: Iterable[str]) -> str:
    return ", ".join(extract_display_names(resource_ids))


def _parse_id_list(raw: str) -> List[str]:
    ids: List[str] = []
    for match in _QUOTED_ID.finditer(raw):
        value = match.group(1).strip()
        if value:
            ids.append(value)
    return ids


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered
