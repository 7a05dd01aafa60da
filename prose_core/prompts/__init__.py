"""系统提示词加载工具。

提示词以 Markdown 文件随包发布，按相对路径读取；
多个片段之间用分隔线拼接成一条 system prompt。
"""

from pathlib import Path
from typing import Iterable


PROMPTS_DIR = Path(__file__).resolve().parent
PROMPT_SEPARATOR = "\n\n---\n\n"

CATEGORY_SEARCH_PROMPTS = (
    "category_search/00-role.md",
    "category_search/01-instructions.md",
    "category_search/02-constraints.md",
)


def load_prompt(relative_path: str) -> str:
    """读取单个提示词文件，路径相对于 prompts 目录。"""

    return (PROMPTS_DIR / relative_path).read_text(encoding="utf-8").strip()


def load_prompts(relative_paths: Iterable[str]) -> str:
    return PROMPT_SEPARATOR.join(load_prompt(p) for p in relative_paths)
