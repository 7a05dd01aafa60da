"""字数统计与按字数截断。"""

import re
from dataclasses import dataclass


@dataclass
class TrimResult:
    trimmed: str
    original_words: int
    trimmed_words: int
    was_trimmed: bool


def count_words(text: str) -> int:
    if not text or not text.strip():
        return 0
    return len(text.split())


def trim_to_word_limit(text: str, max_words: int) -> TrimResult:
    """截断到 max_words 个词，尽量停在最后 50 个词内的句末标点处。"""

    words = text.split()
    original = len(words)
    if original <= max_words:
        return TrimResult(trimmed=text, original_words=original, trimmed_words=original, was_trimmed=False)

    kept = words[:max_words]
    trimmed = " ".join(kept)
    tail = " ".join(kept[-50:])
    match = re.search(r"[.!?]\s+", tail)
    if match:
        cut = len(trimmed) - len(tail) + match.start() + 1
        trimmed = trimmed[:cut].strip()

    return TrimResult(trimmed=trimmed, original_words=original, trimmed_words=count_words(trimmed), was_trimmed=True)
