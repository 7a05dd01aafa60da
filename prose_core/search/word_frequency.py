"""候选词提取：类别检索送给模型的去重词表。"""

from __future__ import annotations

import re
import string
from collections import Counter
from typing import List


STOPWORDS = frozenset(
    """
    a about above after again against all am an and any are as at be because been before being
    below between both but by can could did do does doing down during each few for from further
    had has have having he her here hers herself him himself his how i if in into is it its itself
    just me more most my myself no nor not now of off on once only or other our ours ourselves out
    over own same she should so some such than that the their theirs them themselves then there
    these they this those through to too under until up very was we were what when where which
    while who whom why will with would you your yours yourself yourselves
    """.split()
)

_PUNCT = string.punctuation + "‘’“”—–…"
_DIGIT = re.compile(r"\d")


class WordFrequency:
    """把文本切成候选单元（单词或定长 n-gram）。"""

    def tokenize(self, text: str) -> List[str]:
        words = []
        for raw in (text or "").split():
            word = raw.strip(_PUNCT).lower()
            if word:
                words.append(word)
        return words

    def extract_candidates(
        self,
        text: str,
        ngram: int = 1,
        min_length: int = 2,
        min_occurrences: int = 1,
        exclude_stopwords: bool = True,
    ) -> List[str]:
        """返回按首次出现排序的去重候选。

        含数字的单元、过短的单词以及（可选）停用词被丢弃；
        n-gram 模式下只要任一成员被丢弃，该 n-gram 也不算候选。
        """

        ngram = max(1, int(ngram))
        words = self.tokenize(text)

        def usable(word: str) -> bool:
            if len(word) < min_length or _DIGIT.search(word):
                return False
            return not (exclude_stopwords and word in STOPWORDS)

        units: List[str] = []
        for i in range(len(words) - ngram + 1):
            window = words[i : i + ngram]
            if all(usable(w) for w in window):
                units.append(" ".join(window))

        counts = Counter(units)
        ordered = dict.fromkeys(units)
        return [u for u in ordered if counts[u] >= min_occurrences]
