"""确定性词语检索（无需模型）。

给定一段文本和目标词/短语列表，统计每个目标的出现次数、所在行、
上下文片段、相邻出现的平均间隔以及近距离聚集（cluster）。
类别检索用这里的出现次数作为过滤模型幻觉的唯一依据。
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional


WORD_PATTERN = re.compile(r"[A-Za-z0-9']+")


@dataclass
class Token:
    raw: str
    normalized: str
    start: int
    end: int
    index: int


@dataclass
class Occurrence:
    index: int
    line: int
    snippet: str
    token_start: int = 0
    token_end: int = 0
    char_start: int = 0
    char_end: int = 0


@dataclass
class Cluster:
    count: int
    span_words: int
    start_line: int
    end_line: int
    snippet: str


@dataclass
class TargetStats:
    """单个目标词的统计结果。"""

    target: str
    normalized: str
    total_occurrences: int
    overall_average_gap: Optional[float] = None
    occurrences: List[Occurrence] = field(default_factory=list)
    clusters: List[Cluster] = field(default_factory=list)


@dataclass
class WordSearchOptions:
    case_sensitive: bool = False
    context_words: int = 10
    cluster_window: int = 100
    min_cluster_size: int = 3


@dataclass
class WordSearchResult:
    options: WordSearchOptions = field(default_factory=WordSearchOptions)
    targets: List[TargetStats] = field(default_factory=list)
    note: Optional[str] = None

    def restricted_to(self, terms: Iterable[str]) -> "WordSearchResult":
        """只保留 target 或 normalized 落在 terms 中的条目（不区分大小写）。"""

        keep = {t.lower() for t in terms}
        return replace(
            self,
            targets=[t for t in self.targets if t.normalized.lower() in keep or t.target.lower() in keep],
        )


def tokenize(content: str, case_sensitive: bool = False) -> List[Token]:
    tokens: List[Token] = []
    for idx, match in enumerate(WORD_PATTERN.finditer(content)):
        word = match.group(0)
        tokens.append(
            Token(
                raw=word,
                normalized=word if case_sensitive else word.lower(),
                start=match.start(),
                end=match.end(),
                index=idx,
            )
        )
    return tokens


def _average(values: List[int]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


class WordSearchService:
    """按 token 序列匹配目标；多词短语要求连续 token 完全一致。"""

    def search_words(
        self,
        text: str,
        targets: List[str],
        case_sensitive: bool = False,
        context_words: int = 10,
        cluster_window: int = 100,
        min_cluster_size: int = 3,
    ) -> WordSearchResult:
        options = WordSearchOptions(
            case_sensitive=case_sensitive,
            context_words=max(0, int(context_words)),
            cluster_window=max(1, int(cluster_window)),
            min_cluster_size=max(2, int(min_cluster_size)),
        )
        prepared = self._prepare_targets(targets, case_sensitive)
        result = WordSearchResult(options=options)
        if not prepared:
            result.note = "No valid targets provided."
            return result

        tokens = tokenize(text or "", case_sensitive)
        line_index = [m.start() for m in re.finditer("\n", text or "")]

        for label, normalized_tokens in prepared:
            occurrences = self._find_occurrences(text, tokens, normalized_tokens, options.context_words, line_index)
            distances = self._compute_distances(occurrences, len(normalized_tokens))
            clusters = self._detect_clusters(occurrences, tokens, text, options)
            result.targets.append(
                TargetStats(
                    target=label,
                    normalized=" ".join(normalized_tokens),
                    total_occurrences=len(occurrences),
                    overall_average_gap=_average(distances),
                    occurrences=occurrences,
                    clusters=clusters,
                )
            )
        return result

    # ---- helpers -------------------------------------------------

    @staticmethod
    def _prepare_targets(values: List[str], case_sensitive: bool) -> List[tuple[str, List[str]]]:
        prepared = []
        for raw in values:
            trimmed = str(raw or "").strip()
            if not trimmed:
                continue
            words = WORD_PATTERN.findall(trimmed)
            if not words:
                continue
            prepared.append((trimmed, [w if case_sensitive else w.lower() for w in words]))
        return prepared

    @staticmethod
    def _line_number(line_index: List[int], position: int) -> int:
        return bisect.bisect_left(line_index, position) + 1

    @staticmethod
    def _snippet(content: str, tokens: List[Token], start_token: int, end_token: int, highlights: List[tuple[int, int]]) -> str:
        if not tokens:
            return ""
        start_token = max(0, start_token)
        end_token = min(len(tokens) - 1, end_token)
        char_start = tokens[start_token].start
        char_end = tokens[end_token].end
        if char_start >= char_end:
            return ""

        parts: List[str] = []
        cursor = char_start
        for hs, he in sorted((max(char_start, s), min(char_end, e)) for s, e in highlights):
            if hs >= he:
                continue
            if hs > cursor:
                parts.append(content[cursor:hs])
            parts.append(f"**{content[hs:he]}**")
            cursor = he
        if cursor < char_end:
            parts.append(content[cursor:char_end])

        prefix = "…" if start_token > 0 else ""
        suffix = "…" if end_token < len(tokens) - 1 else ""
        return re.sub(r"\s+", " ", f"{prefix}{''.join(parts)}{suffix}").strip()

    def _find_occurrences(
        self,
        content: str,
        tokens: List[Token],
        target_tokens: List[str],
        context_words: int,
        line_index: List[int],
    ) -> List[Occurrence]:
        width = len(target_tokens)
        found: List[Occurrence] = []
        if width == 0 or len(tokens) < width:
            return found
        for i in range(len(tokens) - width + 1):
            if any(tokens[i + j].normalized != target_tokens[j] for j in range(width)):
                continue
            first, last = tokens[i], tokens[i + width - 1]
            found.append(
                Occurrence(
                    index=len(found) + 1,
                    line=self._line_number(line_index, first.start),
                    snippet=self._snippet(
                        content, tokens, i - context_words, i + width - 1 + context_words, [(first.start, last.end)]
                    ),
                    token_start=first.index,
                    token_end=last.index,
                    char_start=first.start,
                    char_end=last.end,
                )
            )
        return found

    @staticmethod
    def _compute_distances(occurrences: List[Occurrence], token_length: int) -> List[int]:
        distances = []
        for current, nxt in zip(occurrences, occurrences[1:]):
            gap = nxt.token_start - current.token_start - token_length
            if gap >= 0:
                distances.append(gap)
        return distances

    def _detect_clusters(
        self,
        occurrences: List[Occurrence],
        tokens: List[Token],
        content: str,
        options: WordSearchOptions,
    ) -> List[Cluster]:
        if len(occurrences) < options.min_cluster_size:
            return []
        by_start: dict[int, tuple[int, Cluster]] = {}
        pad = max(options.context_words * 2, 8)
        start = 0
        for end in range(len(occurrences)):
            while start < end and occurrences[end].token_start - occurrences[start].token_start > options.cluster_window:
                start += 1
            count = end - start + 1
            if count < options.min_cluster_size:
                continue
            existing = by_start.get(start)
            if existing is not None and existing[0] >= end:
                continue
            first, last = occurrences[start], occurrences[end]
            snippet = self._snippet(
                content,
                tokens,
                first.token_start - pad,
                last.token_end + pad,
                [(o.char_start, o.char_end) for o in occurrences[start : end + 1]],
            )
            by_start[start] = (
                end,
                Cluster(
                    count=count,
                    span_words=last.token_start - first.token_start,
                    start_line=first.line,
                    end_line=last.line,
                    snippet=snippet,
                ),
            )
        return [cluster for _, (_, cluster) in sorted(by_start.items())]
