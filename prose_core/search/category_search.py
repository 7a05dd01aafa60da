"""类别检索：让模型从文本的去重词表中挑出属于某个语义类别的词。

流程：
1. 用 WordFrequency 提取候选单元（单词或 n-gram），为空则直接返回错误，不调用模型。
2. 按 batch_size 切块，顺序地对每块调用编排器的单轮模式。
3. 每块回答解析为 JSON 字符串数组；格式不符视为本块无匹配。
4. 单块失败只记录告警并继续；批次之间轮询取消令牌；达到 word_limit 时提前停止。
5. 用 WordSearchService 对原文做确定性统计，出现次数为 0 的词视为模型幻觉并丢弃，之后再按 word_limit 截断。
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from prose_core.config.settings import settings
from prose_core.domain.cancellation import CancellationToken
from prose_core.domain.models import ChatUsage, StatusCallback, StatusEvent, sum_usage
from prose_core.infrastructure.logging.logger import log_event, preview
from prose_core.prompts import CATEGORY_SEARCH_PROMPTS, load_prompts
from prose_core.search.word_frequency import WordFrequency
from prose_core.search.word_search import WordSearchResult, WordSearchService


TOOL_NAME = "category_search"

NO_CANDIDATES_ERROR = "No unique words found in text after filtering"
BATCH_FAILED_WARNING = "Some batches failed; results may be incomplete."
CANCELLED_WARNING = "Search cancelled; results include only the batches completed before cancellation."

RELEVANCE_GUIDANCE = {
    "narrow": "only words that unambiguously belong to the category",
    "balanced": "members of the category plus words whose most common sense belongs to it",
    "broad": "members of the category plus strongly associated words",
}

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


@dataclass
class CategorySearchOptions:
    relevance: str = "balanced"
    word_limit: Optional[int] = None
    ngram: int = 1
    min_occurrences: int = 1
    batch_size: Optional[int] = None
    case_sensitive: bool = False
    context_words: int = 10
    cluster_window: int = 100
    min_cluster_size: int = 3


@dataclass(frozen=True)
class CategorySearchResult:
    query: str
    matched_words: List[str] = field(default_factory=list)
    word_search_result: WordSearchResult = field(default_factory=WordSearchResult)
    tokens_used: Optional[ChatUsage] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    halted_early: bool = False
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))


# ---- 回答解析 ------------------------------------------------------


@dataclass(frozen=True)
class TermList:
    terms: List[str]


@dataclass(frozen=True)
class UnparsableReply:
    reason: str
    raw: str


ParsedReply = Union[TermList, UnparsableReply]


def parse_term_list(content: str) -> ParsedReply:
    """从回答中取出 JSON 字符串数组；非字符串或空字符串条目直接跳过。"""

    match = _JSON_ARRAY.search(content or "")
    if not match:
        return UnparsableReply(reason="No JSON array found in reply", raw=content or "")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        return UnparsableReply(reason=f"Invalid JSON: {exc.msg}", raw=content)
    if not isinstance(parsed, list):
        return UnparsableReply(reason="Reply is not an array", raw=content)
    return TermList(terms=[item.strip() for item in parsed if isinstance(item, str) and item.strip()])


def chunk(items: List[str], size: int) -> List[List[str]]:
    size = max(1, int(size))
    return [items[i : i + size] for i in range(0, len(items), size)]


def ceiling_warning(word_limit: int) -> str:
    return (
        f"Reached the word limit of {word_limit} matches before every word was reviewed; "
        "results may under-represent the category. Use narrow relevance or raise the word limit "
        "for a more complete list."
    )


class CategorySearchService:
    def __init__(
        self,
        orchestrator,
        word_search: Optional[WordSearchService] = None,
        word_frequency: Optional[WordFrequency] = None,
        status_callback: Optional[StatusCallback] = None,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        self._orchestrator = orchestrator
        self._word_search = word_search or WordSearchService()
        self._word_frequency = word_frequency or WordFrequency()
        self._status_callback = status_callback
        self._system_prompt = system_prompt
        self._temperature = temperature if temperature is not None else settings.category_temperature
        self._max_tokens = max_tokens or settings.category_max_tokens

    @property
    def system_prompt(self) -> str:
        if self._system_prompt is None:
            self._system_prompt = load_prompts(CATEGORY_SEARCH_PROMPTS)
        return self._system_prompt

    def search_by_category(
        self,
        query: str,
        text: str,
        options: Optional[CategorySearchOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
        status_callback: Optional[StatusCallback] = None,
    ) -> CategorySearchResult:
        """执行一次类别检索。

        任何失败都写入结果的 error 字段而不是抛出；status_callback 只作用于本次调用。
        """

        opts = options or CategorySearchOptions()
        word_limit = opts.word_limit or settings.category_word_limit
        batch_size = opts.batch_size or settings.category_batch_size
        log_ctx = {"tool_name": TOOL_NAME, "query": query}

        matched: Dict[str, str] = {}
        usage: Optional[ChatUsage] = None
        warnings: List[str] = []
        halted_early = False

        try:
            candidates = self._word_frequency.extract_candidates(
                text,
                ngram=opts.ngram,
                min_length=2,
                min_occurrences=opts.min_occurrences,
                exclude_stopwords=True,
            )
            if not candidates:
                log_event(logging.INFO, "No candidates for category search", log_ctx)
                return CategorySearchResult(query=query, error=NO_CANDIDATES_ERROR)

            system_prompt = self.system_prompt
            batches = chunk(candidates, batch_size)
            total = len(batches)
            self._notify(status_callback, f"Total unique words: {len(candidates)}", progress=(0, total))
            log_event(logging.INFO, "Category search started", log_ctx, candidates=len(candidates), batches=total)

            for index, words in enumerate(batches, start=1):
                if cancel_token is not None and cancel_token.cancelled:
                    log_event(logging.INFO, "Category search cancelled", log_ctx, completed_batches=index - 1)
                    warnings.append(CANCELLED_WARNING)
                    break

                self._notify(status_callback, f"Batch {index}/{total}", progress=(index, total))
                try:
                    result = self._orchestrator.execute_single_turn(
                        TOOL_NAME,
                        system_prompt,
                        self._build_user_message(query, words, opts.relevance),
                        temperature=self._temperature,
                        max_tokens=self._max_tokens,
                    )
                except Exception as exc:
                    log_event(logging.WARNING, "Category batch failed", log_ctx, batch=index, error=str(exc))
                    if BATCH_FAILED_WARNING not in warnings:
                        warnings.append(BATCH_FAILED_WARNING)
                    continue

                usage = sum_usage(usage, result.usage)
                parsed = parse_term_list(result.content)
                if isinstance(parsed, UnparsableReply):
                    log_event(
                        logging.WARNING,
                        "Unparsable category batch reply",
                        log_ctx,
                        batch=index,
                        reason=parsed.reason,
                        raw=preview(parsed.raw, 500),
                    )
                    batch_terms: List[str] = []
                else:
                    batch_terms = parsed.terms

                for term in batch_terms:
                    matched.setdefault(term if opts.case_sensitive else term.lower(), term)
                self._notify(
                    status_callback,
                    f"Batch {index}/{total}: matched {len(batch_terms)} words (accumulated {len(matched)})",
                    progress=(index, total),
                )
                log_event(logging.INFO, "Category batch finished", log_ctx, batch=index, matched=len(batch_terms), accumulated=len(matched))

                if len(matched) >= word_limit and index < total:
                    halted_early = True
                    break

            terms = list(matched.values())
            if not terms:
                if halted_early:
                    warnings.append(ceiling_warning(word_limit))
                return CategorySearchResult(
                    query=query,
                    tokens_used=usage,
                    warnings=warnings,
                    halted_early=halted_early,
                )

            stats = self._word_search.search_words(
                text,
                terms,
                case_sensitive=opts.case_sensitive,
                context_words=opts.context_words,
                cluster_window=opts.cluster_window,
                min_cluster_size=opts.min_cluster_size,
            )
        except Exception as exc:
            log_event(logging.ERROR, "Category search failed", log_ctx, error=str(exc))
            return CategorySearchResult(
                query=query,
                tokens_used=usage,
                warnings=warnings,
                error=str(exc),
                halted_early=halted_early,
            )

        found = {
            key
            for t in stats.targets
            if t.total_occurrences > 0
            for key in (t.normalized.lower(), t.target.lower())
        }
        valid = [term for term in terms if term.lower() in found]
        dropped = [term for term in terms if term.lower() not in found]
        if dropped:
            log_event(logging.INFO, "Filtered hallucinated words", log_ctx, count=len(dropped), words=dropped)

        # 先过滤幻觉词再截断，保证截断后的每个词都真实出现在原文中
        if len(valid) > word_limit:
            valid = valid[:word_limit]
            halted_early = True
        if halted_early:
            warnings.append(ceiling_warning(word_limit))

        return CategorySearchResult(
            query=query,
            matched_words=valid,
            word_search_result=stats.restricted_to(valid),
            tokens_used=usage,
            warnings=warnings,
            halted_early=halted_early,
        )

    # ---- helpers -------------------------------------------------

    @staticmethod
    def _build_user_message(query: str, words: List[str], relevance: str) -> str:
        guidance = RELEVANCE_GUIDANCE.get(relevance, RELEVANCE_GUIDANCE["balanced"])
        return f"Category: {query}\nRelevance: {relevance} ({guidance})\nWords: {', '.join(words)}"

    def _notify(self, callback: Optional[StatusCallback], message: str, progress: Optional[tuple] = None) -> None:
        callback = callback or self._status_callback or getattr(self._orchestrator, "status_callback", None)
        if callback is not None:
            callback(StatusEvent(message=message, progress=progress))
