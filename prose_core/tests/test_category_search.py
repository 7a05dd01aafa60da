import json

from prose_core.domain.cancellation import CancellationToken
from prose_core.domain.exceptions import NetworkError
from prose_core.domain.models import ChatUsage, ExecutionResult
from prose_core.search.category_search import (
    BATCH_FAILED_WARNING,
    NO_CANDIDATES_ERROR,
    CategorySearchOptions,
    CategorySearchService,
    TermList,
    UnparsableReply,
    parse_term_list,
)
from prose_core.search.word_search import TargetStats, WordSearchResult


class FakeOrchestrator:
    def __init__(self, replies=None, on_call=None):
        self._replies = list(replies or [])
        self._on_call = on_call
        self.calls = []
        self.status_callback = None

    def execute_single_turn(self, tool_name, system_message, user_message, temperature=None, max_tokens=None):
        self.calls.append(user_message)
        if self._on_call is not None:
            self._on_call(len(self.calls))
        reply = self._replies.pop(0) if self._replies else "[]"
        if isinstance(reply, Exception):
            raise reply
        return ExecutionResult(content=reply, usage=ChatUsage(10, 5, 15))


class FixedCountsWordSearch:
    def __init__(self, counts):
        self.counts = counts

    def search_words(self, text, targets, **kw):
        return WordSearchResult(
            targets=[
                TargetStats(target=t, normalized=t.lower(), total_occurrences=self.counts.get(t.lower(), 0))
                for t in targets
            ]
        )


def _service(orchestrator, **kw):
    statuses = []
    service = CategorySearchService(orchestrator, status_callback=statuses.append, system_prompt="sys", **kw)
    return service, statuses


def _unique_words(n):
    return ["zq" + chr(97 + i // 676 % 26) + chr(97 + i // 26 % 26) + chr(97 + i % 26) for i in range(n)]


def test_hallucinated_words_are_dropped():
    orch = FakeOrchestrator(['["apple","pear","berry"]'])
    service, _ = _service(orch, word_search=FixedCountsWordSearch({"apple": 3, "pear": 0, "berry": 2}))

    result = service.search_by_category("fruit", "apple pear berry apple")

    assert result.matched_words == ["apple", "berry"]
    assert [t.target for t in result.word_search_result.targets] == ["apple", "berry"]
    assert result.error is None
    assert result.warnings == []
    assert not result.halted_early
    assert result.query == "fruit"


def test_real_word_search_filters_words_not_in_text():
    orch = FakeOrchestrator(['Sure: ["apple", "mango", 7, ""]'])
    service, _ = _service(orch)

    result = service.search_by_category("fruit", "an apple and a pear")

    assert result.matched_words == ["apple"]
    assert result.word_search_result.targets[0].total_occurrences == 1


def test_batches_progress_and_token_sum():
    words = _unique_words(900)
    orch = FakeOrchestrator()
    service, statuses = _service(orch)

    result = service.search_by_category("anything", " ".join(words), CategorySearchOptions(batch_size=400))

    assert len(orch.calls) == 3
    messages = [s.message for s in statuses]
    assert messages[0] == "Total unique words: 900"
    batch_markers = [m for m in messages if m in ("Batch 1/3", "Batch 2/3", "Batch 3/3")]
    assert batch_markers == ["Batch 1/3", "Batch 2/3", "Batch 3/3"]
    assert any("matched 0 words (accumulated 0)" in m for m in messages)
    assert result.tokens_used == ChatUsage(30, 15, 45)
    assert result.matched_words == []
    assert result.error is None


def test_user_message_carries_category_and_words():
    orch = FakeOrchestrator()
    service, _ = _service(orch)

    service.search_by_category("weather", "storm rain", CategorySearchOptions(relevance="narrow"))

    message = orch.calls[0]
    assert message.startswith("Category: weather\n")
    assert "Relevance: narrow" in message
    assert message.endswith("Words: storm, rain")


def test_empty_input_never_calls_endpoint():
    orch = FakeOrchestrator()
    service, _ = _service(orch)

    result = service.search_by_category("fruit", "   the and 42 ")

    assert orch.calls == []
    assert result.error == NO_CANDIDATES_ERROR
    assert result.matched_words == []


def test_failed_batches_become_a_single_warning():
    orch = FakeOrchestrator([NetworkError(code="NETWORK_ERROR", message="down")] * 3)
    service, _ = _service(orch)

    result = service.search_by_category("x", " ".join(_unique_words(5)), CategorySearchOptions(batch_size=2))

    assert len(orch.calls) == 3
    assert result.warnings == [BATCH_FAILED_WARNING]
    assert result.error is None
    assert result.matched_words == []


def test_partial_batch_failure_keeps_other_matches():
    orch = FakeOrchestrator([NetworkError(code="NETWORK_ERROR", message="down"), '["storm"]'])
    service, _ = _service(orch)

    result = service.search_by_category("weather", "rain hail storm", CategorySearchOptions(batch_size=2))

    assert result.matched_words == ["storm"]
    assert result.warnings == [BATCH_FAILED_WARNING]


def test_word_limit_sets_halted_early():
    orch = FakeOrchestrator(['["apple","pear","berry"]'])
    service, _ = _service(orch)

    result = service.search_by_category("fruit", "apple pear berry apple", CategorySearchOptions(word_limit=2))

    assert result.halted_early
    assert result.matched_words == ["apple", "pear"]
    assert any("word limit" in w and "narrow relevance" in w for w in result.warnings)


def test_word_limit_stops_remaining_batches():
    orch = FakeOrchestrator(['["apple","pear"]', '["berry"]'])
    service, _ = _service(orch)

    result = service.search_by_category(
        "fruit", "apple pear berry plum", CategorySearchOptions(word_limit=2, batch_size=2)
    )

    assert len(orch.calls) == 1
    assert result.halted_early
    assert result.matched_words == ["apple", "pear"]


def test_cancellation_keeps_completed_batches():
    token = CancellationToken()
    orch = FakeOrchestrator(['["apple"]', '["pear"]'], on_call=lambda n: token.cancel())
    service, _ = _service(orch)

    result = service.search_by_category(
        "fruit", "apple pear berry", CategorySearchOptions(batch_size=1), cancel_token=token
    )
    token.cancel()

    assert len(orch.calls) == 1
    assert result.matched_words == ["apple"]
    assert any("cancel" in w.lower() for w in result.warnings)
    assert result.error is None


def test_unparsable_reply_counts_as_no_matches():
    orch = FakeOrchestrator(["I think apple fits."])
    service, _ = _service(orch)

    result = service.search_by_category("fruit", "apple pear")

    assert result.matched_words == []
    assert result.error is None
    assert result.warnings == []


def test_parse_term_list_variants():
    assert parse_term_list('["a", "b"]') == TermList(terms=["a", "b"])
    assert parse_term_list('Result:\n```json\n["a", 1, null, "  "]\n```') == TermList(terms=["a"])
    assert isinstance(parse_term_list("nothing here"), UnparsableReply)
    assert isinstance(parse_term_list("[not json]"), UnparsableReply)
    assert isinstance(parse_term_list(json.dumps({"word": "a"})), UnparsableReply)


def test_packaged_prompt_loads():
    service = CategorySearchService(FakeOrchestrator())
    assert "JSON array" in service.system_prompt


def test_hallucinated_words_do_not_count_toward_word_limit():
    orch = FakeOrchestrator(['["ghost","phantom","apple","pear"]'])
    service, _ = _service(orch)

    result = service.search_by_category("fruit", "apple pear plum", CategorySearchOptions(word_limit=2))

    assert result.matched_words == ["apple", "pear"]
    assert [t.target for t in result.word_search_result.targets] == ["apple", "pear"]
    assert not result.halted_early
    assert result.error is None


class BrokenWordSearch:
    def search_words(self, text, targets, **kw):
        raise RuntimeError("stats backend down")


def test_statistics_failure_is_reported_in_error():
    orch = FakeOrchestrator(['["apple"]'])
    service, _ = _service(orch, word_search=BrokenWordSearch())

    result = service.search_by_category("fruit", "apple pear")

    assert result.error == "stats backend down"
    assert result.matched_words == []
    assert result.tokens_used == ChatUsage(10, 5, 15)


class BrokenWordFrequency:
    def extract_candidates(self, text, **kw):
        raise ValueError("bad tokenizer")


def test_candidate_extraction_failure_is_reported_in_error():
    orch = FakeOrchestrator()
    service, _ = _service(orch, word_frequency=BrokenWordFrequency())

    result = service.search_by_category("fruit", "apple pear")

    assert orch.calls == []
    assert result.error == "bad tokenizer"


def test_per_call_status_callback_takes_precedence():
    orch = FakeOrchestrator(['["apple"]'])
    service, default_statuses = _service(orch)
    call_statuses = []

    service.search_by_category("fruit", "apple pear", status_callback=call_statuses.append)

    assert default_statuses == []
    assert [s.message for s in call_statuses][:2] == ["Total unique words: 2", "Batch 1/1"]
