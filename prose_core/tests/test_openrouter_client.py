import pytest

from prose_core.domain.exceptions import ApiError, EmptyCompletionError, NetworkError, RateLimitError, ValidationError
from prose_core.domain.models import ChatMessage, ChatRequest
from prose_core.providers.openrouter_client import OpenRouterClient


class SettingsStub:
    openrouter_api_key = "sk-or-test-key"
    openrouter_base_url = "https://openrouter.ai/api/v1/"
    http_timeout = 1.0
    app_referer = "https://example.com"
    app_title = "Prose Core"


def _req():
    return ChatRequest(
        provider="openrouter",
        model="assistant",
        messages=[ChatMessage(role="system", content="sys"), ChatMessage(role="user", content="hi")],
        temperature=0.3,
        max_tokens=50,
    )


class Resp:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        return self._payload


def _client_returning(resp, captured=None):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None):
            if captured is not None:
                captured.update({"url": url, "json": json, "headers": headers})
            return resp

    return Client


def test_openrouter_chat_parses_content_and_usage(monkeypatch):
    captured = {}
    payload = {
        "choices": [{"message": {"role": "assistant", "content": "ok"}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5, "cost": "0.001"},
    }
    monkeypatch.setattr("httpx.Client", _client_returning(Resp(payload=payload), captured))

    res = OpenRouterClient(SettingsStub()).chat(_req())

    assert res.content == "ok"
    assert res.finish_reason == "stop"
    assert res.usage.total_tokens == 5
    assert res.usage.cost_usd == pytest.approx(0.001)
    assert captured["url"] == "https://openrouter.ai/api/v1/chat/completions"
    assert captured["json"]["model"] == "z-ai/glm-4.6"
    assert captured["json"]["max_tokens"] == 50
    assert captured["json"]["usage"] == {"include": True}
    assert [m["role"] for m in captured["json"]["messages"]] == ["system", "user"]
    assert captured["headers"]["Authorization"] == "Bearer sk-or-test-key"
    assert captured["headers"]["X-Title"] == "Prose Core"


def test_openrouter_error_status_carries_body(monkeypatch):
    monkeypatch.setattr("httpx.Client", _client_returning(Resp(status_code=500, text="boom")))
    with pytest.raises(ApiError) as exc:
        OpenRouterClient(SettingsStub()).chat(_req())
    assert exc.value.http_status == 500
    assert "500 - boom" in exc.value.message


def test_openrouter_rate_limit(monkeypatch):
    monkeypatch.setattr("httpx.Client", _client_returning(Resp(status_code=429, text="slow down")))
    with pytest.raises(RateLimitError):
        OpenRouterClient(SettingsStub()).chat(_req())


def test_openrouter_empty_choices(monkeypatch):
    monkeypatch.setattr("httpx.Client", _client_returning(Resp(payload={"choices": []})))
    with pytest.raises(EmptyCompletionError):
        OpenRouterClient(SettingsStub()).chat(_req())


def test_openrouter_network_error(monkeypatch):
    import httpx

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None):
            raise httpx.ConnectError("unreachable")

    monkeypatch.setattr("httpx.Client", Client)
    with pytest.raises(NetworkError):
        OpenRouterClient(SettingsStub()).chat(_req())


def test_openrouter_missing_key():
    class NoKey(SettingsStub):
        openrouter_api_key = None

    with pytest.raises(ValidationError):
        OpenRouterClient(NoKey()).chat(_req())


def test_openrouter_stream_skips_comments_and_bad_chunks(monkeypatch):
    lines = [
        ": OPENROUTER PROCESSING",
        'data: {"choices": [{"index": 0, "delta": {"content": "Hel"}}]}',
        "data: {not json",
        'data: {"choices": [{"index": 0, "delta": {"content": "lo"}, "finish_reason": "stop"}]}',
        'data: {"choices": [], "usage": {"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3}}',
        "data: [DONE]",
        'data: {"choices": [{"index": 0, "delta": {"content": "ignored"}}]}',
    ]

    class StreamResp:
        status_code = 200

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def iter_lines(self):
            return iter(lines)

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def stream(self, method, url, json=None, headers=None):
            assert json["stream"] is True
            return StreamResp()

    monkeypatch.setattr("httpx.Client", Client)
    chunks = list(OpenRouterClient(SettingsStub()).chat_stream(_req()))

    text = "".join(c.delta.content for chunk in chunks for c in chunk.choices)
    assert text == "Hello"
    assert chunks[-1].usage.total_tokens == 3
