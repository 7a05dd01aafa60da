import pytest

from prose_core.domain.models import ChatChoice, ChatMessage, ChatResult, ChatStreamChoice, ChatStreamChunk, ChatUsage


def make_result(content, usage=None, finish_reason="stop"):
    return ChatResult(
        provider="fake",
        model="assistant",
        choices=[ChatChoice(index=0, message=ChatMessage(role="assistant", content=content), finish_reason=finish_reason)],
        usage=usage,
    )


class FakeProvider:
    """按顺序返回预设回答；元素为异常时直接抛出。"""

    name = "fake"

    def __init__(self, replies):
        self._replies = list(replies)
        self.requests = []

    def chat(self, req):
        self.requests.append(req)
        if not self._replies:
            raise AssertionError("unexpected extra completion call")
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, ChatResult):
            return reply
        return make_result(reply, usage=ChatUsage(10, 5, 15))

    def chat_stream(self, req):
        self.requests.append(req)
        text = self._replies.pop(0)
        for piece in text.split(" "):
            yield ChatStreamChunk(
                provider="fake",
                model="assistant",
                choices=[ChatStreamChoice(index=0, delta=ChatMessage(role="assistant", content=piece + " "))],
            )
        yield ChatStreamChunk(
            provider="fake",
            model="assistant",
            choices=[ChatStreamChoice(index=0, delta=ChatMessage(role="assistant", content=""), finish_reason="stop")],
            usage=ChatUsage(2, 3, 5),
        )


@pytest.fixture
def fake_provider_factory():
    return FakeProvider


@pytest.fixture
def chat_result():
    return make_result
