"""Tests for the OpenAI-compatible tone backend over a mock transport.

Run:
    pytest test_tone_backend.py -v
"""

import asyncio
import json

import httpx
import pytest

from biztone.errors import RemoteServiceError
from biztone.llm.base import DecisionAction
from biztone.llm.openai_backend import OpenAIToneBackend


def completion(content, status_code=200):
    return httpx.Response(status_code, json={"choices": [{"message": {"content": content}}]})


class Recorder:
    """Mock transport handler replaying scripted responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_backend(handler, api_key="sk-test", sleeps=None, **kwargs):
    async def fake_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    return OpenAIToneBackend(
        api_key=api_key,
        base_url="https://llm.example.com/v1/",
        transport=httpx.MockTransport(handler),
        sleep=fake_sleep,
        **kwargs,
    )


class TestConvert:
    def test_request_shape(self):
        handler = Recorder(completion("  확인 부탁드립니다.  "))
        backend = make_backend(handler)

        assert asyncio.run(backend.convert("빨리 해")) == "확인 부탁드립니다."

        request = handler.requests[0]
        assert str(request.url) == "https://llm.example.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o-mini"
        assert body["temperature"] == 0.3
        assert body["max_tokens"] == 200
        assert "빨리 해" in body["messages"][1]["content"]

    def test_empty_content_returns_original(self):
        backend = make_backend(Recorder(completion("")))
        assert asyncio.run(backend.convert("빨리 해")) == "빨리 해"

    def test_missing_key_fails_without_request(self):
        handler = Recorder()
        backend = make_backend(handler, api_key=None)
        with pytest.raises(RemoteServiceError):
            asyncio.run(backend.convert("빨리 해"))
        assert handler.requests == []

    def test_server_error_is_not_retried(self):
        handler = Recorder(httpx.Response(500, text="boom"))
        backend = make_backend(handler)
        with pytest.raises(RemoteServiceError) as excinfo:
            asyncio.run(backend.convert("빨리 해"))
        assert excinfo.value.status_code == 500
        assert len(handler.requests) == 1

    def test_malformed_body(self):
        backend = make_backend(Recorder(httpx.Response(200, json={"choices": []})))
        with pytest.raises(RemoteServiceError):
            asyncio.run(backend.convert("빨리 해"))


class TestRetry:
    """Backoff schedule: 429 -> 0.5s * n^2, network error -> 1s * n."""

    def test_rate_limit_backoff(self):
        sleeps = []
        handler = Recorder(httpx.Response(429), httpx.Response(429), completion("좋습니다."))
        backend = make_backend(handler, sleeps=sleeps)
        assert asyncio.run(backend.convert("빨리 해")) == "좋습니다."
        assert sleeps == [0.5, 2.0]
        assert len(handler.requests) == 3

    def test_rate_limit_exhausted(self):
        sleeps = []
        handler = Recorder(httpx.Response(429), httpx.Response(429), httpx.Response(429))
        backend = make_backend(handler, sleeps=sleeps)
        with pytest.raises(RemoteServiceError) as excinfo:
            asyncio.run(backend.convert("빨리 해"))
        assert excinfo.value.status_code == 429
        assert sleeps == [0.5, 2.0]

    def test_network_error_backoff(self):
        sleeps = []
        handler = Recorder(
            httpx.ConnectError("connection refused"),
            httpx.ConnectError("connection refused"),
            completion("좋습니다."),
        )
        backend = make_backend(handler, sleeps=sleeps)
        assert asyncio.run(backend.convert("빨리 해")) == "좋습니다."
        assert sleeps == [1.0, 2.0]

    def test_network_error_exhausted(self):
        handler = Recorder(*[httpx.ConnectError("connection refused")] * 3)
        backend = make_backend(handler)
        with pytest.raises(RemoteServiceError):
            asyncio.run(backend.convert("빨리 해"))
        assert len(handler.requests) == 3

    def test_timeout_is_not_retried(self):
        sleeps = []
        handler = Recorder(httpx.ReadTimeout("timed out"), completion("unused"))
        backend = make_backend(handler, sleeps=sleeps)
        with pytest.raises(RemoteServiceError):
            asyncio.run(backend.convert("빨리 해"))
        assert len(handler.requests) == 1
        assert sleeps == []


class TestDecide:
    def test_send(self):
        handler = Recorder(completion('{"action": "send", "label": "적절함", "rationale": "문제 없음"}'))
        decision = asyncio.run(make_backend(handler).decide("회의 자료 공유드립니다"))
        assert decision.action == DecisionAction.SEND
        assert decision.converted_text is None
        assert decision.label == "적절함"

        body = json.loads(handler.requests[0].content)
        assert body["temperature"] == 0.0
        assert body["response_format"] == {"type": "json_object"}

    def test_convert(self):
        content = '{"action": "convert", "converted_text": "검토 부탁드립니다."}'
        decision = asyncio.run(make_backend(Recorder(completion(content))).decide("빨리 봐"))
        assert decision.action == DecisionAction.CONVERT
        assert decision.converted_text == "검토 부탁드립니다."

    @pytest.mark.parametrize("content", [
        "not json",
        "[1, 2]",
        '{"action": "shout"}',
        '{"action": "convert"}',
        '{"action": "convert", "converted_text": "   "}',
    ])
    def test_invalid_decisions(self, content):
        backend = make_backend(Recorder(completion(content)))
        with pytest.raises(RemoteServiceError):
            asyncio.run(backend.decide("빨리 봐"))


class TestLifecycle:
    def test_health_check(self):
        backend = make_backend(lambda request: httpx.Response(200, json={"data": []}))
        assert asyncio.run(backend.health_check()) is True
        assert asyncio.run(make_backend(Recorder(), api_key="").health_check()) is False

    def test_info(self):
        info = make_backend(Recorder()).get_info()
        assert info["backend"] == "openai"
        assert info["base_url"] == "https://llm.example.com/v1"
        assert info["configured"] is True
