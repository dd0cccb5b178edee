import logging

import pytest

from listening_core.domain.exceptions import ApiError, RateLimitError
from listening_core.domain.models import BinaryPart, ChatMessage, ChatRequest, Document, Message, TextPart
from listening_core.engine.cancellation import CancellationToken
from listening_core.providers.base import FALLBACK_FRAGMENT
from listening_core.providers.completions_client import CompletionsClient


class SettingsStub:
    glm_api_key = "g" * 12
    glm_base_url = "https://open.bigmodel.cn/api/paas/v4"
    http_timeout = 1.0
    default_model = "chat"
    distill_model = "distill"


class FakeResponse:
    def __init__(self, lines=(), status_code=200, body=None, text=""):
        self._lines = list(lines)
        self.status_code = status_code
        self._body = body
        self.text = text

    def iter_lines(self):
        for line in self._lines:
            yield line

    def read(self):
        return self.text.encode()

    def json(self):
        return self._body


class StreamContext:
    def __init__(self, response):
        self._response = response

    def __enter__(self):
        return self._response

    def __exit__(self, *args):
        return False


def _patch_client(monkeypatch, response, captured):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, **_):
            captured["url"] = url
            captured["payload"] = json
            return response

        def stream(self, method, url, json=None, **_):
            captured["url"] = url
            captured["payload"] = json
            return StreamContext(response)

    monkeypatch.setattr("httpx.Client", Client)


STREAM_LINES = [
    'data: {"choices": [{"index": 0, "delta": {"content": "hel"}}]}',
    "",
    'data: {"choices": [{"index": 0, "delta": {"content": "lo"}, "finish_reason": "stop"}], "usage": {"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3}}',
    "data: [DONE]",
]


def test_generate_stream_yields_fragments(monkeypatch):
    captured = {}
    _patch_client(monkeypatch, FakeResponse(STREAM_LINES), captured)
    client = CompletionsClient("glm", SettingsStub())
    history = [Message(id="u1", role="user", parts=(TextPart("hi"), BinaryPart("image/png", "aGk=")))]

    out = list(client.generate_stream(history, [Document("a.txt", "alpha")], ["r1"], CancellationToken()))
    assert out == ["hel", "lo"]

    payload = captured["payload"]
    assert captured["url"].endswith("/chat/completions")
    assert payload["stream"] is True
    assert payload["model"] == "glm-4.6"
    assert payload["temperature"] == 0.7
    assert payload["messages"][0]["role"] == "system"
    assert "File Name: a.txt" in payload["messages"][0]["content"]
    assert "- r1" in payload["messages"][0]["content"]
    user_content = payload["messages"][1]["content"]
    assert user_content[0] == {"type": "text", "text": "hi"}
    assert user_content[1]["image_url"]["url"] == "data:image/png;base64,aGk="


def test_generate_stream_stops_when_cancelled(monkeypatch):
    _patch_client(monkeypatch, FakeResponse(STREAM_LINES), {})
    client = CompletionsClient("glm", SettingsStub())
    token = CancellationToken()
    token.cancel()
    assert list(client.generate_stream([], [], [], token)) == []


def test_generate_stream_failure_yields_single_fallback(monkeypatch):
    _patch_client(monkeypatch, FakeResponse(status_code=500, text="server error"), {})
    client = CompletionsClient("glm", SettingsStub())
    assert list(client.generate_stream([], [], [], CancellationToken())) == [FALLBACK_FRAGMENT]


def test_generate_stream_missing_key_yields_fallback():
    class NoKey(SettingsStub):
        glm_api_key = None

    client = CompletionsClient("glm", NoKey())
    assert list(client.generate_stream([], [], [], CancellationToken())) == [FALLBACK_FRAGMENT]


def test_chat_stream_parses_usage(monkeypatch):
    _patch_client(monkeypatch, FakeResponse(STREAM_LINES), {})
    client = CompletionsClient("glm", SettingsStub())
    req = ChatRequest(provider="glm", model="chat", messages=[ChatMessage(role="user", parts=[TextPart("hi")])])
    chunks = list(client.chat_stream(req))
    assert [c.delta_text for c in chunks] == ["hel", "lo"]
    assert chunks[1].finish_reason == "stop"
    assert chunks[1].usage.total_tokens == 3


def test_generate_stream_logs_usage(monkeypatch, caplog):
    _patch_client(monkeypatch, FakeResponse(STREAM_LINES), {})
    client = CompletionsClient("glm", SettingsStub())
    with caplog.at_level(logging.INFO, logger="listening_core"):
        list(client.generate_stream([], [], [], CancellationToken()))
    records = [r for r in caplog.records if r.getMessage() == "Stream finished"]
    assert len(records) == 1
    assert records[0].extra["finish_reason"] == "stop"
    assert records[0].extra["total_tokens"] == 3


def test_explicit_zero_temperature_is_sent(monkeypatch):
    captured = {}
    body = {"choices": [{"message": {"content": "ok"}}]}
    _patch_client(monkeypatch, FakeResponse(body=body), captured)
    client = CompletionsClient("glm", SettingsStub())
    req = ChatRequest(
        provider="glm", model="distill", messages=[ChatMessage(role="user", parts=[TextPart("hi")])], temperature=0.0
    )
    assert client.complete(req) == "ok"
    assert captured["payload"]["temperature"] == 0.0


def test_distill_returns_text(monkeypatch):
    captured = {}
    body = {"choices": [{"message": {"role": "assistant", "content": "Always cite."}}]}
    _patch_client(monkeypatch, FakeResponse(body=body), captured)
    client = CompletionsClient("glm", SettingsStub())
    assert client.distill("prompt") == "Always cite."
    assert captured["payload"]["model"] == "glm-4.5-flash"
    assert captured["payload"]["temperature"] == 0.3
    assert captured["payload"]["max_tokens"] == 1024
    assert captured["payload"]["messages"] == [{"role": "user", "content": "prompt"}]


def test_distill_rate_limited(monkeypatch):
    _patch_client(monkeypatch, FakeResponse(status_code=429, text="slow down"), {})
    client = CompletionsClient("glm", SettingsStub())
    with pytest.raises(RateLimitError):
        client.distill("prompt")


def test_distill_api_error(monkeypatch):
    _patch_client(monkeypatch, FakeResponse(status_code=500, text="boom"), {})
    client = CompletionsClient("glm", SettingsStub())
    with pytest.raises(ApiError) as exc:
        client.distill("prompt")
    assert exc.value.http_status == 500
