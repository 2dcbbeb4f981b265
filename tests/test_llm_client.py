"""CompletionClient（LiteLLMラッパー）のテスト。"""

from __future__ import annotations

from types import SimpleNamespace

import litellm
import pytest

from chat_relay.llm_client import FALLBACK_REPLY, CompletionClient, first_choice_content
from chat_relay.llm_debug import format_debug_payload, redact_secrets


def _object_response(content):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="stop")])


@pytest.mark.parametrize(
    ("resp", "expected"),
    [
        (_object_response("hello"), "hello"),
        ({"choices": [{"message": {"content": "from dict"}}]}, "from dict"),
        (_object_response([{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]), "ab"),
        (_object_response(None), ""),
        ({"choices": []}, ""),
        ({"error": {"message": "rate limited"}}, ""),
        (None, ""),
    ],
)
def test_first_choice_content(resp, expected):
    assert first_choice_content(resp) == expected


def test_complete_passes_messages_and_credentials(monkeypatch):
    captured = {}

    def fake_completion(**kwargs):
        captured.update(kwargs)
        return _object_response("ok")

    monkeypatch.setattr(litellm, "completion", fake_completion)
    client = CompletionClient(
        "openrouter/google/gemini-2.0-flash-exp:free",
        "or-key",
        base_url="https://openrouter.ai/api/v1",
    )
    messages = [{"role": "user", "content": "hi"}]

    assert client.generate_reply(messages) == "ok"
    assert captured["model"] == "openrouter/google/gemini-2.0-flash-exp:free"
    assert captured["messages"] == messages
    assert captured["api_key"] == "or-key"
    assert captured["api_base"] == "https://openrouter.ai/api/v1"
    # タイムアウトは明示しない限り渡さない
    assert "timeout" not in captured


def test_timeout_is_forwarded_when_configured(monkeypatch):
    captured = {}
    monkeypatch.setattr(litellm, "completion", lambda **kw: captured.update(kw) or _object_response("x"))
    CompletionClient("m", "k", timeout_seconds=30).complete([{"role": "user", "content": "hi"}])
    assert captured["timeout"] == 30


def test_empty_content_uses_fallback(monkeypatch):
    monkeypatch.setattr(litellm, "completion", lambda **kw: _object_response(""))
    assert CompletionClient("m", "k").generate_reply([{"role": "user", "content": "hi"}]) == FALLBACK_REPLY


def test_transport_error_is_reraised(monkeypatch):
    def fail(**kwargs):
        raise ConnectionError("connection reset")

    monkeypatch.setattr(litellm, "completion", fail)
    with pytest.raises(ConnectionError):
        CompletionClient("m", "k", llm_log_level="OFF").generate_reply([{"role": "user", "content": "hi"}])


def test_debug_payload_drops_secrets():
    payload = {
        "model": "m",
        "api_key": "sk-secret",
        "headers": {"Authorization": "Bearer abc"},
        "messages": [{"role": "user", "content": "Bearer xyz"}],
    }
    masked = redact_secrets(payload)
    assert "api_key" not in masked
    assert masked["headers"] == {}
    assert masked["messages"][0]["content"] == "(authorization omitted)"
    assert "sk-secret" not in format_debug_payload(payload)
