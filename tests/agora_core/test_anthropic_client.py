from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

import pytest

from agora_core.llm import AnthropicClient, LLMMessage, ProviderError, ProviderErrorKind


class RecordingAnthropicClient(AnthropicClient):
    """Anthropic client that records the outgoing payload for assertions."""

    def __init__(self, response: Mapping[str, Any]) -> None:
        super().__init__(api_key="test-key", endpoint="https://example.com/v1/messages")
        self._response = dict(response)
        self.last_body: Optional[Dict[str, Any]] = None

    def _http_request(  # type: ignore[override]
        self,
        body: Dict[str, Any],
        *,
        extra_headers: Optional[Mapping[str, str]] = None,
    ) -> tuple[Dict[str, Any], str]:
        self.last_body = dict(body)
        return dict(self._response), json.dumps(self._response)


def test_send_messages_builds_payload_and_normalizes_response() -> None:
    response_payload = {
        "id": "msg_123",
        "model": "claude-sonnet-4-20250514",
        "content": [
            {"type": "text", "text": "First point."},
            {"type": "text", "text": "Second point."},
        ],
        "stop_reason": "end_turn",
        "usage": {"input_tokens": 10, "output_tokens": 32},
    }

    client = RecordingAnthropicClient(response_payload)
    messages = [
        LLMMessage(role="system", content="Keep answers short."),
        LLMMessage(role="user", content="Should we expand to Berlin?"),
    ]

    result = client.send_messages(messages, system="You are the CFO.", max_tokens=256, temperature=0.5)

    assert client.last_body is not None
    assert client.last_body["model"] == client.default_model
    assert client.last_body["max_tokens"] == 256
    assert client.last_body["temperature"] == 0.5
    assert client.last_body["system"] == "You are the CFO.\n\nKeep answers short."
    assert client.last_body["messages"] == [{"role": "user", "content": "Should we expand to Berlin?"}]

    assert result.text == "First point.\nSecond point."
    assert result.stop_reason == "end_turn"
    assert result.usage is not None
    assert result.usage.output_tokens == 32


def test_unlimited_token_cap_becomes_default() -> None:
    client = RecordingAnthropicClient({"content": [{"type": "text", "text": "ok"}]})

    text = client.complete("System.", [{"role": "user", "content": "Hi"}], max_tokens=None)

    assert text == "ok"
    assert client.last_body is not None
    assert client.last_body["max_tokens"] == 1024
    assert "temperature" not in client.last_body


def test_missing_content_list_is_malformed() -> None:
    client = RecordingAnthropicClient({"type": "error"})

    with pytest.raises(ProviderError) as excinfo:
        client.complete(None, [{"role": "user", "content": "Hi"}])

    assert excinfo.value.kind == ProviderErrorKind.MALFORMED_RESPONSE
    assert excinfo.value.provider == "anthropic"


def test_auth_headers_carry_key_and_version() -> None:
    client = AnthropicClient(api_key="sk-ant-test")

    headers = client._auth_headers()

    assert headers == {"x-api-key": "sk-ant-test", "anthropic-version": "2023-06-01"}
