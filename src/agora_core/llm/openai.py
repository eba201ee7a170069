from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .base import ChatClient
from .types import LLMMessage, LLMResult, UsageMetrics, safe_int


LOGGER = logging.getLogger(__name__)


class OpenAIChatClient(ChatClient):
    """Client for OpenAI-style ``/chat/completions`` endpoints.

    Also used for custom OpenAI-compatible endpoints and for the platform
    default gateway, which only differ by endpoint, key and model.
    """

    provider_name = "openai"
    default_endpoint = "https://api.openai.com/v1/chat/completions"
    default_model = "gpt-4o-mini"
    max_tokens_field = "max_completion_tokens"
    #: Whether an unlimited cap is replaced by ``default_max_output_tokens``.
    requires_max_tokens = True

    def __init__(
        self,
        *,
        api_key: str,
        endpoint: Optional[str] = None,
        model: Optional[str] = None,
        provider_name: Optional[str] = None,
        default_max_output_tokens: int = 1024,
        timeout: float = 60.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if provider_name:
            self.provider_name = provider_name
        super().__init__(
            api_key=api_key,
            endpoint=endpoint,
            model=model,
            timeout=timeout,
            logger=logger or LOGGER,
        )
        self.default_max_output_tokens = int(default_max_output_tokens)

    def _auth_headers(self) -> Dict[str, str]:
        return {"authorization": f"Bearer {self.api_key}"}

    def _build_body(
        self,
        messages: Sequence[LLMMessage],
        *,
        system: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Dict[str, Any]:
        prepared: List[Dict[str, str]] = []
        if system and system.strip():
            prepared.append({"role": "system", "content": system.strip()})
        prepared.extend(message.as_payload() for message in messages)

        body: Dict[str, Any] = {"model": self.model, "messages": prepared}
        if temperature is not None:
            body["temperature"] = temperature

        cap = max_tokens
        if cap is None and self.requires_max_tokens:
            cap = self.default_max_output_tokens
        if cap is not None:
            body[self.max_tokens_field] = cap
        return body

    def _normalise_response(self, payload: Mapping[str, Any], response_text: str) -> LLMResult:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise self._malformed(f"{self.provider_name} response did not include choices.", response_text)

        message = choices[0].get("message")
        if not isinstance(message, dict):
            raise self._malformed(f"{self.provider_name} choice did not include a message.", response_text)

        content = message.get("content")
        if content is not None and not isinstance(content, str):
            raise self._malformed(f"{self.provider_name} message content was not text.", response_text)

        usage_payload = payload.get("usage") or {}
        usage = None
        if isinstance(usage_payload, dict) and usage_payload:
            usage = UsageMetrics(
                input_tokens=safe_int(usage_payload.get("prompt_tokens")),
                output_tokens=safe_int(usage_payload.get("completion_tokens")),
                total_tokens=safe_int(usage_payload.get("total_tokens")),
            )

        return LLMResult(
            text=(content or "").strip(),
            model=payload.get("model"),
            stop_reason=choices[0].get("finish_reason"),
            usage=usage,
            raw={"response": dict(payload), "text": response_text},
        )


class PerplexityClient(OpenAIChatClient):
    """Perplexity search-augmented chat; appends cited sources to the text."""

    provider_name = "perplexity"
    default_endpoint = "https://api.perplexity.ai/chat/completions"
    default_model = "sonar"
    max_tokens_field = "max_tokens"
    requires_max_tokens = False

    def _normalise_response(self, payload: Mapping[str, Any], response_text: str) -> LLMResult:
        result = super()._normalise_response(payload, response_text)
        citations = payload.get("citations") or []
        if isinstance(citations, list):
            result.citations = [str(item) for item in citations if item]
        if result.citations and result.text:
            sources = "\n".join(f"{index}. {url}" for index, url in enumerate(result.citations, 1))
            result.text = f"{result.text}\n\n**Sources:**\n{sources}"
        return result
