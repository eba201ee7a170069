from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .base import ChatClient
from .types import LLMMessage, LLMResult, UsageMetrics, safe_int


LOGGER = logging.getLogger(__name__)


class AnthropicClient(ChatClient):
    """Thin wrapper around Anthropic's Messages API."""

    provider_name = "anthropic"
    default_endpoint = "https://api.anthropic.com/v1/messages"
    default_model = "claude-sonnet-4-20250514"

    def __init__(
        self,
        *,
        api_key: str,
        endpoint: Optional[str] = None,
        model: Optional[str] = None,
        api_version: str = "2023-06-01",
        default_max_output_tokens: int = 1024,
        timeout: float = 60.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(
            api_key=api_key,
            endpoint=endpoint,
            model=model,
            timeout=timeout,
            logger=logger or LOGGER,
        )
        self.api_version = api_version
        self.default_max_output_tokens = int(default_max_output_tokens)

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
        }

    def _build_body(
        self,
        messages: Sequence[LLMMessage],
        *,
        system: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Dict[str, Any]:
        prepared, resolved_system = self._prepare_messages(messages, system_override=system)
        if not prepared:
            raise ValueError("No non-system messages supplied for Anthropic call.")

        # The Messages API rejects requests without a token cap.
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": prepared,
            "max_tokens": max_tokens or self.default_max_output_tokens,
        }
        if resolved_system:
            body["system"] = resolved_system
        if temperature is not None:
            body["temperature"] = temperature
        return body

    def _prepare_messages(
        self,
        messages: Sequence[LLMMessage],
        *,
        system_override: Optional[str],
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        prepared: List[Dict[str, Any]] = []
        system_segments: List[str] = []

        for message in messages:
            if message.role == "system":
                text = message.content.strip()
                if text:
                    system_segments.append(text)
                continue

            text = message.content.strip()
            if not text:
                raise ValueError(f"Message for role '{message.role}' is empty.")
            prepared.append({"role": message.role, "content": text})

        resolved_system = (system_override or "").strip() or None
        if system_segments:
            combined = "\n\n".join(system_segments)
            resolved_system = f"{resolved_system}\n\n{combined}" if resolved_system else combined

        return prepared, resolved_system

    def _normalise_response(self, payload: Mapping[str, Any], response_text: str) -> LLMResult:
        content_blocks = payload.get("content")
        if not isinstance(content_blocks, list):
            raise self._malformed("Anthropic response did not include a content list.", response_text)

        text_fragments: List[str] = []
        for block in content_blocks:
            if isinstance(block, dict) and block.get("type") == "text":
                text_value = block.get("text")
                if text_value:
                    text_fragments.append(str(text_value))

        usage_payload = payload.get("usage") or {}
        usage = None
        if isinstance(usage_payload, dict) and usage_payload:
            usage = UsageMetrics(
                input_tokens=safe_int(usage_payload.get("input_tokens")),
                output_tokens=safe_int(usage_payload.get("output_tokens")),
                total_tokens=safe_int(usage_payload.get("total_tokens")),
            )

        return LLMResult(
            text="\n".join(text_fragments).strip(),
            model=payload.get("model"),
            stop_reason=payload.get("stop_reason"),
            usage=usage,
            raw={"response": dict(payload), "text": response_text},
        )
