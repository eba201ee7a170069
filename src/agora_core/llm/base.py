from __future__ import annotations

import json
import logging
import socket
import urllib.error
import urllib.request
from typing import Any, Dict, Mapping, MutableMapping, Optional, Sequence, Tuple

from .errors import ProviderError, ProviderErrorKind, kind_for_status
from .types import LLMMessage, LLMResult, MessageInput, normalise_messages


LOGGER = logging.getLogger(__name__)


class ChatClient:
    """Base class for chat-completion backends.

    Subclasses describe one wire shape: the request body, the auth headers and
    the path to the generated text. Transport, status mapping and JSON decoding
    live here so every backend fails with the same ``ProviderError`` kinds.
    """

    provider_name = "chat"
    default_endpoint = ""
    default_model = ""
    default_max_output_tokens = 1024

    def __init__(
        self,
        *,
        api_key: str,
        endpoint: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 60.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        resolved_key = (api_key or "").strip()
        if not resolved_key:
            raise ValueError(f"Missing API key for {self.provider_name} client")

        self.api_key = resolved_key
        self.endpoint = (endpoint or self.default_endpoint).strip()
        if not self.endpoint:
            raise ValueError(f"Missing endpoint for {self.provider_name} client")
        self.model = model or self.default_model
        self.timeout = timeout
        self.logger = logger or LOGGER

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def complete(
        self,
        system_prompt: Optional[str],
        messages: Sequence[MessageInput],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Return only the generated text of a completion."""

        return self.send_messages(
            messages,
            system=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
        ).text

    def send_messages(
        self,
        messages: Sequence[MessageInput],
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResult:
        """Invoke the backend and normalize the response."""

        prepared = normalise_messages(messages)
        if not prepared:
            raise ValueError("At least one message must be supplied.")

        body = self._build_body(prepared, system=system, temperature=temperature, max_tokens=max_tokens)
        payload, response_text = self._http_request(body)
        return self._normalise_response(payload, response_text)

    # ------------------------------------------------------------------ #
    # Wire shape hooks
    # ------------------------------------------------------------------ #

    def _build_body(
        self,
        messages: Sequence[LLMMessage],
        *,
        system: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def _auth_headers(self) -> Dict[str, str]:
        raise NotImplementedError

    def _normalise_response(self, payload: Mapping[str, Any], response_text: str) -> LLMResult:
        raise NotImplementedError

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _malformed(self, message: str, response_text: Optional[str] = None) -> ProviderError:
        return ProviderError(
            kind=ProviderErrorKind.MALFORMED_RESPONSE,
            message=message,
            provider=self.provider_name,
            response_text=response_text,
        )

    def _http_request(
        self,
        body: Dict[str, Any],
        *,
        extra_headers: Optional[Mapping[str, str]] = None,
    ) -> Tuple[Dict[str, Any], str]:
        data = json.dumps(body).encode("utf-8")
        headers: MutableMapping[str, str] = {"content-type": "application/json"}
        headers.update(self._auth_headers())
        if extra_headers:
            headers.update(extra_headers)

        request = urllib.request.Request(
            url=self.endpoint,
            data=data,
            headers=dict(headers),
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                raw_bytes = response.read()
                response_text = raw_bytes.decode("utf-8") if raw_bytes else ""
        except UnicodeDecodeError as exc:
            raise self._malformed(f"{self.provider_name} response was not valid UTF-8.") from exc
        except urllib.error.HTTPError as exc:
            error_bytes = exc.read()
            error_text = error_bytes.decode("utf-8", errors="ignore") if error_bytes else ""
            parsed: Optional[Dict[str, Any]] = None
            try:
                parsed = json.loads(error_text) if error_text else None
            except json.JSONDecodeError:
                parsed = None

            message = ""
            if isinstance(parsed, dict):
                error_payload = parsed.get("error")
                if isinstance(error_payload, dict):
                    message = str(error_payload.get("message") or "")
                elif isinstance(error_payload, str):
                    message = error_payload

            self.logger.error("%s error (%s): %s", self.provider_name, exc.code, error_text[:500])
            raise ProviderError(
                kind=kind_for_status(exc.code),
                message=message or f"{self.provider_name} API error ({exc.code})",
                provider=self.provider_name,
                status_code=exc.code,
                response_text=error_text or None,
                response_json=parsed if isinstance(parsed, dict) else None,
            ) from None
        except urllib.error.URLError as exc:
            human = getattr(exc, "reason", None) or str(exc)
            raise ProviderError(
                kind=ProviderErrorKind.TRANSPORT,
                message=f"{self.provider_name} request failed: {human}",
                provider=self.provider_name,
            ) from exc
        except (socket.timeout, TimeoutError) as exc:
            raise ProviderError(
                kind=ProviderErrorKind.TRANSPORT,
                message=f"{self.provider_name} request timed out",
                provider=self.provider_name,
            ) from exc

        try:
            payload = json.loads(response_text) if response_text else {}
        except json.JSONDecodeError as exc:
            raise self._malformed(f"{self.provider_name} response was not valid JSON.", response_text) from exc
        if not isinstance(payload, dict):
            raise self._malformed(f"{self.provider_name} response was not a JSON object.", response_text)

        return payload, response_text
