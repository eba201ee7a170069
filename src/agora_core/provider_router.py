from __future__ import annotations

import logging
import threading
from typing import Dict, Mapping, Optional, Sequence, Tuple

from .llm import (
    AnthropicClient,
    ChatClient,
    OpenAIChatClient,
    PerplexityClient,
    ProviderConfigError,
    ProviderError,
)
from .llm.types import MessageInput
from .provider_profiles import ProviderProfile, ProviderType
from .settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_KEY = "__default__"

_ClientKey = Tuple[str, ...]


class ProviderRouter:
    """Route completions to the client configured by a provider profile.

    ``None`` as a profile selects the platform default gateway described by
    :class:`Settings`. Clients are built lazily and cached per profile.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        default_client: Optional[ChatClient] = None,
        clients: Optional[Mapping[str, ChatClient]] = None,
    ) -> None:
        self.settings = settings or Settings()
        self._default_client = default_client
        # Pre-built clients keyed by profile id take precedence (tests, adapters).
        self._overrides: Dict[str, ChatClient] = dict(clients or {})
        self._cache: Dict[_ClientKey, ChatClient] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def complete(
        self,
        profile: Optional[ProviderProfile],
        system_prompt: Optional[str],
        messages: Sequence[MessageInput],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Dispatch a chat request and return the generated text."""

        client = self.client_for(profile)
        return client.complete(
            system_prompt,
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    def client_for(self, profile: Optional[ProviderProfile]) -> ChatClient:
        if profile is None:
            return self._ensure_default_client()

        override = self._overrides.get(profile.id)
        if override is not None:
            return override

        key: _ClientKey = (
            profile.id,
            profile.type.value,
            profile.api_key,
            profile.endpoint or "",
            profile.model or "",
        )
        with self._lock:
            client = self._cache.get(key)
            if client is None:
                client = build_client(profile, timeout=self.settings.provider_timeout_seconds)
                self._cache[key] = client
                logger.info("Built %s client for provider profile %s", profile.type.value, profile.id)
            return client

    def test_profile(self, profile: ProviderProfile) -> Tuple[bool, Optional[str]]:
        """Send a tiny request to check a profile's credentials."""

        try:
            client = build_client(profile, timeout=self.settings.provider_timeout_seconds)
            client.complete(None, [{"role": "user", "content": "Say 'OK'"}], max_tokens=5)
        except (ProviderError, ProviderConfigError, ValueError) as exc:
            logger.info("Provider profile %s check failed: %s", profile.id, exc)
            return False, str(exc)
        return True, None

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _ensure_default_client(self) -> ChatClient:
        with self._lock:
            if self._default_client is None:
                override = self._overrides.get(DEFAULT_PROVIDER_KEY)
                if override is not None:
                    self._default_client = override
                else:
                    if not self.settings.default_provider_key:
                        raise ProviderConfigError("No default provider key configured.")
                    self._default_client = OpenAIChatClient(
                        api_key=self.settings.default_provider_key,
                        endpoint=self.settings.default_provider_url,
                        model=self.settings.default_model,
                        provider_name="default",
                        default_max_output_tokens=self.settings.default_max_output_tokens,
                        timeout=self.settings.provider_timeout_seconds,
                    )
            return self._default_client


def build_client(profile: ProviderProfile, *, timeout: float = 60.0) -> ChatClient:
    """Instantiate the client variant matching ``profile.type``."""

    try:
        if profile.type == ProviderType.ANTHROPIC:
            return AnthropicClient(
                api_key=profile.api_key,
                endpoint=profile.endpoint,
                model=profile.model,
                timeout=timeout,
            )
        if profile.type == ProviderType.OPENAI:
            return OpenAIChatClient(
                api_key=profile.api_key,
                endpoint=profile.endpoint,
                model=profile.model,
                timeout=timeout,
            )
        if profile.type == ProviderType.PERPLEXITY:
            return PerplexityClient(
                api_key=profile.api_key,
                endpoint=profile.endpoint,
                model=profile.model,
                timeout=timeout,
            )
        if profile.type == ProviderType.CUSTOM:
            if not profile.endpoint:
                raise ProviderConfigError(f"Custom provider profile '{profile.id}' has no endpoint.")
            return OpenAIChatClient(
                api_key=profile.api_key,
                endpoint=profile.endpoint,
                model=profile.model or "default",
                provider_name="custom",
                timeout=timeout,
            )
    except ValueError as exc:
        if isinstance(exc, ProviderConfigError):
            raise
        raise ProviderConfigError(str(exc)) from exc

    raise ProviderConfigError(f"Provider type '{profile.type}' is not supported by this router.")
