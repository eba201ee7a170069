from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import pytest

from agora_core.llm import (
    AnthropicClient,
    ChatClient,
    OpenAIChatClient,
    PerplexityClient,
    ProviderConfigError,
    ProviderError,
    ProviderErrorKind,
)
from agora_core.provider_profiles import ProviderProfile, ProviderType
from agora_core.provider_router import DEFAULT_PROVIDER_KEY, ProviderRouter, build_client
from agora_core.settings import Settings


class StubClient(ChatClient):
    provider_name = "stub"
    default_endpoint = "https://stub.invalid"

    def __init__(self, reply: str = "stub reply", error: Optional[Exception] = None) -> None:
        super().__init__(api_key="stub-key")
        self.reply = reply
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def complete(  # type: ignore[override]
        self,
        system_prompt: Optional[str],
        messages: Sequence[Any],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        self.calls.append(
            {
                "system": system_prompt,
                "messages": list(messages),
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if self.error is not None:
            raise self.error
        return self.reply


def _profile(profile_type: ProviderType, **kwargs: Any) -> ProviderProfile:
    return ProviderProfile(id=kwargs.pop("id", f"{profile_type.value}:main"), type=profile_type, api_key="key", **kwargs)


def test_router_routes_profile_to_override_client() -> None:
    client = StubClient("From Claude.")
    router = ProviderRouter(clients={"anthropic:main": client})

    text = router.complete(
        _profile(ProviderType.ANTHROPIC),
        "You are the strategist.",
        [{"role": "user", "content": "Status report"}],
        temperature=0.4,
        max_tokens=256,
    )

    assert text == "From Claude."
    assert client.calls == [
        {
            "system": "You are the strategist.",
            "messages": [{"role": "user", "content": "Status report"}],
            "temperature": 0.4,
            "max_tokens": 256,
        }
    ]


def test_router_uses_default_client_without_profile() -> None:
    default = StubClient("Default gateway.")
    router = ProviderRouter(clients={DEFAULT_PROVIDER_KEY: default})

    assert router.complete(None, "sys", [{"role": "user", "content": "hi"}]) == "Default gateway."
    assert len(default.calls) == 1


def test_default_client_requires_key() -> None:
    router = ProviderRouter(Settings(default_provider_key=None))

    with pytest.raises(ProviderConfigError):
        router.complete(None, "sys", [{"role": "user", "content": "hi"}])


def test_default_client_is_configured_from_settings() -> None:
    settings = Settings(
        default_provider_key="gateway-key",
        default_provider_url="https://gateway.example/v1/chat/completions",
        default_model="gateway-model",
    )
    router = ProviderRouter(settings)

    client = router.client_for(None)

    assert isinstance(client, OpenAIChatClient)
    assert client.endpoint == "https://gateway.example/v1/chat/completions"
    assert client.model == "gateway-model"
    assert client.provider_name == "default"


def test_client_for_caches_per_profile() -> None:
    router = ProviderRouter()
    profile = _profile(ProviderType.OPENAI)

    first = router.client_for(profile)
    second = router.client_for(profile)
    rotated = router.client_for(profile.model_copy(update={"api_key": "new-key"}))

    assert first is second
    assert rotated is not first


@pytest.mark.parametrize(
    ("profile_type", "client_type", "endpoint"),
    [
        (ProviderType.OPENAI, OpenAIChatClient, "https://api.openai.com/v1/chat/completions"),
        (ProviderType.ANTHROPIC, AnthropicClient, "https://api.anthropic.com/v1/messages"),
        (ProviderType.PERPLEXITY, PerplexityClient, "https://api.perplexity.ai/chat/completions"),
    ],
)
def test_build_client_picks_variant_by_type(profile_type: ProviderType, client_type: type, endpoint: str) -> None:
    client = build_client(_profile(profile_type))

    assert type(client) is client_type
    assert client.endpoint == endpoint


def test_build_client_custom_uses_profile_endpoint() -> None:
    profile = _profile(ProviderType.CUSTOM, endpoint="https://llm.internal/v1/chat/completions")

    client = build_client(profile)

    assert isinstance(client, OpenAIChatClient)
    assert client.endpoint == "https://llm.internal/v1/chat/completions"
    assert client.model == "default"
    assert client.provider_name == "custom"


def test_custom_profile_without_endpoint_is_rejected() -> None:
    with pytest.raises(ValueError):
        _profile(ProviderType.CUSTOM)


def test_test_profile_reports_check_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = StubClient(error=ProviderError(kind=ProviderErrorKind.AUTHENTICATION, message="bad key"))
    monkeypatch.setattr("agora_core.provider_router.build_client", lambda profile, timeout=60.0: stub)
    router = ProviderRouter()

    ok, error = router.test_profile(_profile(ProviderType.OPENAI))

    assert ok is False
    assert error == "bad key"
    assert stub.calls[0]["messages"] == [{"role": "user", "content": "Say 'OK'"}]
    assert stub.calls[0]["max_tokens"] == 5


def test_test_profile_reports_success(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("agora_core.provider_router.build_client", lambda profile, timeout=60.0: StubClient("OK"))

    assert ProviderRouter().test_profile(_profile(ProviderType.ANTHROPIC)) == (True, None)
