from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, List, Optional

import pytest

from agora_agents.deliberation import AgentSnapshot, AgentTurnExecutor, Turn, TurnContext
from agora_agents.deliberation.turn_executor import build_system_prompt, build_user_prompt
from agora_core.llm import ProviderConfigError, ProviderError, ProviderErrorKind
from agora_core.provider_profiles import ProviderProfile, ProviderProfilesStore, ProviderType

AGENT = AgentSnapshot(id="a", name="Analyst", system_prompt="You are a careful analyst.", temperature=0.3, max_tokens=400)


class ScriptedRouter:
    """Plays back a script of replies or exceptions, one per call."""

    def __init__(self, *script: Any, delay: float = 0.0) -> None:
        self.script: List[Any] = list(script)
        self.delay = delay
        self.calls: List[dict] = []

    def complete(
        self,
        profile: Optional[ProviderProfile],
        system_prompt: Optional[str],
        messages: List[dict],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        self.calls.append(
            {
                "profile": profile,
                "system": system_prompt,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if self.delay:
            time.sleep(self.delay)
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, Exception):
            raise step
        return step


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _context(**overrides: Any) -> TurnContext:
    values = dict(topic="Launch in Berlin?", round=2, max_rounds=3, objective="Decide by Q3")
    values.update(overrides)
    return TurnContext(**values)


def _executor(router: ScriptedRouter, sleep: Optional[Callable] = None, **kwargs: Any) -> AgentTurnExecutor:
    return AgentTurnExecutor(router, sleep=sleep or SleepRecorder(), **kwargs)  # type: ignore[arg-type]


def test_user_prompt_embeds_topic_round_and_history() -> None:
    prior = [
        Turn(agent_id="b", agent_name="Builder", content="We can ship in May.", round=1),
        Turn(agent_id="a", agent_name="Analyst", content="Costs look high.", round=1),
    ]

    prompt = build_user_prompt(_context(prior_turns=prior))

    assert prompt == (
        "Topic: Launch in Berlin?\n"
        "Objective: Decide by Q3\n\n"
        "Round 2 of 3.\n\n"
        "Previous discussion:\n"
        "Builder: We can ship in May.\n\n"
        "Analyst: Costs look high.\n\n"
        "Provide your perspective on this topic. Be concise (2-3 paragraphs max)."
    )


def test_first_turn_prompt_has_no_history_section() -> None:
    prompt = build_user_prompt(_context(objective=None, round=1))

    assert "Previous discussion" not in prompt
    assert "Objective" not in prompt
    assert prompt.startswith("Topic: Launch in Berlin?\n\nRound 1 of 3.")


def test_system_prompt_adds_language_and_methodology() -> None:
    system = build_system_prompt(AGENT, _context(methodology="lean_iterative", locale="it"))

    assert system.startswith("You are a careful analyst.")
    assert "Rispondi in italiano" in system
    assert len(system.split("\n\n")) >= 3


@pytest.mark.asyncio
async def test_successful_turn_uses_agent_sampling_parameters() -> None:
    router = ScriptedRouter("  A measured view.  ")

    outcome = await _executor(router).execute(AGENT, _context())

    assert outcome.ok
    assert outcome.turn is not None
    assert outcome.turn.content == "A measured view."
    assert outcome.turn.agent_name == "Analyst"
    assert outcome.turn.round == 2
    assert outcome.attempts == 1
    call = router.calls[0]
    assert call["profile"] is None
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == 400
    assert call["messages"][0]["role"] == "user"


@pytest.mark.asyncio
async def test_transient_failures_retry_with_backoff() -> None:
    router = ScriptedRouter(
        ProviderError(kind=ProviderErrorKind.RATE_LIMITED, message="slow down"),
        ProviderError(kind=ProviderErrorKind.TRANSPORT, message="502"),
        "Third time lucky.",
    )
    sleep = SleepRecorder()

    outcome = await _executor(router, sleep, retry_attempts=2, retry_base_delay=1.0).execute(AGENT, _context())

    assert outcome.ok
    assert outcome.attempts == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_retries_are_bounded() -> None:
    router = ScriptedRouter(ProviderError(kind=ProviderErrorKind.TRANSPORT, message="down"))

    outcome = await _executor(router, retry_attempts=2).execute(AGENT, _context())

    assert not outcome.ok
    assert outcome.error_kind == "transport"
    assert len(router.calls) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kind",
    [
        ProviderErrorKind.AUTHENTICATION,
        ProviderErrorKind.PAYMENT_REQUIRED,
        ProviderErrorKind.MALFORMED_RESPONSE,
        ProviderErrorKind.REQUEST_REJECTED,
    ],
)
async def test_fatal_failures_are_not_retried(kind: ProviderErrorKind) -> None:
    router = ScriptedRouter(ProviderError(kind=kind, message="nope"))
    sleep = SleepRecorder()

    outcome = await _executor(router, sleep, retry_attempts=3).execute(AGENT, _context())

    assert not outcome.ok
    assert outcome.error_kind == kind.value
    assert len(router.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_cancellation_stops_further_retries() -> None:
    router = ScriptedRouter(ProviderError(kind=ProviderErrorKind.TRANSPORT, message="connection reset"))
    sleep = SleepRecorder()

    outcome = await _executor(router, sleep, retry_attempts=3).execute(
        AGENT, _context(), is_cancelled=lambda: len(router.calls) >= 1
    )

    assert not outcome.ok
    assert outcome.error_kind == "cancelled"
    assert len(router.calls) == 1
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_missing_default_key_is_a_configuration_failure() -> None:
    router = ScriptedRouter(ProviderConfigError("No default provider key configured."))

    outcome = await _executor(router).execute(AGENT, _context())

    assert outcome.error_kind == "configuration"
    assert len(router.calls) == 1


@pytest.mark.asyncio
async def test_empty_reply_is_malformed() -> None:
    outcome = await _executor(ScriptedRouter("   ")).execute(AGENT, _context())

    assert not outcome.ok
    assert outcome.error_kind == "malformed_response"


@pytest.mark.asyncio
async def test_hung_provider_times_out() -> None:
    router = ScriptedRouter("too late", delay=0.3)

    outcome = await _executor(router, timeout_seconds=0.05, retry_attempts=0).execute(AGENT, _context())

    assert not outcome.ok
    assert outcome.error_kind == "transport"
    assert "timed out" in (outcome.error_message or "")


@pytest.mark.asyncio
async def test_agent_profile_is_resolved_from_store(tmp_path: Path) -> None:
    profiles = ProviderProfilesStore(tmp_path / "profiles.json")
    profiles.upsert(ProviderProfile(id="pplx", type=ProviderType.PERPLEXITY, api_key="k"))
    agent = AgentSnapshot(id="r", name="Researcher", provider_profile_id="pplx")
    router = ScriptedRouter("Sourced answer.")

    outcome = await AgentTurnExecutor(router, profiles, sleep=SleepRecorder()).execute(agent, _context())  # type: ignore[arg-type]

    assert outcome.ok
    assert router.calls[0]["profile"].id == "pplx"


def test_backoff_is_capped() -> None:
    executor = AgentTurnExecutor(ScriptedRouter("x"), retry_base_delay=2.0, retry_max_delay=5.0)  # type: ignore[arg-type]

    assert [executor.backoff_delay(attempt) for attempt in (1, 2, 3, 4)] == [2.0, 4.0, 5.0, 5.0]
