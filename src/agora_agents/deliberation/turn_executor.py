"""Agent turn execution: prompt assembly plus a bounded, retried provider call."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence

from agora_core.llm import ProviderConfigError, ProviderError, ProviderErrorKind
from agora_core.provider_profiles import ProviderProfile, ProviderProfilesStore
from agora_core.provider_router import ProviderRouter

from .methodology import language_instruction, methodology_context
from .models import AgentSnapshot, Turn

logger = logging.getLogger(__name__)

CONFIGURATION_ERROR = "configuration"
UNEXPECTED_ERROR = "unexpected"
CANCELLED = "cancelled"

TURN_INSTRUCTION = "Provide your perspective on this topic. Be concise (2-3 paragraphs max)."


@dataclass
class TurnContext:
    """Shared inputs for every turn of a round."""

    topic: str
    round: int
    max_rounds: int
    objective: Optional[str] = None
    prior_turns: Sequence[Turn] = field(default_factory=list)
    methodology: str = "group_chat"
    locale: str = "en"


@dataclass
class TurnOutcome:
    """Either a produced turn or the reason the agent was skipped."""

    agent: AgentSnapshot
    round: int
    turn: Optional[Turn] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.turn is not None


def format_turns(turns: Sequence[Turn]) -> str:
    return "\n\n".join(turn.format_line() for turn in turns)


def build_system_prompt(agent: AgentSnapshot, context: TurnContext) -> str:
    fragments = [
        agent.system_prompt.strip(),
        language_instruction(context.locale),
        methodology_context(context.methodology, context.round, context.max_rounds, context.locale),
    ]
    return "\n\n".join(fragment for fragment in fragments if fragment)


def build_user_prompt(context: TurnContext) -> str:
    lines: List[str] = [f"Topic: {context.topic}"]
    if context.objective:
        lines.append(f"Objective: {context.objective}")
    prompt = "\n".join(lines) + f"\n\nRound {context.round} of {context.max_rounds}.\n\n"

    history = format_turns(context.prior_turns)
    if history:
        prompt += f"Previous discussion:\n{history}\n\n"
    return prompt + TURN_INSTRUCTION


class AgentTurnExecutor:
    """Runs one agent's turn through the provider router.

    Each attempt runs in a worker thread and is bounded by ``timeout_seconds``.
    Rate limits, transport errors and timeouts are retried with exponential
    backoff; authentication, payment and malformed responses are not.
    """

    def __init__(
        self,
        router: ProviderRouter,
        profiles: Optional[ProviderProfilesStore] = None,
        *,
        timeout_seconds: float = 90.0,
        retry_attempts: int = 2,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._router = router
        self._profiles = profiles
        self.timeout_seconds = timeout_seconds
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self._sleep = sleep

    def resolve_profile(self, agent: AgentSnapshot) -> Optional[ProviderProfile]:
        if self._profiles is None:
            return None
        return self._profiles.resolve(agent.provider_profile_id)

    async def execute(
        self,
        agent: AgentSnapshot,
        context: TurnContext,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> TurnOutcome:
        """Produce ``agent``'s turn for ``context.round`` or a typed failure.

        ``is_cancelled`` is consulted before every retry; once it returns true no
        further provider call is made for this turn.
        """

        system_prompt = build_system_prompt(agent, context)
        messages = [{"role": "user", "content": build_user_prompt(context)}]
        outcome = TurnOutcome(agent=agent, round=context.round)

        profile = self.resolve_profile(agent)
        provider_label = profile.type.value if profile else "default"
        logger.info("Agent %s: round %d using %s provider", agent.name, context.round, provider_label)

        while True:
            outcome.attempts += 1
            try:
                content = await asyncio.wait_for(
                    asyncio.to_thread(
                        self._router.complete,
                        profile,
                        system_prompt,
                        messages,
                        agent.temperature,
                        agent.max_tokens,
                    ),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                kind, message, retryable = (
                    ProviderErrorKind.TRANSPORT.value,
                    f"provider call timed out after {self.timeout_seconds}s",
                    True,
                )
            except ProviderError as exc:
                kind, message, retryable = exc.kind.value, str(exc), exc.retryable
            except ProviderConfigError as exc:
                return self._failed(outcome, CONFIGURATION_ERROR, str(exc))
            except Exception as exc:  # pragma: no cover
                logger.exception("Agent %s: unexpected failure in round %d", agent.name, context.round)
                return self._failed(outcome, UNEXPECTED_ERROR, str(exc))
            else:
                text = (content or "").strip()
                if not text:
                    return self._failed(outcome, ProviderErrorKind.MALFORMED_RESPONSE.value, "provider returned no text")
                outcome.turn = Turn(
                    agent_id=agent.id,
                    agent_name=agent.name,
                    content=text,
                    round=context.round,
                )
                return outcome

            if not retryable or outcome.attempts > self.retry_attempts:
                return self._failed(outcome, kind, message)

            delay = self.backoff_delay(outcome.attempts)
            logger.warning(
                "Agent %s: %s failure in round %d (attempt %d), retrying in %.1fs",
                agent.name,
                kind,
                context.round,
                outcome.attempts,
                delay,
            )
            await self._sleep(delay)
            if is_cancelled is not None and is_cancelled():
                return self._failed(outcome, CANCELLED, "session cancelled before retry")

    def backoff_delay(self, attempt: int) -> float:
        return min(self.retry_base_delay * (2 ** (attempt - 1)), self.retry_max_delay)

    def _failed(self, outcome: TurnOutcome, kind: str, message: str) -> TurnOutcome:
        outcome.error_kind = kind
        outcome.error_message = message
        logger.warning(
            "Agent %s: turn skipped in round %d after %d attempt(s) (%s: %s)",
            outcome.agent.name,
            outcome.round,
            outcome.attempts,
            kind,
            message,
        )
        return outcome
