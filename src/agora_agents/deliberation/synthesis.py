"""Synthesis Step - condenses a finished transcript into action items."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, List, Optional, Sequence

from agora_core.llm import ProviderConfigError, ProviderError
from agora_core.provider_router import ProviderRouter

from .models import Turn
from .turn_executor import format_turns

logger = logging.getLogger(__name__)

MAX_ACTION_ITEMS = 5

SYNTHESIS_SYSTEM_PROMPT = (
    "You are a senior strategic consultant who turns deliberations into concrete next steps. "
    "Reply ONLY with a JSON array of strings."
)

_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")


def parse_action_items(raw: str) -> List[str]:
    """Extract the first JSON array from ``raw``; anything unparseable yields ``[]``."""

    match = _ARRAY_PATTERN.search(raw or "")
    if not match:
        return []
    try:
        decoded: Any = json.loads(match.group(0))
    except json.JSONDecodeError:
        return []
    if not isinstance(decoded, list):
        return []

    items = [str(item).strip() for item in decoded if item is not None]
    return [item for item in items if item][:MAX_ACTION_ITEMS]


class SynthesisStep:
    """One provider call on the default provider; failures leave the list empty."""

    def __init__(
        self,
        router: ProviderRouter,
        *,
        temperature: float = 0.2,
        max_tokens: int = 1024,
        timeout_seconds: float = 90.0,
    ) -> None:
        self._router = router
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    def build_prompt(self, topic: str, objective: Optional[str], transcript: Sequence[Turn]) -> str:
        sections = [f"Topic: {topic}"]
        if objective:
            sections.append(f"Objective: {objective}")
        sections.append(f"Full transcript:\n\n{format_turns(transcript)}")
        sections.append(
            "Extract 3-5 concrete and specific action items from this deliberation.\n"
            'Format: ["action 1", "action 2", ...]'
        )
        return "\n\n".join(sections)

    async def run(self, topic: str, objective: Optional[str], transcript: Sequence[Turn]) -> List[str]:
        if not transcript:
            logger.info("Skipping synthesis: transcript is empty")
            return []

        prompt = self.build_prompt(topic, objective, transcript)
        try:
            raw = await asyncio.wait_for(
                asyncio.to_thread(
                    self._router.complete,
                    None,
                    SYNTHESIS_SYSTEM_PROMPT,
                    [{"role": "user", "content": prompt}],
                    self.temperature,
                    self.max_tokens,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Synthesis timed out after %.0fs; action items left empty", self.timeout_seconds)
            return []
        except (ProviderError, ProviderConfigError) as exc:
            logger.warning("Synthesis failed (%s); action items left empty", exc)
            return []
        except Exception:
            logger.exception("Synthesis failed unexpectedly; action items left empty")
            return []

        items = parse_action_items(raw)
        if not items:
            logger.warning("Synthesis response was not a JSON list; action items left empty")
        else:
            logger.info("Synthesis produced %d action items", len(items))
        return items
