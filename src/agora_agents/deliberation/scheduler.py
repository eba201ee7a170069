"""Round Scheduler - visiting order and context windows for deliberation rounds.

Agents speak round-robin in the order fixed when the session was created;
nothing reorders them, so a transcript is reproducible for a given agent list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List, Sequence

from .models import AgentSnapshot, Turn

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkItem:
    """One scheduled turn: which agent speaks in which round."""

    round: int
    position: int
    agent: AgentSnapshot


class RoundScheduler:
    """Produces ``(round, agent)`` work items and per-turn context windows."""

    def __init__(
        self,
        agents: Sequence[AgentSnapshot],
        max_rounds: int,
        *,
        context_window: int = 10,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be a positive integer")
        self.agents = tuple(agents)
        self.max_rounds = max_rounds
        self.context_window_size = context_window

    def rounds(self, start_round: int = 1) -> Iterator[List[WorkItem]]:
        """Yield the work items of each round from ``start_round`` to ``max_rounds``."""

        for round_number in range(max(1, start_round), self.max_rounds + 1):
            yield [
                WorkItem(round=round_number, position=position, agent=agent)
                for position, agent in enumerate(self.agents)
            ]

    def work_items(self, start_round: int = 1) -> Iterator[WorkItem]:
        """Flattened round-major, agent-minor work items."""

        for items in self.rounds(start_round):
            yield from items

    def context_window(self, transcript: Sequence[Turn]) -> List[Turn]:
        """The most recent turns visible to the next speaker, across round boundaries."""

        if self.context_window_size <= 0:
            return []
        return list(transcript[-self.context_window_size :])

    @property
    def expected_turns(self) -> int:
        return self.max_rounds * len(self.agents)
