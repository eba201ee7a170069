"""Transcript Accumulator - append-only, durably persisted turn log."""

from __future__ import annotations

import logging
from typing import List, Sequence

from agora_core.record_store import SessionRecordStore

from .models import Turn

logger = logging.getLogger(__name__)


class TranscriptAccumulator:
    """Append-only transcript for one session.

    Each append is written to the record store, together with the round
    counter, before it returns; a crash therefore loses at most the turn in
    flight. The store refuses appends once the session stopped running.
    """

    def __init__(
        self,
        store: SessionRecordStore,
        session_id: str,
        initial: Sequence[Turn] = (),
    ) -> None:
        self._store = store
        self.session_id = session_id
        self._turns: List[Turn] = list(initial)

    def append(self, session_id: str, turn: Turn) -> None:
        if session_id != self.session_id:
            raise ValueError(f"Accumulator for {self.session_id} cannot append to {session_id}")
        if self._turns and turn.round < self._turns[-1].round:
            raise ValueError(
                f"Turn for round {turn.round} would follow round {self._turns[-1].round}; transcript is round-ordered"
            )

        self._store.append_turn(session_id, turn.to_dict(), current_round=turn.round)
        self._turns.append(turn)
        logger.debug("Session %s: recorded turn %d (%s, round %d)", session_id, len(self._turns), turn.agent_name, turn.round)

    def mark_round(self, round_number: int) -> None:
        """Persist progress for a round that produced no turns."""

        self._store.update_session(self.session_id, {"current_round": round_number})

    def snapshot(self) -> List[Turn]:
        return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns)
