"""Session state machine - legal lifecycle transitions for deliberation sessions."""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Sequence

from .models import AgentSnapshot, SessionStatus

logger = logging.getLogger(__name__)

MIN_AGENTS = 2


class DeliberationError(ValueError):
    """Base class for session-level errors surfaced to callers."""

    kind = "deliberation"


class PreconditionError(DeliberationError):
    """The session is not in a shape that can be run."""

    kind = "precondition"


class InvalidTransitionError(DeliberationError):
    """The requested status change is not part of the lifecycle."""

    kind = "invalid_transition"

    def __init__(self, current: SessionStatus, target: SessionStatus) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move session from {current.value} to {target.value}")


class SessionActiveError(InvalidTransitionError):
    """A start arrived while the session's round loop is still active."""

    def __init__(self, session_id: str) -> None:
        super().__init__(SessionStatus.RUNNING, SessionStatus.RUNNING)
        self.session_id = session_id
        self.args = (f"Session {session_id} is already being run",)


TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.DRAFT: frozenset({SessionStatus.RUNNING}),
    SessionStatus.RUNNING: frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}


class SessionStateMachine:
    """Tracks one session's status and rejects illegal transitions.

    The machine is a pure guard: it never touches storage. The orchestrator
    asks it whether a move is legal, persists the move with a
    compare-and-set, then records the new state here.
    """

    def __init__(self, status: SessionStatus = SessionStatus.DRAFT) -> None:
        self.status = SessionStatus(status)

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.status]

    def can_transition(self, target: SessionStatus) -> bool:
        return SessionStatus(target) in TRANSITIONS[self.status]

    def check(self, target: SessionStatus) -> None:
        target = SessionStatus(target)
        if not self.can_transition(target):
            raise InvalidTransitionError(self.status, target)

    def transition(self, target: SessionStatus) -> SessionStatus:
        self.check(target)
        previous, self.status = self.status, SessionStatus(target)
        logger.debug("Session status %s -> %s", previous.value, self.status.value)
        return self.status

    def start(self, agents: Sequence[AgentSnapshot]) -> SessionStatus:
        """Validate the start preconditions and move ``draft -> running``."""

        if self.status != SessionStatus.DRAFT:
            raise InvalidTransitionError(self.status, SessionStatus.RUNNING)
        validate_agents(agents)
        return self.transition(SessionStatus.RUNNING)

    def complete(self) -> SessionStatus:
        return self.transition(SessionStatus.COMPLETED)

    def cancel(self) -> SessionStatus:
        return self.transition(SessionStatus.CANCELLED)


def validate_agents(agents: Sequence[AgentSnapshot]) -> None:
    if len(agents) < MIN_AGENTS:
        raise PreconditionError(
            f"A session needs at least {MIN_AGENTS} agents to run (got {len(agents)})"
        )
