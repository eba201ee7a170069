from __future__ import annotations

import pytest

from agora_agents.deliberation import (
    AgentSnapshot,
    InvalidTransitionError,
    PreconditionError,
    SessionStateMachine,
    SessionStatus,
)

AGENTS = [AgentSnapshot(id="a", name="Analyst"), AgentSnapshot(id="b", name="Builder")]


def test_start_requires_draft_and_two_agents() -> None:
    machine = SessionStateMachine()

    with pytest.raises(PreconditionError):
        machine.start(AGENTS[:1])
    assert machine.status == SessionStatus.DRAFT

    assert machine.start(AGENTS) == SessionStatus.RUNNING

    with pytest.raises(InvalidTransitionError):
        machine.start(AGENTS)


@pytest.mark.parametrize("target", [SessionStatus.COMPLETED, SessionStatus.CANCELLED])
def test_running_can_finish_either_way(target: SessionStatus) -> None:
    machine = SessionStateMachine(SessionStatus.RUNNING)

    machine.transition(target)

    assert machine.status == target
    assert machine.is_terminal


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (SessionStatus.DRAFT, SessionStatus.COMPLETED),
        (SessionStatus.DRAFT, SessionStatus.CANCELLED),
        (SessionStatus.COMPLETED, SessionStatus.RUNNING),
        (SessionStatus.CANCELLED, SessionStatus.RUNNING),
        (SessionStatus.CANCELLED, SessionStatus.COMPLETED),
        (SessionStatus.RUNNING, SessionStatus.DRAFT),
    ],
)
def test_illegal_transitions_leave_state_unchanged(current: SessionStatus, target: SessionStatus) -> None:
    machine = SessionStateMachine(current)

    with pytest.raises(InvalidTransitionError) as excinfo:
        machine.transition(target)

    assert machine.status == current
    assert excinfo.value.kind == "invalid_transition"
    assert excinfo.value.current == current
