"""Payload models exposed to the polling UI and the HTTP layer."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from .models import SessionRecord


class TurnPayload(BaseModel):
    """Server message describing one transcript turn."""

    agent_id: str
    agent_name: str
    content: str
    round: int
    timestamp: str


class SessionProjection(BaseModel):
    """Read-only progress view of a session, suitable for polling."""

    id: str
    status: str
    current_round: int
    max_rounds: int
    transcript: List[TurnPayload]
    action_items: List[str]
    completed_at: Optional[str] = None

    @classmethod
    def from_session(cls, session: SessionRecord) -> "SessionProjection":
        return cls(
            id=session.id,
            status=session.status.value,
            current_round=session.current_round,
            max_rounds=session.max_rounds,
            transcript=[TurnPayload(**turn.to_dict()) for turn in session.transcript],
            action_items=list(session.action_items),
            completed_at=session.completed_at,
        )


class StartResult(BaseModel):
    """Outcome of a start request."""

    session_id: str
    success: bool
    status: Optional[str] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    turn_count: int = 0


class CancelResult(BaseModel):
    """Outcome of a cancel request; ``cancelled`` is false when nothing was running."""

    session_id: str
    cancelled: bool


class ProviderTestPayload(BaseModel):
    """Client payload for probing a provider profile's credentials."""

    type: str
    api_key: str
    endpoint: Optional[str] = None
    model: Optional[str] = None


class ProviderTestResult(BaseModel):
    success: bool
    error: Optional[str] = None
