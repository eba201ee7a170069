"""Multi-agent deliberation sessions.

Agents take turns over a fixed number of rounds, every turn is persisted to
the session transcript as it is produced, and a final synthesis step turns
the transcript into action items.
"""

from .messages import (
    CancelResult,
    ProviderTestPayload,
    ProviderTestResult,
    SessionProjection,
    StartResult,
    TurnPayload,
)
from .models import (
    AgentSnapshot,
    RoomConfig,
    SessionRecord,
    SessionStatus,
    Turn,
    WorkflowType,
)
from .orchestrator import SessionOrchestrator
from .scheduler import RoundScheduler, WorkItem
from .state_machine import (
    DeliberationError,
    InvalidTransitionError,
    PreconditionError,
    SessionActiveError,
    SessionStateMachine,
)
from .synthesis import SynthesisStep, parse_action_items
from .transcript import TranscriptAccumulator
from .turn_executor import AgentTurnExecutor, TurnContext, TurnOutcome

__all__ = [
    "AgentSnapshot",
    "AgentTurnExecutor",
    "CancelResult",
    "DeliberationError",
    "InvalidTransitionError",
    "PreconditionError",
    "ProviderTestPayload",
    "ProviderTestResult",
    "RoomConfig",
    "RoundScheduler",
    "SessionActiveError",
    "SessionOrchestrator",
    "SessionProjection",
    "SessionRecord",
    "SessionStateMachine",
    "SessionStatus",
    "StartResult",
    "SynthesisStep",
    "TranscriptAccumulator",
    "Turn",
    "TurnContext",
    "TurnOutcome",
    "TurnPayload",
    "WorkItem",
    "WorkflowType",
    "parse_action_items",
]
