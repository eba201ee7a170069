"""Domain records for deliberation sessions.

These are plain dataclasses converted to and from the dictionaries stored by
:class:`agora_core.record_store.SessionRecordStore`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class SessionStatus(str, Enum):
    """Lifecycle of a deliberation session."""

    DRAFT = "draft"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WorkflowType(str, Enum):
    """How agents take their turns within a round."""

    SEQUENTIAL = "sequential"
    CYCLIC = "cyclic"
    CONCURRENT = "concurrent"


@dataclass(frozen=True)
class AgentSnapshot:
    """Agent fields frozen into a session when it first starts."""

    id: str
    name: str
    system_prompt: str = ""
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    provider_profile_id: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "AgentSnapshot":
        max_tokens = record.get("max_tokens")
        return cls(
            id=str(record["id"]),
            name=str(record.get("name") or record["id"]),
            system_prompt=str(record.get("system_prompt") or ""),
            temperature=float(record.get("temperature", 0.7)),
            max_tokens=int(max_tokens) if max_tokens else None,
            provider_profile_id=record.get("provider_profile_id") or None,
            icon=record.get("icon"),
            color=record.get("color"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Turn:
    """One agent's contribution within one round. Never mutated once appended."""

    agent_id: str
    agent_name: str
    content: str
    round: int
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Turn":
        return cls(
            agent_id=str(record["agent_id"]),
            agent_name=str(record["agent_name"]),
            content=str(record["content"]),
            round=int(record["round"]),
            timestamp=str(record.get("timestamp") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def format_line(self) -> str:
        return f"{self.agent_name}: {self.content}"


@dataclass(frozen=True)
class RoomConfig:
    """Methodology and workflow of the room a session runs in."""

    id: Optional[str] = None
    methodology: str = "group_chat"
    workflow_type: WorkflowType = WorkflowType.CYCLIC

    @classmethod
    def from_record(cls, record: Optional[Mapping[str, Any]]) -> "RoomConfig":
        if not record:
            return cls()
        try:
            workflow = WorkflowType(record.get("workflow_type") or WorkflowType.CYCLIC.value)
        except ValueError:
            workflow = WorkflowType.CYCLIC
        return cls(
            id=record.get("id"),
            methodology=record.get("methodology") or "group_chat",
            workflow_type=workflow,
        )


@dataclass
class SessionRecord:
    """Typed view over a stored session row."""

    id: str
    topic: str
    max_rounds: int
    status: SessionStatus
    objective: Optional[str] = None
    agents: List[AgentSnapshot] = field(default_factory=list)
    current_round: int = 0
    transcript: List[Turn] = field(default_factory=list)
    action_items: List[str] = field(default_factory=list)
    completed_at: Optional[str] = None
    room_id: Optional[str] = None
    locale: str = "en"
    results: Optional[Dict[str, Any]] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "SessionRecord":
        return cls(
            id=str(record["id"]),
            topic=str(record["topic"]),
            objective=record.get("objective") or None,
            max_rounds=int(record["max_rounds"]),
            status=SessionStatus(record["status"]),
            agents=[AgentSnapshot.from_record(item) for item in record.get("agent_config") or []],
            current_round=int(record.get("current_round") or 0),
            transcript=[Turn.from_record(item) for item in record.get("transcript") or []],
            action_items=[str(item) for item in record.get("action_items") or []],
            completed_at=record.get("completed_at"),
            room_id=record.get("room_id"),
            locale=record.get("locale") or "en",
            results=record.get("results"),
        )

    @property
    def expected_turns(self) -> int:
        return self.max_rounds * len(self.agents)
