from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Union


MessageRole = Literal["system", "user", "assistant"]
MessageInput = Union["LLMMessage", Mapping[str, Any]]


@dataclass
class LLMMessage:
    """Generic chat message representation used across Agora provider clients."""

    role: MessageRole
    content: str

    def as_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class UsageMetrics:
    """Token accounting returned by a provider, when it reports any."""

    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


@dataclass
class LLMResult:
    """Normalized completion returned by every provider client."""

    text: str
    model: Optional[str] = None
    stop_reason: Optional[str] = None
    usage: Optional[UsageMetrics] = None
    citations: List[str] = field(default_factory=list)
    raw: Optional[Dict[str, Any]] = None


def normalise_messages(messages: Sequence[MessageInput]) -> List[LLMMessage]:
    normalised: List[LLMMessage] = []
    for entry in messages:
        if isinstance(entry, LLMMessage):
            normalised.append(entry)
            continue

        if not isinstance(entry, Mapping):
            raise TypeError(f"Unsupported message input type: {type(entry)!r}")

        role = entry.get("role")
        content = entry.get("content")
        if role not in ("system", "user", "assistant"):
            raise ValueError(f"Unsupported message role: {role!r}")
        if content is None:
            raise ValueError("Message content cannot be None.")
        normalised.append(LLMMessage(role=role, content=str(content)))

    return normalised


def safe_int(value: Any) -> Optional[int]:
    try:
        if value is None:
            return None
        return int(value)
    except (TypeError, ValueError):
        return None
