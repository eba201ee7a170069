from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ProviderErrorKind(str, Enum):
    """Failure categories shared by every provider client."""

    RATE_LIMITED = "rate_limited"
    PAYMENT_REQUIRED = "payment_required"
    AUTHENTICATION = "authentication"
    MALFORMED_RESPONSE = "malformed_response"
    TRANSPORT = "transport"
    REQUEST_REJECTED = "request_rejected"


RETRYABLE_KINDS = frozenset({ProviderErrorKind.RATE_LIMITED, ProviderErrorKind.TRANSPORT})


@dataclass(eq=False)
class ProviderError(Exception):
    """Raised when a chat-completion request fails."""

    kind: ProviderErrorKind
    message: str
    provider: Optional[str] = None
    status_code: Optional[int] = None
    response_text: Optional[str] = None
    response_json: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class ProviderConfigError(ValueError):
    """Raised when a provider profile cannot be turned into a working client."""


def kind_for_status(status_code: int) -> ProviderErrorKind:
    """Map an HTTP status returned by a provider onto an error kind."""

    if status_code == 429:
        return ProviderErrorKind.RATE_LIMITED
    if status_code == 402:
        return ProviderErrorKind.PAYMENT_REQUIRED
    if status_code in (401, 403):
        return ProviderErrorKind.AUTHENTICATION
    if status_code == 408 or status_code >= 500:
        return ProviderErrorKind.TRANSPORT
    # Remaining 4xx: the same request would be rejected again.
    return ProviderErrorKind.REQUEST_REJECTED
