"""
Chat-completion provider integrations for the Agora runtime.

Every backend subclasses :class:`ChatClient`, so the deliberation layer only
ever calls ``complete``/``send_messages`` and handles one error type.
"""

from .anthropic import AnthropicClient
from .base import ChatClient
from .errors import ProviderConfigError, ProviderError, ProviderErrorKind
from .openai import OpenAIChatClient, PerplexityClient
from .types import LLMMessage, LLMResult, UsageMetrics

__all__ = [
    "AnthropicClient",
    "ChatClient",
    "LLMMessage",
    "LLMResult",
    "OpenAIChatClient",
    "PerplexityClient",
    "ProviderConfigError",
    "ProviderError",
    "ProviderErrorKind",
    "UsageMetrics",
]
