"""Runtime configuration for the Agora services."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_URL = "https://ai.gateway.lovable.dev/v1/chat/completions"
DEFAULT_PROVIDER_MODEL = "google/gemini-2.5-flash"

_ENV_FIELDS = {
    "AGORA_DB_PATH": "db_path",
    "AGORA_PROVIDER_PROFILES_PATH": "provider_profiles_path",
    "AGORA_DEFAULT_PROVIDER_URL": "default_provider_url",
    "AGORA_DEFAULT_PROVIDER_KEY": "default_provider_key",
    "AGORA_DEFAULT_MODEL": "default_model",
    "AGORA_CONTEXT_WINDOW": "context_window",
    "AGORA_PROVIDER_TIMEOUT": "provider_timeout_seconds",
    "AGORA_MAX_RETRIES": "max_retries",
    "AGORA_RETRY_BASE_DELAY": "retry_base_delay",
    "AGORA_RETRY_MAX_DELAY": "retry_max_delay",
    "AGORA_EMPTY_ROUND_LIMIT": "consecutive_empty_round_limit",
    "AGORA_LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    """Explicit configuration threaded through the orchestrator and clients.

    Only :meth:`from_env` reads the process environment; everything downstream
    receives values through constructors.
    """

    db_path: Path = Path("data/agora.sqlite3")
    provider_profiles_path: Path = Path("data/provider_profiles.json")

    default_provider_url: str = DEFAULT_PROVIDER_URL
    default_provider_key: Optional[str] = None
    default_model: str = DEFAULT_PROVIDER_MODEL
    default_max_output_tokens: int = Field(default=1024, gt=0)

    context_window: int = Field(default=10, ge=0)
    provider_timeout_seconds: float = Field(default=90.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=30.0, ge=0)
    consecutive_empty_round_limit: int = Field(default=2, ge=1)

    synthesis_temperature: float = 0.2
    synthesis_max_tokens: int = 1024

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        values = {}
        for env_name, field_name in _ENV_FIELDS.items():
            raw = env.get(env_name)
            if raw is not None and raw.strip():
                values[field_name] = raw.strip()
        settings = cls(**values)
        if not settings.default_provider_key:
            logger.warning("AGORA_DEFAULT_PROVIDER_KEY not set -- agents without a provider profile will fail")
        return settings
