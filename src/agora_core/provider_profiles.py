"""Provider profile persistence and lookup helpers for Agora."""

from __future__ import annotations

import json
import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)


class ProviderType(str, Enum):
    """Backend kinds an agent can be wired to."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    PERPLEXITY = "perplexity"
    CUSTOM = "custom"


class ProviderProfile(BaseModel):
    """Credentials and endpoint for one chat-completion backend."""

    id: str
    type: ProviderType
    api_key: str
    endpoint: Optional[str] = None
    model: Optional[str] = None
    enabled: bool = True
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _custom_needs_endpoint(self) -> "ProviderProfile":
        if self.type == ProviderType.CUSTOM and not (self.endpoint or "").strip():
            raise ValueError("custom provider profiles require an endpoint")
        return self

    def redacted(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json")
        if payload.get("api_key"):
            payload["api_key"] = "********"
        return payload


class ProviderProfilesStore:
    """File-backed provider profile registry.

    Profiles are written by the administrative layer; the deliberation core
    only reads them.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or Path("data/provider_profiles.json")
        self._profiles: Optional[Dict[str, ProviderProfile]] = None
        self._lock = threading.RLock()

    def _ensure_loaded(self) -> Dict[str, ProviderProfile]:
        with self._lock:
            if self._profiles is not None:
                return self._profiles

            if not self.path.exists():
                self._profiles = {}
                return self._profiles

            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                logger.exception("Could not read provider profiles from %s", self.path)
                self._profiles = {}
                return self._profiles

            items: Iterable[Any]
            if isinstance(raw, dict):
                if "profiles" in raw and isinstance(raw["profiles"], list):
                    items = raw["profiles"]
                else:
                    items = raw.values()
            elif isinstance(raw, list):
                items = raw
            else:
                items = []

            profiles: Dict[str, ProviderProfile] = {}
            for item in items:
                if not isinstance(item, dict):
                    continue
                try:
                    profile = ProviderProfile(**item)
                except ValidationError as exc:
                    logger.warning("Skipping invalid provider profile %s: %s", item.get("id"), exc)
                    continue
                profiles[profile.id] = profile

            self._profiles = profiles
            return self._profiles

    def save(self) -> None:
        with self._lock:
            profiles = self._ensure_loaded()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = {
                "profiles": [
                    profile.model_dump(mode="json") for profile in sorted(profiles.values(), key=lambda p: p.id)
                ]
            }
            self.path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

    def list_profiles(self, *, redact: bool = True) -> List[Dict[str, Any]]:
        profiles = self._ensure_loaded()
        output = []
        for profile in sorted(profiles.values(), key=lambda p: p.id):
            output.append(profile.redacted() if redact else profile.model_dump(mode="json"))
        return output

    def get(self, profile_id: str) -> Optional[ProviderProfile]:
        return self._ensure_loaded().get(profile_id)

    def resolve(self, profile_id: Optional[str]) -> Optional[ProviderProfile]:
        """Return the enabled profile for ``profile_id``; ``None`` means the platform default."""

        if not profile_id:
            return None
        profile = self.get(profile_id)
        if profile is None:
            logger.warning("Provider profile %s not found; using platform default", profile_id)
            return None
        if not profile.enabled:
            logger.warning("Provider profile %s is disabled; using platform default", profile_id)
            return None
        return profile

    def upsert(self, profile: ProviderProfile) -> ProviderProfile:
        with self._lock:
            profiles = self._ensure_loaded()
            profiles[profile.id] = profile
            self.save()
        return profile
