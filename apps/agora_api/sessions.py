from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from agora_agents.deliberation import (
    CancelResult,
    ProviderTestPayload,
    ProviderTestResult,
    SessionOrchestrator,
    SessionRecord,
    StartResult,
)
from agora_core.provider_profiles import ProviderProfile, ProviderProfilesStore
from agora_core.provider_router import ProviderRouter
from agora_core.record_store import SessionRecordStore
from agora_core.settings import Settings

logger = logging.getLogger(__name__)


class SessionsAPI:
    """Facade implementing the deliberation session contract."""

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        orchestrator: Optional[SessionOrchestrator] = None,
    ) -> None:
        if orchestrator is not None:
            self.orchestrator = orchestrator
            self.settings = orchestrator.settings
        else:
            self.settings = settings or Settings.from_env()
            store = SessionRecordStore(self.settings.db_path)
            profiles = ProviderProfilesStore(self.settings.provider_profiles_path)
            router = ProviderRouter(self.settings)
            self.orchestrator = SessionOrchestrator(store, router, profiles=profiles, settings=self.settings)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def start_session(self, session_id: str) -> SessionRecord:
        """Move the session to ``running``; the round loop is run separately by :meth:`run_session`."""

        return self.orchestrator.prepare_start(session_id)

    async def run_session(self, session: SessionRecord) -> StartResult:
        result = await self.orchestrator.execute(session)
        logger.info("Session %s finished with status %s", session.id, result.status)
        return result

    def cancel_session(self, session_id: str) -> Dict[str, Any]:
        cancelled = self.orchestrator.cancel_session(session_id)
        return CancelResult(session_id=session_id, cancelled=cancelled).model_dump()

    def get_session(self, session_id: str) -> Dict[str, Any]:
        return self.orchestrator.get_projection(session_id).model_dump()

    def test_provider(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        request = ProviderTestPayload(**payload)
        profile = ProviderProfile(
            id=f"check:{request.type}",
            type=request.type,
            api_key=request.api_key,
            endpoint=request.endpoint,
            model=request.model,
        )
        success, error = self.orchestrator.router.test_profile(profile)
        return ProviderTestResult(success=success, error=error).model_dump()
