"""Session Orchestrator - drives a stored session from ``draft`` to ``completed``.

The orchestrator runs at most one round loop per session and is the only
writer of a session's transcript, round counter and ``running``/``completed``
status. Cancellation is written by :meth:`SessionOrchestrator.cancel_session`
and observed cooperatively before every turn, retry and synthesis.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional

from agora_core.provider_profiles import ProviderProfilesStore
from agora_core.provider_router import ProviderRouter
from agora_core.record_store import (
    RecordStoreError,
    SessionNotFoundError,
    SessionNotRunningError,
    SessionRecordStore,
    utc_now,
)
from agora_core.settings import Settings

from .messages import SessionProjection, StartResult
from .models import AgentSnapshot, RoomConfig, SessionRecord, SessionStatus, WorkflowType
from .scheduler import RoundScheduler, WorkItem
from .state_machine import (
    DeliberationError,
    InvalidTransitionError,
    PreconditionError,
    SessionActiveError,
    SessionStateMachine,
    validate_agents,
)
from .synthesis import SynthesisStep
from .transcript import TranscriptAccumulator
from .turn_executor import AgentTurnExecutor, TurnContext, TurnOutcome

logger = logging.getLogger(__name__)


class _Cancelled(Exception):
    """Internal signal: the session was cancelled while a round was running."""


class SessionOrchestrator:
    """Runs deliberation sessions stored in a :class:`SessionRecordStore`."""

    def __init__(
        self,
        store: SessionRecordStore,
        router: ProviderRouter,
        *,
        profiles: Optional[ProviderProfilesStore] = None,
        settings: Optional[Settings] = None,
        executor: Optional[AgentTurnExecutor] = None,
        synthesis: Optional[SynthesisStep] = None,
    ) -> None:
        self.store = store
        self.router = router
        self.settings = settings or router.settings
        self.executor = executor or AgentTurnExecutor(
            router,
            profiles,
            timeout_seconds=self.settings.provider_timeout_seconds,
            retry_attempts=self.settings.max_retries,
            retry_base_delay=self.settings.retry_base_delay,
            retry_max_delay=self.settings.retry_max_delay,
        )
        self.synthesis = synthesis or SynthesisStep(
            router,
            temperature=self.settings.synthesis_temperature,
            max_tokens=self.settings.synthesis_max_tokens,
            timeout_seconds=self.settings.provider_timeout_seconds,
        )
        self._active: set = set()
        self._active_lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def start_session(self, session_id: str) -> StartResult:
        """Start (or resume) a session and run it to the end.

        Session-level failures are reported in the result rather than raised.
        """

        try:
            session = self.prepare_start(session_id)
        except SessionNotFoundError as exc:
            return StartResult(session_id=session_id, success=False, error_kind="not_found", message=str(exc))
        except DeliberationError as exc:
            logger.info("Session %s not started: %s", session_id, exc)
            return StartResult(session_id=session_id, success=False, error_kind=exc.kind, message=str(exc))
        except RecordStoreError as exc:
            logger.exception("Session %s: storage failure while starting", session_id)
            return StartResult(session_id=session_id, success=False, error_kind="storage", message=str(exc))

        return await self.execute(session)

    def prepare_start(self, session_id: str) -> SessionRecord:
        """Validate preconditions and move the session to ``running``.

        A session that is already ``running`` is returned as-is so the caller
        resumes it from ``current_round + 1``, unless its round loop is still
        active here, which raises :class:`SessionActiveError`. A successful
        call claims the session until :meth:`execute` finishes.
        """

        self._claim(session_id)
        try:
            return self._prepare(session_id)
        except BaseException:
            self._release(session_id)
            raise

    def _prepare(self, session_id: str) -> SessionRecord:
        record = self.store.get_session(session_id)
        session = SessionRecord.from_record(record)
        if session.max_rounds < 1:
            raise PreconditionError(f"max_rounds must be at least 1 (got {session.max_rounds})")

        if session.status == SessionStatus.RUNNING:
            validate_agents(session.agents)
            logger.info("Resuming session %s from round %d", session_id, session.current_round + 1)
            return session

        machine = SessionStateMachine(session.status)
        if session.status != SessionStatus.DRAFT:
            raise InvalidTransitionError(session.status, SessionStatus.RUNNING)

        agents = self._snapshot_agents(record.get("agent_config") or [])
        machine.start(agents)

        started = self.store.compare_and_set_status(
            session_id,
            SessionStatus.DRAFT.value,
            SessionStatus.RUNNING.value,
            {"agent_config": [agent.to_dict() for agent in agents]},
        )
        if not started:
            current = SessionStatus(self.store.get_status(session_id))
            raise InvalidTransitionError(current, SessionStatus.RUNNING)

        session.status = SessionStatus.RUNNING
        session.agents = agents
        logger.info("Starting session %s with %d agents, %d rounds", session_id, len(agents), session.max_rounds)
        return session

    async def execute(self, session: SessionRecord) -> StartResult:
        """Run the round loop, synthesis and completion for a ``running`` session."""

        try:
            return await self._run(session)
        except RecordStoreError as exc:
            logger.exception("Session %s: storage failure; left running for resume", session.id)
            return StartResult(
                session_id=session.id,
                success=False,
                status=SessionStatus.RUNNING.value,
                error_kind="storage",
                message=str(exc),
            )
        finally:
            self._release(session.id)

    def cancel_session(self, session_id: str) -> bool:
        """Move ``running -> cancelled``; a no-op returning ``False`` for any other status."""

        cancelled = self.store.compare_and_set_status(
            session_id,
            SessionStatus.RUNNING.value,
            SessionStatus.CANCELLED.value,
        )
        if cancelled:
            logger.info("Session %s cancelled", session_id)
        else:
            logger.info("Cancel ignored for session %s (status %s)", session_id, self.store.get_status(session_id))
        return cancelled

    def get_projection(self, session_id: str) -> SessionProjection:
        return SessionProjection.from_session(SessionRecord.from_record(self.store.get_session(session_id)))

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _snapshot_agents(self, agent_config: List[Mapping[str, Any]]) -> List[AgentSnapshot]:
        ids = [str(entry["id"]) for entry in agent_config if entry.get("id")]
        stored = {agent["id"]: agent for agent in self.store.get_agents(ids)}

        snapshots: List[AgentSnapshot] = []
        for entry in agent_config:
            agent = stored.get(str(entry.get("id")))
            if agent is None:
                logger.warning("Agent %s in session config no longer exists; skipping", entry.get("id"))
                continue
            merged: Dict[str, Any] = dict(agent)
            for key in ("icon", "color"):
                if entry.get(key):
                    merged[key] = entry[key]
            snapshots.append(AgentSnapshot.from_record(merged))
        return snapshots

    def _claim(self, session_id: str) -> None:
        with self._active_lock:
            if session_id in self._active:
                raise SessionActiveError(session_id)
            self._active.add(session_id)

    def _release(self, session_id: str) -> None:
        with self._active_lock:
            self._active.discard(session_id)

    def _is_cancelled(self, session_id: str) -> bool:
        return self.store.get_status(session_id) == SessionStatus.CANCELLED.value

    def _cancelled(self, session: SessionRecord, transcript: TranscriptAccumulator) -> StartResult:
        logger.info("Session %s: cancellation observed after %d turns; skipping synthesis", session.id, len(transcript))
        return StartResult(
            session_id=session.id,
            success=True,
            status=SessionStatus.CANCELLED.value,
            turn_count=len(transcript),
        )

    async def _run(self, session: SessionRecord) -> StartResult:
        room = RoomConfig.from_record(self.store.get_room(session.room_id))
        scheduler = RoundScheduler(session.agents, session.max_rounds, context_window=self.settings.context_window)
        transcript = TranscriptAccumulator(self.store, session.id, session.transcript)
        empty_limit = self.settings.consecutive_empty_round_limit

        consecutive_empty = 0
        try:
            for items in scheduler.rounds(session.current_round + 1):
                round_number = items[0].round
                logger.info(
                    "Session %s: round %d of %d (%s)",
                    session.id,
                    round_number,
                    session.max_rounds,
                    room.workflow_type.value,
                )
                if room.workflow_type == WorkflowType.CONCURRENT:
                    produced = await self._run_concurrent_round(session, room, scheduler, transcript, items)
                else:
                    produced = await self._run_sequential_round(session, room, scheduler, transcript, items)

                if produced:
                    consecutive_empty = 0
                    continue

                transcript.mark_round(round_number)
                consecutive_empty += 1
                logger.warning("Session %s: round %d produced no turns", session.id, round_number)
                if not len(transcript) and consecutive_empty >= empty_limit:
                    logger.warning(
                        "Session %s: %d empty round(s) and no turns at all; finishing early",
                        session.id,
                        consecutive_empty,
                    )
                    break
        except _Cancelled:
            return self._cancelled(session, transcript)

        # A cancel can land after the last append or during a failed final turn.
        if self._is_cancelled(session.id):
            return self._cancelled(session, transcript)

        turns = transcript.snapshot()
        action_items = await self.synthesis.run(session.topic, session.objective, turns)

        machine = SessionStateMachine(SessionStatus.RUNNING)
        machine.check(SessionStatus.COMPLETED)
        completed = self.store.compare_and_set_status(
            session.id,
            SessionStatus.RUNNING.value,
            SessionStatus.COMPLETED.value,
            {
                "action_items": action_items,
                "completed_at": utc_now(),
                "results": {
                    "methodology_used": room.methodology,
                    "generated_at": utc_now(),
                    "turn_count": len(turns),
                    "expected_turns": scheduler.expected_turns,
                },
            },
        )
        if not completed:
            status = self.store.get_status(session.id)
            logger.info("Session %s: finished rounds but status is %s; not completing", session.id, status)
            return StartResult(session_id=session.id, success=True, status=status, turn_count=len(turns))

        machine.complete()
        logger.info(
            "Session %s completed with %d/%d turns and %d action items",
            session.id,
            len(turns),
            scheduler.expected_turns,
            len(action_items),
        )
        return StartResult(
            session_id=session.id,
            success=True,
            status=SessionStatus.COMPLETED.value,
            turn_count=len(turns),
        )

    def _context(
        self,
        session: SessionRecord,
        room: RoomConfig,
        scheduler: RoundScheduler,
        transcript: TranscriptAccumulator,
        round_number: int,
    ) -> TurnContext:
        return TurnContext(
            topic=session.topic,
            objective=session.objective,
            round=round_number,
            max_rounds=session.max_rounds,
            prior_turns=scheduler.context_window(transcript.snapshot()),
            methodology=room.methodology,
            locale=session.locale,
        )

    def _record(self, session_id: str, transcript: TranscriptAccumulator, outcome: TurnOutcome) -> bool:
        if not outcome.ok:
            return False
        try:
            transcript.append(session_id, outcome.turn)
        except SessionNotRunningError as exc:
            raise _Cancelled() from exc
        return True

    async def _run_sequential_round(
        self,
        session: SessionRecord,
        room: RoomConfig,
        scheduler: RoundScheduler,
        transcript: TranscriptAccumulator,
        items: List[WorkItem],
    ) -> int:
        is_cancelled = functools.partial(self._is_cancelled, session.id)
        produced = 0
        for item in items:
            if is_cancelled():
                raise _Cancelled()
            context = self._context(session, room, scheduler, transcript, item.round)
            outcome = await self.executor.execute(item.agent, context, is_cancelled)
            if self._record(session.id, transcript, outcome):
                produced += 1
        return produced

    async def _run_concurrent_round(
        self,
        session: SessionRecord,
        room: RoomConfig,
        scheduler: RoundScheduler,
        transcript: TranscriptAccumulator,
        items: List[WorkItem],
    ) -> int:
        is_cancelled = functools.partial(self._is_cancelled, session.id)
        if is_cancelled():
            raise _Cancelled()
        # Every agent of the round sees the same context; appends follow visiting order after the join.
        context = self._context(session, room, scheduler, transcript, items[0].round)
        outcomes = await asyncio.gather(*(self.executor.execute(item.agent, context, is_cancelled) for item in items))

        produced = 0
        for outcome in outcomes:
            if self._record(session.id, transcript, outcome):
                produced += 1
        return produced
