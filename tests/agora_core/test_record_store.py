from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional

import pytest

from agora_core.record_store import (
    RecordStoreError,
    SessionNotFoundError,
    SessionNotRunningError,
    SessionRecordStore,
    TurnOrderError,
)


@pytest.fixture
def store(tmp_path: Path) -> SessionRecordStore:
    return SessionRecordStore(tmp_path / "agora.sqlite3")


def _create(store: SessionRecordStore, session_id: str = "s-1") -> None:
    store.create_session(
        session_id=session_id,
        topic="Pricing",
        objective="Pick a tier structure",
        agent_config=[{"id": "a"}, {"id": "b"}],
        max_rounds=3,
    )


def test_create_session_starts_as_draft(store: SessionRecordStore) -> None:
    _create(store)

    session = store.get_session("s-1")

    assert session["status"] == "draft"
    assert session["current_round"] == 0
    assert session["transcript"] == []
    assert session["action_items"] == []
    assert session["agent_config"] == [{"id": "a"}, {"id": "b"}]
    assert session["locale"] == "en"


def test_unknown_session_raises(store: SessionRecordStore) -> None:
    with pytest.raises(SessionNotFoundError):
        store.get_session("missing")
    with pytest.raises(SessionNotFoundError):
        store.get_status("missing")
    with pytest.raises(SessionNotFoundError):
        store.compare_and_set_status("missing", "running", "cancelled")


def test_compare_and_set_only_moves_from_expected(store: SessionRecordStore) -> None:
    _create(store)

    assert store.compare_and_set_status("s-1", "draft", "running", {"current_round": 0}) is True
    assert store.compare_and_set_status("s-1", "draft", "running") is False
    assert store.get_status("s-1") == "running"

    with pytest.raises(ValueError):
        store.compare_and_set_status("s-1", "running", "completed", {"status": "completed"})


def test_append_turn_writes_turn_and_round_together(store: SessionRecordStore) -> None:
    _create(store)
    store.compare_and_set_status("s-1", "draft", "running")
    turn = {
        "agent_id": "a",
        "agent_name": "Analyst",
        "content": "Unicode survives: café – 漢字\n\"quoted\"",
        "round": 2,
        "timestamp": "2024-01-01T00:00:00+00:00",
    }

    length = store.append_turn("s-1", turn, current_round=2)

    session = store.get_session("s-1")
    assert length == 1
    assert session["current_round"] == 2
    assert session["transcript"] == [turn]


def test_append_turn_refused_once_cancelled(store: SessionRecordStore) -> None:
    _create(store)
    store.compare_and_set_status("s-1", "draft", "running")
    store.compare_and_set_status("s-1", "running", "cancelled")

    with pytest.raises(SessionNotRunningError):
        store.append_turn("s-1", {"agent_id": "a", "agent_name": "A", "content": "x", "round": 1}, current_round=1)

    assert store.get_session("s-1")["transcript"] == []


def test_append_turn_refuses_a_round_behind_the_transcript(store: SessionRecordStore) -> None:
    _create(store)
    store.compare_and_set_status("s-1", "draft", "running")
    store.append_turn("s-1", {"agent_id": "a", "agent_name": "A", "content": "x", "round": 1}, current_round=1)
    store.append_turn("s-1", {"agent_id": "a", "agent_name": "A", "content": "y", "round": 2}, current_round=2)

    with pytest.raises(TurnOrderError):
        store.append_turn("s-1", {"agent_id": "b", "agent_name": "B", "content": "z", "round": 1}, current_round=1)

    session = store.get_session("s-1")
    assert [turn["round"] for turn in session["transcript"]] == [1, 2]
    assert session["current_round"] == 2


def test_update_session_rejects_unknown_fields(store: SessionRecordStore) -> None:
    _create(store)

    with pytest.raises(ValueError):
        store.update_session("s-1", {"owner": "someone"})

    updated = store.update_session("s-1", {"current_round": 1, "action_items": ["Ship it"]})
    assert updated["current_round"] == 1
    assert updated["action_items"] == ["Ship it"]


def test_get_agents_preserves_requested_order(store: SessionRecordStore) -> None:
    store.upsert_agent(agent_id="b", name="Builder", system_prompt="Build.")
    store.upsert_agent(agent_id="a", name="Analyst", system_prompt="Analyse.", temperature=0.3, max_tokens=200)

    agents = store.get_agents(["a", "missing", "b"])

    assert [agent["id"] for agent in agents] == ["a", "b"]
    assert agents[0]["temperature"] == 0.3
    assert agents[0]["max_tokens"] == 200


def test_rooms_round_trip(store: SessionRecordStore) -> None:
    store.upsert_room(room_id="r-1", methodology="lean_iterative", workflow_type="concurrent")

    room = store.get_room("r-1")

    assert room is not None
    assert room["methodology"] == "lean_iterative"
    assert room["workflow_type"] == "concurrent"
    assert store.get_room(None) is None
    assert store.get_room("missing") is None


class _LockedConnection(sqlite3.Connection):
    def execute(self, sql: str, *args: Any) -> sqlite3.Cursor:  # type: ignore[override]
        if sql == "BEGIN IMMEDIATE":
            raise sqlite3.OperationalError("database is locked")
        return super().execute(sql, *args)


class LockedStore(SessionRecordStore):
    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), factory=_LockedConnection, isolation_level=None)


class ForgetfulRoomStore(SessionRecordStore):
    def get_room(self, room_id: Optional[str]) -> Optional[Dict[str, Any]]:
        return None


def test_failed_begin_reports_the_original_error(tmp_path: Path) -> None:
    with pytest.raises(RecordStoreError, match="database is locked"):
        LockedStore(tmp_path / "agora.sqlite3")


def test_upsert_room_reports_a_missing_row(tmp_path: Path) -> None:
    store = ForgetfulRoomStore(tmp_path / "agora.sqlite3")

    with pytest.raises(RecordStoreError):
        store.upsert_room(room_id="r-1")
