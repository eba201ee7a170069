"""SQLite record store for deliberation sessions, agents and rooms."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

_JSON_FIELDS = frozenset({"agent_config", "transcript", "action_items", "results"})
_SESSION_FIELDS = frozenset(
    {
        "topic",
        "objective",
        "agent_config",
        "max_rounds",
        "current_round",
        "status",
        "transcript",
        "action_items",
        "results",
        "room_id",
        "locale",
        "completed_at",
    }
)


class RecordStoreError(RuntimeError):
    """Raised when the store cannot read or persist a record."""


class SessionNotFoundError(KeyError, RecordStoreError):
    """Raised when a session id does not exist."""

    def __str__(self) -> str:
        return f"Session '{self.args[0]}' not found" if self.args else "Session not found"


class SessionNotRunningError(RecordStoreError):
    """Raised when a turn is appended to a session that is no longer running."""


class TurnOrderError(RecordStoreError):
    """Raised when a turn would land behind a later round already in the transcript."""


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionRecordStore:
    """Persist sessions in SQLite with WAL and per-call transactions.

    Every write runs inside ``BEGIN IMMEDIATE`` so a turn append and its round
    counter land together; pollers never observe half of an update.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or Path("data/agora.sqlite3")
        self._lock = threading.RLock()
        self._init_db()

    # ------------------------------------------------------------------ #
    # Connection handling
    # ------------------------------------------------------------------ #

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=5.0, check_same_thread=False, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA busy_timeout=5000;")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                conn = self._connect()
            except sqlite3.Error as exc:
                raise RecordStoreError(f"Cannot open record store at {self.db_path}: {exc}") from exc
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                self._rollback(conn)
                raise RecordStoreError(f"Record store write failed: {exc}") from exc
            except BaseException:
                self._rollback(conn)
                raise
            finally:
                conn.close()

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        # BEGIN itself may have failed (database locked), leaving nothing to undo.
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                conn = self._connect()
            except sqlite3.Error as exc:
                raise RecordStoreError(f"Cannot open record store at {self.db_path}: {exc}") from exc
            try:
                yield conn
            except sqlite3.Error as exc:
                raise RecordStoreError(f"Record store read failed: {exc}") from exc
            finally:
                conn.close()

    def _init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    topic TEXT NOT NULL,
                    objective TEXT,
                    agent_config TEXT NOT NULL,
                    max_rounds INTEGER NOT NULL,
                    current_round INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'draft',
                    transcript TEXT NOT NULL DEFAULT '[]',
                    action_items TEXT NOT NULL DEFAULT '[]',
                    results TEXT,
                    room_id TEXT,
                    locale TEXT NOT NULL DEFAULT 'en',
                    completed_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS agents (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    system_prompt TEXT NOT NULL,
                    temperature REAL NOT NULL DEFAULT 0.7,
                    max_tokens INTEGER,
                    provider_profile_id TEXT,
                    icon TEXT,
                    color TEXT,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS rooms (
                    id TEXT PRIMARY KEY,
                    methodology TEXT NOT NULL DEFAULT 'group_chat',
                    workflow_type TEXT NOT NULL DEFAULT 'cyclic',
                    updated_at TEXT NOT NULL
                )
                """
            )

    # ------------------------------------------------------------------ #
    # Row helpers
    # ------------------------------------------------------------------ #

    def _deserialize_session(self, row: sqlite3.Row) -> Dict[str, Any]:
        payload = dict(row)
        for field_name in _JSON_FIELDS:
            raw = payload.get(field_name)
            if raw is None:
                continue
            try:
                payload[field_name] = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise RecordStoreError(f"Corrupt '{field_name}' for session {payload.get('id')}") from exc
        return payload

    @staticmethod
    def _serialize_value(field_name: str, value: Any) -> Any:
        if field_name in _JSON_FIELDS:
            return None if value is None else json.dumps(value, ensure_ascii=False)
        if hasattr(value, "value"):
            # str enums (session status)
            return value.value
        return value

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #

    def create_session(
        self,
        *,
        topic: str,
        agent_config: Sequence[Mapping[str, Any]],
        max_rounds: int,
        objective: Optional[str] = None,
        room_id: Optional[str] = None,
        locale: str = "en",
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Insert a ``draft`` session, as the administrative layer does."""

        session_id = session_id or str(uuid.uuid4())
        now = utc_now()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO sessions(
                    id, user_id, topic, objective, agent_config, max_rounds,
                    current_round, status, transcript, action_items, room_id,
                    locale, created_at, updated_at
                )
                VALUES(?, ?, ?, ?, ?, ?, 0, 'draft', '[]', '[]', ?, ?, ?, ?)
                """,
                (
                    session_id,
                    user_id,
                    topic,
                    objective,
                    json.dumps([dict(item) for item in agent_config], ensure_ascii=False),
                    int(max_rounds),
                    room_id,
                    locale,
                    now,
                    now,
                ),
            )
        return self.get_session(session_id)

    def get_session(self, session_id: str) -> Dict[str, Any]:
        with self._reader() as conn:
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        if row is None:
            raise SessionNotFoundError(session_id)
        return self._deserialize_session(row)

    def get_status(self, session_id: str) -> str:
        with self._reader() as conn:
            row = conn.execute("SELECT status FROM sessions WHERE id = ?", (session_id,)).fetchone()
        if row is None:
            raise SessionNotFoundError(session_id)
        return str(row["status"])

    def update_session(self, session_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Write several session fields in one transaction."""

        unknown = set(fields) - _SESSION_FIELDS
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        if not fields:
            return self.get_session(session_id)

        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = [self._serialize_value(name, value) for name, value in fields.items()]
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE sessions SET {assignments}, updated_at = ? WHERE id = ?",
                (*values, utc_now(), session_id),
            )
            if cursor.rowcount == 0:
                raise SessionNotFoundError(session_id)
        return self.get_session(session_id)

    def compare_and_set_status(
        self,
        session_id: str,
        expected: str,
        new: str,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Move ``status`` from ``expected`` to ``new``; ``False`` if another writer got there first."""

        extra = dict(fields or {})
        invalid = (set(extra) - _SESSION_FIELDS) | ({"status"} & set(extra))
        if invalid:
            raise ValueError(f"Invalid extra fields for status change: {sorted(invalid)}")

        assignments = "".join(f", {name} = ?" for name in extra)
        values = [self._serialize_value(name, value) for name, value in extra.items()]
        with self._transaction() as conn:
            row = conn.execute("SELECT status FROM sessions WHERE id = ?", (session_id,)).fetchone()
            if row is None:
                raise SessionNotFoundError(session_id)
            cursor = conn.execute(
                f"UPDATE sessions SET status = ?{assignments}, updated_at = ? WHERE id = ? AND status = ?",
                (
                    self._serialize_value("status", new),
                    *values,
                    utc_now(),
                    session_id,
                    self._serialize_value("status", expected),
                ),
            )
            return cursor.rowcount == 1

    def append_turn(self, session_id: str, turn: Mapping[str, Any], current_round: int) -> int:
        """Append one turn and advance ``current_round`` atomically.

        Returns the new transcript length.
        """

        with self._transaction() as conn:
            row = conn.execute(
                "SELECT status, transcript FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()
            if row is None:
                raise SessionNotFoundError(session_id)
            if row["status"] != "running":
                raise SessionNotRunningError(f"Session '{session_id}' is {row['status']}; turn not appended")

            transcript = json.loads(row["transcript"] or "[]")
            last_round = int(transcript[-1].get("round") or 0) if transcript else 0
            if int(turn.get("round") or 0) < last_round:
                raise TurnOrderError(
                    f"Session '{session_id}' already has round {last_round} turns; "
                    f"round {turn.get('round')} turn not appended"
                )
            transcript.append(dict(turn))
            conn.execute(
                "UPDATE sessions SET transcript = ?, current_round = ?, updated_at = ? WHERE id = ?",
                (json.dumps(transcript, ensure_ascii=False), int(current_round), utc_now(), session_id),
            )
        logger.debug("Appended turn %d to session %s (round %d)", len(transcript), session_id, current_round)
        return len(transcript)

    # ------------------------------------------------------------------ #
    # Agents and rooms
    # ------------------------------------------------------------------ #

    def upsert_agent(
        self,
        *,
        agent_id: str,
        name: str,
        system_prompt: str,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        provider_profile_id: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Dict[str, Any]:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO agents(id, name, system_prompt, temperature, max_tokens,
                                   provider_profile_id, icon, color, updated_at)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    system_prompt = excluded.system_prompt,
                    temperature = excluded.temperature,
                    max_tokens = excluded.max_tokens,
                    provider_profile_id = excluded.provider_profile_id,
                    icon = excluded.icon,
                    color = excluded.color,
                    updated_at = excluded.updated_at
                """,
                (agent_id, name, system_prompt, float(temperature), max_tokens, provider_profile_id, icon, color, utc_now()),
            )
        return self.get_agents([agent_id])[0]

    def get_agents(self, agent_ids: Sequence[str]) -> List[Dict[str, Any]]:
        """Return the agents with the given ids, in the order requested; missing ids are skipped."""

        if not agent_ids:
            return []
        placeholders = ", ".join("?" for _ in agent_ids)
        with self._reader() as conn:
            rows = conn.execute(f"SELECT * FROM agents WHERE id IN ({placeholders})", tuple(agent_ids)).fetchall()
        by_id = {row["id"]: dict(row) for row in rows}
        return [by_id[agent_id] for agent_id in agent_ids if agent_id in by_id]

    def upsert_room(self, *, room_id: str, methodology: str = "group_chat", workflow_type: str = "cyclic") -> Dict[str, Any]:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO rooms(id, methodology, workflow_type, updated_at)
                VALUES(?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    methodology = excluded.methodology,
                    workflow_type = excluded.workflow_type,
                    updated_at = excluded.updated_at
                """,
                (room_id, methodology, workflow_type, utc_now()),
            )
        room = self.get_room(room_id)
        if room is None:
            raise RecordStoreError(f"Room '{room_id}' was not persisted")
        return room

    def get_room(self, room_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not room_id:
            return None
        with self._reader() as conn:
            row = conn.execute("SELECT * FROM rooms WHERE id = ?", (room_id,)).fetchone()
        return dict(row) if row is not None else None
