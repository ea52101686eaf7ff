"""Session persistence: workflow state plus completed stage outputs.

Two backends:
- InMemorySessionStore (default, tests and single-process dev)
- SqliteSessionStore (set FORMATIVE_DATABASE_PATH)

SQLite uses raw SQL via sqlite3 with per-call connections and
check_same_thread=False, so one store instance is safe to share across
request threads. No ORM.
"""

import copy
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol, Union

from formative.config import LLMSettings
from formative.stages.schemas import StageKind, WorkflowState

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Storage interface used by the orchestrator."""

    def save(self, session_id: str, state: WorkflowState) -> None: ...

    def load(self, session_id: str) -> Optional[WorkflowState]: ...

    def save_output(self, session_id: str, kind: StageKind, data: dict[str, Any]) -> None: ...

    def load_outputs(self, session_id: str) -> dict[StageKind, dict[str, Any]]: ...

    def delete(self, session_id: str) -> None: ...

    def list_sessions(self) -> list[str]: ...


class InMemorySessionStore:
    """Dict-backed store. States are immutable; outputs are deep-copied."""

    def __init__(self):
        self._states: dict[str, WorkflowState] = {}
        self._outputs: dict[str, dict[StageKind, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def save(self, session_id: str, state: WorkflowState) -> None:
        with self._lock:
            self._states[session_id] = state

    def load(self, session_id: str) -> Optional[WorkflowState]:
        with self._lock:
            return self._states.get(session_id)

    def save_output(self, session_id: str, kind: StageKind, data: dict[str, Any]) -> None:
        with self._lock:
            self._outputs.setdefault(session_id, {})[kind] = copy.deepcopy(data)

    def load_outputs(self, session_id: str) -> dict[StageKind, dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._outputs.get(session_id, {}))

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._states.pop(session_id, None)
            self._outputs.pop(session_id, None)

    def list_sessions(self) -> list[str]:
        with self._lock:
            return sorted(self._states)


def _json_dumps(data: Any) -> str:
    """Serialize data to JSON string for storage."""
    if data is None:
        return "{}"
    return json.dumps(data, ensure_ascii=False, default=str)


def _json_loads(text: str) -> Any:
    """Deserialize JSON string from storage."""
    if not text:
        return {}
    return json.loads(text)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    state TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS stage_outputs (
    session_id TEXT NOT NULL,
    stage TEXT NOT NULL,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (session_id, stage)
);
"""


class SqliteSessionStore:
    """SQLite-backed store. `path` must be a file; ':memory:' would not persist
    across the per-call connections."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(str(self.path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        logger.info(f"Session store initialized (SQLite: {self.path})")

    def save(self, session_id: str, state: WorkflowState) -> None:
        now = _now()
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO sessions (id, state, created_at, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET state = excluded.state,
                                                 updated_at = excluded.updated_at""",
                (session_id, state.model_dump_json(), now, now),
            )

    def load(self, session_id: str) -> Optional[WorkflowState]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT state FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()
        if row is None:
            return None
        return WorkflowState.model_validate_json(row["state"])

    def save_output(self, session_id: str, kind: StageKind, data: dict[str, Any]) -> None:
        with self._connect() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO stage_outputs (session_id, stage, data, created_at)
                   VALUES (?, ?, ?, ?)""",
                (session_id, kind.value, _json_dumps(data), _now()),
            )
        logger.info(f"Saved {kind.value} output for session {session_id}")

    def load_outputs(self, session_id: str) -> dict[StageKind, dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT stage, data FROM stage_outputs WHERE session_id = ?",
                (session_id,),
            ).fetchall()
        return {StageKind(row["stage"]): _json_loads(row["data"]) for row in rows}

    def delete(self, session_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM stage_outputs WHERE session_id = ?", (session_id,))
            conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))

    def list_sessions(self) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT id FROM sessions ORDER BY created_at, id").fetchall()
        return [row["id"] for row in rows]


def create_session_store(settings: Optional[LLMSettings] = None) -> SessionStore:
    """SQLite store when a database path is configured, else in-memory."""
    if settings is not None and settings.database_path:
        return SqliteSessionStore(settings.database_path)
    logger.info("Session store initialized (in-memory)")
    return InMemorySessionStore()
