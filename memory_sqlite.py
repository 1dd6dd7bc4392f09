"""memory_sqlite.py

SQLite-backed persistence for agents.

Stores:
- agent_state: one JSON blob per agent (emotion, traits, genesis, intimacy)
- messages: raw recent chat log used to rebuild the history window
- notes: short long-term "memory cards" written by background reflection

Every sqlite3 failure is re-raised as PersistenceError so the turn pipeline
can surface it without touching in-memory state. `factory_reset` removes an
agent's state and every dependent record in a single transaction.

Requires: Python standard library only (sqlite3).
"""

from __future__ import annotations

import re
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from core.state import AgentState
from utils.errors import PersistenceError
from utils.helpers import clamp, now_ts
from utils.logging import log


@dataclass
class Note:
    id: int
    agent_id: str
    ts: float
    text: str
    importance: float


class StateStore:
    """
    One SQLite DB for all agents.

    The connection is shared across asyncio worker threads; writes are
    serialized with a lock.
    """

    def __init__(self, db_path: str = "memory/psyche.db"):
        self.db_path = str(db_path)
        parent = Path(self.db_path).parent
        if self.db_path != ":memory:" and str(parent) != ".":
            parent.mkdir(parents=True, exist_ok=True)

        try:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open state database {self.db_path}", cause=e) from e
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_schema()

    # -------------------------
    # Schema
    # -------------------------

    def _init_schema(self) -> None:
        with self._lock, self.conn:
            cur = self.conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS agent_state (
                    agent_id TEXT PRIMARY KEY,
                    state TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    updated_ts REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    agent_id TEXT NOT NULL,
                    ts REAL NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_messages_agent_ts ON messages(agent_id, ts DESC)")
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS notes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    agent_id TEXT NOT NULL,
                    ts REAL NOT NULL,
                    text TEXT NOT NULL,
                    importance REAL NOT NULL DEFAULT 0.5
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_notes_agent_ts ON notes(agent_id, ts DESC)")

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    # -------------------------
    # Agent state
    # -------------------------

    def load(self, agent_id: str) -> Optional[AgentState]:
        try:
            with self._lock:
                row = self.conn.execute(
                    "SELECT state FROM agent_state WHERE agent_id=?", (str(agent_id),)
                ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to load state for {agent_id}", cause=e) from e

        if not row:
            return None
        try:
            return AgentState.from_json(row["state"])
        except (ValueError, TypeError, KeyError) as e:
            raise PersistenceError(f"Stored state for {agent_id} is corrupt", cause=e) from e

    def save(self, agent_id: str, state: AgentState) -> None:
        try:
            with self._lock, self.conn:
                self.conn.execute(
                    """
                    INSERT INTO agent_state(agent_id, state, version, updated_ts)
                    VALUES(?, ?, ?, ?)
                    ON CONFLICT(agent_id) DO UPDATE SET
                      state=excluded.state,
                      version=excluded.version,
                      updated_ts=excluded.updated_ts
                    """,
                    (str(agent_id), state.to_json(), int(state.version), now_ts()),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to save state for {agent_id}", cause=e) from e

    def factory_reset(self, agent_id: str) -> None:
        """Delete state, chat log and notes for the agent atomically."""
        aid = str(agent_id)
        try:
            with self._lock, self.conn:
                self.conn.execute("DELETE FROM agent_state WHERE agent_id=?", (aid,))
                self.conn.execute("DELETE FROM messages WHERE agent_id=?", (aid,))
                self.conn.execute("DELETE FROM notes WHERE agent_id=?", (aid,))
        except sqlite3.Error as e:
            raise PersistenceError(f"Factory reset failed for {agent_id}", cause=e) from e
        log(f"[Store] Factory reset for agent {aid}")

    # -------------------------
    # Messages
    # -------------------------

    def record_message(self, agent_id: str, role: str, content: str) -> None:
        try:
            with self._lock, self.conn:
                self.conn.execute(
                    "INSERT INTO messages(agent_id, ts, role, content) VALUES(?, ?, ?, ?)",
                    (str(agent_id), now_ts(), str(role), self.redact(content)),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to record message for {agent_id}", cause=e) from e

    def recent_messages(self, agent_id: str, limit: int = 20) -> List[Dict[str, str]]:
        """Most recent messages, oldest first."""
        try:
            with self._lock:
                rows = self.conn.execute(
                    "SELECT role, content FROM messages WHERE agent_id=? ORDER BY id DESC LIMIT ?",
                    (str(agent_id), max(1, int(limit))),
                ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read messages for {agent_id}", cause=e) from e
        return [{"role": r["role"], "content": r["content"]} for r in reversed(rows)]

    # -------------------------
    # Notes (long-term memory)
    # -------------------------

    def add_note(self, agent_id: str, text: str, importance: float = 0.5) -> None:
        text = self.redact(text).strip()
        if not text:
            return
        try:
            with self._lock, self.conn:
                self.conn.execute(
                    "INSERT INTO notes(agent_id, ts, text, importance) VALUES(?, ?, ?, ?)",
                    (str(agent_id), now_ts(), text[:500], float(clamp(importance, 0.0, 1.0))),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to add note for {agent_id}", cause=e) from e

    def notes(self, agent_id: str, limit: int = 5) -> List[Note]:
        try:
            with self._lock:
                rows = self.conn.execute(
                    "SELECT id, agent_id, ts, text, importance FROM notes WHERE agent_id=? "
                    "ORDER BY importance DESC, ts DESC LIMIT ?",
                    (str(agent_id), max(1, int(limit))),
                ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read notes for {agent_id}", cause=e) from e
        return [
            Note(
                id=int(r["id"]),
                agent_id=str(r["agent_id"]),
                ts=float(r["ts"]),
                text=str(r["text"]),
                importance=float(r["importance"]),
            )
            for r in rows
        ]

    # -------------------------
    # Maintenance
    # -------------------------

    def prune(self, agent_id: str, *, keep_notes: int = 50, keep_messages: int = 300) -> None:
        """Keep DB size bounded per agent."""
        aid = str(agent_id)
        try:
            with self._lock, self.conn:
                self.conn.execute(
                    """
                    DELETE FROM notes
                    WHERE agent_id=?
                      AND id NOT IN (
                        SELECT id FROM notes WHERE agent_id=? ORDER BY ts DESC LIMIT ?
                      )
                    """,
                    (aid, aid, int(keep_notes)),
                )
                self.conn.execute(
                    """
                    DELETE FROM messages
                    WHERE agent_id=?
                      AND id NOT IN (
                        SELECT id FROM messages WHERE agent_id=? ORDER BY id DESC LIMIT ?
                      )
                    """,
                    (aid, aid, int(keep_messages)),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Prune failed for {agent_id}", cause=e) from e

    @staticmethod
    def redact(text: str) -> str:
        """Best-effort redaction to avoid storing secrets."""
        t = text or ""
        t = re.sub(r"(?i)(api[_-]?key|secret|token|password)\s*[:=]\s*\S+", r"\1=[REDACTED]", t)
        return t
