"""SQLite-backed session activity journal."""

from __future__ import annotations

import json
import sqlite3
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional


class SessionEventLogger:
    """Persist remote-control session activity into SQLite."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def start(self) -> None:
        with self._lock:
            if self._conn is not None:
                return
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=10)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA busy_timeout=5000;")
            self._conn = conn
            self._init_schema()

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            except Exception:
                pass
            self._conn = None

    def start_session(
        self,
        token_preview: str,
        agent_name: str,
        record_mode: bool = False,
        capture_screenshot: bool = False,
        session_id: Optional[str] = None,
    ) -> str:
        sid = str(session_id or uuid.uuid4())
        self._safe_execute(
            """
            INSERT OR REPLACE INTO sessions (
                session_id, token_preview, agent_name, record_mode,
                capture_screenshot, started_at, status, error
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                sid,
                str(token_preview or ""),
                str(agent_name or ""),
                1 if record_mode else 0,
                1 if capture_screenshot else 0,
                float(time.time()),
                "running",
                None,
            ),
        )
        return sid

    def end_session(self, session_id: str, status: str, error: Optional[str] = None) -> None:
        self._safe_execute(
            """
            UPDATE sessions
               SET ended_at = ?, status = ?, error = ?
             WHERE session_id = ?
            """,
            (
                float(time.time()),
                str(status or "unknown"),
                str(error) if error else None,
                str(session_id or ""),
            ),
        )

    def log_connection_event(self, session_id: Optional[str], event_type: str, detail: Any = None) -> None:
        self._insert_event(
            "connection_events",
            {"session_id": session_id, "event_type": event_type, "detail": detail},
        )

    def log_command_event(
        self,
        session_id: Optional[str],
        command_id: Optional[str],
        command_type: Optional[str],
        event_type: str,
        detail: Any = None,
    ) -> None:
        self._insert_event(
            "command_events",
            {
                "session_id": session_id,
                "command_id": command_id,
                "command_type": command_type,
                "event_type": event_type,
                "detail": detail,
            },
        )

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        rows = self._safe_query("SELECT * FROM sessions WHERE session_id = ?", (str(session_id),))
        return rows[0] if rows else None

    def list_events(self, table: str, session_id: str) -> List[Dict[str, Any]]:
        if table not in {"connection_events", "command_events"}:
            raise ValueError(f"Unknown event table: {table}")
        return self._safe_query(
            f"SELECT * FROM {table} WHERE session_id = ? ORDER BY id",
            (str(session_id),),
        )

    def _init_schema(self) -> None:
        self._safe_execute(
            """
            CREATE TABLE IF NOT EXISTS sessions (
                session_id TEXT PRIMARY KEY,
                token_preview TEXT,
                agent_name TEXT,
                record_mode INTEGER,
                capture_screenshot INTEGER,
                started_at REAL,
                ended_at REAL,
                status TEXT,
                error TEXT
            )
            """
        )
        self._safe_execute(
            """
            CREATE TABLE IF NOT EXISTS connection_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT,
                ts REAL,
                event_type TEXT,
                payload_json TEXT
            )
            """
        )
        self._safe_execute(
            """
            CREATE TABLE IF NOT EXISTS command_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT,
                command_id TEXT,
                command_type TEXT,
                ts REAL,
                event_type TEXT,
                payload_json TEXT
            )
            """
        )
        for table in ("connection_events", "command_events"):
            self._safe_execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_session_id ON {table}(session_id)"
            )
            self._safe_execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_event_type ON {table}(event_type)"
            )
        self._safe_execute(
            "CREATE INDEX IF NOT EXISTS idx_command_events_command_id ON command_events(command_id)"
        )

    def _insert_event(self, table: str, payload: Dict[str, Any]) -> None:
        p = payload if isinstance(payload, dict) else {}
        session_id = str(p.get("session_id") or "")
        event_type = str(p.get("event_type") or "")
        ts_val = float(time.time())
        try:
            payload_json = json.dumps(p.get("detail"), ensure_ascii=False, default=str)
        except Exception:
            payload_json = json.dumps({"_error": "payload_not_serializable"}, ensure_ascii=False)

        if table == "command_events":
            self._safe_execute(
                """
                INSERT INTO command_events (session_id, command_id, command_type, ts, event_type, payload_json)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    str(p.get("command_id") or ""),
                    str(p.get("command_type") or ""),
                    ts_val,
                    event_type,
                    payload_json,
                ),
            )
            return
        self._safe_execute(
            f"""
            INSERT INTO {table} (session_id, ts, event_type, payload_json)
            VALUES (?, ?, ?, ?)
            """,
            (session_id, ts_val, event_type, payload_json),
        )

    def _safe_execute(self, sql: str, params: tuple[Any, ...] = ()) -> None:
        with self._lock:
            try:
                if self._conn is None:
                    self.start()
                if self._conn is None:
                    return
                self._conn.execute(sql, params)
                self._conn.commit()
            except Exception:
                # Best-effort journal: never raise back into the protocol flow.
                return

    def _safe_query(self, sql: str, params: tuple[Any, ...] = ()) -> List[Dict[str, Any]]:
        with self._lock:
            try:
                if self._conn is None:
                    self.start()
                if self._conn is None:
                    return []
                cursor = self._conn.execute(sql, params)
                columns = [c[0] for c in cursor.description or []]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            except Exception:
                return []
