"""
Event database for the netwatch agent.

SQLite database at /var/lib/netwatch/events.db storing:
- Security events from every detector (append-only)
- Telemetry records ("memories"): scan results, system stats

Uses WAL mode so concurrent appends from independently scheduled
detectors do not need to coordinate.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

from ._types import SecurityEventRecord, now_utc

logger = logging.getLogger(__name__)


# Database schema
SCHEMA = """
-- Append-only security event log
CREATE TABLE IF NOT EXISTS security_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    description TEXT NOT NULL,
    details TEXT NOT NULL DEFAULT '{}',  -- JSON
    severity TEXT NOT NULL DEFAULT 'low',
    timestamp TEXT NOT NULL
);

-- Telemetry records (scan results, system stats)
CREATE TABLE IF NOT EXISTS memories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    type TEXT NOT NULL,
    data TEXT NOT NULL,  -- JSON
    timestamp TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_security_events_kind ON security_events(kind);
CREATE INDEX IF NOT EXISTS idx_security_events_timestamp ON security_events(timestamp);
CREATE INDEX IF NOT EXISTS idx_memories_type ON memories(type);
CREATE INDEX IF NOT EXISTS idx_memories_timestamp ON memories(timestamp);
"""


def _iso_format(dt: datetime) -> str:
    """Format datetime as ISO string in UTC so string ordering is time ordering."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string."""
    if not s:
        return None
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


class EventDatabase:
    """
    SQLite store for security events and telemetry.

    A connection is opened per call, so instances can be shared between
    the event loop and worker threads.
    """

    def __init__(self, db_path: Path | str = "/var/lib/netwatch/events.db"):
        self.db_path = Path(db_path)
        self._ensure_directory()
        self._init_db()

    def _ensure_directory(self) -> None:
        """Ensure database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        """Initialize database with schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.commit()
        logger.info(f"Initialized event database at {self.db_path}")

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Security events
    # -------------------------------------------------------------------------

    def append(
        self,
        kind: str,
        description: str,
        details: dict[str, Any],
        timestamp: Optional[datetime] = None,
        severity: str = "low",
    ) -> int:
        """
        Append one security event.

        Returns the new row id.

        Raises:
            TypeError: If details is not JSON-serializable
            sqlite3.Error: On storage failure
        """
        payload = json.dumps(details or {})
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO security_events (kind, description, details, severity, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                (kind, description, payload, severity, _iso_format(timestamp or now_utc())),
            )
            conn.commit()
            return cursor.lastrowid

    def query(
        self,
        kind: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> list[SecurityEventRecord]:
        """Get events newest first with optional kind/time filters."""
        query = "SELECT * FROM security_events WHERE 1=1"
        params: list = []

        if kind:
            query += " AND kind = ?"
            params.append(kind)
        if since:
            query += " AND timestamp >= ?"
            params.append(_iso_format(since))

        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_event(row) for row in rows]

    def count_events(self) -> dict[str, int]:
        """Get event counts per kind."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT kind, COUNT(*) AS n FROM security_events GROUP BY kind"
            ).fetchall()
        counts = {row["kind"]: row["n"] for row in rows}
        counts["total"] = sum(counts.values())
        return counts

    def _row_to_event(self, row: sqlite3.Row) -> SecurityEventRecord:
        """Convert database row to SecurityEventRecord."""
        try:
            details = json.loads(row["details"]) if row["details"] else {}
        except json.JSONDecodeError:
            details = {"raw": row["details"]}
        return SecurityEventRecord(
            id=row["id"],
            kind=row["kind"],
            description=row["description"],
            details=details,
            severity=row["severity"],
            timestamp=_parse_datetime(row["timestamp"]) or now_utc(),
        )

    # -------------------------------------------------------------------------
    # Telemetry
    # -------------------------------------------------------------------------

    def store_memory(self, memory_type: str, data: Any) -> int:
        """Store one telemetry record. Returns the new row id."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO memories (type, data, timestamp) VALUES (?, ?, ?)",
                (memory_type, json.dumps(data), _iso_format(now_utc())),
            )
            conn.commit()
            return cursor.lastrowid

    def search_memories(
        self,
        query: Optional[str] = None,
        memory_type: Optional[str] = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Search telemetry records by type and substring, newest first."""
        sql = "SELECT * FROM memories WHERE 1=1"
        params: list = []

        if memory_type:
            sql += " AND type = ?"
            params.append(memory_type)
        if query:
            sql += " AND data LIKE ?"
            params.append(f"%{query}%")

        sql += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()

        return [
            {
                "id": row["id"],
                "type": row["type"],
                "data": json.loads(row["data"]),
                "timestamp": row["timestamp"],
            }
            for row in rows
        ]
