"""SQLite-backed preferences and saved aggregate configs for rangescout."""

from __future__ import annotations

from contextlib import closing
from datetime import datetime, timezone
import json
import os
from pathlib import Path
import secrets
import sqlite3
from typing import Any

DB_PATH = Path(os.getenv("RANGESCOUT_DB", "") or Path.home() / ".rangescout" / "rangescout.db")
AGGREGATE_ID_BYTES = 4


def _connect() -> sqlite3.Connection:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH)
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS preferences (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS aggregations (
            id TEXT PRIMARY KEY,
            content TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )
    return conn


def set_preference(key: str, value: Any) -> None:
    payload = json.dumps(value, ensure_ascii=False)
    stamp = datetime.now(timezone.utc).isoformat()
    with closing(_connect()) as conn, conn:
        conn.execute(
            """
            INSERT INTO preferences(key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
            """,
            (key, payload, stamp),
        )


def get_preference(key: str, default: Any = None) -> Any:
    with closing(_connect()) as conn, conn:
        row = conn.execute("SELECT value FROM preferences WHERE key = ?", (key,)).fetchone()
    if not row:
        return default
    try:
        return json.loads(str(row[0]))
    except json.JSONDecodeError:
        return default


def save_aggregate(content: Any) -> str:
    """Store an aggregate config and return its short identifier."""
    payload = json.dumps(content, ensure_ascii=False)
    stamp = datetime.now(timezone.utc).isoformat()
    with closing(_connect()) as conn, conn:
        while True:
            aggregate_id = secrets.token_hex(AGGREGATE_ID_BYTES)
            try:
                conn.execute(
                    "INSERT INTO aggregations(id, content, created_at) VALUES (?, ?, ?)",
                    (aggregate_id, payload, stamp),
                )
            except sqlite3.IntegrityError:
                continue
            return aggregate_id


def load_aggregate(aggregate_id: str) -> str | None:
    """Return the stored JSON text for ``aggregate_id`` or ``None``."""
    with closing(_connect()) as conn, conn:
        row = conn.execute("SELECT content FROM aggregations WHERE id = ?", (aggregate_id,)).fetchone()
    return str(row[0]) if row else None
