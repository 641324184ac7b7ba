from __future__ import annotations

import os
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .settings import settings

LOG_PREFIX = "[REGISTRATOR]"

# Module level so tests (and the API) can point the journal somewhere else.
DB_PATH = settings.db_path
# Newest rows kept in the journal; older ones are pruned on write.
JOURNAL_MAX_ROWS = settings.journal_max_rows


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory (Docker creates one when a bind-mounted
    file does not exist yet), the journal lives inside it.
    """
    p = os.path.abspath(DB_PATH)

    if os.path.isdir(p):
        p = os.path.join(p, "registrator.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False, timeout=5.0)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              service_name TEXT,
              container_id TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            """
        )


def log_event(
    level: str,
    message: str,
    service_name: str | None = None,
    container_id: str | None = None,
) -> None:
    """Journal one line and echo it to stdout.

    A broken journal never breaks the caller: the stdout line is always written.
    """
    ts = utc_now()
    level = level.upper()
    print(f"{LOG_PREFIX} {ts} {level} {message}", flush=True)
    try:
        with connect() as conn:
            conn.execute(
                "INSERT INTO events (ts, level, service_name, container_id, message) VALUES (?, ?, ?, ?, ?)",
                (ts, level, service_name, container_id, message),
            )
            if JOURNAL_MAX_ROWS > 0:
                conn.execute(
                    "DELETE FROM events WHERE id <= (SELECT MAX(id) FROM events) - ?",
                    (JOURNAL_MAX_ROWS,),
                )
    except sqlite3.Error as e:
        print(f"{LOG_PREFIX} {ts} WARN journal write failed: {e}", flush=True)


def latest_events(limit: int = 100, level: str | None = None) -> list[dict[str, Any]]:
    with connect() as conn:
        if level:
            rows = conn.execute(
                "SELECT * FROM events WHERE level=? ORDER BY id DESC LIMIT ?",
                (level.upper(), limit),
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
