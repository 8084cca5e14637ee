from __future__ import annotations

import os
import sqlite3
import sys
from datetime import datetime
from typing import Any, TextIO


def utc_now() -> str:
    return datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path(db_path: str) -> str:
    """Return a file path usable by sqlite.

    When the journal is bind-mounted from the host and the file did not exist,
    the container runtime creates a *directory* at that location. In that case
    the DB file goes inside it.
    """
    p = os.path.abspath(db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "nbr.db")

    return p


class EventLog:
    """Leveled event journal backed by SQLite and echoed to a stream.

    One instance is created at process start and handed to every component.
    The stream always gets every record; if the database cannot be opened or
    written, the journal is marked degraded and later records go to the
    stream only.
    """

    def __init__(self, db_path: str, stream: TextIO | None = None):
        self.path = _resolve_db_path(db_path)
        self.stream = stream if stream is not None else sys.stderr
        self.degraded: str | None = None

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _degrade(self, exc: Exception) -> None:
        if self.degraded is None:
            self.degraded = f"{type(exc).__name__}: {exc}"
            print(
                f"{utc_now()} WARN  journal {self.path} unavailable ({self.degraded}); events go to this stream only",
                file=self.stream,
                flush=True,
            )

    def init(self) -> None:
        """Create tables if they do not exist."""
        try:
            parent = os.path.dirname(self.path)
            if parent and not os.path.exists(parent):
                os.makedirs(parent, exist_ok=True)
            with self.connect() as conn:
                conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS events (
                      id INTEGER PRIMARY KEY AUTOINCREMENT,
                      ts TEXT NOT NULL,
                      level TEXT NOT NULL,
                      subsystem TEXT,
                      unit TEXT,
                      message TEXT NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
                    """
                )
        except (OSError, sqlite3.Error) as e:
            self._degrade(e)

    def log(self, level: str, message: str, subsystem: str | None = None, unit: str | None = None) -> None:
        ts = utc_now()
        level = level.upper()
        ctx = "/".join(x for x in (subsystem, unit) if x)
        prefix = f"{ts} {level:<5}"
        if ctx:
            prefix += f" [{ctx}]"
        print(f"{prefix} {message}", file=self.stream, flush=True)

        if self.degraded is not None:
            return
        try:
            with self.connect() as conn:
                conn.execute(
                    "INSERT INTO events (ts, level, subsystem, unit, message) VALUES (?, ?, ?, ?, ?)",
                    (ts, level, subsystem, unit, message),
                )
        except sqlite3.Error as e:
            self._degrade(e)

    def info(self, message: str, subsystem: str | None = None, unit: str | None = None) -> None:
        self.log("INFO", message, subsystem=subsystem, unit=unit)

    def error(self, message: str, subsystem: str | None = None, unit: str | None = None) -> None:
        self.log("ERROR", message, subsystem=subsystem, unit=unit)

    def latest(self, limit: int = 100) -> list[dict[str, Any]]:
        if self.degraded is not None:
            return []
        try:
            with self.connect() as conn:
                rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (int(limit),)).fetchall()
        except sqlite3.Error as e:
            self._degrade(e)
            return []
        return [dict(r) for r in rows]

    def last_matching(self, *prefixes: str) -> dict[str, Any] | None:
        """Most recent event whose message starts with any of ``prefixes``."""
        if not prefixes or self.degraded is not None:
            return None
        where = " OR ".join("substr(message, 1, ?) = ?" for _ in prefixes)
        params: list[Any] = []
        for p in prefixes:
            params.extend([len(p), p])
        try:
            with self.connect() as conn:
                row = conn.execute(f"SELECT * FROM events WHERE {where} ORDER BY id DESC LIMIT 1", params).fetchone()
        except sqlite3.Error as e:
            self._degrade(e)
            return None
        return dict(row) if row else None
