from __future__ import annotations

import json
import os
import sqlite3
from dataclasses import dataclass
from typing import Any, Iterable

from .model import ReconciliationResult, utc_now
from .settings import settings


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory (e.g. a bind mount that did not
    exist yet), the DB file is placed inside it.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "fsr.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS runs (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              target TEXT NOT NULL,
              started_at TEXT NOT NULL,
              finished_at TEXT,
              cancelled INTEGER NOT NULL DEFAULT 0,
              ok INTEGER NOT NULL,
              unchanged INTEGER NOT NULL,
              updated INTEGER NOT NULL,
              failed INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS run_fields (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              run_id INTEGER NOT NULL,
              position INTEGER NOT NULL,
              field TEXT NOT NULL,
              outcome TEXT NOT NULL, -- unchanged|updated|failed
              old_value TEXT, -- json
              new_value TEXT, -- json
              error_kind TEXT,
              error TEXT,
              attempts INTEGER NOT NULL DEFAULT 0,
              FOREIGN KEY(run_id) REFERENCES runs(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              target TEXT,
              field TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            CREATE INDEX IF NOT EXISTS idx_run_fields_run_id ON run_fields(run_id);
            CREATE INDEX IF NOT EXISTS idx_runs_target ON runs(target);
            """
        )


def log_event(level: str, message: str, target: str | None = None, field: str | None = None) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, target, field, message) VALUES (?, ?, ?, ?, ?)",
            (utc_now(), level.upper(), target, field, message),
        )


@dataclass(frozen=True)
class RunRow:
    id: int
    target: str
    started_at: str
    finished_at: str | None
    cancelled: int
    ok: int
    unchanged: int
    updated: int
    failed: int


@dataclass(frozen=True)
class RunFieldRow:
    id: int
    run_id: int
    position: int
    field: str
    outcome: str
    old_value: str | None
    new_value: str | None
    error_kind: str | None
    error: str | None
    attempts: int


def _rows_to_dataclass(rows: Iterable[sqlite3.Row], cls: Any) -> list[Any]:
    out: list[Any] = []
    for r in rows:
        out.append(cls(**dict(r)))
    return out


def record_run(result: ReconciliationResult) -> RunRow:
    counts = result.counts()
    with connect() as conn:
        cur = conn.execute(
            """
            INSERT INTO runs (target, started_at, finished_at, cancelled, ok, unchanged, updated, failed)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                result.target,
                result.started_at,
                result.finished_at,
                int(result.cancelled),
                int(result.ok),
                counts["unchanged"],
                counts["updated"],
                counts["failed"],
            ),
        )
        run_id = cur.lastrowid
        conn.executemany(
            """
            INSERT INTO run_fields (run_id, position, field, outcome, old_value, new_value, error_kind, error, attempts)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    run_id,
                    i,
                    f.field_name,
                    f.outcome.value,
                    json.dumps(f.old_value.to_json()) if f.old_value is not None else None,
                    json.dumps(f.new_value.to_json()) if f.new_value is not None else None,
                    f.error_kind,
                    f.error,
                    f.attempts,
                )
                for i, f in enumerate(result.fields)
            ],
        )
        row = conn.execute("SELECT * FROM runs WHERE id=?", (run_id,)).fetchone()
        return RunRow(**dict(row))


def list_runs(target: str | None = None, limit: int = 50) -> list[RunRow]:
    with connect() as conn:
        if target:
            cur = conn.execute("SELECT * FROM runs WHERE target=? ORDER BY id DESC LIMIT ?", (target, limit))
        else:
            cur = conn.execute("SELECT * FROM runs ORDER BY id DESC LIMIT ?", (limit,))
        return _rows_to_dataclass(cur.fetchall(), RunRow)


def get_run(run_id: int) -> RunRow | None:
    with connect() as conn:
        row = conn.execute("SELECT * FROM runs WHERE id=?", (run_id,)).fetchone()
        return RunRow(**dict(row)) if row else None


def list_run_fields(run_id: int) -> list[RunFieldRow]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM run_fields WHERE run_id=? ORDER BY position", (run_id,)).fetchall()
        return _rows_to_dataclass(rows, RunFieldRow)


def latest_events(limit: int = 100, target: str | None = None) -> list[dict[str, Any]]:
    with connect() as conn:
        if target:
            rows = conn.execute(
                "SELECT * FROM events WHERE target=? ORDER BY id DESC LIMIT ?", (target, limit)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
