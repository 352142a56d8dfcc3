"""SQLite helpers."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .config import CONFIG


def _resolve(path: Optional[Path]) -> Path:
    resolved = Path(path) if path is not None else CONFIG.resolved_database_path
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved


def _ensure_column(conn: sqlite3.Connection, table: str, column: str, ddl: str) -> None:
    cursor = conn.execute(f"PRAGMA table_info({table})")
    existing = {row[1] for row in cursor.fetchall()}
    if column not in existing:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")


def initialize_db(path: Optional[Path] = None) -> None:
    with sqlite3.connect(_resolve(path)) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                collection TEXT NOT NULL,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL
            );
            """
        )
        _ensure_column(conn, "documents", "updated_at", "TEXT")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)"
        )
        conn.commit()


@contextmanager
def get_connection(path: Optional[Path] = None) -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(_resolve(path))
    try:
        yield conn
    finally:
        conn.close()
