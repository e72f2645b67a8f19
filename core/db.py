from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

__all__ = [
    "DEFAULT_BUSY_TIMEOUT_MS",
    "connect",
    "configure_connection",
    "transaction",
]

DEFAULT_BUSY_TIMEOUT_MS = 5000


def connect(db_path: str | Path, *, timeout: float = 5.0, check_same_thread: bool = False) -> sqlite3.Connection:
    """Open the tracker database in autocommit mode.

    Statements commit on their own unless wrapped in ``transaction``; the
    backup worker thread shares the connection, hence ``check_same_thread``.
    """

    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        str(path),
        timeout=timeout,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    configure_connection(conn)
    return conn


def configure_connection(conn: sqlite3.Connection, *, enable_wal: bool = True) -> None:
    conn.execute(f"PRAGMA busy_timeout={int(DEFAULT_BUSY_TIMEOUT_MS)}")
    if enable_wal:
        try:
            conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.DatabaseError:
            pass
    conn.row_factory = sqlite3.Row


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the block inside ``BEGIN IMMEDIATE``; roll back if it raises."""

    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
    except Exception:
        conn.rollback()
        raise
    else:
        conn.commit()
