"""
Database connection, transactions and initialization.

Connections run in autocommit mode: every statement outside transaction() commits on its
own, and transaction() groups statements into one atomic unit.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from lastman.config import get_config
from .schema import all_schema_sql

logger = logging.getLogger(__name__)

# Seconds a writer waits on another writer's lock before failing with "database is locked".
BUSY_TIMEOUT_SECONDS = 10.0

_db_path: Path | None = None


def set_db_path(path: str | Path) -> None:
    """Set the database path. Call before first get_connection if not using the configured one."""
    global _db_path
    _db_path = Path(path)


def get_db_path() -> Path:
    """Return the current database path."""
    if _db_path is not None:
        return _db_path
    return get_config().db_path


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """
    Return a new SQLite connection.
    Use as context manager or ensure close() is called.
    """
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT_SECONDS, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run the block as one atomic write transaction.

    BEGIN IMMEDIATE takes the database write lock up front, so two concurrent callers
    serialize: the second one starts only after the first commits and sees its writes.
    Nested use joins the outer transaction.
    """
    if conn.in_transaction:
        yield conn
        return
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")


def init_db(db_path: str | Path | None = None) -> None:
    """Create or ensure all tables exist."""
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(path)
    try:
        conn.executescript(all_schema_sql())
        # WAL lets readers proceed while the results processor holds the write lock.
        conn.execute("PRAGMA journal_mode = WAL")
    finally:
        conn.close()
    logger.debug("Database ready at %s", path)
