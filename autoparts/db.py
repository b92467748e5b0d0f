from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Union

import streamlit as st

from autoparts.errors import PersistenceError
from autoparts.schema import SCHEMA_SQL

logger = logging.getLogger(__name__)

# One writer lock per connection. get_conn() shares a connection between
# Streamlit sessions, so in_transaction alone cannot tell a nested block
# from another thread's open transaction.
_registry_lock = threading.Lock()
_conn_locks: dict = {}


def connect(db_path: Union[Path, str], *, busy_timeout_ms: int = 5000) -> sqlite3.Connection:
    # Autocommit mode: writes are grouped only by explicit transaction() blocks.
    conn = sqlite3.connect(
        str(db_path),
        check_same_thread=False,
        isolation_level=None,
        timeout=busy_timeout_ms / 1000.0,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@st.cache_resource
def get_conn(db_path: Path, busy_timeout_ms: int = 5000) -> sqlite3.Connection:
    conn = connect(db_path, busy_timeout_ms=busy_timeout_ms)
    ensure_schema(conn)
    return conn


def ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)


def _rollback(conn: sqlite3.Connection) -> None:
    # SQLite may already have rolled back on some errors (e.g. SQLITE_FULL).
    if conn.in_transaction:
        conn.execute("ROLLBACK")


def _writer_lock(conn: sqlite3.Connection) -> threading.RLock:
    with _registry_lock:
        lock = _conn_locks.get(id(conn))
        if lock is None:
            lock = _conn_locks[id(conn)] = threading.RLock()
        return lock


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Unit of work: everything inside commits together or not at all.

    A per-connection lock is held for the whole block, so threads sharing a
    connection queue up instead of joining each other's transaction. Only a
    block opened by the thread that already owns the outer one is nested.

    BEGIN IMMEDIATE takes the database write lock up front, so reads done
    inside the block (e.g. FIFO batch selection) cannot be invalidated by
    another connection before COMMIT. SQLite failures are rolled back and
    re-raised as PersistenceError.
    """
    with _writer_lock(conn):
        # Holding the lock, an open transaction can only be our own outer block.
        if conn.in_transaction:
            yield conn
            return

        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            logger.error("Could not start transaction: %s", e)
            raise PersistenceError(f"Could not start transaction: {e}") from e

        try:
            yield conn
        except sqlite3.Error as e:
            _rollback(conn)
            logger.error("Transaction rolled back after storage error: %s", e)
            raise PersistenceError(f"Storage error, nothing was saved: {e}") from e
        except BaseException:
            _rollback(conn)
            raise

        try:
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            _rollback(conn)
            logger.error("Commit failed, transaction rolled back: %s", e)
            raise PersistenceError(f"Commit failed, nothing was saved: {e}") from e


def q(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
    cur = conn.execute(sql, tuple(params))
    rows = cur.fetchall()
    cur.close()
    return rows


def x(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> int:
    cur = conn.execute(sql, tuple(params))
    last = cur.lastrowid
    cur.close()
    return int(last) if last is not None else 0


def x_count(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> int:
    """Execute and return the number of affected rows."""
    cur = conn.execute(sql, tuple(params))
    n = cur.rowcount
    cur.close()
    return int(n)
