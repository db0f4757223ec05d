"""
Database connection pool and initialization.

The Database object is created once per process (by the API lifespan or a
script) and passed to whoever needs connections. There is no module-level
connection state.
"""
from __future__ import annotations

import logging
import queue
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .schema import all_schema_sql

logger = logging.getLogger(__name__)

_BUSY_TIMEOUT_SECONDS = 30.0


class PoolTimeout(RuntimeError):
    """No pooled connection became free in time."""


class Database:
    """
    Bounded pool of SQLite connections to one database file.
    Connections are opened lazily up to pool_size and reused afterwards.
    """

    def __init__(self, path: str | Path, pool_size: int = 5) -> None:
        self.path = Path(path)
        self.pool_size = pool_size
        self._idle: queue.LifoQueue[sqlite3.Connection] = queue.LifoQueue(maxsize=pool_size)
        self._opened = 0
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Borrowed by FastAPI's threadpool, so not pinned to the creating thread
        conn = sqlite3.connect(str(self.path), timeout=_BUSY_TIMEOUT_SECONDS, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def acquire(self, timeout: float = _BUSY_TIMEOUT_SECONDS) -> sqlite3.Connection:
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            pass
        with self._lock:
            if self._opened < self.pool_size:
                self._opened += 1
                return self._connect()
        try:
            return self._idle.get(timeout=timeout)
        except queue.Empty as e:
            raise PoolTimeout(f"No database connection available after {timeout}s") from e

    def release(self, conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.rollback()
        self._idle.put_nowait(conn)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Borrow a connection; it goes back to the pool on exit."""
        conn = self.acquire()
        try:
            yield conn
        finally:
            self.release(conn)

    def init_schema(self) -> None:
        """Create or ensure all tables exist."""
        with self.connection() as conn:
            conn.executescript(all_schema_sql())
            conn.commit()
        logger.info(f"Database schema ready at {self.path}")

    def close(self) -> None:
        with self._lock:
            while True:
                try:
                    conn = self._idle.get_nowait()
                except queue.Empty:
                    break
                conn.close()
            self._opened = 0


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run a block of statements atomically: commit on success, rollback on error.
    BEGIN IMMEDIATE takes the write lock up front, so check-then-write
    sequences (capacity checks, ownership transfer) are serialized.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()
