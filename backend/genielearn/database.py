"""Shared embedded DuckDB connection.

The session, group and message stores all live in one DuckDB database whose
path comes from ``database.path`` in the settings (``:memory:`` for tests).

Thread Safety:
    A DuckDB connection must not be used from several threads at once. Stores
    run their queries in worker threads (``asyncio.to_thread``) so the event
    loop stays free; every query goes through ``Database`` which serializes
    access with a lock.
"""
import logging
import threading
from typing import Any, List, Optional, Sequence

import duckdb

logger = logging.getLogger(__name__)


class Database:
    """Thin lock-guarded wrapper around a single DuckDB connection."""

    def __init__(self, path: str = ":memory:") -> None:
        self.path = path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()
        logger.info("[Database] Using DuckDB at %s", path)

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self.path)
        return self._connection

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> None:
        with self._lock:
            self._get_connection().execute(sql, params or [])

    def fetchone(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[tuple]:
        with self._lock:
            return self._get_connection().execute(sql, params or []).fetchone()

    def fetchall(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[tuple]:
        with self._lock:
            return self._get_connection().execute(sql, params or []).fetchall()

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
