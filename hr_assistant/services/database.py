"""Read-only DuckDB access with a bounded connection pool and execution timeout."""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from contextlib import contextmanager
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

import duckdb


LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 3.0


class SQLExecutionError(Exception):
    """Raised when a structured query cannot be executed safely."""


def normalize_value(value: Any) -> Any:
    """Normalize database values for JSON serialization."""
    if value is None:
        return None
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value.hex()
    return value


class RunningQuery:
    """Links an awaiting caller to the cursor a worker thread is executing on."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self.cancelled = False

    def attach(self, connection: duckdb.DuckDBPyConnection) -> bool:
        with self._lock:
            if self.cancelled:
                return False
            self._connection = connection
            return True

    def detach(self) -> None:
        with self._lock:
            self._connection = None

    def interrupt(self) -> None:
        with self._lock:
            self.cancelled = True
            if self._connection is not None:
                self._connection.interrupt()


class ReadOnlyPool:
    """Fixed-size pool of read-only cursors over a single DuckDB database file.

    External access (file readers, extensions, replacement scans) is disabled, so
    only tables stored in the database file can be read.
    """

    def __init__(self, database_path: Path, size: int = 10) -> None:
        if size <= 0:
            raise ValueError("Pool size must be positive.")
        self.database_path = Path(database_path)
        self.size = size
        try:
            self._root = duckdb.connect(
                database=str(self.database_path),
                read_only=True,
                config={"enable_external_access": False},
            )
        except duckdb.Error as exc:
            raise SQLExecutionError(f"Could not open database {self.database_path}: {exc}") from exc
        self._idle: "queue.Queue[duckdb.DuckDBPyConnection]" = queue.Queue(maxsize=size)
        for _ in range(size):
            self._idle.put(self._root.cursor())

    @contextmanager
    def acquire(self) -> Iterator[duckdb.DuckDBPyConnection]:
        connection = self._idle.get()
        try:
            yield connection
        finally:
            self._idle.put(connection)

    def fetch_rows(
        self,
        sql: str,
        params: Sequence[Any] = (),
        running: Optional[RunningQuery] = None,
    ) -> List[Dict[str, Any]]:
        with self.acquire() as connection:
            if running is not None and not running.attach(connection):
                raise SQLExecutionError("Query was cancelled before it started.")
            try:
                result = connection.execute(sql, list(params)) if params else connection.execute(sql)
                columns = [column[0] for column in result.description or []]
                rows = result.fetchall()
            except duckdb.Error as exc:
                raise SQLExecutionError(f"Query execution failed: {exc}") from exc
            finally:
                if running is not None:
                    running.detach()
        return [
            {column: normalize_value(value) for column, value in zip(columns, row)}
            for row in rows
        ]

    def close(self) -> None:
        while not self._idle.empty():
            self._idle.get_nowait().close()
        self._root.close()


class QueryExecutor:
    """Runs SQL off the event loop; a call that exceeds the timeout is interrupted."""

    def __init__(self, pool: ReadOnlyPool, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.pool = pool
        self.timeout_seconds = timeout_seconds

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        running = RunningQuery()
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.pool.fetch_rows, sql, tuple(params or ()), running),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            # Stop the statement so its cursor goes back to the pool.
            running.interrupt()
            LOGGER.warning("Interrupted SQL after %ss: %s", self.timeout_seconds, sql)
            raise SQLExecutionError(f"SQL execution timed out after {self.timeout_seconds}s") from exc
