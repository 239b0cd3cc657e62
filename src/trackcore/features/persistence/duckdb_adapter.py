from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager

import duckdb

from trackcore.core.logging import get_logger

from .schema import create_schema

MEMORY_PATH = ":memory:"


class DuckDBAdapter:
    """
    DuckDB persistence adapter. Owns the connection, the schema and the
    single-writer lock.

    Writes go through `transaction()`: one lock holder at a time, one DuckDB
    transaction per unit, rolled back on any exception.
    Reads go through `reader()`: a dedicated cursor with its own read
    transaction, so a multi-statement report sees one snapshot and never
    waits on the write lock.
    """

    def __init__(self, path: str, *, clean_slate: bool = False) -> None:
        self.path = path
        self.clean_slate = clean_slate
        self._conn: duckdb.DuckDBPyConnection | None = None
        self._write_lock = threading.Lock()
        self._logger = get_logger(__name__)

    def open(self) -> None:
        if self._conn is not None:
            return

        if self.path != MEMORY_PATH:
            if self.clean_slate and os.path.exists(self.path):
                os.remove(self.path)

            # Ensure parent dir exists
            parent = os.path.dirname(self.path)
            if parent:
                os.makedirs(parent, exist_ok=True)

        self._conn = duckdb.connect(self.path)
        create_schema(self._conn)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise RuntimeError("DuckDBAdapter not opened. Call open() first.")
        return self._conn

    def close(self) -> None:
        with self._write_lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @contextmanager
    def transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        with self._write_lock:
            conn = self.conn
            conn.execute("BEGIN TRANSACTION")
            try:
                yield conn
            except BaseException:
                self._rollback(conn)
                raise
            conn.execute("COMMIT")

    def _rollback(self, conn) -> None:
        # The error that aborted the unit is the one the caller sees.
        try:
            conn.execute("ROLLBACK")
        except duckdb.Error:
            self._logger.error(
                "rollback_failed",
                exc_info=True,
                extra={"feature": "persistence", "db_path": self.path},
            )

    @contextmanager
    def reader(self) -> Iterator[duckdb.DuckDBPyConnection]:
        cur = self.conn.cursor()
        try:
            cur.execute("BEGIN TRANSACTION")
            try:
                yield cur
            finally:
                self._rollback(cur)
        finally:
            cur.close()
