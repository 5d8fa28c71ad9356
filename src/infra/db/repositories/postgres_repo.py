from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2 import sql
from psycopg2.extras import RealDictCursor

from core.enums import DatabaseKind

from .base import DEFAULT_BATCH_SIZE, RowSource

logger = logging.getLogger(__name__)


class PostgresRowSource(RowSource):
    """Row source over a ``psycopg2`` threaded connection pool."""

    kind = DatabaseKind.POSTGRESQL
    driver_errors = (psycopg2.Error,)

    _TABLES_QUERY = """
        SELECT table_name
        FROM information_schema.tables
        WHERE table_schema = %s
        ORDER BY table_name
    """

    _SCHEMAS_QUERY = """
        SELECT schema_name
        FROM information_schema.schemata
        WHERE schema_name NOT IN ('information_schema', 'pg_catalog')
        ORDER BY schema_name
    """

    def __init__(
        self, pool: Any, *, schema: str = "public", batch_size: int = DEFAULT_BATCH_SIZE
    ) -> None:
        super().__init__(batch_size=batch_size)
        self.pool = pool
        self.schema = schema
        self._active: set[Any] = set()
        self._active_lock = threading.Lock()

    @contextmanager
    def _connection(self) -> Generator[Any]:
        conn = self.pool.getconn()
        with self._active_lock:
            self._active.add(conn)
        try:
            yield conn
        finally:
            with self._active_lock:
                self._active.discard(conn)
            self._release(conn)

    def _release(self, conn: Any) -> None:
        # Reads only; end the implicit transaction before returning the connection.
        try:
            conn.rollback()
        except psycopg2.Error as exc:
            logger.warning("Discarding PostgreSQL connection after failed rollback: %s", exc)
            self.pool.putconn(conn, close=True)
        else:
            self.pool.putconn(conn)

    @contextmanager
    def _cursor(self, *, streaming: bool = False) -> Generator[Any]:
        with self._connection() as conn:
            # Named cursors are server-side: rows arrive fetchmany() at a time.
            name = f"export_{uuid.uuid4().hex}" if streaming else None
            cur = conn.cursor(name=name, cursor_factory=RealDictCursor)
            try:
                yield cur
            finally:
                cur.close()

    def select_all_sql(self, table: str, schema: str | None = None) -> sql.Composed:
        return sql.SQL("SELECT * FROM {}.{}").format(
            sql.Identifier(schema or self.schema), sql.Identifier(table)
        )

    def table_names(self, schema: str | None = None) -> list[str]:
        rows = self._all(self._TABLES_QUERY, (schema or self.schema,), what="listing tables")
        return [row["table_name"] for row in rows]

    def schema_names(self) -> list[str]:
        rows = self._all(self._SCHEMAS_QUERY, what="listing schemas")
        return [row["schema_name"] for row in rows]

    def probe(self) -> None:
        try:
            conn = self.pool.getconn()
        except psycopg2.Error as exc:
            raise self._query_error(exc, "checking the connection") from exc
        self.pool.putconn(conn)

    def cancel(self) -> None:
        with self._active_lock:
            active = tuple(self._active)
        for conn in active:
            try:
                conn.cancel()
            except psycopg2.Error as exc:
                logger.warning("Could not cancel PostgreSQL query: %s", exc)

    def close(self) -> None:
        if self.closed:
            return
        super().close()
        self.pool.closeall()
