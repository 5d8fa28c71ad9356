from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Generator
from contextlib import closing, contextmanager
from typing import Any

import mysql.connector

from core.enums import DatabaseKind

from .base import DEFAULT_BATCH_SIZE, RowSource

logger = logging.getLogger(__name__)


def quote_identifier(name: str) -> str:
    """Backtick-quote a MySQL identifier, doubling embedded backticks."""
    return "`" + name.replace("`", "``") + "`"


class MySQLRowSource(RowSource):
    """Row source over a single ``mysql.connector`` connection.

    The connection is not thread-safe, so every cursor is taken under a lock
    that is held until the cursor is exhausted or closed. ``connect`` opens a
    side connection used only to kill a running export query.
    """

    kind = DatabaseKind.MYSQL
    driver_errors = (mysql.connector.Error,)

    def __init__(
        self,
        conn: Any,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        connect: Callable[[], Any] | None = None,
    ) -> None:
        super().__init__(batch_size=batch_size)
        self.conn = conn
        self._connect = connect
        self._lock = threading.Lock()
        self._streaming = False

    @contextmanager
    def _cursor(self, *, streaming: bool = False) -> Generator[Any]:
        with self._lock:
            # Unbuffered when streaming so rows come off the wire batch by batch.
            with closing(self.conn.cursor(dictionary=True, buffered=not streaming)) as cur:
                self._streaming = streaming
                try:
                    yield cur
                finally:
                    self._streaming = False

    def select_all_sql(self, table: str, schema: str | None = None) -> str:
        return f"SELECT * FROM {quote_identifier(table)}"

    def table_names(self, schema: str | None = None) -> list[str]:
        rows = self._all("SHOW TABLES", what="listing tables")
        return sorted(str(next(iter(row.values()))) for row in rows)

    def probe(self) -> None:
        try:
            with self._lock:
                self.conn.ping(reconnect=False)
        except mysql.connector.Error as exc:
            raise self._query_error(exc, "checking the connection") from exc

    def cancel(self) -> None:
        if not self._streaming or self._connect is None:
            return
        thread_id = int(self.conn.connection_id)
        try:
            with closing(self._connect()) as side, closing(side.cursor()) as cur:
                cur.execute(f"KILL QUERY {thread_id}")
        except mysql.connector.Error as exc:
            raise self._query_error(exc, "cancelling the query") from exc
        logger.info("Killed running MySQL query on connection %d", thread_id)

    def close(self) -> None:
        if self.closed:
            return
        super().close()
        self.conn.close()
