from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from contextlib import AbstractContextManager
from typing import Any

from core.enums import DatabaseKind
from core.errors import QueryError

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]

DEFAULT_BATCH_SIZE = 1000


class RowSource:
    """
    Uniform read-only view over one live database handle.

    Subclasses provide ``_cursor()`` (a context manager yielding a DB-API
    cursor whose rows are mappings), identifier quoting, and the catalog
    queries for their server.
    """

    kind: DatabaseKind
    driver_errors: tuple[type[BaseException], ...] = ()

    def __init__(self, *, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.batch_size = max(1, batch_size)
        self.closed = False

    # --- subclass hooks ---
    def _cursor(self, *, streaming: bool = False) -> AbstractContextManager[Any]:
        raise NotImplementedError

    def select_all_sql(self, table: str, schema: str | None = None) -> Any:
        raise NotImplementedError

    def table_names(self, schema: str | None = None) -> list[str]:
        raise NotImplementedError

    def schema_names(self) -> list[str]:
        raise NotImplementedError(f"{self.kind.label} has no schema listing")

    def probe(self) -> None:
        raise NotImplementedError

    def cancel(self) -> None:
        """Best-effort cancellation of in-flight queries."""

    def close(self) -> None:
        self.closed = True

    # --- shared helpers ---
    def fetch_rows(self, table: str, schema: str | None = None) -> Iterator[Row]:
        """Yield every row of ``table``; reads ``batch_size`` rows at a time."""
        query = self.select_all_sql(table, schema)
        yield from self._iter(query, streaming=True, what=f"reading table {table!r}")

    def _all(
        self, sql: Any, params: Sequence[Any] | None = None, *, what: str = "running query"
    ) -> list[Row]:
        try:
            with self._cursor() as cur:
                cur.execute(sql, params)
                return list(cur.fetchall())
        except self.driver_errors as exc:
            raise self._query_error(exc, what) from exc

    def _iter(
        self,
        sql: Any,
        params: Sequence[Any] | None = None,
        *,
        streaming: bool = False,
        what: str = "running query",
    ) -> Iterator[Row]:
        try:
            with self._cursor(streaming=streaming) as cur:
                cur.execute(sql, params)
                while True:
                    batch = cur.fetchmany(self.batch_size)
                    if not batch:
                        break
                    yield from batch
        except self.driver_errors as exc:
            raise self._query_error(exc, what) from exc

    def _query_error(self, exc: BaseException, what: str) -> QueryError:
        logger.warning("%s error while %s: %s", self.kind.label, what, exc)
        return QueryError(f"Failed {what}", detail=str(exc))
