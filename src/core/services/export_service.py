"""Export orchestration: validate, then stream each table into one ZIP.

One ``ExportService`` drives one export request through

    VALIDATING -> HEADERS_SENT -> STREAMING -> FINALIZED | ABORTED

Everything that can be rejected is rejected in ``prepare()`` while the
response can still be a JSON error. After ``transport.start()`` there is no
way back: any failure cancels the query, drops the archive and asks the
transport to close the connection.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from core.archive import ArchiveMultiplexer, StreamSink
from core.csv_encoder import DEFAULT_CHUNK_SIZE, CsvEncoder
from core.dtos import ConnectionDescriptor, ExportRequest
from core.enums import DatabaseKind, ExportState
from core.errors import BadRequest, StreamError

logger = logging.getLogger(__name__)

ZIP_HEADERS = {
    "Content-Type": "application/zip",
    "Content-Disposition": "attachment; filename=export.zip",
}


class RowSource(Protocol):
    def fetch_rows(self, table: str, schema: str | None = None) -> Iterable[Mapping[str, Any]]: ...
    def cancel(self) -> None: ...


class ActiveSession(Protocol):
    @property
    def descriptor(self) -> ConnectionDescriptor: ...
    @property
    def source(self) -> RowSource: ...


class Sessions(Protocol):
    def active(self, kind: DatabaseKind) -> ActiveSession: ...
    def list_tables(self, kind: DatabaseKind, schema: str | None = None) -> list[str]: ...


class ExportTransport(Protocol):
    def start(self, headers: Mapping[str, str]) -> None: ...
    def write(self, data: bytes) -> Any: ...
    def flush(self) -> None: ...
    def abort(self) -> None: ...


@dataclass(frozen=True, slots=True)
class ExportPlan:
    kind: DatabaseKind
    schema: str
    tables: tuple[str, ...]
    source: RowSource


@dataclass(slots=True)
class TableExport:
    table: str
    entry_name: str
    rows: int
    csv_bytes: int
    seconds: float


@dataclass(slots=True)
class ExportResult:
    tables: list[TableExport] = field(default_factory=list)
    archive_bytes: int = 0


def entry_name_for(table: str) -> str:
    return f"{table}.csv"


class ExportService:
    def __init__(
        self,
        sessions: Sessions,
        *,
        compresslevel: int = 9,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._sessions = sessions
        self._compresslevel = compresslevel
        self._chunk_size = chunk_size
        self.state = ExportState.VALIDATING

    @property
    def headers_sent(self) -> bool:
        return self.state is not ExportState.VALIDATING

    def prepare(self, request: ExportRequest) -> ExportPlan:
        """Validate ``request``; raises before any response byte exists."""
        self.state = ExportState.VALIDATING
        if not request.tables:
            raise BadRequest("No tables selected for export")

        active = self._sessions.active(request.kind)
        schema = request.schema_name or active.descriptor.schema_name
        known = set(self._sessions.list_tables(request.kind, schema))
        unknown = [t for t in dict.fromkeys(request.tables) if t not in known]
        if unknown:
            raise BadRequest("Unknown table(s) requested", detail=", ".join(unknown))

        return ExportPlan(
            kind=request.kind,
            schema=schema,
            tables=tuple(request.tables),
            source=active.source,
        )

    def stream(self, plan: ExportPlan, transport: ExportTransport) -> ExportResult:
        transport.start(ZIP_HEADERS)
        self.state = ExportState.HEADERS_SENT

        sink = StreamSink(transport.write, transport.flush)
        archive = ArchiveMultiplexer(sink, compresslevel=self._compresslevel)
        result = ExportResult()
        rows: Iterator[Mapping[str, Any]] | None = None
        try:
            archive.open()
            self.state = ExportState.STREAMING
            for table in plan.tables:
                started = time.monotonic()
                encoder = CsvEncoder(chunk_size=self._chunk_size)
                rows = iter(plan.source.fetch_rows(table, plan.schema))
                size = archive.append(entry_name_for(table), encoder.encode(rows))
                rows = None
                elapsed = time.monotonic() - started
                result.tables.append(
                    TableExport(table, entry_name_for(table), encoder.rows_written, size, elapsed)
                )
                logger.info(
                    "Exported %s table %r: %d rows, %d bytes in %.2fs",
                    plan.kind.label,
                    table,
                    encoder.rows_written,
                    size,
                    elapsed,
                )
            archive.finalize()
        except Exception as exc:
            self.state = ExportState.ABORTED
            logger.error("Export aborted after %d table(s): %s", len(result.tables), exc)
            self._abort(plan, archive, transport, rows)
            if isinstance(exc, StreamError):
                raise
            raise StreamError(detail=str(exc)) from exc

        self.state = ExportState.FINALIZED
        result.archive_bytes = sink.bytes_written
        return result

    def run(self, request: ExportRequest, transport: ExportTransport) -> ExportResult:
        return self.stream(self.prepare(request), transport)

    @staticmethod
    def _abort(
        plan: ExportPlan,
        archive: ArchiveMultiplexer,
        transport: ExportTransport,
        rows: Iterator[Mapping[str, Any]] | None,
    ) -> None:
        # Cancel first so closing the cursor does not wait on the rest of the table.
        steps = [plan.source.cancel]
        close_rows = getattr(rows, "close", None)
        if close_rows is not None:
            steps.append(close_rows)
        steps += [archive.abort, transport.abort]
        for step in steps:
            try:
                step()
            except Exception:
                logger.exception("Error while aborting export")
