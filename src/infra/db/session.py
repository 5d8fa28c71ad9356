"""Connection/session manager: at most one live handle per database kind."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.settings import Settings, get_settings
from core.dtos import ConnectionDescriptor
from core.enums import DatabaseKind
from core.errors import DatabaseConnectionError, ExportError, NoActiveConnection

from .conn import SourceOpener, open_source
from .repositories import RowSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ActiveConnection:
    """A connected row source plus the descriptor it was opened with."""

    descriptor: ConnectionDescriptor
    source: RowSource
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def kind(self) -> DatabaseKind:
        return self.descriptor.kind


class SessionManager:
    """
    Owns the process's database handles.

    ``connect`` replaces whatever was open before (old handles are torn down
    first, teardown failures are only logged) and probes the new handle before
    reporting success. Connect, disconnect and shutdown are serialised with a
    lock; readers look the handle up without it.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        opener: SourceOpener | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._opener = opener or open_source
        self._active: dict[DatabaseKind, ActiveConnection] = {}
        self._lock = threading.Lock()

    @property
    def settings(self) -> Settings:
        return self._settings

    def connect(self, descriptor: ConnectionDescriptor) -> ActiveConnection:
        with self._lock:
            self._teardown_all()
            source = self._opener(descriptor, self._settings)
            try:
                source.probe()
            except ExportError as exc:
                self._close_quietly(source)
                raise DatabaseConnectionError(detail=exc.detail or exc.message) from exc
            active = ActiveConnection(descriptor=descriptor, source=source)
            self._active[descriptor.kind] = active

        logger.info(
            "Connected to %s at %s:%s (database=%r, schema=%r)",
            descriptor.kind.label,
            descriptor.host,
            descriptor.port,
            descriptor.database,
            descriptor.schema_name,
        )
        return active

    def active(self, kind: DatabaseKind) -> ActiveConnection:
        active = self._active.get(kind)
        if active is None:
            raise NoActiveConnection(f"No active {kind.label} connection")
        return active

    def source(self, kind: DatabaseKind) -> RowSource:
        return self.active(kind).source

    def is_connected(self, kind: DatabaseKind) -> bool:
        return kind in self._active

    def status(self) -> dict[DatabaseKind, bool]:
        return {kind: kind in self._active for kind in DatabaseKind}

    def list_tables(self, kind: DatabaseKind, schema: str | None = None) -> list[str]:
        active = self.active(kind)
        return active.source.table_names(schema or active.descriptor.schema_name)

    def list_schemas(self) -> list[str]:
        return self.source(DatabaseKind.POSTGRESQL).schema_names()

    def disconnect(self) -> None:
        with self._lock:
            self._teardown_all()

    def shutdown(self) -> None:
        logger.info("Shutting down database sessions")
        self.disconnect()

    def _teardown_all(self) -> None:
        while self._active:
            kind, active = self._active.popitem()
            logger.info("Closing %s connection", kind.label)
            self._close_quietly(active.source)

    @staticmethod
    def _close_quietly(source: RowSource) -> None:
        try:
            source.close()
        except Exception:
            logger.exception("Error while closing %s connection", source.kind.label)

    def __enter__(self) -> SessionManager:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
