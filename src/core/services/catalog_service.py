from __future__ import annotations

from typing import Protocol

from core.enums import DatabaseKind


class Sessions(Protocol):
    def list_tables(self, kind: DatabaseKind, schema: str | None = None) -> list[str]: ...
    def list_schemas(self) -> list[str]: ...
    def status(self) -> dict[DatabaseKind, bool]: ...


class CatalogService:
    """
    Thin pass-through facade for table/schema discovery.
    Keeps the HTTP handlers independent of the session manager.
    """

    def __init__(self, sessions: Sessions) -> None:
        self._sessions = sessions

    def tables(self, kind: DatabaseKind, *, schema: str | None = None) -> list[str]:
        return self._sessions.list_tables(kind, schema)

    def schemas(self) -> list[str]:
        return self._sessions.list_schemas()

    def connected(self) -> dict[DatabaseKind, bool]:
        return self._sessions.status()
