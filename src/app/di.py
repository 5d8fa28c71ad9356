from __future__ import annotations

from app.settings import Settings, get_settings
from core.services.catalog_service import CatalogService
from core.services.export_service import ExportService
from infra.db.conn import SourceOpener
from infra.db.session import SessionManager

# -----------------------------
# Factories used by the server and route handlers
# -----------------------------


def build_session_manager(
    settings: Settings | None = None, *, opener: SourceOpener | None = None
) -> SessionManager:
    """One per server process; tests pass an ``opener`` returning fake sources."""
    return SessionManager(settings or get_settings(), opener=opener)


def get_catalog_service(sessions: SessionManager) -> CatalogService:
    return CatalogService(sessions)


def get_export_service(sessions: SessionManager) -> ExportService:
    """A fresh service per export request (it carries that request's state)."""
    settings = sessions.settings
    return ExportService(
        sessions,
        compresslevel=settings.compression_level,
        chunk_size=settings.csv_chunk_size,
    )
