"""Error taxonomy shared by the export pipeline and the HTTP layer.

Every error carries a short human ``message`` (safe to show a user) and an
optional ``detail`` holding the raw driver text. The HTTP layer maps
``status`` onto the response code; ``StreamError`` is never rendered as a
response body because by the time it is raised the ZIP headers are gone.
"""

from __future__ import annotations

from typing import Any


class ExportError(Exception):
    status: int = 500
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message if detail is None else f"{self.message}: {detail}")

    def to_payload(self, *, redact: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "message": self.message}
        if self.detail and not redact:
            payload["error"] = self.detail
        return payload


class BadRequest(ExportError):
    status = 400
    default_message = "Bad request"


class NoActiveConnection(ExportError):
    status = 400
    default_message = "No active database connection"


class DatabaseConnectionError(ExportError):
    default_message = "Failed to connect to database"


class QueryError(ExportError):
    default_message = "Database query failed"


class StreamError(ExportError):
    default_message = "Export stream aborted"


class RowShapeError(StreamError):
    default_message = "Row columns do not match the CSV header"
