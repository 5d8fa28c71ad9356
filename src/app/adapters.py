from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from core.dtos import ConnectionDescriptor, ExportRequest, HealthDTO
from core.enums import DatabaseKind
from core.errors import BadRequest


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "body"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def _require_mapping(payload: Any) -> Mapping:
    if not isinstance(payload, Mapping):
        raise BadRequest("Request body must be a JSON object")
    return payload


def payload_to_descriptor(payload: Any) -> ConnectionDescriptor:
    try:
        return ConnectionDescriptor.model_validate(dict(_require_mapping(payload)))
    except ValidationError as exc:
        raise BadRequest("Invalid connection details", detail=_describe(exc)) from exc


def payload_to_export_request(payload: Any) -> ExportRequest:
    data = dict(_require_mapping(payload))
    if data.get("tables") is None:
        data["tables"] = []
    try:
        return ExportRequest.model_validate(data)
    except ValidationError as exc:
        raise BadRequest("Invalid export request", detail=_describe(exc)) from exc


def _first(qs: Mapping[str, Sequence[str]], key: str) -> str | None:
    values = qs.get(key) or [None]
    return values[0]


def query_to_kind(qs: Mapping[str, Sequence[str]]) -> DatabaseKind:
    raw = _first(qs, "type")
    if not raw:
        raise BadRequest("Query parameter 'type' is required")
    try:
        return DatabaseKind.from_any(raw)
    except ValueError as exc:
        raise BadRequest("Invalid database type", detail=str(exc)) from exc


def query_to_schema(qs: Mapping[str, Sequence[str]]) -> str | None:
    raw = _first(qs, "schema")
    return raw.strip() or None if raw else None


def health_payload(status: Mapping[DatabaseKind, bool], environment: str) -> dict:
    dto = HealthDTO(
        environment=environment,
        mysql_connected=bool(status.get(DatabaseKind.MYSQL)),
        postgres_connected=bool(status.get(DatabaseKind.POSTGRESQL)),
    )
    return dto.model_dump(by_alias=True)
