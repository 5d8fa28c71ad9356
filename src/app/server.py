"""
Table export web API (lightweight threaded HTTP server + Jinja form page).

Routes:
* GET  "/"               - Connection / table picker form (templates/index.html)
* GET  "/health"         - Liveness + which database kinds are connected
* POST "/api/connect"    - Open a MySQL or PostgreSQL session (replaces any previous one)
* POST "/api/disconnect" - Close every open session
* GET  "/api/tables"     - Table names for ?type=mysql|postgresql[&schema=...]
* GET  "/api/schemas"    - PostgreSQL schemas
* POST "/api/export"     - ZIP of one <table>.csv per requested table, streamed

Architecture:
* Session state lives on the server object (``ExportHTTPServer.sessions``), never in globals.
* Export requests are validated before any byte is written; once the ZIP headers
  are out, failures close the connection instead of producing a JSON body.
* CORS is answered here: allowed origins come from settings, everything goes in development.

Dependencies:
* Standard library http.server + Jinja2 for the form page. Database drivers live in infra.db.

Usage:
    python3 src/app/server.py
"""

from __future__ import annotations

import json
import logging
import signal
import sys
import threading
from collections.abc import Mapping
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import parse_qs, urlparse

from jinja2 import Environment, FileSystemLoader, select_autoescape

# Ensure repo root is on sys.path when running as `python3 src/app/server.py`
REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(REPO_ROOT / "src"))

from app import adapters  # noqa: E402
from app.di import build_session_manager, get_catalog_service, get_export_service  # noqa: E402
from app.logging_config import configure_logging  # noqa: E402
from app.settings import Settings, get_settings  # noqa: E402
from core.enums import DatabaseKind  # noqa: E402
from core.errors import BadRequest, ExportError  # noqa: E402
from infra.db.session import SessionManager  # noqa: E402

logger = logging.getLogger(__name__)

_BASE_DIR = Path(__file__).resolve().parent
_TEMPLATE_DIR = (_BASE_DIR / "templates").resolve()

_jinja_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
    enable_async=False,
)


def _render_template(name: str, **context) -> str:
    tmpl = _jinja_env.get_template(name)
    return tmpl.render(**context)


class ExportHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address, handler_cls, *, settings: Settings, sessions: SessionManager):
        self.settings = settings
        self.sessions = sessions
        super().__init__(address, handler_cls)


class HandlerTransport:
    """Binds the export orchestrator to one request's socket."""

    def __init__(self, handler: Handler) -> None:
        self._handler = handler

    def start(self, headers: Mapping[str, str]) -> None:
        h = self._handler
        h.send_response(200)
        for key, value in headers.items():
            h.send_header(key, value)
        h._send_cors_headers()
        h.end_headers()
        h.headers_sent = True

    def write(self, data: bytes) -> None:
        self._handler.wfile.write(data)

    def flush(self) -> None:
        self._handler.wfile.flush()

    def abort(self) -> None:
        self._handler.close_connection = True


# --------------------------------------------------------------------------- request-handler
class Handler(BaseHTTPRequestHandler):
    server: ExportHTTPServer
    headers_sent = False

    # ------------------------------ routing
    def do_GET(self):  # noqa: N802
        parsed = urlparse(self.path)
        path = parsed.path
        qs = parse_qs(parsed.query)

        if path in ("/", "/index.html"):
            return self._dispatch(self._serve_index)
        if path == "/health":
            return self._dispatch(self._serve_health)
        if path == "/api/tables":
            return self._dispatch(lambda: self._serve_tables(qs))
        if path == "/api/schemas":
            return self._dispatch(self._serve_schemas)
        return self._not_found()

    def do_POST(self):  # noqa: N802
        path = urlparse(self.path).path
        routes = {
            "/api/connect": self._handle_connect,
            "/api/disconnect": self._handle_disconnect,
            "/api/export": self._handle_export,
        }
        route = routes.get(path)
        if route is None:
            return self._not_found()
        return self._dispatch(route)

    def do_OPTIONS(self):  # noqa: N802
        if not self.server.settings.origin_allowed(self.headers.get("Origin")):
            return self._send_json(403, {"success": False, "message": "Not allowed by CORS"})
        self.send_response(200)
        self._send_cors_headers()
        self.send_header("Access-Control-Allow-Methods", "GET, POST, PUT, DELETE, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type, Authorization")
        self.send_header("Content-Length", "0")
        self.end_headers()
        self.headers_sent = True

    def _dispatch(self, route) -> None:
        settings = self.server.settings
        try:
            route()
        except ExportError as exc:
            if self.headers_sent:
                logger.error("%s %s failed after headers were sent: %s", self.command, self.path, exc)
                self.close_connection = True
                return
            if exc.status >= 500:
                logger.error("%s %s failed: %s", self.command, self.path, exc)
            else:
                logger.info("%s %s rejected: %s", self.command, self.path, exc)
            self._send_json(exc.status, exc.to_payload(redact=settings.redact_errors))
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unhandled error in %s %s", self.command, self.path)
            if self.headers_sent:
                self.close_connection = True
                return
            payload = {"success": False, "message": "Internal server error"}
            if not settings.redact_errors:
                payload["error"] = str(exc)
            self._send_json(500, payload)

    # ------------------------------ JSON helpers
    def _send_json(self, status: int, payload) -> None:
        data = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(data)))
        self._send_cors_headers()
        self.end_headers()
        self.headers_sent = True
        self.wfile.write(data)

    def _read_json(self):
        try:
            length = int(self.headers.get("Content-Length", "0"))
        except ValueError:
            length = 0
        if length < 0:
            raise BadRequest("Invalid Content-Length", detail=str(length))
        body = self.rfile.read(length) if length else b""
        if not body:
            return {}
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise BadRequest("Request body is not valid JSON", detail=str(exc)) from exc

    def _send_cors_headers(self) -> None:
        origin = self.headers.get("Origin")
        if origin and self.server.settings.origin_allowed(origin):
            self.send_header("Access-Control-Allow-Origin", origin)
            self.send_header("Access-Control-Allow-Credentials", "true")
            self.send_header("Vary", "Origin")

    # ------------------------------ pages
    def _serve_index(self):
        html_doc = _render_template(
            "index.html",
            kinds=list(DatabaseKind),
            environment=self.server.settings.environment,
        )
        data = html_doc.encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.headers_sent = True
        self.wfile.write(data)

    def _serve_health(self):
        connected = get_catalog_service(self.server.sessions).connected()
        payload = adapters.health_payload(connected, self.server.settings.environment)
        self._send_json(200, payload)

    # ------------------------------ API
    def _handle_connect(self):
        descriptor = adapters.payload_to_descriptor(self._read_json())
        self.server.sessions.connect(descriptor)
        self._send_json(200, {"success": True, "message": "Successfully connected to database"})

    def _handle_disconnect(self):
        self.server.sessions.disconnect()
        self._send_json(200, {"success": True, "message": "Disconnected"})

    def _serve_tables(self, qs):
        kind = adapters.query_to_kind(qs)
        schema = adapters.query_to_schema(qs)
        tables = get_catalog_service(self.server.sessions).tables(kind, schema=schema)
        self._send_json(200, {"success": True, "tables": tables})

    def _serve_schemas(self):
        schemas = get_catalog_service(self.server.sessions).schemas()
        self._send_json(200, {"success": True, "schemas": schemas})

    def _handle_export(self):
        request = adapters.payload_to_export_request(self._read_json())
        service = get_export_service(self.server.sessions)
        plan = service.prepare(request)
        result = service.stream(plan, HandlerTransport(self))
        logger.info(
            "Export of %d table(s) finished: %d bytes",
            len(result.tables),
            result.archive_bytes,
        )

    def _not_found(self):
        self._send_json(404, {"success": False, "message": "Not Found"})

    def log_message(self, format, *args):  # noqa: A002
        logger.info("%s - %s", self.address_string(), format % args)


# --------------------------------------------------------------------------- bootstrap
def create_server(
    settings: Settings | None = None,
    *,
    sessions: SessionManager | None = None,
    address: tuple[str, int] | None = None,
) -> ExportHTTPServer:
    settings = settings or get_settings()
    sessions = sessions or build_session_manager(settings)
    address = address or (settings.host, settings.port)
    return ExportHTTPServer(address, Handler, settings=settings, sessions=sessions)


def main():
    settings = get_settings()
    configure_logging(settings)
    httpd = create_server(settings)

    def _on_sigterm(signum, frame):
        logger.info("Received signal %s, stopping...", signum)
        # shutdown() blocks until serve_forever returns, so call it off the serving thread.
        threading.Thread(target=httpd.shutdown, daemon=True).start()

    signal.signal(signal.SIGTERM, _on_sigterm)

    host, port = httpd.server_address[:2]
    logger.info("Server running on http://%s:%s in %s mode", host, port, settings.environment)
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        logger.info("Stopping...")
    finally:
        httpd.sessions.shutdown()
        httpd.server_close()


if __name__ == "__main__":
    main()
