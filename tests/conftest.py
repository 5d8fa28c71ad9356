import os
import sys
import threading
from decimal import Decimal

import pytest

# Ensure 'src/' is on sys.path for imports like 'from core import enums'
_REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_SRC_PATH = os.path.join(_REPO_ROOT, "src")
if _SRC_PATH not in sys.path:
    sys.path.insert(0, _SRC_PATH)

from app.settings import Settings  # noqa: E402
from core.enums import DatabaseKind  # noqa: E402
from core.errors import DatabaseConnectionError, QueryError  # noqa: E402
from infra.db.repositories.base import RowSource  # noqa: E402

API_ENV_VAR = "API_BASE_URL"


def pytest_addoption(parser):
    parser.addoption(
        "--api-base-url",
        action="store",
        default=None,
        help="Override base URL for contract tests (e.g. http://localhost:3001)",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "contract: mark a test as a contract test")


@pytest.fixture(scope="session")
def api_base_url(pytestconfig):
    # Priority: CLI flag > env var > None (contract tests will skip)
    cli = pytestconfig.getoption("--api-base-url")
    if cli:
        return cli
    return os.environ.get(API_ENV_VAR)


@pytest.fixture
def skip_if_no_api(api_base_url):
    if not api_base_url:
        pytest.skip(
            f"Skipping contract tests: {API_ENV_VAR} is unset and --api-base-url not provided"
        )


# --- In-memory database stand-ins ---

SAMPLE_TABLES = {
    "users": [
        {"id": 1, "name": "Ada", "email": "ada@example.com", "active": True},
        {"id": 2, "name": "Lin, Grace", "email": None, "active": False},
    ],
    "orders": [
        {"id": 10, "user_id": 1, "total": Decimal("9.50"), "note": 'say "hi"\nbye'},
        {"id": 11, "user_id": 2, "total": Decimal("0.00"), "note": ""},
    ],
    "empty_table": [],
}


class FakeRowSource(RowSource):
    """Row source backed by dicts; records every lifecycle call."""

    def __init__(
        self,
        kind,
        tables,
        *,
        schemas=("public", "sales"),
        fail_probe=False,
        fail_tables=(),
        fail_close=False,
    ):
        super().__init__()
        self.kind = kind
        self.tables = tables
        self.schemas = list(schemas)
        self.fail_probe = fail_probe
        self.fail_tables = set(fail_tables)
        self.fail_close = fail_close
        self.fetched = []
        self.listed = []
        self.close_calls = 0
        self.cancel_calls = 0

    def table_names(self, schema=None):
        self.listed.append(schema)
        return sorted(self.tables)

    def schema_names(self):
        if self.kind is not DatabaseKind.POSTGRESQL:
            raise NotImplementedError
        return list(self.schemas)

    def probe(self):
        if self.fail_probe:
            raise QueryError("Failed checking the connection", detail="access denied for user")

    def fetch_rows(self, table, schema=None):
        self.fetched.append((table, schema))
        rows = self.tables[table]
        for i, row in enumerate(rows):
            if table in self.fail_tables and i == len(rows) - 1:
                raise QueryError(f"Failed reading table {table!r}", detail="server closed the connection")
            yield dict(row)

    def cancel(self):
        self.cancel_calls += 1

    def close(self):
        self.close_calls += 1
        super().close()
        if self.fail_close:
            raise RuntimeError("socket already closed")


class FakeOpener:
    """Stands in for infra.db.conn.open_source."""

    def __init__(self, tables=None, *, refuse=False, **source_kwargs):
        self.tables = SAMPLE_TABLES if tables is None else tables
        self.refuse = refuse
        self.source_kwargs = source_kwargs
        self.descriptors = []
        self.opened = []

    def __call__(self, descriptor, settings):
        self.descriptors.append(descriptor)
        if self.refuse:
            raise DatabaseConnectionError(detail="connection refused")
        source = FakeRowSource(descriptor.kind, self.tables, **self.source_kwargs)
        self.opened.append(source)
        return source


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        environment="test",
        allowed_origins=["http://localhost:3000"],
        compression_level=6,
    )


@pytest.fixture
def fake_opener():
    return FakeOpener()


@pytest.fixture
def sessions(settings, fake_opener):
    from infra.db.session import SessionManager

    manager = SessionManager(settings, opener=fake_opener)
    try:
        yield manager
    finally:
        manager.shutdown()


@pytest.fixture
def live_server(settings, sessions):
    """Threaded HTTP server on an ephemeral port, wired to fake sources."""
    from app.server import create_server

    httpd = create_server(settings, sessions=sessions, address=("127.0.0.1", 0))
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield httpd
    finally:
        httpd.shutdown()
        httpd.server_close()
        thread.join(timeout=5)


@pytest.fixture
def base_url(live_server):
    host, port = live_server.server_address[:2]
    return f"http://{host}:{port}"
