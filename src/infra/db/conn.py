# filepath: src/infra/db/conn.py
from __future__ import annotations

import functools
import logging
from collections.abc import Callable

import mysql.connector
import psycopg2
from psycopg2.pool import ThreadedConnectionPool

from app.settings import Settings, get_settings
from core.dtos import ConnectionDescriptor
from core.enums import DatabaseKind
from core.errors import DatabaseConnectionError

from .repositories import MySQLRowSource, PostgresRowSource, RowSource

logger = logging.getLogger(__name__)

SourceOpener = Callable[[ConnectionDescriptor, Settings], RowSource]


def open_mysql(descriptor: ConnectionDescriptor, settings: Settings) -> MySQLRowSource:
    """
    Open one mysql.connector connection. ``consume_results`` lets a cursor be
    closed before all streamed rows were read (aborted exports). The same
    parameters open the side connection that issues ``KILL QUERY``.
    """
    connect = functools.partial(
        mysql.connector.connect,
        host=descriptor.host,
        port=descriptor.port,
        user=descriptor.user,
        password=descriptor.password.get_secret_value(),
        database=descriptor.database or None,
        connection_timeout=settings.request_timeout,
        autocommit=True,
        consume_results=True,
    )
    try:
        conn = connect()
    except mysql.connector.Error as exc:
        raise DatabaseConnectionError(detail=str(exc)) from exc
    return MySQLRowSource(conn, batch_size=settings.fetch_batch_size, connect=connect)


def open_postgres(descriptor: ConnectionDescriptor, settings: Settings) -> PostgresRowSource:
    """Open a threaded pool; ``minconn=1`` makes bad credentials fail here."""
    try:
        pool = ThreadedConnectionPool(
            1,
            settings.max_pool_size,
            host=descriptor.host,
            port=descriptor.port,
            user=descriptor.user,
            password=descriptor.password.get_secret_value(),
            dbname=descriptor.database or None,
            connect_timeout=settings.request_timeout,
        )
    except psycopg2.Error as exc:
        raise DatabaseConnectionError(detail=str(exc)) from exc
    return PostgresRowSource(
        pool, schema=descriptor.schema_name, batch_size=settings.fetch_batch_size
    )


OPENERS: dict[DatabaseKind, SourceOpener] = {
    DatabaseKind.MYSQL: open_mysql,
    DatabaseKind.POSTGRESQL: open_postgres,
}


def open_source(descriptor: ConnectionDescriptor, settings: Settings | None = None) -> RowSource:
    settings = settings or get_settings()
    opener = OPENERS[descriptor.kind]
    logger.info(
        "Opening %s connection to %s:%s/%s as %s",
        descriptor.kind.label,
        descriptor.host,
        descriptor.port,
        descriptor.database,
        descriptor.user,
    )
    return opener(descriptor, settings)
