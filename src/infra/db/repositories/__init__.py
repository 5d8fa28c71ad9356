from .base import Row, RowSource
from .mysql_repo import MySQLRowSource
from .postgres_repo import PostgresRowSource

__all__ = ["MySQLRowSource", "PostgresRowSource", "Row", "RowSource"]
