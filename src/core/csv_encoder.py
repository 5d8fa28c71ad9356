"""Row -> CSV rendering for table exports.

The header comes from the first row's keys in their natural order and every
following row is written positionally against it. A row with a different
key set raises ``RowShapeError`` rather than producing misaligned columns.
Output is yielded as UTF-8 byte chunks so the archive writer can forward it
without holding the whole table.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Iterator, Mapping
from datetime import date, datetime, time
from typing import Any

from core.errors import RowShapeError

DEFAULT_CHUNK_SIZE = 64 * 1024


def render_value(value: Any) -> str:
    """Textual form of a single field; ``None`` becomes an empty field."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return str(value)


class CsvEncoder:
    def __init__(self, *, chunk_size: int = DEFAULT_CHUNK_SIZE, encoding: str = "utf-8") -> None:
        self.chunk_size = max(1, chunk_size)
        self.encoding = encoding
        self.rows_written = 0
        self.columns: list[str] = []

    def encode(self, rows: Iterable[Mapping[str, Any]]) -> Iterator[bytes]:
        self.rows_written = 0
        self.columns = []

        out = io.StringIO()
        writer = csv.writer(out, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
        keys: list[Any] | None = None
        key_set: frozenset[Any] = frozenset()

        for row in rows:
            if keys is None:
                keys = list(row.keys())
                key_set = frozenset(keys)
                self.columns = [str(k) for k in keys]
                writer.writerow(self.columns)
            elif len(row) != len(keys) or frozenset(row.keys()) != key_set:
                raise RowShapeError(
                    detail=f"row {self.rows_written + 1} has columns {list(row.keys())}, "
                    f"expected {self.columns}"
                )

            writer.writerow([render_value(row[k]) for k in keys])
            self.rows_written += 1

            if out.tell() >= self.chunk_size:
                yield out.getvalue().encode(self.encoding)
                out.seek(0)
                out.truncate(0)

        tail = out.getvalue()
        if tail:
            yield tail.encode(self.encoding)


def encode(
    rows: Iterable[Mapping[str, Any]], *, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> Iterator[bytes]:
    """Encode ``rows`` to CSV; zero rows produce zero bytes."""
    return CsvEncoder(chunk_size=chunk_size).encode(rows)
