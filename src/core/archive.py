"""Streaming ZIP assembly.

``zipfile`` detects that the sink cannot ``tell()``/``seek()`` and switches to
data descriptors, so every compressed block is handed to the sink as soon as
deflate emits it. Nothing but the central directory is kept back until
``finalize()``.
"""

from __future__ import annotations

import logging
import zipfile
from collections.abc import Callable, Iterable

from core.errors import StreamError

logger = logging.getLogger(__name__)


class StreamSink:
    """Write-only, non-seekable byte sink that forwards to a transport."""

    def __init__(
        self,
        write: Callable[[bytes], object],
        flush: Callable[[], object] | None = None,
    ) -> None:
        self._write = write
        self._flush = flush
        self.bytes_written = 0
        self.discarding = False

    def write(self, data) -> int:
        n = len(data)
        if self.discarding:
            return n
        try:
            self._write(bytes(data))
        except OSError as exc:
            raise StreamError("Client connection lost", detail=str(exc)) from exc
        self.bytes_written += n
        return n

    def flush(self) -> None:
        if self.discarding or self._flush is None:
            return
        try:
            self._flush()
        except OSError as exc:
            raise StreamError("Client connection lost", detail=str(exc)) from exc

    def discard(self) -> None:
        """Drop every later write (used once the transport is being torn down)."""
        self.discarding = True


class ArchiveMultiplexer:
    """Multiplex named byte streams into one streamed ZIP container."""

    def __init__(self, sink: StreamSink, *, compresslevel: int = 9) -> None:
        self._sink = sink
        self._compresslevel = compresslevel
        self._zip: zipfile.ZipFile | None = None
        self._entry = None
        self._entries: list[str] = []
        self.finalized = False
        self.aborted = False

    @property
    def entries(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def open(self) -> ArchiveMultiplexer:
        if self._zip is not None or self.finalized or self.aborted:
            raise StreamError("Archive already opened")
        self._zip = zipfile.ZipFile(
            self._sink,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=self._compresslevel,
        )
        return self

    def append(self, entry_name: str, chunks: Iterable[bytes]) -> int:
        """Write one archive entry from ``chunks``; returns the uncompressed size."""
        zf = self._require_open()
        size = 0
        # On failure the half-written entry stays referenced for abort().
        # Sizes are unknown up front, so always reserve zip64 fields.
        self._entry = zf.open(entry_name, mode="w", force_zip64=True)
        for chunk in chunks:
            if chunk:
                self._entry.write(chunk)
                size += len(chunk)
        self._entry.close()
        self._entry = None
        self._entries.append(entry_name)
        self._sink.flush()
        return size

    def finalize(self) -> None:
        zf = self._require_open()
        zf.close()
        self._sink.flush()
        self.finalized = True
        logger.debug(
            "Archive finalized with %d entries, %d bytes",
            len(self._entries),
            self._sink.bytes_written,
        )

    def abort(self) -> None:
        """Stop writing; the central directory is never emitted."""
        if self.finalized or self.aborted:
            return
        self.aborted = True
        self._sink.discard()
        for closer in (self._entry, self._zip):
            if closer is None:
                continue
            try:
                closer.close()
            except Exception:
                logger.debug("Ignoring error while discarding archive", exc_info=True)
        self._entry = None
        self._zip = None

    def _require_open(self) -> zipfile.ZipFile:
        if self.aborted:
            raise StreamError("Archive was aborted")
        if self.finalized:
            raise StreamError("Archive already finalized")
        if self._zip is None:
            raise StreamError("Archive not opened")
        return self._zip

    def __enter__(self) -> ArchiveMultiplexer:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.finalize()
        else:
            self.abort()
