import io
import struct
import zipfile

import pytest

from core.archive import ArchiveMultiplexer, StreamSink
from core.errors import StreamError


class _Collector:
    """Non-seekable transport: only write() and flush()."""

    def __init__(self):
        self.chunks = []
        self.flushes = 0

    def write(self, data):
        self.chunks.append(bytes(data))

    def flush(self):
        self.flushes += 1

    @property
    def data(self):
        return b"".join(self.chunks)


def _archive(collector, **kwargs):
    return ArchiveMultiplexer(StreamSink(collector.write, collector.flush), **kwargs)


def test_entries_in_order_and_decompress_to_their_bytes():
    out = _Collector()
    with _archive(out) as archive:
        archive.append("users.csv", [b"id,name\n", b"1,Ada\n"])
        archive.append("orders.csv", iter([b"id\n10\n"]))

    with zipfile.ZipFile(io.BytesIO(out.data)) as zf:
        assert zf.namelist() == ["users.csv", "orders.csv"]
        assert zf.read("users.csv") == b"id,name\n1,Ada\n"
        assert zf.read("orders.csv") == b"id\n10\n"
        assert all(i.compress_type == zipfile.ZIP_DEFLATED for i in zf.infolist())
    assert archive.entries == ("users.csv", "orders.csv")
    assert archive.finalized


def test_entries_reserve_zip64_sizes_in_local_header():
    out = _Collector()
    with _archive(out) as archive:
        archive.append("users.csv", [b"id\n1\n"])

    data = out.data
    name_len, extra_len = struct.unpack_from("<HH", data, 26)
    assert data[30 : 30 + name_len] == b"users.csv"
    extra = data[30 + name_len : 30 + name_len + extra_len]
    # 0x0001 is the zip64 extended information block.
    assert struct.unpack_from("<HH", extra) == (1, 16)

    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert zf.read("users.csv") == b"id\n1\n"


def test_empty_entry_is_still_listed():
    out = _Collector()
    with _archive(out) as archive:
        archive.append("empty.csv", [])

    with zipfile.ZipFile(io.BytesIO(out.data)) as zf:
        assert zf.read("empty.csv") == b""


def test_bytes_are_forwarded_before_finalize():
    out = _Collector()
    archive = _archive(out).open()
    archive.append("a.csv", [b"x" * 10_000])
    written_before_finalize = len(out.data)

    assert written_before_finalize > 0
    assert out.flushes >= 1

    archive.finalize()
    assert len(out.data) > written_before_finalize


def test_append_returns_uncompressed_size():
    out = _Collector()
    archive = _archive(out, compresslevel=1).open()
    assert archive.append("a.csv", [b"abc", b"", b"de"]) == 5
    archive.finalize()


def test_append_outside_open_archive_raises():
    out = _Collector()
    archive = _archive(out)
    with pytest.raises(StreamError):
        archive.append("a.csv", [b"x"])

    archive.open()
    archive.finalize()
    with pytest.raises(StreamError):
        archive.append("b.csv", [b"y"])


def test_open_twice_raises():
    archive = _archive(_Collector()).open()
    with pytest.raises(StreamError):
        archive.open()


def test_abort_mid_entry_never_writes_central_directory():
    out = _Collector()

    def failing_chunks():
        yield b"id\n1\n"
        raise RuntimeError("query died")

    archive = _archive(out).open()
    with pytest.raises(RuntimeError):
        archive.append("a.csv", failing_chunks())
    size_at_failure = len(out.data)
    archive.abort()

    assert archive.aborted
    assert len(out.data) == size_at_failure
    with pytest.raises(zipfile.BadZipFile):
        zipfile.ZipFile(io.BytesIO(out.data))
    with pytest.raises(StreamError):
        archive.append("b.csv", [b"z"])


def test_sink_oserror_becomes_stream_error():
    def broken_write(data):
        raise BrokenPipeError("client went away")

    archive = ArchiveMultiplexer(StreamSink(broken_write)).open()
    with pytest.raises(StreamError) as excinfo:
        archive.append("a.csv", [b"x" * 200_000])
    archive.abort()
    assert "client went away" in excinfo.value.detail


def test_discarding_sink_drops_writes():
    out = _Collector()
    sink = StreamSink(out.write, out.flush)
    sink.discard()
    assert sink.write(b"abc") == 3
    sink.flush()
    assert out.chunks == [] and out.flushes == 0
