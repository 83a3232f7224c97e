from __future__ import annotations

import io
import logging
import os
import random
import sys
import threading
from collections import Counter
from pathlib import Path

import pytest

import compress.collector as collector_module
from compress.codec import decompress_blocks, iter_decoded_blocks
from compress.collector import Compressor, order_chunks
from compress.config import CompressionConfig
from compress.errors import CompressionError, CompressionIOError
from compress.messages import Chunk


def _write(tmp_path: Path, payload: bytes) -> Path:
    path = tmp_path / "input.bin"
    path.write_bytes(payload)
    return path


def _decoded(chunks) -> bytes:
    return b"".join(decompress_blocks(chunk.compressed_data) for chunk in chunks)


class _BrokenSource:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or OSError(5, "Input/output error")
        self.closed = False

    def read(self, size: int) -> bytes:
        raise self.error

    def close(self) -> None:
        self.closed = True


class _SilentWorker:
    """Exit without sending any message, like a worker that died."""

    def __init__(self, *args, **kwargs) -> None:
        pass

    def run(self, source) -> None:
        source.close()


def _live_workers() -> list:
    return [thread for thread in threading.enumerate() if thread.name.startswith("chunk-worker-")]


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def test_order_chunks_sorts_by_ascending_length() -> None:
    chunks = [
        Chunk(compressed_data=b"x" * 30, worker=0, sequence=0),
        Chunk(compressed_data=b"x" * 10, worker=1, sequence=0),
        Chunk(compressed_data=None, worker=2, sequence=0),
        Chunk(compressed_data=b"x" * 20, worker=0, sequence=1),
    ]

    ordered = order_chunks(chunks)

    assert [chunk.size for chunk in ordered] == [10, 20, 30]


def test_order_chunks_keeps_arrival_order_for_ties() -> None:
    first = Chunk(compressed_data=b"aa", worker=2, sequence=0)
    second = Chunk(compressed_data=b"bb", worker=0, sequence=0)

    assert order_chunks([first, second]) == [first, second]


def test_order_chunks_by_sequence() -> None:
    chunks = [
        Chunk(compressed_data=b"c" * 5, worker=1, sequence=0),
        Chunk(compressed_data=b"b" * 50, worker=0, sequence=1),
        Chunk(compressed_data=b"a" * 500, worker=0, sequence=0),
    ]

    ordered = order_chunks(chunks, "sequence")

    assert [(chunk.worker, chunk.sequence) for chunk in ordered] == [(0, 0), (0, 1), (1, 0)]


def test_order_chunks_rejects_unknown_policy() -> None:
    with pytest.raises(ValueError):
        order_chunks([], "offset")  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Compression runs
# ---------------------------------------------------------------------------


def test_single_worker_round_trip(tmp_path: Path) -> None:
    payload = b"the quick brown fox jumps over the lazy dog\n" * 40
    path = _write(tmp_path, payload)

    with path.open("rb") as fh:
        chunks = Compressor(chunk_size=1024, num_threads=1).compress(fh)

    assert len(chunks) == 1
    assert _decoded(chunks) == payload


def test_empty_input_produces_one_empty_block(tmp_path: Path) -> None:
    path = _write(tmp_path, b"")

    with path.open("rb") as fh:
        chunks = Compressor(chunk_size=1024, num_threads=1).compress(fh)

    assert len(chunks) == 1
    assert list(iter_decoded_blocks(chunks[0].compressed_data)) == [b""]


def test_bounded_receive_stops_after_worker_count_messages(tmp_path: Path) -> None:
    # One worker, several blocks: only the first message is consumed
    payload = random.Random(3).randbytes(200_000)
    path = _write(tmp_path, payload)

    with path.open("rb") as fh:
        chunks = Compressor(chunk_size=1024, num_threads=1, receive="bounded").compress(fh)

    assert len(chunks) == 1
    decoded = _decoded(chunks)
    assert 0 < len(decoded) < len(payload)
    assert payload.startswith(decoded)


def test_until_done_single_worker_round_trip(tmp_path: Path) -> None:
    payload = random.Random(5).randbytes(200_000)
    path = _write(tmp_path, payload)

    with path.open("rb") as fh:
        chunks = Compressor(
            chunk_size=1024,
            num_threads=1,
            ordering="sequence",
            receive="until_done",
        ).compress(fh)

    assert len(chunks) > 1
    assert _decoded(chunks) == payload


def test_range_partition_round_trip_with_many_workers(tmp_path: Path) -> None:
    rng = random.Random(9)
    payload = rng.randbytes(150_000) + b"repetitive tail " * 5000
    path = _write(tmp_path, payload)
    config = CompressionConfig(
        chunk_size=2048,
        workers=4,
        ordering="sequence",
        partition="ranges",
        receive="until_done",
    )

    with path.open("rb") as fh:
        chunks = Compressor.from_config(config).compress(fh)

    assert {chunk.worker for chunk in chunks} == {0, 1, 2, 3}
    assert _decoded(chunks) == payload


@pytest.mark.skipif(sys.platform == "win32", reason="relies on POSIX shared file offsets")
def test_shared_cursor_covers_input_in_unspecified_order(tmp_path: Path) -> None:
    """Workers race on one file offset, so block contents are non-deterministic.

    Only the multiset of decoded bytes is stable: each read consumes a
    distinct stretch of the file, but which worker gets which stretch, and
    how blocks interleave, changes between runs.
    """

    payload = random.Random(13).randbytes(120_000)
    path = _write(tmp_path, payload)

    with path.open("rb") as fh:
        chunks = Compressor(chunk_size=1024, num_threads=4, receive="until_done").compress(fh)

    sizes = [chunk.size for chunk in chunks]
    assert sizes == sorted(sizes)
    decoded = _decoded(chunks)
    assert len(decoded) == len(payload)
    assert Counter(decoded) == Counter(payload)


def test_worker_read_failure_fails_the_run(tmp_path: Path, monkeypatch) -> None:
    path = _write(tmp_path, b"data" * 100)
    sources: list[_BrokenSource] = []

    def _broken(handle):
        source = _BrokenSource()
        sources.append(source)
        return source

    monkeypatch.setattr(collector_module, "duplicate_handle", _broken)

    with path.open("rb") as fh:
        with pytest.raises(CompressionIOError):
            Compressor(chunk_size=64, num_threads=4).compress(fh)

    assert len(sources) == 4
    assert all(source.closed for source in sources)
    assert _live_workers() == []


def test_until_done_fails_fast_while_siblings_still_produce(tmp_path: Path, monkeypatch) -> None:
    path = _write(tmp_path, random.Random(17).randbytes(300_000))
    broken = _BrokenSource()
    real_duplicate = collector_module.duplicate_handle
    handed_out: list = []

    def _one_broken(handle):
        source = broken if not handed_out else real_duplicate(handle)
        handed_out.append(source)
        return source

    monkeypatch.setattr(collector_module, "duplicate_handle", _one_broken)

    with path.open("rb") as fh:
        with pytest.raises(CompressionIOError):
            Compressor(chunk_size=1024, num_threads=2, receive="until_done").compress(fh)

    assert broken.closed
    assert handed_out[1].closed
    assert _live_workers() == []


@pytest.mark.parametrize("receive", ["bounded", "until_done"])
def test_unexpected_worker_exception_fails_the_run(tmp_path: Path, monkeypatch, receive: str) -> None:
    path = _write(tmp_path, b"data" * 100)
    monkeypatch.setattr(
        collector_module,
        "duplicate_handle",
        lambda handle: _BrokenSource(ValueError("I/O operation on closed file.")),
    )

    with path.open("rb") as fh:
        with pytest.raises(CompressionError) as excinfo:
            Compressor(chunk_size=64, num_threads=2, receive=receive).compress(fh)

    assert "closed file" in str(excinfo.value)
    assert _live_workers() == []


def test_receive_failure_is_logged_and_skipped(tmp_path: Path, monkeypatch, caplog) -> None:
    path = _write(tmp_path, b"ignored")
    monkeypatch.setattr(collector_module, "ChunkWorker", _SilentWorker)

    with caplog.at_level(logging.ERROR, logger="compress.collector"):
        with path.open("rb") as fh:
            chunks = Compressor(chunk_size=64, num_threads=2).compress(fh)

    assert chunks == []
    failures = [record for record in caplog.records if "Failed to receive" in record.getMessage()]
    assert len(failures) == 2


def test_until_done_fails_when_workers_exit_silently(tmp_path: Path, monkeypatch) -> None:
    path = _write(tmp_path, b"ignored")
    monkeypatch.setattr(collector_module, "ChunkWorker", _SilentWorker)

    with path.open("rb") as fh:
        with pytest.raises(CompressionError, match="without reporting completion"):
            Compressor(chunk_size=64, num_threads=2, receive="until_done").compress(fh)


def test_range_partition_needs_a_named_file(tmp_path: Path) -> None:
    compressor = Compressor(num_threads=2, partition="ranges")

    with pytest.raises(CompressionIOError, match="opened from a path"):
        compressor.compress(io.BytesIO(b"in memory"))

    path = _write(tmp_path, b"payload")
    with path.open("rb") as fh:
        with os.fdopen(os.dup(fh.fileno()), "rb") as anonymous:
            with pytest.raises(CompressionIOError, match="opened from a path"):
                compressor.compress(anonymous)


def test_compressor_rejects_invalid_settings() -> None:
    with pytest.raises(ValueError):
        Compressor(chunk_size=0)
    with pytest.raises(ValueError):
        Compressor(num_threads=0)
    with pytest.raises(ValueError, match="Unknown ordering"):
        Compressor(ordering="offset")  # type: ignore[arg-type]
