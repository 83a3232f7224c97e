"""Chunk worker: reads input, feeds a private encoder and emits finished blocks."""

from __future__ import annotations

import logging
import os
import zlib
from dataclasses import dataclass
from pathlib import Path
from queue import Queue
from typing import BinaryIO, Callable, List, Protocol

from .codec import BEST_COMPRESSION, DeflateBlockEncoder, new_encoder
from .errors import CompressionError, CompressionIOError
from .messages import CompressionMessage, Data, Done, Error


logger = logging.getLogger(__name__)

EncoderFactory = Callable[[int], DeflateBlockEncoder]


class ByteSource(Protocol):
    def read(self, size: int) -> bytes: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Input handles
# ---------------------------------------------------------------------------


def duplicate_handle(handle: BinaryIO) -> BinaryIO:
    """Return an unbuffered handle on a duplicate of *handle*'s descriptor.

    The duplicate shares the file offset with the original, so reads issued
    through several duplicates race for the same cursor.
    """

    fd = os.dup(handle.fileno())
    try:
        return os.fdopen(fd, "rb", buffering=0)
    except OSError:
        os.close(fd)
        raise


@dataclass(frozen=True)
class ByteRange:
    offset: int
    length: int


def plan_ranges(total_size: int, parts: int) -> List[ByteRange]:
    """Split ``[0, total_size)`` into *parts* contiguous ranges.

    Trailing ranges may be empty when the file is smaller than *parts* bytes.
    """

    parts = max(1, parts)
    span = -(-total_size // parts) if total_size else 0
    ranges: List[ByteRange] = []
    for index in range(parts):
        start = min(index * span, total_size)
        end = min(start + span, total_size)
        ranges.append(ByteRange(offset=start, length=end - start))
    return ranges


class RangeReader:
    """Independent read handle restricted to one byte range of a file."""

    def __init__(self, path: Path, byte_range: ByteRange) -> None:
        self._fh = open(path, "rb")
        self._fh.seek(byte_range.offset)
        self._remaining = byte_range.length

    def read(self, size: int) -> bytes:
        if self._remaining <= 0:
            return b""
        data = self._fh.read(min(size, self._remaining))
        self._remaining -= len(data)
        return data

    def close(self) -> None:
        self._fh.close()


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------


class ChunkWorker:
    """Compress whatever this worker manages to read from its source.

    A block is finalized as soon as the encoder's *compressed* buffer reaches
    ``chunk_size``; the remainder is finalized once the source is exhausted.
    Failures are reported through the channel, never raised.
    """

    def __init__(
        self,
        channel: "Queue[CompressionMessage]",
        chunk_size: int,
        *,
        worker_id: int = 0,
        level: int = BEST_COMPRESSION,
        encoder_factory: EncoderFactory = new_encoder,
    ) -> None:
        self.channel = channel
        self.chunk_size = chunk_size
        self.worker_id = worker_id
        self.level = level
        self.encoder_factory = encoder_factory
        self._sequence = 0

    def _emit_block(self, encoder: DeflateBlockEncoder) -> None:
        block = encoder.finish()
        logger.debug("[worker-%d] block %d: %d bytes", self.worker_id, self._sequence, len(block))
        self.channel.put(Data(payload=block, worker=self.worker_id, sequence=self._sequence))
        self._sequence += 1

    def run(self, source: ByteSource) -> None:
        try:
            self._run(source)
        finally:
            try:
                source.close()
            except OSError as exc:
                logger.warning("[worker-%d] Failed to close input handle: %s", self.worker_id, exc)

    def _run(self, source: ByteSource) -> None:
        try:
            encoder = self.encoder_factory(self.level)
            while True:
                data = source.read(self.chunk_size)
                if not data:
                    break
                encoder.write(data)
                if encoder.buffered_len >= self.chunk_size:
                    self._emit_block(encoder)
                    encoder = self.encoder_factory(self.level)
            self._emit_block(encoder)
        except (OSError, zlib.error) as exc:
            cause = exc if isinstance(exc, OSError) else OSError(str(exc))
            self.channel.put(Error(error=CompressionIOError(cause), worker=self.worker_id))
            return
        except Exception as exc:
            logger.exception("[worker-%d] Unexpected failure", self.worker_id)
            error = CompressionError(f"Worker {self.worker_id} failed: {exc!r}")
            self.channel.put(Error(error=error, worker=self.worker_id))
            return
        self.channel.put(Done(worker=self.worker_id))
