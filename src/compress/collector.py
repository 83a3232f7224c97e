"""Collector: spawns chunk workers, drains their results and orders the blocks."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from queue import Empty, Queue
from typing import BinaryIO, Callable, Dict, List, Optional, Sequence

from .codec import BEST_COMPRESSION
from .config import CompressionConfig, Ordering, Partition, ReceivePolicy
from .errors import CompressionError, CompressionIOError
from .messages import Chunk, CompressionMessage, Data, Done, Error
from .worker import ByteSource, ChunkWorker, RangeReader, duplicate_handle, plan_ranges


logger = logging.getLogger(__name__)

# Interval used to notice that every sender has gone away
_RECEIVE_POLL_SECONDS = 0.05


def _length_key(chunk: Chunk) -> int:
    return chunk.size


def _sequence_key(chunk: Chunk) -> tuple[int, int]:
    return (chunk.worker, chunk.sequence)


_ORDERING_KEYS: Dict[str, Callable[[Chunk], object]] = {
    "length": _length_key,
    "sequence": _sequence_key,
}


def order_chunks(chunks: Sequence[Chunk], ordering: Ordering = "length") -> List[Chunk]:
    """Drop chunks without data and sort the rest with the given policy.

    ``length`` sorts by ascending compressed size (stable, so ties keep their
    arrival order). ``sequence`` sorts by worker then emission index.
    """

    try:
        key = _ORDERING_KEYS[ordering]
    except KeyError:
        raise ValueError(f"Unknown ordering policy '{ordering}'") from None
    populated = [chunk for chunk in chunks if chunk.compressed_data]
    return sorted(populated, key=key)


class Compressor:
    """Run ``num_threads`` chunk workers against one input handle."""

    def __init__(
        self,
        chunk_size: int = 1024,
        num_threads: int = 4,
        *,
        ordering: Ordering = "length",
        partition: Partition = "shared",
        receive: ReceivePolicy = "bounded",
        level: int = BEST_COMPRESSION,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        if num_threads < 1:
            raise ValueError("num_threads must be positive")
        if ordering not in _ORDERING_KEYS:
            raise ValueError(f"Unknown ordering policy '{ordering}'")
        self.chunk_size = chunk_size
        self.num_threads = num_threads
        self.ordering = ordering
        self.partition = partition
        self.receive = receive
        self.level = level

    @classmethod
    def from_config(cls, config: CompressionConfig) -> "Compressor":
        return cls(
            chunk_size=config.chunk_size,
            num_threads=config.workers,
            ordering=config.ordering,
            partition=config.partition,
            receive=config.receive,
            level=config.level,
        )

    # ------------------------------------------------------------------
    # Worker sources
    # ------------------------------------------------------------------

    @staticmethod
    def _source_path(input_file: BinaryIO) -> str | os.PathLike:
        name = getattr(input_file, "name", None)
        if not isinstance(name, (str, os.PathLike)):
            raise CompressionIOError(
                message=f"Range partitioning needs an input opened from a path, got name={name!r}"
            )
        return name

    def _open_sources(self, input_file: BinaryIO) -> List[ByteSource]:
        sources: List[ByteSource] = []
        try:
            if self.partition == "ranges":
                path = Path(self._source_path(input_file))
                total = os.fstat(input_file.fileno()).st_size
                for byte_range in plan_ranges(total, self.num_threads):
                    sources.append(RangeReader(path, byte_range))
            else:
                for _ in range(self.num_threads):
                    sources.append(duplicate_handle(input_file))
        except OSError as exc:
            for source in sources:
                source.close()
            raise CompressionIOError(exc, "Failed to duplicate input handle") from exc
        return sources

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    @staticmethod
    def _receive(
        channel: "Queue[CompressionMessage]", threads: Sequence[threading.Thread]
    ) -> Optional[CompressionMessage]:
        """Block for the next message; ``None`` once no sender is left."""

        while True:
            try:
                return channel.get(timeout=_RECEIVE_POLL_SECONDS)
            except Empty:
                if any(thread.is_alive() for thread in threads):
                    continue
            try:
                return channel.get_nowait()
            except Empty:
                return None

    def _collect_bounded(
        self, channel: "Queue[CompressionMessage]", threads: Sequence[threading.Thread]
    ) -> tuple[List[Chunk], Optional[CompressionError]]:
        chunks: List[Chunk] = []
        for _ in range(self.num_threads):
            message = self._receive(channel, threads)
            if message is None:
                logger.error("Failed to receive compressed data: all workers exited")
                continue
            if isinstance(message, Data):
                chunks.append(message.to_chunk())
            elif isinstance(message, Error):
                logger.error("Failed to compress data: %s", message.error)
                return chunks, message.error
            elif isinstance(message, Done):
                break
        return chunks, None

    def _collect_until_done(
        self, channel: "Queue[CompressionMessage]", threads: Sequence[threading.Thread]
    ) -> tuple[List[Chunk], Optional[CompressionError]]:
        chunks: List[Chunk] = []
        pending = set(range(self.num_threads))
        while pending:
            message = self._receive(channel, threads)
            if message is None:
                logger.error("Failed to receive compressed data: %d worker(s) never finished", len(pending))
                return chunks, CompressionError(
                    f"{len(pending)} worker(s) exited without reporting completion"
                )
            if isinstance(message, Data):
                chunks.append(message.to_chunk())
            elif isinstance(message, Error):
                logger.error("Failed to compress data: %s", message.error)
                return chunks, message.error
            elif isinstance(message, Done):
                pending.discard(message.worker)
        return chunks, None

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def compress(self, input_file: BinaryIO) -> List[Chunk]:
        """Compress *input_file* and return the ordered chunks.

        Raises the first :class:`CompressionError` reported by a worker. All
        spawned workers are joined before returning, including on failure.
        """

        channel: "Queue[CompressionMessage]" = Queue()
        sources = self._open_sources(input_file)

        threads: List[threading.Thread] = []
        for worker_id, source in enumerate(sources):
            worker = ChunkWorker(channel, self.chunk_size, worker_id=worker_id, level=self.level)
            thread = threading.Thread(
                target=worker.run,
                args=(source,),
                name=f"chunk-worker-{worker_id}",
                daemon=True,
            )
            thread.start()
            threads.append(thread)
        logger.debug("Started %d chunk worker(s), chunk_size=%d", len(threads), self.chunk_size)

        try:
            if self.receive == "until_done":
                chunks, failure = self._collect_until_done(channel, threads)
            else:
                chunks, failure = self._collect_bounded(channel, threads)
        finally:
            for thread in threads:
                thread.join()

        if failure is not None:
            raise failure

        ordered = order_chunks(chunks, self.ordering)
        logger.debug("Collected %d chunk(s), ordering=%s", len(ordered), self.ordering)
        return ordered
