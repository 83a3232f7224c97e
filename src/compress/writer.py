"""Write ordered compressed chunks to the destination handle."""

from __future__ import annotations

import logging
from typing import BinaryIO, Callable, Optional, Sequence

from .errors import CompressionIOError
from .messages import Chunk


logger = logging.getLogger(__name__)

ProgressCallback = Optional[Callable[[int, int], None]]


class Writer:
    """Concatenates chunks in the order given; nothing is framed or rolled back."""

    @staticmethod
    def write(
        chunks: Sequence[Chunk],
        output_file: BinaryIO,
        *,
        progress: ProgressCallback = None,
    ) -> int:
        """Write every chunk's bytes and return the number of bytes written."""

        total = len(chunks)
        written = 0
        for index, chunk in enumerate(chunks, start=1):
            if chunk.compressed_data is None:
                continue
            try:
                output_file.write(chunk.compressed_data)
            except OSError as exc:
                logger.error("Failed to write compressed data to output file: %s", exc)
                raise CompressionIOError(exc, "Failed to write compressed data") from exc
            written += len(chunk.compressed_data)
            if progress:
                progress(index, total)
        return written
