"""File-level compression entry point tying the collector and writer together."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, List

from .codec import iter_decoded_blocks
from .collector import Compressor
from .config import CompressionConfig
from .errors import CompressionIOError, FileAccessError, InvalidDataError
from .writer import ProgressCallback, Writer


logger = logging.getLogger(__name__)


@dataclass
class CompressionResult:
    input_path: Path
    output_path: Path
    input_bytes: int
    output_bytes: int
    block_sizes: List[int] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def blocks(self) -> int:
        return len(self.block_sizes)

    @property
    def ratio(self) -> float:
        if not self.input_bytes:
            return 0.0
        return self.output_bytes / self.input_bytes


# ---------------------------------------------------------------------------
# Open / create
# ---------------------------------------------------------------------------


def open_input(path: Path) -> BinaryIO:
    try:
        return open(path, "rb")
    except OSError as exc:
        raise FileAccessError(exc, "Failed to open input file") from exc


def create_output(path: Path) -> BinaryIO:
    try:
        return open(path, "wb")
    except OSError as exc:
        raise FileAccessError(exc, "Failed to create output file") from exc


def verify_output(path: Path, expected_blocks: int) -> None:
    """Decode *path* block by block; raise :class:`InvalidDataError` on mismatch."""

    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise CompressionIOError(exc, "Failed to read output for verification") from exc
    decoded = sum(1 for _ in iter_decoded_blocks(data))
    if decoded != expected_blocks:
        raise InvalidDataError(f"Invalid data: expected {expected_blocks} block(s), decoded {decoded}")


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def run_compression(
    config: CompressionConfig,
    input_path: Path,
    output_path: Path,
    *,
    progress: ProgressCallback = None,
) -> CompressionResult:
    input_path = Path(input_path)
    output_path = Path(output_path)
    compressor = Compressor.from_config(config)

    start = time.monotonic()
    with open_input(input_path) as input_file:
        input_bytes = input_path.stat().st_size
        with create_output(output_path) as output_file:
            chunks = compressor.compress(input_file)
            if progress:
                progress(0, len(chunks))
            written = Writer.write(chunks, output_file, progress=progress)
    elapsed = time.monotonic() - start

    if config.verify:
        verify_output(output_path, len(chunks))

    logger.info(
        "Compressed %s (%d bytes) into %d block(s), %d bytes in %.2fs",
        input_path,
        input_bytes,
        len(chunks),
        written,
        elapsed,
    )
    return CompressionResult(
        input_path=input_path,
        output_path=output_path,
        input_bytes=input_bytes,
        output_bytes=written,
        block_sizes=[chunk.size for chunk in chunks],
        elapsed_seconds=round(elapsed, 2),
    )


__all__ = [
    "CompressionResult",
    "create_output",
    "open_input",
    "run_compression",
    "verify_output",
]
