"""Chunked multi-worker compression package."""

from .collector import Compressor, order_chunks
from .config import BoundaryPolicy, CompressionConfig
from .engine import CompressionResult, run_compression
from .errors import CompressionError, CompressionIOError, FileAccessError, InvalidDataError
from .writer import Writer

__all__ = [
    "BoundaryPolicy",
    "CompressionConfig",
    "CompressionError",
    "CompressionIOError",
    "CompressionResult",
    "FileAccessError",
    "Compressor",
    "InvalidDataError",
    "Writer",
    "order_chunks",
    "run_compression",
]
