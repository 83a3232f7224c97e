"""Compression-related exceptions."""

from __future__ import annotations


class CompressionError(RuntimeError):
    """Base class for failures surfaced by the compression pipeline."""


class CompressionIOError(CompressionError):
    """Raised when reading, writing, opening or creating a file fails."""

    def __init__(self, cause: OSError | None = None, message: str | None = None) -> None:
        base = message or "I/O error"
        if cause is not None:
            base = f"{base}: {cause}"
        super().__init__(base)
        self.cause = cause


class InvalidDataError(CompressionError):
    """Raised when compressed data cannot be decoded."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Invalid data")


class FileAccessError(CompressionIOError):
    """Raised when the input cannot be opened or the output cannot be created."""
