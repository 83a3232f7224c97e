"""Values passed between chunk workers and the collector."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from .errors import CompressionError


@dataclass(frozen=True)
class Chunk:
    """One independently finalized compressed block."""

    compressed_data: Optional[bytes]
    worker: int = 0
    sequence: int = 0

    @property
    def size(self) -> int:
        return len(self.compressed_data) if self.compressed_data is not None else 0


@dataclass(frozen=True)
class Data:
    payload: bytes
    worker: int
    sequence: int

    def to_chunk(self) -> Chunk:
        return Chunk(compressed_data=self.payload, worker=self.worker, sequence=self.sequence)


@dataclass(frozen=True)
class Error:
    error: CompressionError
    worker: int


@dataclass(frozen=True)
class Done:
    worker: int


CompressionMessage = Union[Data, Error, Done]
