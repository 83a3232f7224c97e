"""Raw DEFLATE block encoder and the matching resynchronizing decoder."""

from __future__ import annotations

import zlib
from typing import Iterator

from .errors import InvalidDataError

BEST_COMPRESSION = 9
# Negative window bits select a raw deflate stream (no zlib header or trailer)
RAW_DEFLATE_WBITS = -zlib.MAX_WBITS


class DeflateBlockEncoder:
    """Push-style encoder producing one finalized raw deflate block.

    Compressed output is accumulated in an internal buffer whose length is
    exposed through :attr:`buffered_len`. :meth:`finish` returns everything
    pushed since creation as a single block; the encoder cannot be reused
    afterwards.
    """

    def __init__(self, level: int = BEST_COMPRESSION) -> None:
        self._compressor = zlib.compressobj(
            level=level,
            method=zlib.DEFLATED,
            wbits=RAW_DEFLATE_WBITS,
            memLevel=zlib.DEF_MEM_LEVEL,
            strategy=zlib.Z_DEFAULT_STRATEGY,
        )
        self._buffer = bytearray()
        self._finished = False

    @property
    def buffered_len(self) -> int:
        return len(self._buffer)

    @property
    def finished(self) -> bool:
        return self._finished

    def write(self, data: bytes) -> None:
        if self._finished:
            raise ValueError("encoder already finished")
        self._buffer += self._compressor.compress(data)

    def finish(self) -> bytes:
        if self._finished:
            raise ValueError("encoder already finished")
        self._buffer += self._compressor.flush(zlib.Z_FINISH)
        self._finished = True
        block = bytes(self._buffer)
        self._buffer = bytearray()
        return block


def new_encoder(level: int = BEST_COMPRESSION) -> DeflateBlockEncoder:
    """Return a fresh encoder; every compressed block needs its own instance."""

    return DeflateBlockEncoder(level)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def iter_decoded_blocks(data: bytes) -> Iterator[bytes]:
    """Yield the decoded payload of each raw deflate stream in *data*.

    Blocks are concatenated back-to-back without framing, so decoding
    restarts on the bytes left over (``unused_data``) once a stream ends.
    """

    remaining = bytes(data)
    while remaining:
        decoder = zlib.decompressobj(wbits=RAW_DEFLATE_WBITS)
        try:
            payload = decoder.decompress(remaining)
            payload += decoder.flush()
        except zlib.error as exc:
            raise InvalidDataError(f"Invalid data: {exc}") from exc
        if not decoder.eof:
            raise InvalidDataError("Invalid data: truncated deflate stream")
        yield payload
        remaining = decoder.unused_data


def decompress_blocks(data: bytes) -> bytes:
    return b"".join(iter_decoded_blocks(data))
