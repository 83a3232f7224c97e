"""Configuration for the chunked compression pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator

Ordering = Literal["length", "sequence"]
Partition = Literal["shared", "ranges"]
ReceivePolicy = Literal["bounded", "until_done"]

DEFAULT_CHUNK_SIZE = 1024
DEFAULT_WORKERS = 4
MAX_CHUNK_SIZE = 1024 ** 3


# ---------------------------------------------------------------------------
# Size helpers
# ---------------------------------------------------------------------------


def human_to_bytes(value: str) -> int:
    cleaned = value.strip().lower().replace(" ", "")
    units = {
        "b": 1,
        "kb": 10**3,
        "mb": 10**6,
        "gb": 10**9,
        "kib": 1024,
        "mib": 1024 ** 2,
        "gib": 1024 ** 3,
    }
    if cleaned.isdigit():
        return int(cleaned)
    number = []
    unit = []
    for char in cleaned:
        if char.isdigit() or char == ".":
            number.append(char)
        else:
            unit.append(char)
    if not number:
        raise ValueError(f"Invalid size string '{value}'")
    unit_key = "".join(unit) or "b"
    if unit_key not in units:
        raise ValueError(f"Unknown size unit in '{value}'")
    return int(float("".join(number)) * units[unit_key])


def bytes_to_human(num_bytes: int) -> str:
    for suffix, threshold in (
        ("GiB", 1024 ** 3),
        ("MiB", 1024 ** 2),
        ("KiB", 1024),
    ):
        if num_bytes >= threshold:
            return f"{num_bytes / threshold:.2f} {suffix}"
    return f"{num_bytes} B"


class BoundaryPolicy(str, Enum):
    """How argument and open/create failures end the process."""

    LENIENT = "lenient"
    STRICT = "strict"

    def exit_code(self) -> int:
        return 1 if self is BoundaryPolicy.STRICT else 0


class CompressionConfig(BaseModel):
    chunk_size: int = Field(
        DEFAULT_CHUNK_SIZE,
        ge=1,
        le=MAX_CHUNK_SIZE,
        description="Compressed size at which a worker finalizes its current block",
    )
    workers: int = Field(DEFAULT_WORKERS, ge=1, le=64)
    ordering: Ordering = "length"
    partition: Partition = "shared"
    receive: ReceivePolicy = "bounded"
    level: int = Field(9, ge=0, le=9)
    verify: bool = False

    @field_validator("chunk_size", mode="before")
    @classmethod
    def _parse_chunk_size(cls, value):
        if isinstance(value, str):
            return human_to_bytes(value)
        return value
