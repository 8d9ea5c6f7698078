"""Binary codec for stored embedding vectors.

Vectors are packed as little-endian IEEE-754 float64 so a decode reproduces
exactly the sequence that was written. No float32 narrowing, no compression.
"""
from __future__ import annotations

import struct
from collections.abc import Sequence

from ees.domain.exceptions import StoreError

_ITEM_SIZE = struct.calcsize("<d")


def encode_vector(vector: Sequence[float]) -> bytes:
    """Pack a float sequence into a fixed-width float64 blob."""
    return struct.pack(f"<{len(vector)}d", *vector)


def decode_vector(blob: bytes) -> list[float]:
    """Unpack a blob written by :func:`encode_vector`."""
    if len(blob) % _ITEM_SIZE:
        raise StoreError(
            f"Corrupt vector blob: {len(blob)} bytes is not a multiple of {_ITEM_SIZE}"
        )
    return list(struct.unpack(f"<{len(blob) // _ITEM_SIZE}d", blob))


def vector_dimensions(blob: bytes) -> int:
    return len(blob) // _ITEM_SIZE
