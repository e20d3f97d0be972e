"""
Fixed-width little-endian integer packing.
"""

import struct
from typing import Iterable

from chainkit.core.errors import CodecError, CodecRangeError

U32_MAX = (1 << 32) - 1
U64_MAX = (1 << 64) - 1
U128_MAX = (1 << 128) - 1


def _check(value: int, maximum: int, width: str) -> None:
    if value < 0 or value > maximum:
        raise CodecRangeError(f"{width} value out of range: {value}")


def pack_u32_le(value: int) -> bytes:
    _check(value, U32_MAX, "u32")
    return struct.pack("<I", value)


def pack_u64_le(value: int) -> bytes:
    _check(value, U64_MAX, "u64")
    return struct.pack("<Q", value)


def pack_u128_le(value: int) -> bytes:
    _check(value, U128_MAX, "u128")
    return value.to_bytes(16, "little")


def unpack_u32_le(data: bytes, offset: int = 0) -> int:
    if len(data) < offset + 4:
        raise CodecError("u32 truncated")
    return struct.unpack_from("<I", data, offset)[0]


def unpack_u64_le(data: bytes, offset: int = 0) -> int:
    if len(data) < offset + 8:
        raise CodecError("u64 truncated")
    return struct.unpack_from("<Q", data, offset)[0]


def unpack_u128_le(data: bytes, offset: int = 0) -> int:
    if len(data) < offset + 16:
        raise CodecError("u128 truncated")
    return int.from_bytes(data[offset:offset + 16], "little")


def concat_bytes(parts: Iterable[bytes]) -> bytes:
    """Join byte sequences into one buffer."""
    return b"".join(bytes(part) for part in parts)
