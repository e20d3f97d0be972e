"""
XXHash64 and the Substrate "twox" family built on it.

Pure-Python port of the reference 64-bit algorithm: four 8-byte lanes over
32-byte stripes, then 8/4/1-byte tail rounds and the final avalanche.
"""

import struct
from typing import Union

MASK64 = 0xFFFFFFFFFFFFFFFF

PRIME64_1 = 0x9E3779B185EBCA87
PRIME64_2 = 0xC2B2AE3D27D4EB4F
PRIME64_3 = 0x165667B19E3779F9
PRIME64_4 = 0x85EBCA77C2B2AE63
PRIME64_5 = 0x27D4EB2F165667C5


def _rotl(value: int, bits: int) -> int:
    return ((value << bits) | (value >> (64 - bits))) & MASK64


def _round(acc: int, lane: int) -> int:
    acc = (acc + lane * PRIME64_2) & MASK64
    acc = _rotl(acc, 31)
    return (acc * PRIME64_1) & MASK64


def _merge_round(acc: int, lane: int) -> int:
    acc ^= _round(0, lane)
    return (acc * PRIME64_1 + PRIME64_4) & MASK64


def _avalanche(h: int) -> int:
    h ^= h >> 33
    h = (h * PRIME64_2) & MASK64
    h ^= h >> 29
    h = (h * PRIME64_3) & MASK64
    h ^= h >> 32
    return h


def xxhash64(data: Union[bytes, str], seed: int = 0) -> int:
    """
    Compute XXHash64 of data.

    Args:
        data: Input bytes (str is hashed as UTF-8)
        seed: 64-bit seed

    Returns:
        The 64-bit digest as an integer
    """
    if isinstance(data, str):
        data = data.encode("utf-8")

    length = len(data)
    seed &= MASK64
    offset = 0

    if length >= 32:
        v1 = (seed + PRIME64_1 + PRIME64_2) & MASK64
        v2 = (seed + PRIME64_2) & MASK64
        v3 = seed
        v4 = (seed - PRIME64_1) & MASK64

        while offset + 32 <= length:
            l1, l2, l3, l4 = struct.unpack_from("<4Q", data, offset)
            v1 = _round(v1, l1)
            v2 = _round(v2, l2)
            v3 = _round(v3, l3)
            v4 = _round(v4, l4)
            offset += 32

        h = (_rotl(v1, 1) + _rotl(v2, 7) + _rotl(v3, 12) + _rotl(v4, 18)) & MASK64
        for lane in (v1, v2, v3, v4):
            h = _merge_round(h, lane)
    else:
        h = (seed + PRIME64_5) & MASK64

    h = (h + length) & MASK64

    while offset + 8 <= length:
        (lane,) = struct.unpack_from("<Q", data, offset)
        h ^= _round(0, lane)
        h = (_rotl(h, 27) * PRIME64_1 + PRIME64_4) & MASK64
        offset += 8

    if offset + 4 <= length:
        (word,) = struct.unpack_from("<I", data, offset)
        h ^= (word * PRIME64_1) & MASK64
        h = (_rotl(h, 23) * PRIME64_2 + PRIME64_3) & MASK64
        offset += 4

    while offset < length:
        h ^= (data[offset] * PRIME64_5) & MASK64
        h = (_rotl(h, 11) * PRIME64_1) & MASK64
        offset += 1

    return _avalanche(h)


def twox64(data: Union[bytes, str]) -> bytes:
    """XXHash64 with seed 0, little-endian."""
    return xxhash64(data, 0).to_bytes(8, "little")


def twox128(data: Union[bytes, str]) -> bytes:
    """Concatenation of little-endian XXHash64 digests with seeds 0 and 1."""
    return xxhash64(data, 0).to_bytes(8, "little") + xxhash64(data, 1).to_bytes(8, "little")
