"""
Compact-u16 length prefixes.

Solana's wire format prefixes every array with a 1-3 byte little-endian
7-bit group encoding of its length.
"""

from typing import Tuple

from chainkit.core.errors import CodecError, CodecRangeError

MAX_COMPACT_U16 = 0xFFFF


def encode_compact_u16(value: int) -> bytes:
    """
    Encode an integer in the range 0-65535 as compact-u16.

    Raises:
        CodecRangeError: If the value is outside 0-65535
    """
    if value < 0 or value > MAX_COMPACT_U16:
        raise CodecRangeError(f"compact-u16 value out of range: {value}")

    if value < 0x80:
        return bytes([value])
    if value < 0x4000:
        return bytes([(value & 0x7F) | 0x80, (value >> 7) & 0x7F])
    return bytes([
        (value & 0x7F) | 0x80,
        ((value >> 7) & 0x7F) | 0x80,
        (value >> 14) & 0x03,
    ])


def decode_compact_u16(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """
    Decode a compact-u16 value.

    Args:
        data: Buffer holding the encoded value
        offset: Position of the first byte

    Returns:
        Tuple of (value, number of bytes consumed)

    Raises:
        CodecError: If the buffer is truncated or the encoding is not the shortest form
        CodecRangeError: If the value exceeds 65535
    """
    value = 0
    for i in range(3):
        if offset + i >= len(data):
            raise CodecError("compact-u16 truncated")
        byte = data[offset + i]
        if i == 2:
            if byte > 0x03:
                raise CodecRangeError("compact-u16 overflow")
            if byte == 0:
                raise CodecError("compact-u16 not canonical")
            return value | (byte << 14), 3
        value |= (byte & 0x7F) << (7 * i)
        if not byte & 0x80:
            if i and byte == 0:
                raise CodecError("compact-u16 not canonical")
            return value, i + 1
    raise CodecError("compact-u16 malformed")
