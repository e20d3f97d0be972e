"""
Minimal protobuf writer.

Only the wire types needed to serialise Tron's transaction raw_data:
varint (0) and length-delimited (2). Fields holding proto3 default values
are omitted, matching the reference encoders.
"""

from typing import List, Union

from chainkit.core.errors import CodecRangeError

WIRE_VARINT = 0
WIRE_LENGTH_DELIMITED = 2


def encode_varint(value: int) -> bytes:
    """Encode an unsigned or int64 value as a protobuf varint."""
    if value < 0:
        # int64 negatives use their two's complement 64-bit form
        value += 1 << 64
    if value >= 1 << 64:
        raise CodecRangeError(f"varint value out of range: {value}")

    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def field_key(field_number: int, wire_type: int) -> bytes:
    return encode_varint((field_number << 3) | wire_type)


class ProtoWriter:
    """Accumulates protobuf fields in the order they are written."""

    def __init__(self):
        self._parts: List[bytes] = []

    def varint(self, field_number: int, value: int) -> "ProtoWriter":
        if value:
            self._parts.append(field_key(field_number, WIRE_VARINT))
            self._parts.append(encode_varint(value))
        return self

    def blob(self, field_number: int, value: Union[bytes, str]) -> "ProtoWriter":
        if isinstance(value, str):
            value = value.encode("utf-8")
        if value:
            self._parts.append(field_key(field_number, WIRE_LENGTH_DELIMITED))
            self._parts.append(encode_varint(len(value)))
            self._parts.append(value)
        return self

    def message(self, field_number: int, value: bytes) -> "ProtoWriter":
        """Embedded messages are written even when empty."""
        self._parts.append(field_key(field_number, WIRE_LENGTH_DELIMITED))
        self._parts.append(encode_varint(len(value)))
        self._parts.append(value)
        return self

    def to_bytes(self) -> bytes:
        return b"".join(self._parts)
