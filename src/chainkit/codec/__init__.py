"""
Byte-level codecs shared by the ecosystem builders.
"""

from chainkit.codec.base58 import (
    BITCOIN_ALPHABET,
    RIPPLE_ALPHABET,
    b58check_decode,
    b58check_encode,
    b58decode,
    b58encode,
)
from chainkit.codec.compact import decode_compact_u16, encode_compact_u16
from chainkit.codec.ints import (
    concat_bytes,
    pack_u32_le,
    pack_u64_le,
    pack_u128_le,
    unpack_u32_le,
    unpack_u64_le,
    unpack_u128_le,
)

__all__ = [
    "BITCOIN_ALPHABET",
    "RIPPLE_ALPHABET",
    "b58encode",
    "b58decode",
    "b58check_encode",
    "b58check_decode",
    "encode_compact_u16",
    "decode_compact_u16",
    "pack_u32_le",
    "pack_u64_le",
    "pack_u128_le",
    "unpack_u32_le",
    "unpack_u64_le",
    "unpack_u128_le",
    "concat_bytes",
]
