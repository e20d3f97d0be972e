"""
Test suite for the byte-level codecs.
"""

import pytest

from chainkit.codec import (
    RIPPLE_ALPHABET,
    b58check_decode,
    b58check_encode,
    b58decode,
    b58encode,
    decode_compact_u16,
    encode_compact_u16,
    pack_u64_le,
    pack_u128_le,
    unpack_u64_le,
    unpack_u128_le,
)
from chainkit.codec.protobuf import ProtoWriter, encode_varint
from chainkit.core.errors import CodecError, CodecRangeError


# ============================================================================
# Compact-u16
# ============================================================================

class TestCompactU16:
    """Tests for Solana's compact array length prefix."""

    @pytest.mark.parametrize("value,encoded", [
        (0, b"\x00"),
        (0x7F, b"\x7f"),
        (0x80, b"\x80\x01"),
        (0x3FFF, b"\xff\x7f"),
        (0x4000, b"\x80\x80\x01"),
        (0xFFFF, b"\xff\xff\x03"),
    ])
    def test_boundaries(self, value, encoded):
        assert encode_compact_u16(value) == encoded
        assert decode_compact_u16(encoded) == (value, len(encoded))

    def test_decode_at_offset(self):
        """Test decoding from the middle of a buffer."""
        assert decode_compact_u16(b"\xaa\x80\x01\xbb", offset=1) == (128, 2)

    @pytest.mark.parametrize("value", [-1, 65536])
    def test_out_of_range(self, value):
        with pytest.raises(CodecRangeError, match="out of range"):
            encode_compact_u16(value)

    def test_range_error_is_codec_error(self):
        with pytest.raises(CodecError):
            encode_compact_u16(70000)

    def test_truncated(self):
        with pytest.raises(CodecError, match="truncated"):
            decode_compact_u16(b"\x80")

    def test_third_byte_overflow(self):
        with pytest.raises(CodecRangeError, match="overflow"):
            decode_compact_u16(b"\xff\xff\x04")

    @pytest.mark.parametrize("encoded", [b"\x80\x00", b"\xff\x00", b"\x80\x80\x00", b"\xff\xff\x00"])
    def test_non_canonical_rejected(self, encoded):
        """Test that a zero final group in a multi-byte encoding is rejected."""
        with pytest.raises(CodecError, match="not canonical"):
            decode_compact_u16(encoded)


# ============================================================================
# Base58
# ============================================================================

class TestBase58:
    """Tests for base58 and Base58Check."""

    def test_known_vector(self):
        assert b58encode(b"hello world") == "StV1DL6CwTryKyV"
        assert b58decode("StV1DL6CwTryKyV") == b"hello world"

    def test_leading_zeros_preserved(self):
        """Each leading zero byte maps to one leading '1'."""
        assert b58encode(b"\x00\x00\x01") == "112"
        assert b58decode("112") == b"\x00\x00\x01"

    def test_all_zero(self):
        assert b58encode(b"\x00" * 32) == "1" * 32
        assert b58decode("1" * 32) == b"\x00" * 32

    def test_empty(self):
        assert b58encode(b"") == ""
        assert b58decode("") == b""

    @pytest.mark.parametrize("text", ["0abc", "OOPS", "Il1", "abc!"])
    def test_invalid_character(self, text):
        with pytest.raises(CodecError, match="invalid character"):
            b58decode(text)

    def test_ripple_alphabet_zero_glyph(self):
        assert b58encode(b"\x00", RIPPLE_ALPHABET) == "r"

    def test_check_known_address(self):
        """Genesis block coinbase address."""
        payload = b58check_decode("1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa")
        assert payload[0] == 0
        assert payload[1:].hex() == "62e907b15cbf27d5425399ebf6f0fb50ebb88f18"
        assert b58check_encode(payload) == "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa"

    def test_check_bad_checksum(self):
        with pytest.raises(CodecError, match="checksum mismatch"):
            b58check_decode("1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNb")

    def test_check_too_short(self):
        with pytest.raises(CodecError, match="too short"):
            b58check_decode("1111")


# ============================================================================
# Integers and Protobuf
# ============================================================================

class TestIntegers:
    """Tests for fixed-width little-endian packing."""

    def test_u64(self):
        assert pack_u64_le(1) == b"\x01" + b"\x00" * 7
        assert unpack_u64_le(pack_u64_le(2 ** 64 - 1)) == 2 ** 64 - 1

    def test_u128(self):
        packed = pack_u128_le(10 ** 30)
        assert len(packed) == 16
        assert unpack_u128_le(packed) == 10 ** 30

    def test_u64_overflow(self):
        with pytest.raises(CodecRangeError):
            pack_u64_le(2 ** 64)

    def test_truncated(self):
        with pytest.raises(CodecError, match="truncated"):
            unpack_u64_le(b"\x00" * 7)


class TestProtobuf:
    """Tests for the protobuf writer."""

    def test_varint(self):
        assert encode_varint(0) == b"\x00"
        assert encode_varint(300) == b"\xac\x02"

    def test_negative_varint_uses_ten_bytes(self):
        assert encode_varint(-1) == b"\xff" * 9 + b"\x01"

    def test_default_values_omitted(self):
        writer = ProtoWriter().varint(1, 0).blob(2, b"").varint(3, 5)
        assert writer.to_bytes() == b"\x18\x05"

    def test_embedded_message_written_when_empty(self):
        assert ProtoWriter().message(1, b"").to_bytes() == b"\x0a\x00"
