"""
Test suite for hash primitives.
"""

import pytest

from chainkit.hashing import (
    blake2_128_concat,
    double_sha256,
    hash160,
    keccak256,
    sha512_half,
    twox64,
    twox128,
    xxhash64,
)


class TestXXHash64:
    """Tests for the XXHash64 port against reference digests."""

    def test_empty_seed_zero(self):
        assert xxhash64(b"", 0) == 0xEF46DB3751D8E999

    def test_str_is_utf8(self):
        assert xxhash64("System") == xxhash64(b"System")

    def test_seed_changes_digest(self):
        assert xxhash64(b"abc", 0) != xxhash64(b"abc", 1)

    def test_long_input_uses_stripes(self):
        """Inputs of 32 bytes or more go through the four-lane loop."""
        assert xxhash64(b"Nobody inspects the spammish repetition") == 0xFBCEA83C8A378BF1

    @pytest.mark.parametrize("data,digest", [
        (b"a", 0xD24EC4F1A98C6E5B),
        (b"abc", 0x44BC2CF5AD770999),
    ])
    def test_short_tail_reference(self, data, digest):
        assert xxhash64(data) == digest

    def test_single_byte_differs_from_empty(self):
        assert xxhash64(b"\x00") != xxhash64(b"")
        assert twox128(b"\x00") != twox128(b"")


class TestTwox:
    """Tests for the Substrate twox hashers."""

    def test_twox128_system(self):
        assert twox128("System").hex() == "26aa394eea5630e07c48ae0c9558cef7"

    def test_twox128_account(self):
        assert twox128("Account").hex() == "b99d880ec681799c0cf30e8886371da9"

    @pytest.mark.parametrize("name,digest", [
        ("Balances", "c2261276cc9d1f8598ea4b6a74b15c2f"),
        ("Timestamp", "f0c365c3cf59d671eb72da0e7a4113c4"),
        ("TotalIssuance", "57c875e4cff74148e4628f264b974c80"),
    ])
    def test_twox128_eight_byte_lanes(self, name, digest):
        """Pallet and item names of 8 to 31 bytes consume whole 8-byte lanes."""
        assert twox128(name).hex() == digest

    def test_twox64_is_first_half(self):
        assert twox64("System") == twox128("System")[:8]


class TestDigests:
    """Tests for the standard digests."""

    def test_keccak256_empty(self):
        assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"

    def test_double_sha256_empty(self):
        assert double_sha256(b"").hex() == "5df6e0e2761359d30a8275058e299fcc0381534545f55cf43e41983f5d4c9456"

    def test_hash160_length(self):
        assert len(hash160(b"\x02" * 33)) == 20

    def test_sha512_half(self):
        assert len(sha512_half(b"abc")) == 32

    @pytest.mark.parametrize("key", [b"", b"\x01" * 32])
    def test_blake2_128_concat_keeps_key(self, key):
        digest = blake2_128_concat(key)
        assert len(digest) == 16 + len(key)
        assert digest.endswith(key)
