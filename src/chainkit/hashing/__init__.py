"""
Hash primitives: XXHash64/twox for storage keys plus the standard digests.
"""

from chainkit.hashing.digests import (
    blake2_128,
    blake2_128_concat,
    double_sha256,
    hash160,
    keccak256,
    sha256,
    sha512_half,
    tagged_hash,
)
from chainkit.hashing.twox import twox64, twox128, xxhash64

__all__ = [
    "xxhash64",
    "twox64",
    "twox128",
    "blake2_128",
    "blake2_128_concat",
    "sha256",
    "double_sha256",
    "hash160",
    "keccak256",
    "sha512_half",
    "tagged_hash",
]
