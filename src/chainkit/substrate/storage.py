"""
Substrate storage keys, SS58 addresses and the System.Account record.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from bip_utils.ss58 import SS58ChecksumError, SS58Decoder, SS58Encoder

from chainkit.codec import concat_bytes, unpack_u32_le, unpack_u128_le
from chainkit.core.errors import CodecError
from chainkit.hashing import blake2_128_concat, twox128

# Generic Substrate prefix, also used by Bittensor
DEFAULT_SS58_PREFIX = 42
PUBLIC_KEY_LENGTH = 32

# nonce, consumers, providers, sufficients: u32; free, reserved, frozen: u128
ACCOUNT_INFO_LENGTH = 4 * 4 + 3 * 16


@dataclass(frozen=True)
class AccountData:
    free: int = 0
    reserved: int = 0
    frozen: int = 0

    @property
    def transferable(self) -> int:
        return max(self.free - self.frozen, 0)


@dataclass(frozen=True)
class AccountInfo:
    nonce: int = 0
    consumers: int = 0
    providers: int = 0
    sufficients: int = 0
    data: AccountData = field(default_factory=AccountData)


def storage_prefix(pallet: str, item: str) -> bytes:
    """twox128(pallet) ++ twox128(item)"""
    return twox128(pallet) + twox128(item)


def system_account_key(public_key: Union[bytes, str]) -> str:
    """
    Storage key of ``System.Account`` for an account id.

    Args:
        public_key: 32-byte account id, raw or hex

    Returns:
        0x-prefixed hex key
    """
    if isinstance(public_key, str):
        try:
            public_key = bytes.fromhex(public_key[2:] if public_key.startswith("0x") else public_key)
        except ValueError:
            raise CodecError(f"Invalid public key hex: {public_key}")
    if len(public_key) != PUBLIC_KEY_LENGTH:
        raise CodecError(f"Account id must be {PUBLIC_KEY_LENGTH} bytes, got {len(public_key)}")
    key = concat_bytes([storage_prefix("System", "Account"), blake2_128_concat(public_key)])
    return "0x" + key.hex()


def decode_account_info(encoded: Union[bytes, str]) -> AccountInfo:
    """
    Decode a SCALE-encoded AccountInfo.

    Trailing fields (such as the extra flags word of newer runtimes) are
    ignored.

    Raises:
        CodecError: If fewer than 64 bytes are given
    """
    if isinstance(encoded, str):
        try:
            encoded = bytes.fromhex(encoded[2:] if encoded.startswith("0x") else encoded)
        except ValueError:
            raise CodecError("Invalid account info hex")
    if len(encoded) < ACCOUNT_INFO_LENGTH:
        raise CodecError(f"Account info truncated: {len(encoded)} bytes, expected {ACCOUNT_INFO_LENGTH}")

    return AccountInfo(
        nonce=unpack_u32_le(encoded, 0),
        consumers=unpack_u32_le(encoded, 4),
        providers=unpack_u32_le(encoded, 8),
        sufficients=unpack_u32_le(encoded, 12),
        data=AccountData(
            free=unpack_u128_le(encoded, 16),
            reserved=unpack_u128_le(encoded, 32),
            frozen=unpack_u128_le(encoded, 48),
        ),
    )


def decode_address(address: str) -> Tuple[int, bytes]:
    """
    Returns:
        (ss58 prefix, 32-byte public key)

    Raises:
        CodecError: On bad alphabet, checksum or length
    """
    try:
        prefix, public_key = SS58Decoder.Decode(address)
    except (ValueError, SS58ChecksumError) as e:
        raise CodecError(f"Invalid SS58 address {address}: {e}")
    if len(public_key) != PUBLIC_KEY_LENGTH:
        raise CodecError(f"Invalid SS58 address {address}: unexpected key length {len(public_key)}")
    return prefix, public_key


def encode_address(public_key: bytes, prefix: int = DEFAULT_SS58_PREFIX) -> str:
    if len(public_key) != PUBLIC_KEY_LENGTH:
        raise CodecError(f"Account id must be {PUBLIC_KEY_LENGTH} bytes, got {len(public_key)}")
    return SS58Encoder.Encode(public_key, prefix)


def is_valid_address(address: str, prefix: Optional[int] = None) -> bool:
    """Validate an SS58 address, optionally pinning the network prefix."""
    if not isinstance(address, str) or not address:
        return False
    try:
        decoded_prefix, _ = decode_address(address)
    except CodecError:
        return False
    return prefix is None or decoded_prefix == prefix
