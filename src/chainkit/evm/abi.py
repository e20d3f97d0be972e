"""
EVM addresses and the handful of ABI encodings the provider needs.
"""

import re
from typing import Optional

import rlp

from chainkit.core.errors import CodecError
from chainkit.hashing import keccak256

_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")

# ERC-20
TRANSFER_SELECTOR = "0xa9059cbb"
TRANSFER_FROM_SELECTOR = "0x23b872dd"
APPROVE_SELECTOR = "0x095ea7b3"
BALANCE_OF_SELECTOR = "0x70a08231"
DECIMALS_SELECTOR = "0x313ce567"
SYMBOL_SELECTOR = "0x95d89b41"
# ERC-721
SAFE_TRANSFER_FROM_SELECTOR = "0x42842e0e"
SAFE_TRANSFER_FROM_DATA_SELECTOR = "0xb88d4fde"
SET_APPROVAL_FOR_ALL_SELECTOR = "0xa22cb465"


def strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def to_checksum_address(address: str) -> str:
    """EIP-55 mixed-case form."""
    lower = strip_0x(address).lower()
    digest = keccak256(lower.encode("ascii")).hex()
    return "0x" + "".join(
        char.upper() if int(digest[i], 16) >= 8 else char
        for i, char in enumerate(lower)
    )


def is_valid_address(address: str) -> bool:
    """
    Hex address check; mixed-case input must carry a valid EIP-55 checksum.
    """
    if not isinstance(address, str) or not _ADDRESS.match(address):
        return False
    body = address[2:]
    if body == body.lower() or body == body.upper():
        return True
    return to_checksum_address(address) == address


def address_bytes(address: Optional[str]) -> bytes:
    """20 address bytes, or empty for contract creation."""
    if address is None:
        return b""
    try:
        data = bytes.fromhex(strip_0x(address))
    except ValueError:
        raise CodecError(f"Invalid address: {address}")
    if len(data) != 20:
        raise CodecError(f"Invalid address length: {address}")
    return data


def contract_address(sender: str, nonce: int) -> str:
    """CREATE address: keccak256(rlp([sender, nonce]))[12:]."""
    digest = keccak256(rlp.encode([address_bytes(sender), nonce]))
    return to_checksum_address(digest[12:].hex())


def encode_address_word(address: str) -> str:
    return strip_0x(address).lower().rjust(64, "0")


def encode_uint256_word(value: int) -> str:
    if value < 0 or value >= 1 << 256:
        raise CodecError(f"uint256 out of range: {value}")
    return format(value, "064x")


def encode_erc20_transfer(to: str, amount: int) -> str:
    return TRANSFER_SELECTOR + encode_address_word(to) + encode_uint256_word(amount)


def encode_balance_of(owner: str) -> str:
    return BALANCE_OF_SELECTOR + encode_address_word(owner)


def decode_uint(result: str, default: int = 0) -> int:
    body = strip_0x(result or "")
    return int(body[:64], 16) if body else default


def decode_string(result: str) -> Optional[str]:
    """Dynamic ``string`` return value, or a bytes32 symbol for older tokens."""
    body = strip_0x(result or "")
    if not body:
        return None
    data = bytes.fromhex(body)
    if len(data) >= 64:
        offset = int.from_bytes(data[:32], "big")
        if offset + 32 <= len(data):
            length = int.from_bytes(data[offset:offset + 32], "big")
            if offset + 32 + length <= len(data):
                return data[offset + 32:offset + 32 + length].decode("utf-8", errors="replace")
    return data.rstrip(b"\x00").decode("utf-8", errors="replace") or None
