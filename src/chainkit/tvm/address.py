"""
Tron addresses and ABI word helpers.

A Tron address is 21 bytes (0x41 followed by a 20-byte account id),
shown as base58check starting with 'T' or as 42 hex characters.
"""

import re

from chainkit.codec import b58check_decode, b58check_encode
from chainkit.core.errors import CodecError

TRON_ADDRESS_PREFIX = 0x41
TRON_ADDRESS_LENGTH = 34
TRON_HEX_ADDRESS_LENGTH = 42

ZERO_ADDRESS_HEX = "41" + "00" * 20

# ERC-20 compatible selectors used by TRC-20 tokens
TRANSFER_SELECTOR = "a9059cbb"
BALANCE_OF_SELECTOR = "70a08231"
DECIMALS_SELECTOR = "313ce567"
SYMBOL_SELECTOR = "95d89b41"

_HEX_ADDRESS = re.compile(r"^(41)?[0-9a-fA-F]{40}$")


def is_valid_tron_address(address: str) -> bool:
    if not isinstance(address, str) or len(address) != TRON_ADDRESS_LENGTH or not address.startswith("T"):
        return False
    try:
        payload = b58check_decode(address)
    except CodecError:
        return False
    return len(payload) == 21 and payload[0] == TRON_ADDRESS_PREFIX


def is_hex_address(address: str) -> bool:
    return bool(_HEX_ADDRESS.match(strip_0x(address)))


def address_to_hex(address: str) -> str:
    """
    Convert a base58 or hex address to 42-character hex.

    Raises:
        CodecError: If the address is neither form
    """
    if is_valid_tron_address(address):
        return b58check_decode(address).hex()
    if is_hex_address(address):
        hex_address = strip_0x(address).lower()
        return hex_address if len(hex_address) == TRON_HEX_ADDRESS_LENGTH else "41" + hex_address
    raise CodecError(f"Invalid TRON address: {address}")


def hex_to_address(hex_address: str) -> str:
    """Convert 40 or 42 hex characters to the base58 form."""
    hex_address = strip_0x(hex_address)
    if len(hex_address) == 40:
        hex_address = "41" + hex_address
    if len(hex_address) != TRON_HEX_ADDRESS_LENGTH:
        raise CodecError(f"Invalid hex address length: {len(hex_address)}")
    return b58check_encode(bytes.fromhex(hex_address))


def strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def encode_address_word(address: str) -> str:
    """ABI word for an address argument: the 20-byte id left padded to 32 bytes."""
    return address_to_hex(address)[2:].rjust(64, "0")


def encode_uint256_word(value: int) -> str:
    if value < 0 or value >= 1 << 256:
        raise CodecError(f"uint256 out of range: {value}")
    return format(value, "064x")


def encode_trc20_transfer(to: str, amount: int) -> str:
    return TRANSFER_SELECTOR + encode_address_word(to) + encode_uint256_word(amount)


def decode_abi_string(result_hex: str) -> str:
    """Decode a dynamic ``string`` return value, falling back to bytes32."""
    data = bytes.fromhex(strip_0x(result_hex))
    if len(data) >= 64:
        offset = int.from_bytes(data[:32], "big")
        if offset + 32 <= len(data):
            length = int.from_bytes(data[offset:offset + 32], "big")
            if offset + 32 + length <= len(data):
                return data[offset + 32:offset + 32 + length].decode("utf-8", errors="replace")
    return data.rstrip(b"\x00").decode("utf-8", errors="replace")
