"""
Locking scripts and addresses for segwit chains.

Only native segwit v0 key-hash (P2WPKH) and taproot key-path (P2TR) outputs
can be spent. Legacy base58 addresses are accepted as payment destinations.
"""

from enum import Enum
from typing import Optional

from bech32 import decode as bech32_decode, encode as bech32_encode

from chainkit.codec import b58check_decode
from chainkit.core.errors import CodecError

# base58check version bytes: (p2pkh, p2sh)
LEGACY_VERSIONS = {
    "mainnet": (0x00, 0x05),
    "testnet": (0x6F, 0xC4),
}


class ScriptType(str, Enum):
    P2WPKH = "p2wpkh"
    P2TR = "p2tr"


def detect_script_type(script_pubkey: bytes) -> Optional[ScriptType]:
    """Return the spendable script type of a locking script, or None."""
    if len(script_pubkey) == 22 and script_pubkey[0] == 0x00 and script_pubkey[1] == 0x14:
        return ScriptType.P2WPKH
    if len(script_pubkey) == 34 and script_pubkey[0] == 0x51 and script_pubkey[1] == 0x20:
        return ScriptType.P2TR
    return None


def script_type_from_address(address: str, hrp: str) -> Optional[ScriptType]:
    version, program = bech32_decode(hrp, address.lower())
    if version is None:
        return None
    if version == 0 and len(program) == 20:
        return ScriptType.P2WPKH
    if version == 1 and len(program) == 32:
        return ScriptType.P2TR
    return None


def address_to_script(address: str, hrp: str, network: str = "mainnet") -> bytes:
    """
    Build the locking script paying to an address.

    Raises:
        CodecError: If the address is neither segwit for ``hrp`` nor a
            legacy address for ``network``
    """
    version, program = bech32_decode(hrp, address.lower())
    if version is not None:
        # OP_0 for v0, OP_1..OP_16 are 0x51..0x60
        op = 0x00 if version == 0 else 0x50 + version
        return bytes([op, len(program)]) + bytes(program)

    try:
        payload = b58check_decode(address)
    except CodecError:
        raise CodecError(f"not a {network} address: {address}")

    p2pkh, p2sh = LEGACY_VERSIONS.get(network, LEGACY_VERSIONS["mainnet"])
    if len(payload) == 21 and payload[0] == p2pkh:
        return b"\x76\xa9\x14" + payload[1:] + b"\x88\xac"
    if len(payload) == 21 and payload[0] == p2sh:
        return b"\xa9\x14" + payload[1:] + b"\x87"
    raise CodecError(f"not a {network} address: {address}")


def script_to_address(script_pubkey: bytes, hrp: str) -> Optional[str]:
    """Render a segwit locking script as an address; None for other scripts."""
    if len(script_pubkey) < 4 or script_pubkey[1] != len(script_pubkey) - 2:
        return None
    op = script_pubkey[0]
    if op == 0x00:
        version = 0
    elif 0x51 <= op <= 0x60:
        version = op - 0x50
    else:
        return None
    return bech32_encode(hrp, version, list(script_pubkey[2:]))


def is_valid_address(address: str, hrp: str, network: str = "mainnet") -> bool:
    try:
        address_to_script(address, hrp, network)
    except CodecError:
        return False
    return True
