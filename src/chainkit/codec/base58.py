"""
Base58 and Base58Check codecs.

Bytes are treated as one big-endian integer. Leading zero bytes have no
magnitude, so each one is carried as a leading first-glyph character.
"""

import hashlib

from chainkit.core.errors import CodecError

BITCOIN_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
RIPPLE_ALPHABET = "rpshnaf39wBUDNEGHJKLM4PQRST7VWXYZ2bcdeCg65jkm8oFqi1tuvAxyz"


def b58encode(data: bytes, alphabet: str = BITCOIN_ALPHABET) -> str:
    """Encode bytes as base58."""
    if not data:
        return ""

    leading = len(data) - len(data.lstrip(b"\x00"))
    number = int.from_bytes(data, "big")

    digits = []
    while number > 0:
        number, remainder = divmod(number, 58)
        digits.append(alphabet[remainder])

    return alphabet[0] * leading + "".join(reversed(digits))


def b58decode(text: str, alphabet: str = BITCOIN_ALPHABET) -> bytes:
    """
    Decode a base58 string.

    Raises:
        CodecError: If the string contains a character outside the alphabet
    """
    if not text:
        return b""

    number = 0
    for char in text:
        index = alphabet.find(char)
        if index < 0:
            raise CodecError(f"invalid character {char!r} in base58 string")
        number = number * 58 + index

    leading = len(text) - len(text.lstrip(alphabet[0]))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\x00" * leading + body


def _checksum(payload: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(payload).digest()).digest()[:4]


def b58check_encode(payload: bytes, alphabet: str = BITCOIN_ALPHABET) -> str:
    """Encode bytes with a 4-byte double-SHA256 checksum appended."""
    return b58encode(payload + _checksum(payload), alphabet)


def b58check_decode(text: str, alphabet: str = BITCOIN_ALPHABET) -> bytes:
    """
    Decode a Base58Check string and verify its checksum.

    Returns:
        The payload without the checksum

    Raises:
        CodecError: On an invalid character, short input or bad checksum
    """
    raw = b58decode(text, alphabet)
    if len(raw) < 5:
        raise CodecError("base58check payload too short")
    payload, checksum = raw[:-4], raw[-4:]
    if _checksum(payload) != checksum:
        raise CodecError("base58check checksum mismatch")
    return payload
