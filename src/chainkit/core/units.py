"""
Conversion between smallest-unit integers and decimal strings.
"""

import re
from typing import Optional, Union

from chainkit.core.errors import InvalidTransactionError

AMOUNT_PATTERN = re.compile(r"([0-9]+)(?:\.([0-9]+))?")


def format_units(value: Union[int, str], decimals: int) -> str:
    """
    Format a smallest-unit amount as a decimal string.

    Trailing fractional zeros are trimmed, so 1500000 with 6 decimals is "1.5".
    """
    amount = int(value)
    negative = amount < 0
    whole, fraction = divmod(abs(amount), 10 ** decimals)

    text = str(whole)
    if decimals:
        fraction_text = str(fraction).rjust(decimals, "0").rstrip("0")
        if fraction_text:
            text += "." + fraction_text
    return f"-{text}" if negative else text


def parse_units(text: str, decimals: int) -> int:
    """
    Parse a decimal string into a smallest-unit integer.

    Digits beyond the supported precision are truncated.
    """
    text = text.strip()
    negative = text.startswith("-")
    if negative:
        text = text[1:]

    whole, _, fraction = text.partition(".")
    if not (whole or fraction) or not (whole or "0").isdigit() or (fraction and not fraction.isdigit()):
        raise ValueError(f"invalid decimal amount: {text!r}")

    fraction = fraction.ljust(decimals, "0")[:decimals]
    amount = int(whole or "0") * 10 ** decimals + int(fraction or "0")
    return -amount if negative else amount


def parse_amount(value: str, decimals: Optional[int], chain_alias: Optional[str] = None) -> int:
    """
    Parse a transfer amount into smallest units.

    "1500" is already in smallest units. "1.5" is in whole units and is scaled
    by ``decimals``; with ``decimals=None`` only integer strings are accepted.

    Raises:
        InvalidTransactionError: If the amount is negative, malformed or more
            precise than ``decimals`` allows
    """
    text = value.strip() if isinstance(value, str) else ""
    if text.startswith("-"):
        raise InvalidTransactionError(chain_alias, f"amount must not be negative: {value!r}")

    match = AMOUNT_PATTERN.fullmatch(text)
    if match is None:
        raise InvalidTransactionError(chain_alias, f"malformed amount: {value!r}")

    whole, fraction = match.groups()
    if fraction is None:
        return int(whole)
    if decimals is None:
        raise InvalidTransactionError(chain_alias, f"amount must be an integer in smallest units: {value!r}")
    if len(fraction.rstrip("0")) > decimals:
        raise InvalidTransactionError(chain_alias, f"amount {value!r} has more than {decimals} decimal places")
    return parse_units(text, decimals)
