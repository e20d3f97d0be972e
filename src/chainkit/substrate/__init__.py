"""
Substrate ecosystem (account state reads).
"""

from chainkit.substrate.provider import SubstrateChainProvider
from chainkit.substrate.storage import (
    AccountData,
    AccountInfo,
    decode_account_info,
    decode_address,
    encode_address,
    is_valid_address,
    system_account_key,
)

__all__ = [
    "SubstrateChainProvider",
    "AccountData",
    "AccountInfo",
    "decode_account_info",
    "decode_address",
    "encode_address",
    "is_valid_address",
    "system_account_key",
]
