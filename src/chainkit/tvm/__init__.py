"""
Tron (TVM) ecosystem.
"""

from chainkit.tvm.address import address_to_hex, hex_to_address, is_valid_tron_address
from chainkit.tvm.provider import TvmChainProvider
from chainkit.tvm.transaction import (
    RawTronTransaction,
    SignedTvmTransaction,
    TronContract,
    UnsignedTvmTransaction,
)

__all__ = [
    "address_to_hex",
    "hex_to_address",
    "is_valid_tron_address",
    "TvmChainProvider",
    "RawTronTransaction",
    "TronContract",
    "UnsignedTvmTransaction",
    "SignedTvmTransaction",
]
