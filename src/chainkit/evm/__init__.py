"""
EVM ecosystem.
"""

from chainkit.evm.abi import contract_address, is_valid_address, to_checksum_address
from chainkit.evm.provider import EvmChainProvider
from chainkit.evm.transaction import RawEvmTransaction, SignedEvmTransaction, UnsignedEvmTransaction

__all__ = [
    "contract_address",
    "is_valid_address",
    "to_checksum_address",
    "EvmChainProvider",
    "RawEvmTransaction",
    "UnsignedEvmTransaction",
    "SignedEvmTransaction",
]
