"""
Chain-independent building blocks: types, configs, errors, interfaces and transport.
"""

from chainkit.core.chains import BUILTIN_CHAINS, ChainConfig, get_chain_config
from chainkit.core.errors import (
    BroadcastError,
    ChainError,
    ContractError,
    InvalidAddressError,
    InvalidTransactionError,
    InvalidTransactionHashError,
    RpcError,
    SignatureError,
    UnsupportedChainError,
    UnsupportedOperationError,
)
from chainkit.core.normalised import NormalisedTransaction
from chainkit.core.types import CHAIN_ECOSYSTEM_MAP, Ecosystem, TransactionHash, TransactionType

__all__ = [
    "BUILTIN_CHAINS",
    "ChainConfig",
    "get_chain_config",
    "CHAIN_ECOSYSTEM_MAP",
    "Ecosystem",
    "TransactionHash",
    "TransactionType",
    "NormalisedTransaction",
    "ChainError",
    "RpcError",
    "InvalidAddressError",
    "InvalidTransactionError",
    "InvalidTransactionHashError",
    "SignatureError",
    "ContractError",
    "BroadcastError",
    "UnsupportedChainError",
    "UnsupportedOperationError",
]
