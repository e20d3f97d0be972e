"""
chainkit

Multi-chain transaction construction for EVM, Solana, Bitcoin-style UTXO,
Tron, XRP Ledger and Substrate networks. Builds unsigned transactions in
each network's wire format, exposes the payload an external signer must
sign, applies the returned signatures and broadcasts the result.
"""

__version__ = "0.1.0"

from chainkit.core.errors import ChainError, CodecError, UnsupportedChainError
from chainkit.core.interfaces import ChainProvider, SignedTransaction, UnsignedTransaction
from chainkit.core.types import (
    DecodeFormat,
    Ecosystem,
    NativeTransferParams,
    SigningPayload,
    TokenTransferParams,
    TransactionType,
)
from chainkit.registry import clear_provider_cache, get_chain_provider, is_supported_chain, supported_chains

__all__ = [
    "ChainError",
    "CodecError",
    "UnsupportedChainError",
    "ChainProvider",
    "SignedTransaction",
    "UnsignedTransaction",
    "DecodeFormat",
    "Ecosystem",
    "NativeTransferParams",
    "SigningPayload",
    "TokenTransferParams",
    "TransactionType",
    "clear_provider_cache",
    "get_chain_provider",
    "is_supported_chain",
    "supported_chains",
]
