"""
Solana (SVM) ecosystem.
"""

from chainkit.svm.message import AccountMeta, Instruction, compile_account_keys, serialize_message
from chainkit.svm.provider import SvmChainProvider
from chainkit.svm.transaction import RawSolanaTransaction, SignedSvmTransaction, UnsignedSvmTransaction

__all__ = [
    "AccountMeta",
    "Instruction",
    "compile_account_keys",
    "serialize_message",
    "RawSolanaTransaction",
    "UnsignedSvmTransaction",
    "SignedSvmTransaction",
    "SvmChainProvider",
]
