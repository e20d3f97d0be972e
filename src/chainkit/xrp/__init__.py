"""
XRP Ledger ecosystem.
"""

from chainkit.xrp.client import XrplClient
from chainkit.xrp.provider import XrpChainProvider, XrpNativeTransferParams, XrpTokenTransferParams
from chainkit.xrp.transaction import (
    IssuedCurrencyAmount,
    Memo,
    RawXrpTransaction,
    SignedXrpTransaction,
    UnsignedXrpTransaction,
    classify_engine_result,
)

__all__ = [
    "XrplClient",
    "XrpChainProvider",
    "XrpNativeTransferParams",
    "XrpTokenTransferParams",
    "IssuedCurrencyAmount",
    "Memo",
    "RawXrpTransaction",
    "UnsignedXrpTransaction",
    "SignedXrpTransaction",
    "classify_engine_result",
]
