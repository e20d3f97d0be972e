"""
Bitcoin-style (UTXO) ecosystem.
"""

from chainkit.utxo.blockbook import BlockbookClient
from chainkit.utxo.provider import UtxoChainProvider, UtxoNativeTransferParams
from chainkit.utxo.psbt import Psbt, PsbtInput, PsbtOutput
from chainkit.utxo.script import ScriptType
from chainkit.utxo.selection import CoinSelection, estimate_vsize, select_utxos
from chainkit.utxo.transaction import RawUtxoTransaction, SignedUtxoTransaction, UnsignedUtxoTransaction

__all__ = [
    "BlockbookClient",
    "UtxoChainProvider",
    "UtxoNativeTransferParams",
    "Psbt",
    "PsbtInput",
    "PsbtOutput",
    "ScriptType",
    "CoinSelection",
    "estimate_vsize",
    "select_utxos",
    "RawUtxoTransaction",
    "UnsignedUtxoTransaction",
    "SignedUtxoTransaction",
]
