"""
Coin selection and virtual size estimation.

Selection is greedy largest-first: outputs are taken in descending value
order and the fee is re-estimated after each one, stopping at the first
prefix that covers amount plus fee.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import structlog

from chainkit.core.errors import InsufficientFundsError
from chainkit.core.types import UtxoInput
from chainkit.utxo.script import ScriptType

logger = structlog.get_logger(__name__)

DEFAULT_DUST_THRESHOLD = 546

# version + locktime + segwit marker/flag, in vbytes
BASE_VSIZE = 10.5
INPUT_VSIZE = {
    ScriptType.P2WPKH: 68,
    ScriptType.P2TR: 57.5,
}
OUTPUT_VSIZE = 31


@dataclass(frozen=True)
class CoinSelection:
    selected: Tuple[UtxoInput, ...]
    total_input: int
    fee: int
    change: int


def estimate_vsize(input_count: int, output_count: int, script_type: ScriptType = ScriptType.P2WPKH) -> int:
    """Estimated virtual size in vbytes, rounded up."""
    return math.ceil(BASE_VSIZE + input_count * INPUT_VSIZE[script_type] + output_count * OUTPUT_VSIZE)


def estimate_fee(
    input_count: int,
    fee_rate: float,
    script_type: ScriptType = ScriptType.P2WPKH,
    output_count: int = 2,
) -> int:
    """Fee in satoshis for ``fee_rate`` sat/vB, assuming recipient plus change outputs."""
    return math.ceil(estimate_vsize(input_count, output_count, script_type) * fee_rate)


def fold_dust(change: int, fee: int, dust_threshold: int) -> Tuple[int, int]:
    """
    Move change below the dust threshold into the fee.

    Returns:
        Tuple of (change, fee)
    """
    if 0 < change < dust_threshold:
        return 0, fee + change
    return change, fee


def select_utxos(
    available: Sequence[UtxoInput],
    target: int,
    fee_rate: float,
    dust_threshold: int = DEFAULT_DUST_THRESHOLD,
    script_type: ScriptType = ScriptType.P2WPKH,
    chain_alias: Optional[str] = None,
) -> CoinSelection:
    """
    Select unspent outputs covering ``target`` plus fee.

    Args:
        available: Candidate unspent outputs
        target: Amount to pay in satoshis
        fee_rate: Fee rate in sat/vB
        dust_threshold: Change below this value is added to the fee
        script_type: Input type used for size estimation

    Returns:
        CoinSelection with the minimal largest-first prefix

    Raises:
        InsufficientFundsError: If all outputs together do not cover target plus fee
    """
    ordered = sorted(available, key=lambda utxo: utxo.value, reverse=True)

    selected = []
    total = 0
    fee = 0
    for utxo in ordered:
        selected.append(utxo)
        total += utxo.value
        fee = estimate_fee(len(selected), fee_rate, script_type)

        if total >= target + fee:
            change, fee = fold_dust(total - target - fee, fee, dust_threshold)
            logger.debug(
                "utxo_inputs_selected",
                chain=chain_alias,
                inputs=len(selected),
                total_input=total,
                fee=fee,
                change=change,
            )
            return CoinSelection(tuple(selected), total, fee, change)

    required = target + (fee if selected else estimate_fee(1, fee_rate, script_type))
    logger.warning("utxo_selection_failed", chain=chain_alias, required=required, available=total)
    raise InsufficientFundsError(chain_alias, required, total)
