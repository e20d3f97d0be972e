"""
Blockbook indexer client.

Provides unspent outputs, address balances, fee rates and transaction
submission over Blockbook's REST API (v2).
"""

import math
from typing import Any, Dict, List

import structlog

from chainkit.core.errors import BroadcastError
from chainkit.core.rpc import RpcClient
from chainkit.core.types import UtxoInput

logger = structlog.get_logger(__name__)

MIN_FEE_RATE = 1.0


class BlockbookClient:
    """
    Blockbook REST adapter.

    Reuses the provider's RpcClient so errors carry the chain alias.
    """

    def __init__(self, rpc: RpcClient):
        self.rpc = rpc

    @property
    def chain_alias(self) -> str:
        return self.rpc.chain_alias

    async def get_utxos(self, address: str) -> List[UtxoInput]:
        """Get unspent outputs at an address, confirmed and mempool."""
        data = await self.rpc.get(f"/api/v2/utxo/{address}")

        utxos = [
            UtxoInput(
                txid=item["txid"],
                vout=int(item["vout"]),
                value=int(item["value"]),
                script_pubkey=item.get("scriptPubKey") or "",
                address=item.get("address") or address,
                confirmations=int(item.get("confirmations", 0)),
            )
            for item in data or []
        ]

        logger.debug("utxos_fetched", chain=self.chain_alias, address=address, count=len(utxos))
        return utxos

    async def get_address_info(self, address: str) -> Dict[str, Any]:
        """
        Get balance information for an address.

        Unknown addresses report zero balances.
        """
        data = await self.rpc.get(f"/api/v2/address/{address}", params={"details": "basic"})
        if data is None:
            return {"address": address, "balance": "0", "unconfirmedBalance": "0"}
        return data

    async def estimate_fee_rate(self, blocks: int) -> float:
        """
        Estimate the fee rate for confirmation within ``blocks``.

        Blockbook answers in BTC/kB; converted to sat/vB and floored at
        1 sat/vB when the node has no estimate.
        """
        data = await self.rpc.get(f"/api/v2/estimatefee/{blocks}")
        try:
            btc_per_kb = float((data or {}).get("result", 0))
        except (TypeError, ValueError):
            btc_per_kb = 0.0

        if btc_per_kb <= 0:
            logger.debug("fee_estimate_unavailable", chain=self.chain_alias, blocks=blocks)
            return MIN_FEE_RATE
        return float(math.ceil(btc_per_kb * 100_000))

    async def send_transaction(self, tx_hex: str) -> str:
        """
        Submit a raw transaction.

        Returns:
            The txid reported by Blockbook

        Raises:
            BroadcastError: If Blockbook answers with an error member
        """
        data = await self.rpc.get(f"/api/v2/sendtx/{tx_hex}")
        if not data or "result" not in data:
            error = (data or {}).get("error", "empty response")
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            code = str(error["code"]) if isinstance(error, dict) and "code" in error else None
            raise BroadcastError(f"Broadcast failed: {message}", self.chain_alias, code=code)
        return data["result"]
