"""
rippled JSON-RPC client.

rippled reports request failures inside ``result`` (``status: "error"``)
rather than as a JSON-RPC error member, so every call is checked here.
"""

from typing import Any, Dict, List, Optional

import structlog

from chainkit.core.errors import RpcError
from chainkit.core.rpc import RpcClient

logger = structlog.get_logger(__name__)

ACCOUNT_NOT_FOUND = "actNotFound"


class XrplClient:
    """Thin adapter over the provider's RpcClient for rippled methods."""

    def __init__(self, rpc: RpcClient):
        self.rpc = rpc

    @property
    def chain_alias(self) -> str:
        return self.rpc.chain_alias

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Call a rippled method with a single parameter object.

        Raises:
            RpcError: If rippled answers with ``status: "error"``
        """
        result = await self.rpc.call(method, [params or {}]) or {}
        if result.get("status") == "error" or "error" in result:
            error = result.get("error", "unknown")
            message = result.get("error_message") or error
            logger.debug("xrpl_request_failed", chain=self.chain_alias, method=method, error=error)
            raise XrplRequestError(message, self.chain_alias, error)
        return result

    async def get_account_info(self, address: str) -> Optional[Dict[str, Any]]:
        """
        Validated account root, or None for an account that was never funded.
        """
        try:
            result = await self.request("account_info", {"account": address, "ledger_index": "validated"})
        except XrplRequestError as e:
            if e.error == ACCOUNT_NOT_FOUND:
                return None
            raise
        return result.get("account_data")

    async def get_account_lines(self, address: str) -> List[Dict[str, Any]]:
        """Trust lines of an account; empty for an unfunded account."""
        try:
            result = await self.request("account_lines", {"account": address, "ledger_index": "validated"})
        except XrplRequestError as e:
            if e.error == ACCOUNT_NOT_FOUND:
                return []
            raise
        return result.get("lines") or []

    async def get_fee(self) -> Dict[str, Any]:
        result = await self.request("fee")
        return result.get("drops") or {}

    async def get_base_fee(self) -> int:
        drops = await self.get_fee()
        return int(drops.get("base_fee") or drops.get("open_ledger_fee") or 10)

    async def get_ledger_index(self) -> int:
        result = await self.request("ledger", {"ledger_index": "validated"})
        index = (
            result.get("ledger_index")
            or result.get("ledger_current_index")
            or (result.get("ledger") or {}).get("ledger_index")
        )
        if index is None:
            raise RpcError("Ledger index missing from response", self.chain_alias)
        return int(index)

    async def submit(self, tx_blob: str) -> Dict[str, Any]:
        return await self.request("submit", {"tx_blob": tx_blob})


class XrplRequestError(RpcError):
    """rippled rejected a request; ``error`` is its short error token."""

    def __init__(self, message: str, chain_alias: Optional[str], error: str):
        super().__init__(message, chain_alias)
        self.error = error
