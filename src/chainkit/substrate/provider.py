"""
Substrate chain provider (read only).

Balances come straight from ``System.Account`` storage; no transaction
building is offered for this ecosystem.
"""

from typing import Any, Dict, Optional, Union

import structlog

from chainkit.core.chains import ChainConfig
from chainkit.core.errors import ContractError, UnsupportedOperationError
from chainkit.core.interfaces import ChainProvider
from chainkit.core.normalised import NormalisedTransaction
from chainkit.core.rpc import RpcClient
from chainkit.core.types import (
    ContractCallParams,
    ContractDeployParams,
    ContractReadParams,
    ContractReadResult,
    DecodeFormat,
    DeployedContract,
    FeeEstimate,
    FeeLevel,
    NativeBalance,
    NativeTransferParams,
    RawTransaction,
    TokenBalance,
    TokenTransferParams,
)
from chainkit.core.units import format_units
from chainkit.substrate.storage import (
    DEFAULT_SS58_PREFIX,
    AccountInfo,
    decode_account_info,
    decode_address,
    is_valid_address,
    system_account_key,
)

logger = structlog.get_logger(__name__)

# Flat weight-based fee of a balance transfer, in planck
BASE_FEE = 10_000_000


def http_url(url: str) -> str:
    """JSON-RPC over HTTP for node URLs configured as websockets."""
    if url.startswith("wss://"):
        return "https://" + url[len("wss://"):]
    if url.startswith("ws://"):
        return "http://" + url[len("ws://"):]
    return url


class SubstrateChainProvider(ChainProvider):
    """Provider for Substrate chains such as Bittensor."""

    def __init__(self, config: ChainConfig, rpc: Optional[RpcClient] = None):
        super().__init__(config, rpc or RpcClient(config.chain_alias, http_url(config.rpc_url), headers=config.headers))

    @property
    def ss58_prefix(self) -> int:
        return self.config.ss58_prefix if self.config.ss58_prefix is not None else DEFAULT_SS58_PREFIX

    def is_valid_address(self, address: str) -> bool:
        return is_valid_address(address, self.ss58_prefix)

    # Balances

    async def get_account_info(self, address: str) -> AccountInfo:
        """Decoded ``System.Account`` entry; all zero for an unknown account."""
        self.validate_address(address)
        _, public_key = decode_address(address)
        key = system_account_key(public_key)

        encoded = await self.rpc.call("state_getStorage", [key])
        if not encoded:
            logger.debug("substrate_account_empty", chain=self.chain_alias, address=address)
            return AccountInfo()
        return decode_account_info(encoded)

    async def get_native_balance(self, address: str) -> NativeBalance:
        """Free balance of the account."""
        info = await self.get_account_info(address)
        currency = self.config.native_currency
        return NativeBalance(
            balance=str(info.data.free),
            formatted_balance=format_units(info.data.free, currency.decimals),
            symbol=currency.symbol,
            decimals=currency.decimals,
        )

    async def get_token_balance(self, address: str, contract_address: str) -> TokenBalance:
        raise ContractError("Token balances not supported on native Substrate chains", self.chain_alias)

    # Chain metadata

    async def get_block_hash(self, block_number: int) -> str:
        return await self.rpc.call("chain_getBlockHash", [block_number])

    async def get_genesis_hash(self) -> str:
        return await self.get_block_hash(0)

    async def get_finalized_head(self) -> str:
        return await self.rpc.call("chain_getFinalizedHead")

    async def get_block_number(self) -> int:
        header = await self.rpc.call("chain_getHeader") or {}
        return int(header.get("number", "0x0"), 16)

    async def get_runtime_version(self) -> Dict[str, Any]:
        return await self.rpc.call("state_getRuntimeVersion") or {}

    # Transaction building

    async def build_native_transfer(self, params: NativeTransferParams):
        self.validate_address(params.from_address)
        self.validate_address(params.to)
        raise UnsupportedOperationError(self.chain_alias, "native transfers")

    async def build_token_transfer(self, params: TokenTransferParams):
        raise ContractError("Token transfers not supported on native Substrate chains", self.chain_alias)

    def decode(
        self,
        serialized: str,
        format: Union[DecodeFormat, str],
    ) -> Union[RawTransaction, NormalisedTransaction]:
        raise UnsupportedOperationError(self.chain_alias, "transaction decoding")

    async def estimate_fee(self) -> FeeEstimate:
        currency = self.config.native_currency

        def level(fee: int) -> FeeLevel:
            return FeeLevel(str(fee), f"{format_units(fee, currency.decimals)} {currency.symbol}")

        return FeeEstimate(slow=level(BASE_FEE), standard=level(BASE_FEE * 2), fast=level(BASE_FEE * 5))

    async def estimate_gas(self, params: ContractCallParams) -> str:
        return str(BASE_FEE)

    # Contracts

    async def contract_read(self, params: ContractReadParams) -> ContractReadResult:
        raise ContractError("Smart contracts are not supported on this Substrate chain", self.chain_alias)

    async def contract_call(self, params: ContractCallParams):
        raise ContractError("Smart contracts are not supported on this Substrate chain", self.chain_alias)

    async def contract_deploy(self, params: ContractDeployParams) -> DeployedContract:
        raise ContractError("Smart contracts are not supported on this Substrate chain", self.chain_alias)
