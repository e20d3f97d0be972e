"""
Tron chain provider.

Talks to a full node's HTTP API (``/wallet/*``) and TronGrid's account
index (``/v1/accounts``). Contract reads and energy estimates go through
``triggerconstantcontract`` and never produce a transaction.
"""

import asyncio
from typing import Any, Dict, Optional, Union

import structlog

from chainkit.config import get_config
from chainkit.core.chains import ChainConfig
from chainkit.core.errors import RpcError
from chainkit.core.interfaces import ChainProvider, decode_as
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
    TransactionOverrides,
)
from chainkit.core.units import format_units
from chainkit.tvm.address import (
    BALANCE_OF_SELECTOR,
    DECIMALS_SELECTOR,
    SYMBOL_SELECTOR,
    ZERO_ADDRESS_HEX,
    address_to_hex,
    decode_abi_string,
    encode_address_word,
    encode_trc20_transfer,
    is_valid_tron_address,
    strip_0x,
)
from chainkit.tvm.transaction import (
    DEFAULT_DEPLOY_FEE_LIMIT,
    RawTronTransaction,
    UnsignedTvmTransaction,
    build_transaction,
    create_contract,
    decode_node_message,
    deployed_contract_address,
    trigger_contract,
    trx_transfer,
)

logger = structlog.get_logger(__name__)

# A plain transfer burns ~270 bandwidth points at 1000 sun each once free bandwidth is used up
TRANSFER_BANDWIDTH = 270
SUN_PER_BANDWIDTH = 1000
# Typical TRC-20 transfer energy at 420 sun per unit
TRC20_ENERGY = 30_000
SUN_PER_ENERGY = 420

DEFAULT_TOKEN_DECIMALS = 18


class TvmChainProvider(ChainProvider):
    """Provider for Tron networks."""

    def __init__(
        self,
        config: ChainConfig,
        rpc: Optional[RpcClient] = None,
        fee_limit: Optional[int] = None,
    ):
        super().__init__(config, rpc or RpcClient(config.chain_alias, config.rpc_url, headers=config.headers))
        self.fee_limit = fee_limit if fee_limit is not None else get_config().tron_fee_limit

    def is_valid_address(self, address: str) -> bool:
        return is_valid_tron_address(address)

    # Balances

    async def get_account(self, address: str) -> Optional[Dict[str, Any]]:
        """Account record from TronGrid; None for accounts never activated."""
        self.validate_address(address)
        data = await self.rpc.get(f"/v1/accounts/{address}")
        accounts = (data or {}).get("data") or []
        return accounts[0] if accounts else None

    async def get_native_balance(self, address: str) -> NativeBalance:
        account = await self.get_account(address)
        sun = int((account or {}).get("balance", 0))
        currency = self.config.native_currency
        return NativeBalance(
            balance=str(sun),
            formatted_balance=format_units(sun, currency.decimals),
            symbol=currency.symbol,
            decimals=currency.decimals,
        )

    async def get_token_balance(self, address: str, contract_address: str) -> TokenBalance:
        """TRC-20 balance via balanceOf, decimals and symbol constant calls."""
        self.validate_address(address)
        self.validate_address(contract_address)

        balance_hex, decimals_hex, symbol_hex = await asyncio.gather(
            self.trigger_constant(contract_address, BALANCE_OF_SELECTOR + encode_address_word(address), address),
            self.trigger_constant(contract_address, DECIMALS_SELECTOR, address),
            self.trigger_constant(contract_address, SYMBOL_SELECTOR, address),
        )

        balance = int(balance_hex, 16) if balance_hex else 0
        decimals = int(decimals_hex, 16) if decimals_hex else DEFAULT_TOKEN_DECIMALS
        symbol = decode_abi_string(symbol_hex) if symbol_hex else "TRC20"

        return TokenBalance(
            balance=str(balance),
            formatted_balance=format_units(balance, decimals),
            symbol=symbol,
            decimals=decimals,
            contract_address=contract_address,
        )

    async def get_account_resources(self, address: str) -> Dict[str, int]:
        account = await self.get_account(address) or {}
        resource = account.get("account_resource") or {}
        return {
            "free_net_used": int(account.get("free_net_usage", 0)),
            "free_net_limit": int(account.get("free_net_limit", 600)),
            "net_used": int(account.get("net_usage", 0)),
            "net_limit": int(account.get("net_limit", 0)),
            "energy_used": int(resource.get("energy_usage", 0)),
            "energy_limit": int(resource.get("energy_limit", 0)),
        }

    # Transaction building

    async def get_latest_block(self) -> Dict[str, Any]:
        block = await self.rpc.post("/wallet/getnowblock")
        if not block or "blockID" not in block:
            raise RpcError("Failed to fetch latest block", self.chain_alias)
        return block

    def _wrap(self, raw: RawTronTransaction, overrides: Optional[TransactionOverrides]) -> UnsignedTvmTransaction:
        tx = UnsignedTvmTransaction(self.config, raw, self.rpc)
        return tx.rebuild(overrides) if overrides else tx

    async def build_native_transfer(self, params: NativeTransferParams) -> UnsignedTvmTransaction:
        self.validate_address(params.from_address)
        self.validate_address(params.to)
        amount = self.parse_native_amount(params.value)

        block = await self.get_latest_block()
        raw = build_transaction(trx_transfer(params.from_address, params.to, amount), block)
        logger.debug("tvm_native_transfer_built", chain=self.chain_alias, tx_id=raw.tx_id, amount=amount)
        return self._wrap(raw, params.overrides)

    async def build_token_transfer(self, params: TokenTransferParams) -> UnsignedTvmTransaction:
        self.validate_address(params.from_address)
        self.validate_address(params.to)
        self.validate_address(params.contract_address)
        data = encode_trc20_transfer(params.to, self.parse_token_amount(params.value))

        block = await self.get_latest_block()
        contract = trigger_contract(params.from_address, params.contract_address, data)
        raw = build_transaction(contract, block, fee_limit=self.fee_limit)
        logger.debug("tvm_token_transfer_built", chain=self.chain_alias, tx_id=raw.tx_id)
        return self._wrap(raw, params.overrides)

    def decode(
        self,
        serialized: str,
        format: Union[DecodeFormat, str],
    ) -> Union[RawTransaction, NormalisedTransaction]:
        return decode_as(UnsignedTvmTransaction.from_serialized(self.config, serialized, self.rpc), format)

    async def estimate_fee(self) -> FeeEstimate:
        """
        Static bandwidth/energy model.

        Slow and standard price a plain transfer paid with bandwidth; fast
        adds the energy of a typical TRC-20 transfer.
        """
        currency = self.config.native_currency
        bandwidth_cost = TRANSFER_BANDWIDTH * SUN_PER_BANDWIDTH
        energy_cost = TRC20_ENERGY * SUN_PER_ENERGY

        def level(fee: int, suffix: str = "") -> FeeLevel:
            return FeeLevel(str(fee), f"{format_units(fee, currency.decimals)} {currency.symbol}{suffix}")

        return FeeEstimate(
            slow=level(bandwidth_cost),
            standard=level(bandwidth_cost),
            fast=level(bandwidth_cost + energy_cost, " (with energy)"),
        )

    async def estimate_gas(self, params: ContractCallParams) -> str:
        """Energy used by a simulated call."""
        self.validate_address(params.from_address)
        self.validate_address(params.contract_address)
        result = await self._trigger(
            params.contract_address,
            params.data,
            params.from_address,
            self.parse_native_amount(params.value),
        )
        return str(result.get("energy_used", TRC20_ENERGY))

    # Contracts

    async def trigger_constant(self, contract_address: str, data: str, owner: Optional[str] = None) -> str:
        """Run a constant call and return the first result word(s) as hex."""
        result = await self._trigger(contract_address, data, owner)
        constant = result.get("constant_result") or [""]
        return constant[0]

    async def _trigger(
        self,
        contract_address: str,
        data: str,
        owner: Optional[str] = None,
        call_value: int = 0,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "owner_address": address_to_hex(owner) if owner else ZERO_ADDRESS_HEX,
            "contract_address": address_to_hex(contract_address),
            "data": strip_0x(data),
            "visible": False,
        }
        if call_value:
            payload["call_value"] = call_value

        result = await self.rpc.post("/wallet/triggerconstantcontract", payload) or {}
        status = result.get("result") or {}
        if not status.get("result"):
            message = decode_node_message(status.get("message")) or "Unknown error"
            raise RpcError(f"Constant call failed: {message}", self.chain_alias)
        return result

    async def contract_read(self, params: ContractReadParams) -> ContractReadResult:
        self.validate_address(params.contract_address)
        if params.from_address:
            self.validate_address(params.from_address)
        result = await self.trigger_constant(params.contract_address, params.data, params.from_address)
        return ContractReadResult(data="0x" + result)

    async def contract_call(self, params: ContractCallParams) -> UnsignedTvmTransaction:
        self.validate_address(params.from_address)
        self.validate_address(params.contract_address)
        call_value = self.parse_native_amount(params.value)

        block = await self.get_latest_block()
        contract = trigger_contract(params.from_address, params.contract_address, params.data, call_value)
        raw = build_transaction(contract, block, fee_limit=self.fee_limit)
        return self._wrap(raw, params.overrides)

    async def contract_deploy(self, params: ContractDeployParams) -> DeployedContract:
        self.validate_address(params.from_address)
        call_value = self.parse_native_amount(params.value)

        block = await self.get_latest_block()
        contract = create_contract(params.from_address, params.bytecode, params.constructor_args, call_value)
        raw = build_transaction(contract, block, fee_limit=DEFAULT_DEPLOY_FEE_LIMIT)
        tx = self._wrap(raw, params.overrides)

        expected_address = deployed_contract_address(tx.raw)
        logger.info("tvm_contract_deploy_built", chain=self.chain_alias, expected_address=expected_address)
        return DeployedContract(transaction=tx, expected_address=expected_address)
