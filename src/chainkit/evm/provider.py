"""
EVM chain provider over standard Ethereum JSON-RPC.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import structlog

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
from chainkit.evm.abi import (
    DECIMALS_SELECTOR,
    SYMBOL_SELECTOR,
    contract_address,
    decode_string,
    decode_uint,
    encode_balance_of,
    encode_erc20_transfer,
    is_valid_address,
    strip_0x,
)
from chainkit.evm.transaction import DYNAMIC_FEE, LEGACY, RawEvmTransaction, UnsignedEvmTransaction

logger = structlog.get_logger(__name__)

TRANSFER_GAS = 21_000
DEFAULT_TOKEN_DECIMALS = 18

# Fee tiers as percentages of the current price
SLOW_PERCENT = 80
FAST_PERCENT = 120


@dataclass(frozen=True)
class FeeData:
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None


def to_quantity(value: int) -> str:
    return hex(value)


class EvmChainProvider(ChainProvider):
    """Provider for EVM-compatible chains."""

    def __init__(self, config: ChainConfig, rpc: Optional[RpcClient] = None):
        super().__init__(config, rpc or RpcClient(config.chain_alias, config.rpc_url, headers=config.headers))

    def is_valid_address(self, address: str) -> bool:
        return is_valid_address(address)

    # Balances

    async def get_native_balance(self, address: str) -> NativeBalance:
        self.validate_address(address)
        result = await self.rpc.call("eth_getBalance", [address, "latest"])
        wei = int(result or "0x0", 16)
        currency = self.config.native_currency
        return NativeBalance(
            balance=str(wei),
            formatted_balance=format_units(wei, currency.decimals),
            symbol=currency.symbol,
            decimals=currency.decimals,
        )

    async def get_token_balance(self, address: str, contract_address: str) -> TokenBalance:
        """ERC-20 balance with decimals and symbol read from the token."""
        self.validate_address(address)
        self.validate_address(contract_address)

        balance_hex, decimals_hex, symbol_hex = await asyncio.gather(
            self._eth_call(contract_address, encode_balance_of(address)),
            self._eth_call(contract_address, DECIMALS_SELECTOR),
            self._eth_call(contract_address, SYMBOL_SELECTOR),
        )
        balance = decode_uint(balance_hex)
        decimals = decode_uint(decimals_hex, DEFAULT_TOKEN_DECIMALS)
        return TokenBalance(
            balance=str(balance),
            formatted_balance=format_units(balance, decimals),
            symbol=decode_string(symbol_hex) or "ERC20",
            decimals=decimals,
            contract_address=contract_address,
        )

    # Chain state

    async def get_transaction_count(self, address: str) -> int:
        result = await self.rpc.call("eth_getTransactionCount", [address, "pending"])
        return int(result, 16)

    async def get_fee_data(self) -> FeeData:
        """
        Current fee parameters.

        EIP-1559 chains: maxFee = 2 * baseFee + priorityFee. Others: eth_gasPrice.

        Raises:
            RpcError: If the latest block has no baseFeePerGas on an EIP-1559 chain
        """
        if not self.config.supports_eip1559:
            gas_price = await self.rpc.call("eth_gasPrice")
            return FeeData(gas_price=int(gas_price, 16))

        block, priority_fee = await asyncio.gather(
            self.rpc.call("eth_getBlockByNumber", ["latest", False]),
            self.rpc.call("eth_maxPriorityFeePerGas"),
        )
        if not block or not block.get("baseFeePerGas"):
            raise RpcError("Block does not contain baseFeePerGas (pre-London hardfork?)", self.chain_alias)

        base_fee = int(block["baseFeePerGas"], 16)
        priority = int(priority_fee, 16)
        return FeeData(max_fee_per_gas=base_fee * 2 + priority, max_priority_fee_per_gas=priority)

    async def _estimate(self, call: Dict[str, Any]) -> int:
        result = await self.rpc.call("eth_estimateGas", [call])
        return int(result, 16)

    async def _eth_call(self, to: str, data: str, from_address: Optional[str] = None) -> str:
        call = {"to": to, "data": data}
        if from_address:
            call["from"] = from_address
        return await self.rpc.call("eth_call", [call, "latest"])

    # Transaction building

    async def _build(
        self,
        from_address: str,
        to: Optional[str],
        value: int,
        data: str,
        overrides: Optional[TransactionOverrides],
    ) -> UnsignedEvmTransaction:
        """Fetch nonce, gas limit and fee data concurrently and assemble the transaction."""
        call: Dict[str, Any] = {"from": from_address, "data": data}
        if to is not None:
            call["to"] = to
        if value:
            call["value"] = to_quantity(value)

        nonce, gas_limit, fee_data = await asyncio.gather(
            self.get_transaction_count(from_address),
            self._estimate(call),
            self.get_fee_data(),
        )

        if self.config.supports_eip1559:
            raw = RawEvmTransaction(
                type=DYNAMIC_FEE,
                chain_id=self.config.chain_id,
                nonce=nonce,
                to=to,
                value=str(value),
                data=data,
                gas_limit=str(gas_limit),
                max_fee_per_gas=str(fee_data.max_fee_per_gas),
                max_priority_fee_per_gas=str(fee_data.max_priority_fee_per_gas),
            )
        else:
            raw = RawEvmTransaction(
                type=LEGACY,
                chain_id=self.config.chain_id,
                nonce=nonce,
                to=to,
                value=str(value),
                data=data,
                gas_limit=str(gas_limit),
                gas_price=str(fee_data.gas_price),
            )

        logger.debug("evm_transaction_built", chain=self.chain_alias, type=raw.type, nonce=nonce, gas_limit=gas_limit)
        tx = UnsignedEvmTransaction(self.config, raw, self.rpc)
        return tx.rebuild(overrides) if overrides else tx

    async def build_native_transfer(self, params: NativeTransferParams) -> UnsignedEvmTransaction:
        self.validate_address(params.from_address)
        self.validate_address(params.to)
        value = self.parse_native_amount(params.value)
        return await self._build(params.from_address, params.to, value, "0x", params.overrides)

    async def build_token_transfer(self, params: TokenTransferParams) -> UnsignedEvmTransaction:
        self.validate_address(params.from_address)
        self.validate_address(params.to)
        self.validate_address(params.contract_address)
        data = encode_erc20_transfer(params.to, self.parse_token_amount(params.value))
        return await self._build(params.from_address, params.contract_address, 0, data, params.overrides)

    def decode(
        self,
        serialized: str,
        format: Union[DecodeFormat, str],
    ) -> Union[RawTransaction, NormalisedTransaction]:
        return decode_as(UnsignedEvmTransaction.from_serialized(self.config, serialized, self.rpc), format)

    async def estimate_fee(self) -> FeeEstimate:
        """Cost of a plain transfer at 80%, 100% and 120% of the current price."""
        fee_data = await self.get_fee_data()
        price = fee_data.max_fee_per_gas if self.config.supports_eip1559 else fee_data.gas_price
        if not price:
            raise RpcError("Unable to get fee data", self.chain_alias)

        standard = price * TRANSFER_GAS
        currency = self.config.native_currency

        def level(fee: int) -> FeeLevel:
            return FeeLevel(str(fee), f"{format_units(fee, currency.decimals)} {currency.symbol}")

        return FeeEstimate(
            slow=level(standard * SLOW_PERCENT // 100),
            standard=level(standard),
            fast=level(standard * FAST_PERCENT // 100),
        )

    async def estimate_gas(self, params: ContractCallParams) -> str:
        self.validate_address(params.from_address)
        self.validate_address(params.contract_address)
        call: Dict[str, Any] = {"from": params.from_address, "to": params.contract_address, "data": params.data}
        value = self.parse_native_amount(params.value)
        if value:
            call["value"] = to_quantity(value)
        return str(await self._estimate(call))

    # Contracts

    async def contract_read(self, params: ContractReadParams) -> ContractReadResult:
        self.validate_address(params.contract_address)
        if params.from_address:
            self.validate_address(params.from_address)
        result = await self._eth_call(params.contract_address, params.data, params.from_address)
        return ContractReadResult(data=result)

    async def contract_call(self, params: ContractCallParams) -> UnsignedEvmTransaction:
        self.validate_address(params.from_address)
        self.validate_address(params.contract_address)
        value = self.parse_native_amount(params.value)
        return await self._build(params.from_address, params.contract_address, value, params.data, params.overrides)

    async def contract_deploy(self, params: ContractDeployParams) -> DeployedContract:
        self.validate_address(params.from_address)
        data = params.bytecode
        if params.constructor_args:
            data += strip_0x(params.constructor_args)
        value = self.parse_native_amount(params.value)

        tx = await self._build(params.from_address, None, value, data, params.overrides)
        expected_address = contract_address(params.from_address, tx.raw.nonce)
        logger.info("evm_contract_deploy_built", chain=self.chain_alias, expected_address=expected_address)
        return DeployedContract(transaction=tx, expected_address=expected_address)
