"""
Solana chain provider.

Builds legacy transactions from JSON-RPC context (latest blockhash, token
accounts, fees) and reads balances.
"""

import asyncio
from typing import Any, Dict, List, Optional, Union

import structlog

from chainkit.core.chains import ChainConfig
from chainkit.core.errors import ChainError, ContractError, InvalidAddressError
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
from chainkit.svm.message import (
    SPL_TOKEN_PROGRAM_ID,
    Instruction,
    is_valid_solana_address,
    system_transfer,
    token_transfer,
)
from chainkit.svm.transaction import RawSolanaTransaction, UnsignedSvmTransaction

logger = structlog.get_logger(__name__)

DEFAULT_BASE_FEE = 5000
DEFAULT_COMPUTE_UNIT_LIMIT = 200_000

# One-signature, one-account message used only to price the base fee
FEE_ESTIMATE_MESSAGE = (
    "AQABAgIAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAQAAAAAA"
    "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA="
)


class SvmChainProvider(ChainProvider):
    """Provider for Solana clusters."""

    def __init__(self, config: ChainConfig, rpc: Optional[RpcClient] = None):
        super().__init__(config, rpc or RpcClient(config.chain_alias, config.rpc_url, headers=config.headers))

    def is_valid_address(self, address: str) -> bool:
        return is_valid_solana_address(address)

    # Balances

    async def get_native_balance(self, address: str) -> NativeBalance:
        self.validate_address(address)
        result = await self.rpc.call("getBalance", [address, {"commitment": "confirmed"}])
        lamports = int(result["value"])
        currency = self.config.native_currency
        return NativeBalance(
            balance=str(lamports),
            formatted_balance=format_units(lamports, currency.decimals),
            symbol=currency.symbol,
            decimals=currency.decimals,
        )

    async def get_token_balance(self, address: str, contract_address: str) -> TokenBalance:
        self.validate_address(address)
        self.validate_address(contract_address)

        accounts = await self.get_token_accounts_by_owner(address, contract_address)
        if accounts:
            token_amount = accounts[0]["account"]["data"]["parsed"]["info"]["tokenAmount"]
            amount = int(token_amount["amount"])
            decimals = int(token_amount["decimals"])
        else:
            amount = 0
            decimals = await self.get_mint_decimals(contract_address)

        return TokenBalance(
            balance=str(amount),
            formatted_balance=format_units(amount, decimals),
            symbol="SPL",
            decimals=decimals,
            contract_address=contract_address,
        )

    # Transaction building

    async def build_native_transfer(self, params: NativeTransferParams) -> UnsignedSvmTransaction:
        self.validate_address(params.from_address)
        self.validate_address(params.to)
        lamports = self.parse_native_amount(params.value)

        blockhash = await self.get_recent_blockhash()
        raw = RawSolanaTransaction(
            recent_blockhash=blockhash["blockhash"],
            fee_payer=params.from_address,
            instructions=(system_transfer(params.from_address, params.to, lamports),),
            value=str(lamports),
        )
        logger.debug("svm_native_transfer_built", chain=self.chain_alias, value=lamports)
        return self._finish(raw, params.overrides)

    async def build_token_transfer(self, params: TokenTransferParams) -> UnsignedSvmTransaction:
        self.validate_address(params.from_address)
        self.validate_address(params.to)
        self.validate_address(params.contract_address)
        amount = self.parse_token_amount(params.value)

        blockhash, sources, destinations = await asyncio.gather(
            self.get_recent_blockhash(),
            self.get_token_accounts_by_owner(params.from_address, params.contract_address),
            self.get_token_accounts_by_owner(params.to, params.contract_address),
        )

        if not sources:
            raise ChainError(
                f"Source wallet has no token account for mint {params.contract_address}",
                self.chain_alias,
            )
        if not destinations:
            raise ChainError(
                f"Destination wallet has no token account for mint {params.contract_address}",
                self.chain_alias,
            )

        source = sources[0]
        program_id = source["account"].get("owner") or SPL_TOKEN_PROGRAM_ID
        decimals = source["account"]["data"]["parsed"]["info"]["tokenAmount"]["decimals"]

        raw = RawSolanaTransaction(
            recent_blockhash=blockhash["blockhash"],
            fee_payer=params.from_address,
            instructions=(
                token_transfer(source["pubkey"], destinations[0]["pubkey"], params.from_address, amount, program_id),
            ),
            value="0",
            token_mint=params.contract_address,
            token_decimals=int(decimals),
        )
        return self._finish(raw, params.overrides)

    def _finish(
        self,
        raw: RawSolanaTransaction,
        overrides: Optional[TransactionOverrides],
    ) -> UnsignedSvmTransaction:
        tx = UnsignedSvmTransaction(self.config, raw, self.rpc)
        return tx.rebuild(overrides) if overrides else tx

    def decode(
        self,
        serialized: str,
        format: Union[DecodeFormat, str],
    ) -> Union[RawTransaction, NormalisedTransaction]:
        return decode_as(UnsignedSvmTransaction.from_serialized(self.config, serialized, self.rpc), format)

    async def estimate_fee(self) -> FeeEstimate:
        base_fee = await self.get_base_fee()
        currency = self.config.native_currency

        def level(multiplier: int) -> FeeLevel:
            fee = base_fee * multiplier
            return FeeLevel(str(fee), f"{format_units(fee, currency.decimals)} {currency.symbol}")

        return FeeEstimate(slow=level(1), standard=level(2), fast=level(5))

    async def estimate_gas(self, params: ContractCallParams) -> str:
        return str(DEFAULT_COMPUTE_UNIT_LIMIT)

    # Contracts

    async def contract_read(self, params: ContractReadParams) -> ContractReadResult:
        raise ContractError(
            "contract_read is not supported on Solana; read account data instead",
            self.chain_alias,
        )

    async def contract_call(self, params: ContractCallParams) -> UnsignedSvmTransaction:
        """Invoke a program with base64 instruction data and no extra accounts."""
        self.validate_address(params.from_address)
        if not is_valid_solana_address(params.contract_address):
            raise InvalidAddressError(self.chain_alias, params.contract_address, "invalid program id")

        blockhash = await self.get_recent_blockhash()
        raw = RawSolanaTransaction(
            recent_blockhash=blockhash["blockhash"],
            fee_payer=params.from_address,
            instructions=(Instruction(params.contract_address, (), params.data),),
            value="0",
        )
        return self._finish(raw, params.overrides)

    async def contract_deploy(self, params: ContractDeployParams) -> DeployedContract:
        raise ContractError(
            "contract_deploy is not supported on Solana; program deployment spans many transactions",
            self.chain_alias,
        )

    # RPC helpers

    async def get_recent_blockhash(self) -> Dict[str, Any]:
        result = await self.rpc.call("getLatestBlockhash", [{"commitment": "confirmed"}])
        return {
            "blockhash": result["value"]["blockhash"],
            "last_valid_block_height": result["value"]["lastValidBlockHeight"],
        }

    async def get_base_fee(self) -> int:
        result = await self.rpc.call("getFeeForMessage", [FEE_ESTIMATE_MESSAGE, {"commitment": "confirmed"}])
        value = (result or {}).get("value")
        return int(value) if value is not None else DEFAULT_BASE_FEE

    async def get_token_accounts_by_owner(self, owner: str, mint: str) -> List[Dict[str, Any]]:
        result = await self.rpc.call("getTokenAccountsByOwner", [
            owner,
            {"mint": mint},
            {"encoding": "jsonParsed"},
        ])
        return list(result.get("value") or [])

    async def get_mint_decimals(self, mint: str) -> int:
        result = await self.rpc.call("getAccountInfo", [mint, {"encoding": "jsonParsed"}])
        value = (result or {}).get("value")
        if not value:
            return 9
        return int(value["data"]["parsed"]["info"]["decimals"])
