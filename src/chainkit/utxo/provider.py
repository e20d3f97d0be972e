"""
UTXO chain provider.

Builds segwit transfers from Blockbook data: unspent outputs are selected
largest-first, paid to the recipient with change back to the sender.
"""

import asyncio
import math
from dataclasses import dataclass
from typing import List, Optional, Union

import structlog

from chainkit.config import get_config
from chainkit.core.chains import ChainConfig
from chainkit.core.errors import (
    ChainError,
    CodecError,
    ContractError,
    InsufficientFundsError,
    InvalidAddressError,
    UnsupportedAddressTypeError,
    UnsupportedOperationError,
)
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
    UtxoInput,
    UtxoTransactionOverrides,
)
from chainkit.core.units import format_units
from chainkit.utxo.blockbook import BlockbookClient
from chainkit.utxo.psbt import SEQUENCE_FINAL, SEQUENCE_RBF
from chainkit.utxo.script import ScriptType, address_to_script, is_valid_address, script_type_from_address
from chainkit.utxo.selection import estimate_vsize, fold_dust, select_utxos
from chainkit.utxo.transaction import RawUtxoInput, RawUtxoOutput, RawUtxoTransaction, UnsignedUtxoTransaction

logger = structlog.get_logger(__name__)

# Confirmation targets in blocks
FAST_BLOCKS = 1
STANDARD_BLOCKS = 3
SLOW_BLOCKS = 6


@dataclass(frozen=True)
class UtxoNativeTransferParams(NativeTransferParams):
    """Native transfer carrying the sender's public key (33-byte compressed, hex)."""
    public_key: Optional[str] = None


class UtxoChainProvider(ChainProvider):
    """Provider for Bitcoin-style chains backed by a Blockbook indexer."""

    def __init__(
        self,
        config: ChainConfig,
        rpc: Optional[RpcClient] = None,
        dust_threshold: Optional[int] = None,
    ):
        super().__init__(config, rpc or RpcClient(config.chain_alias, config.rpc_url, headers=config.headers))
        self.blockbook = BlockbookClient(self.rpc)
        self.dust_threshold = dust_threshold if dust_threshold is not None else get_config().utxo_dust_threshold

    @property
    def hrp(self) -> str:
        return self.config.bech32_hrp or "bc"

    @property
    def network(self) -> str:
        return self.config.network or "mainnet"

    def is_valid_address(self, address: str) -> bool:
        return is_valid_address(address, self.hrp, self.network)

    # Balances

    async def get_native_balance(self, address: str) -> NativeBalance:
        """Confirmed plus unconfirmed balance."""
        self.validate_address(address)
        info = await self.blockbook.get_address_info(address)
        total = int(info.get("balance", 0)) + int(info.get("unconfirmedBalance", 0))
        return self._balance(total)

    async def get_confirmed_balance(self, address: str) -> NativeBalance:
        self.validate_address(address)
        info = await self.blockbook.get_address_info(address)
        return self._balance(int(info.get("balance", 0)))

    def _balance(self, amount: int) -> NativeBalance:
        currency = self.config.native_currency
        return NativeBalance(
            balance=str(amount),
            formatted_balance=format_units(amount, currency.decimals),
            symbol=currency.symbol,
            decimals=currency.decimals,
        )

    async def get_token_balance(self, address: str, contract_address: str) -> TokenBalance:
        raise UnsupportedOperationError(self.chain_alias, "token balances")

    async def get_utxos(self, address: str) -> List[UtxoInput]:
        self.validate_address(address)
        return await self.blockbook.get_utxos(address)

    # Transaction building

    async def build_native_transfer(self, params: NativeTransferParams) -> UnsignedUtxoTransaction:
        """
        Build a transfer from a P2WPKH or P2TR address.

        Args:
            params: UtxoNativeTransferParams with the sender's public key

        Raises:
            ChainError: If no public key is given
            UnsupportedAddressTypeError: If the sender is not a segwit address
            InsufficientFundsError: If the unspent outputs cannot cover amount plus fee
        """
        self.validate_address(params.from_address)
        self.validate_address(params.to)

        public_key = getattr(params, "public_key", None)
        if not public_key:
            raise ChainError("public_key is required for UTXO transactions", self.chain_alias)
        try:
            public_key_bytes = bytes.fromhex(public_key)
        except ValueError:
            raise ChainError("public_key must be hex", self.chain_alias)

        script_type = script_type_from_address(params.from_address, self.hrp)
        if script_type is None:
            raise UnsupportedAddressTypeError(
                f"Unsupported sender address type: {params.from_address}",
                self.chain_alias,
            )

        overrides = params.overrides if isinstance(params.overrides, UtxoTransactionOverrides) else None
        if overrides and overrides.change_address:
            self.validate_address(overrides.change_address)
        target = self.parse_native_amount(params.value)

        utxos = list(overrides.utxos) if overrides and overrides.utxos is not None else None
        fee_rate = overrides.fee_rate if overrides and overrides.fee_rate is not None else None
        if utxos is None and fee_rate is None:
            utxos, fee_rate = await asyncio.gather(
                self.blockbook.get_utxos(params.from_address),
                self.blockbook.estimate_fee_rate(STANDARD_BLOCKS),
            )
        elif utxos is None:
            utxos = await self.blockbook.get_utxos(params.from_address)
        elif fee_rate is None:
            fee_rate = await self.blockbook.estimate_fee_rate(STANDARD_BLOCKS)

        if not utxos:
            raise InsufficientFundsError(self.chain_alias, target, 0)

        selection = select_utxos(utxos, target, fee_rate, self.dust_threshold, script_type, self.chain_alias)
        fee, change = selection.fee, selection.change

        if overrides and overrides.absolute_fee is not None:
            fee = overrides.absolute_fee
            change = selection.total_input - target - fee
            if change < 0:
                raise InsufficientFundsError(self.chain_alias, target + fee, selection.total_input)
            change, fee = fold_dust(change, fee, self.dust_threshold)

        rbf = overrides.rbf if overrides and overrides.rbf is not None else True
        change_address = overrides.change_address if overrides and overrides.change_address else params.from_address
        sender_script = address_to_script(params.from_address, self.hrp, self.network).hex()
        if script_type is ScriptType.P2TR and len(public_key_bytes) == 33:
            public_key_bytes = public_key_bytes[1:]

        inputs = tuple(
            RawUtxoInput(
                txid=utxo.txid,
                vout=utxo.vout,
                value=utxo.value,
                script_pubkey=utxo.script_pubkey or sender_script,
                sequence=SEQUENCE_RBF if rbf else SEQUENCE_FINAL,
                script_type=script_type.value,
                public_key=public_key_bytes.hex(),
            )
            for utxo in selection.selected
        )
        outputs = [self._output(params.to, target)]
        if change > 0:
            outputs.append(self._output(change_address, change))

        raw = RawUtxoTransaction(
            inputs=inputs,
            outputs=tuple(outputs),
            fee=fee,
            rbf=rbf,
            change_address=change_address,
        )
        logger.info(
            "utxo_transfer_built",
            chain=self.chain_alias,
            inputs=len(inputs),
            outputs=len(outputs),
            fee=fee,
            fee_rate=fee_rate,
        )
        return UnsignedUtxoTransaction(self.config, raw, self.rpc, self.dust_threshold)

    def _output(self, address: str, value: int) -> RawUtxoOutput:
        try:
            script = address_to_script(address, self.hrp, self.network)
        except CodecError as e:
            raise InvalidAddressError(self.chain_alias, address, str(e))
        return RawUtxoOutput(address, value, script.hex())

    async def build_token_transfer(self, params: TokenTransferParams) -> UnsignedUtxoTransaction:
        raise UnsupportedOperationError(self.chain_alias, "token transfers")

    def decode(
        self,
        serialized: str,
        format: Union[DecodeFormat, str],
    ) -> Union[RawTransaction, NormalisedTransaction]:
        tx = UnsignedUtxoTransaction.from_serialized(self.config, serialized, self.rpc, self.dust_threshold)
        return decode_as(tx, format)

    async def get_fee_rates(self) -> dict:
        """Current fee rates in sat/vB per confirmation target."""
        fast, standard, slow = await asyncio.gather(
            self.blockbook.estimate_fee_rate(FAST_BLOCKS),
            self.blockbook.estimate_fee_rate(STANDARD_BLOCKS),
            self.blockbook.estimate_fee_rate(SLOW_BLOCKS),
        )
        return {"fast": fast, "standard": standard, "slow": slow}

    async def estimate_fee(self) -> FeeEstimate:
        """Fees for a typical one-input, two-output P2WPKH transfer."""
        rates = await self.get_fee_rates()
        vsize = estimate_vsize(1, 2, ScriptType.P2WPKH)
        currency = self.config.native_currency

        def level(rate: float) -> FeeLevel:
            fee = math.ceil(vsize * rate)
            return FeeLevel(str(fee), f"{format_units(fee, currency.decimals)} {currency.symbol}")

        return FeeEstimate(slow=level(rates["slow"]), standard=level(rates["standard"]), fast=level(rates["fast"]))

    async def estimate_gas(self, params: ContractCallParams) -> str:
        raise UnsupportedOperationError(self.chain_alias, "gas estimation")

    # Contracts

    async def contract_read(self, params: ContractReadParams) -> ContractReadResult:
        raise ContractError("Contract read not supported for UTXO chains", self.chain_alias)

    async def contract_call(self, params: ContractCallParams) -> UnsignedUtxoTransaction:
        raise ContractError("Contract calls not supported for UTXO chains", self.chain_alias)

    async def contract_deploy(self, params: ContractDeployParams) -> DeployedContract:
        raise ContractError("Contract deployment not supported for UTXO chains", self.chain_alias)
