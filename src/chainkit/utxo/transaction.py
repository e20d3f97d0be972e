"""
Unsigned and signed transactions for segwit UTXO chains.

The serialized form of an unsigned transaction is its BIP-174 PSBT in
base64; the signed form is the extracted witness transaction in hex.
"""

import binascii
from dataclasses import dataclass, replace
from typing import ClassVar, List, Optional, Sequence, Tuple

import structlog

from chainkit.core.chains import ChainConfig
from chainkit.core.errors import (
    CodecError,
    InsufficientFundsError,
    InvalidAddressError,
    InvalidTransactionError,
    PsbtError,
    SignatureError,
    UnsupportedAddressTypeError,
)
from chainkit.core.interfaces import SignedTransaction, UnsignedTransaction
from chainkit.core.normalised import FeeInfo, NormalisedTransaction, OutputInfo, TransactionMetadata
from chainkit.core.rpc import RpcClient, rpc_session
from chainkit.core.types import (
    BroadcastResult,
    Ecosystem,
    RawTransaction,
    SigningAlgorithm,
    SigningPayload,
    TransactionOverrides,
    TransactionType,
    UtxoTransactionOverrides,
)
from chainkit.core.units import format_units
from chainkit.utxo.blockbook import BlockbookClient
from chainkit.utxo.psbt import SEQUENCE_FINAL, SEQUENCE_RBF, Psbt, PsbtInput, PsbtOutput
from chainkit.utxo.script import ScriptType, address_to_script, script_to_address
from chainkit.utxo.selection import DEFAULT_DUST_THRESHOLD, estimate_fee, fold_dust

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RawUtxoInput:
    txid: str
    vout: int
    value: int
    script_pubkey: str
    sequence: int
    script_type: str
    public_key: Optional[str] = None


@dataclass(frozen=True)
class RawUtxoOutput:
    address: Optional[str]
    value: int
    script_pubkey: str


@dataclass(frozen=True)
class RawUtxoTransaction(RawTransaction):
    ecosystem: ClassVar[Ecosystem] = Ecosystem.UTXO

    inputs: Tuple[RawUtxoInput, ...]
    outputs: Tuple[RawUtxoOutput, ...]
    fee: int
    rbf: bool = True
    change_address: Optional[str] = None
    version: int = 2
    locktime: int = 0

    @property
    def total_input(self) -> int:
        return sum(txin.value for txin in self.inputs)

    @property
    def total_output(self) -> int:
        return sum(output.value for output in self.outputs)

    def to_psbt(self) -> Psbt:
        return Psbt(
            inputs=tuple(
                PsbtInput(
                    txid=txin.txid,
                    vout=txin.vout,
                    value=txin.value,
                    script_pubkey=bytes.fromhex(txin.script_pubkey),
                    sequence=txin.sequence,
                    public_key=bytes.fromhex(txin.public_key) if txin.public_key else None,
                )
                for txin in self.inputs
            ),
            outputs=tuple(PsbtOutput(output.value, bytes.fromhex(output.script_pubkey)) for output in self.outputs),
            version=self.version,
            locktime=self.locktime,
        )

    @classmethod
    def from_psbt(cls, psbt: Psbt, hrp: str, change_address: Optional[str] = None) -> "RawUtxoTransaction":
        inputs = tuple(
            RawUtxoInput(
                txid=txin.txid,
                vout=txin.vout,
                value=txin.value,
                script_pubkey=txin.script_pubkey.hex(),
                sequence=txin.sequence,
                script_type=txin.script_type.value,
                public_key=txin.public_key.hex() if txin.public_key else None,
            )
            for txin in psbt.inputs
        )
        outputs = tuple(
            RawUtxoOutput(script_to_address(output.script_pubkey, hrp), output.value, output.script_pubkey.hex())
            for output in psbt.outputs
        )
        total_in = sum(txin.value for txin in inputs)
        total_out = sum(output.value for output in outputs)
        return cls(
            inputs=inputs,
            outputs=outputs,
            fee=total_in - total_out,
            rbf=all(txin.sequence == SEQUENCE_RBF for txin in inputs),
            change_address=change_address,
            version=psbt.version,
            locktime=psbt.locktime,
        )


class UnsignedUtxoTransaction(UnsignedTransaction):
    """
    Unsigned segwit transaction.

    Produces one signature hash per input; P2WPKH inputs are signed with
    ECDSA and P2TR inputs with Schnorr, both over secp256k1.
    """

    def __init__(
        self,
        config: ChainConfig,
        raw: RawUtxoTransaction,
        rpc: Optional[RpcClient] = None,
        dust_threshold: int = DEFAULT_DUST_THRESHOLD,
    ):
        self._config = config
        self._raw = raw
        self._rpc = rpc
        self._dust_threshold = dust_threshold
        self._psbt = raw.to_psbt()
        self._serialized = self._psbt.to_base64()

    @property
    def chain_alias(self) -> str:
        return self._config.chain_alias

    @property
    def raw(self) -> RawUtxoTransaction:
        return self._raw

    @property
    def serialized(self) -> str:
        """PSBT in base64."""
        return self._serialized

    @property
    def psbt(self) -> Psbt:
        return self._psbt

    @classmethod
    def from_serialized(
        cls,
        config: ChainConfig,
        serialized: str,
        rpc: Optional[RpcClient] = None,
        dust_threshold: int = DEFAULT_DUST_THRESHOLD,
    ) -> "UnsignedUtxoTransaction":
        try:
            psbt = Psbt.from_base64(serialized.strip())
            raw = RawUtxoTransaction.from_psbt(psbt, config.bech32_hrp or "bc")
        except (PsbtError, UnsupportedAddressTypeError) as e:
            raise InvalidTransactionError(config.chain_alias, f"not a valid PSBT: {e.message}")
        return cls(config, raw, rpc, dust_threshold)

    def _sibling(self, raw: RawUtxoTransaction) -> "UnsignedUtxoTransaction":
        return UnsignedUtxoTransaction(self._config, raw, self._rpc, self._dust_threshold)

    def rebuild(self, overrides: TransactionOverrides) -> "UnsignedUtxoTransaction":
        """
        Apply RBF, change address and fee overrides to the same inputs.

        Fee overrides recompute the change output; change below the dust
        threshold is folded into the fee.

        Raises:
            InvalidTransactionError: For a ``utxos`` override, which needs a
                fresh build through the provider
            InsufficientFundsError: If the inputs no longer cover the new fee
        """
        if not isinstance(overrides, UtxoTransactionOverrides):
            raise InvalidTransactionError(self.chain_alias, "expected UtxoTransactionOverrides")
        if overrides.utxos is not None:
            raise InvalidTransactionError(self.chain_alias, "utxos can only be overridden when building")

        raw = self._raw

        if overrides.rbf is not None:
            sequence = SEQUENCE_RBF if overrides.rbf else SEQUENCE_FINAL
            raw = replace(
                raw,
                rbf=overrides.rbf,
                inputs=tuple(replace(txin, sequence=sequence) for txin in raw.inputs),
            )

        change_address = overrides.change_address or raw.change_address
        payments, change_output = self._split_change(raw)

        if overrides.absolute_fee is not None or overrides.fee_rate is not None:
            if overrides.absolute_fee is not None:
                fee = overrides.absolute_fee
            else:
                script_type = ScriptType(raw.inputs[0].script_type)
                fee = estimate_fee(len(raw.inputs), overrides.fee_rate, script_type)

            target = sum(output.value for output in payments)
            change = raw.total_input - target - fee
            if change < 0:
                raise InsufficientFundsError(self.chain_alias, target + fee, raw.total_input)
            change, fee = fold_dust(change, fee, self._dust_threshold)
        else:
            fee = raw.fee
            change = change_output.value if change_output else 0

        outputs = list(payments)
        if change > 0:
            if not change_address:
                raise InvalidTransactionError(self.chain_alias, "change output needs a change address")
            outputs.append(self._output(change_address, change))

        raw = replace(raw, outputs=tuple(outputs), fee=fee, change_address=change_address)
        logger.debug("utxo_transaction_rebuilt", chain=self.chain_alias, fee=fee, change=change, rbf=raw.rbf)
        return self._sibling(raw)

    def _split_change(self, raw: RawUtxoTransaction) -> Tuple[List[RawUtxoOutput], Optional[RawUtxoOutput]]:
        """Separate payment outputs from the trailing change output, if any."""
        outputs = list(raw.outputs)
        if raw.change_address and len(outputs) > 1 and outputs[-1].address == raw.change_address:
            return outputs[:-1], outputs[-1]
        return outputs, None

    def _output(self, address: str, value: int) -> RawUtxoOutput:
        try:
            script = address_to_script(address, self._config.bech32_hrp or "bc", self._config.network or "mainnet")
        except CodecError as e:
            raise InvalidAddressError(self.chain_alias, address, str(e))
        return RawUtxoOutput(address, value, script.hex())

    def get_signing_payload(self) -> SigningPayload:
        return SigningPayload(
            chain_alias=self.chain_alias,
            data=tuple(sighash.hex() for sighash in self._psbt.sighashes()),
            algorithm=SigningAlgorithm.SECP256K1,
        )

    def apply_signature(self, signatures: Sequence[str]) -> "SignedUtxoTransaction":
        """
        Attach one 64-byte r||s signature (hex) per input, in input order.

        Raises:
            SignatureError: If the count differs from the input count or a
                signature is not 64 bytes of hex
        """
        self._require_signature_count(signatures, len(self._raw.inputs))

        decoded = []
        for index, signature in enumerate(signatures):
            try:
                signature_bytes = bytes.fromhex(signature)
            except (ValueError, TypeError, binascii.Error):
                raise SignatureError(f"Invalid signature at index {index}: expected hex", self.chain_alias)
            if len(signature_bytes) != 64:
                raise SignatureError(
                    f"Invalid signature length at index {index}: expected 64 bytes, got {len(signature_bytes)}",
                    self.chain_alias,
                )
            decoded.append(signature_bytes)

        try:
            signed = self._psbt.with_signatures(decoded)
        except PsbtError as e:
            raise PsbtError(e.message, self.chain_alias)

        return SignedUtxoTransaction(self._config, signed, self._rpc)

    def to_normalised(self) -> NormalisedTransaction:
        raw = self._raw
        currency = self._config.native_currency
        payments, _ = self._split_change(raw)
        value = sum(output.value for output in payments)

        return NormalisedTransaction(
            chain_alias=self.chain_alias,
            to=payments[0].address if payments else None,
            value=str(value),
            formatted_value=format_units(value, currency.decimals),
            symbol=currency.symbol,
            type=TransactionType.NATIVE_TRANSFER,
            fee=FeeInfo(str(raw.fee), format_units(raw.fee, currency.decimals), currency.symbol),
            metadata=TransactionMetadata(
                is_contract_deployment=False,
                input_count=len(raw.inputs),
                output_count=len(raw.outputs),
            ),
            outputs=tuple(
                OutputInfo(output.address, str(output.value), format_units(output.value, currency.decimals))
                for output in raw.outputs
            ),
        )


class SignedUtxoTransaction(SignedTransaction):
    """Fully signed PSBT; serialized as the extracted transaction hex."""

    def __init__(self, config: ChainConfig, psbt: Psbt, rpc: Optional[RpcClient] = None):
        self._config = config
        self._psbt = psbt
        self._rpc = rpc
        self._serialized = psbt.extract().hex()
        self._hash = psbt.txid()

    @property
    def chain_alias(self) -> str:
        return self._config.chain_alias

    @property
    def serialized(self) -> str:
        return self._serialized

    @property
    def hash(self) -> str:
        return self._hash

    @property
    def psbt_base64(self) -> str:
        """The signed PSBT, for signers that finalize themselves."""
        return self._psbt.to_base64()

    def witnesses(self) -> List[List[str]]:
        return [[item.hex() for item in txin.witness()] for txin in self._psbt.inputs]

    async def broadcast(self, rpc_url: Optional[str] = None) -> BroadcastResult:
        async with rpc_session(
            self.chain_alias, self._rpc, rpc_url, self._config.rpc_url, self._config.headers,
        ) as rpc:
            txid = await BlockbookClient(rpc).send_transaction(self._serialized)

        logger.info("transaction_broadcast", chain=self.chain_alias, hash=txid)
        return BroadcastResult(hash=txid or self._hash, success=True)

