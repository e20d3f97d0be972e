"""
Unsigned and signed Solana transactions.

The canonical form is RawSolanaTransaction; ``serialized`` is its JSON
encoding and the binary message is compiled from it on demand. Compute
budget overrides are stored as fields and compiled into leading
ComputeBudget instructions.
"""

import base64
import binascii
import json
from dataclasses import dataclass, replace
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple

import structlog

from chainkit.codec import unpack_u64_le
from chainkit.core.chains import ChainConfig
from chainkit.core.errors import InvalidTransactionError, SignatureError
from chainkit.core.interfaces import SignedTransaction, UnsignedTransaction
from chainkit.core.normalised import (
    ContractCallInfo,
    NormalisedTransaction,
    TokenTransferInfo,
    TransactionMetadata,
)
from chainkit.core.rpc import RpcClient, rpc_session
from chainkit.core.types import (
    BroadcastResult,
    Ecosystem,
    RawTransaction,
    SigningAlgorithm,
    SigningPayload,
    SvmTransactionOverrides,
    TransactionOverrides,
    TransactionType,
)
from chainkit.core.units import format_units
from chainkit.svm.message import (
    SIGNATURE_LENGTH,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_IDS,
    AccountMeta,
    Instruction,
    compile_account_keys,
    serialize_message,
    serialize_transaction,
    set_compute_unit_limit,
    set_compute_unit_price,
    signature_to_txid,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RawSolanaTransaction(RawTransaction):
    ecosystem: ClassVar[Ecosystem] = Ecosystem.SVM

    recent_blockhash: str
    fee_payer: str
    instructions: Tuple[Instruction, ...]
    value: str = "0"
    version: str = "legacy"
    compute_unit_price: Optional[int] = None
    compute_unit_limit: Optional[int] = None
    token_mint: Optional[str] = None
    token_decimals: Optional[int] = None

    def compiled_instructions(self) -> List[Instruction]:
        """Instructions as they appear on the wire, compute budget first."""
        prefix = []
        if self.compute_unit_limit is not None:
            prefix.append(set_compute_unit_limit(self.compute_unit_limit))
        if self.compute_unit_price is not None:
            prefix.append(set_compute_unit_price(self.compute_unit_price))
        return prefix + list(self.instructions)

    def message_bytes(self) -> bytes:
        return serialize_message(self.fee_payer, self.recent_blockhash, self.compiled_instructions())

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, serialized: str) -> "RawSolanaTransaction":
        data: Dict[str, Any] = json.loads(serialized)
        data.pop("_chain", None)
        instructions = tuple(
            Instruction(
                program_id=ix["program_id"],
                accounts=tuple(AccountMeta(**account) for account in ix["accounts"]),
                data=ix["data"],
            )
            for ix in data.pop("instructions")
        )
        return cls(instructions=instructions, **data)


class UnsignedSvmTransaction(UnsignedTransaction):
    """Unsigned Solana legacy transaction."""

    def __init__(self, config: ChainConfig, raw: RawSolanaTransaction, rpc: Optional[RpcClient] = None):
        self._config = config
        self._raw = raw
        self._rpc = rpc
        self._serialized = raw.to_json()

    @property
    def chain_alias(self) -> str:
        return self._config.chain_alias

    @property
    def raw(self) -> RawSolanaTransaction:
        return self._raw

    @property
    def serialized(self) -> str:
        return self._serialized

    @classmethod
    def from_serialized(
        cls,
        config: ChainConfig,
        serialized: str,
        rpc: Optional[RpcClient] = None,
    ) -> "UnsignedSvmTransaction":
        try:
            raw = RawSolanaTransaction.from_json(serialized)
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidTransactionError(config.chain_alias, f"malformed Solana transaction: {e}")
        return cls(config, raw, rpc)

    def rebuild(self, overrides: TransactionOverrides) -> "UnsignedSvmTransaction":
        if not isinstance(overrides, SvmTransactionOverrides):
            raise InvalidTransactionError(self.chain_alias, "expected SvmTransactionOverrides")

        raw = self._raw
        if overrides.compute_unit_price is not None:
            raw = replace(raw, compute_unit_price=overrides.compute_unit_price)
        if overrides.compute_unit_limit is not None:
            raw = replace(raw, compute_unit_limit=overrides.compute_unit_limit)
        return UnsignedSvmTransaction(self._config, raw, self._rpc)

    def get_signing_payload(self) -> SigningPayload:
        message = self._raw.message_bytes()
        return SigningPayload(
            chain_alias=self.chain_alias,
            data=(base64.b64encode(message).decode("ascii"),),
            algorithm=SigningAlgorithm.ED25519,
        )

    def apply_signature(self, signatures: Sequence[str]) -> "SignedSvmTransaction":
        """
        Attach base64 ed25519 signatures, fee payer first.

        Raises:
            SignatureError: If none are given, the count differs from the
                required signers, or one does not decode to 64 bytes
        """
        if not signatures:
            raise SignatureError("Solana transactions require at least one signature", self.chain_alias)

        header, _ = compile_account_keys(self._raw.fee_payer, self._raw.compiled_instructions())
        if len(signatures) != header.num_required_signatures:
            raise SignatureError(
                f"Expected {header.num_required_signatures} signature(s), got {len(signatures)}",
                self.chain_alias,
            )

        decoded = []
        for signature in signatures:
            try:
                signature_bytes = base64.b64decode(signature, validate=True)
            except (binascii.Error, ValueError):
                raise SignatureError("Invalid signature format: expected base64", self.chain_alias)
            if len(signature_bytes) != SIGNATURE_LENGTH:
                raise SignatureError(
                    f"Invalid signature length: {len(signature_bytes)}, expected {SIGNATURE_LENGTH}",
                    self.chain_alias,
                )
            decoded.append(signature_bytes)

        return SignedSvmTransaction(self._config, self._raw, tuple(decoded), self._rpc)

    def to_normalised(self) -> NormalisedTransaction:
        raw = self._raw
        currency = self._config.native_currency
        tx_type = self._classify()
        first = raw.instructions[0] if raw.instructions else None

        token_transfer = None
        contract_call = None
        to = None

        if first is not None:
            if first.program_id in (SYSTEM_PROGRAM_ID,) + TOKEN_PROGRAM_IDS and len(first.accounts) >= 2:
                to = first.accounts[1].pubkey
            else:
                to = first.program_id

        if tx_type is TransactionType.TOKEN_TRANSFER:
            ix = next(ix for ix in raw.instructions if ix.program_id in TOKEN_PROGRAM_IDS)
            data = ix.data_bytes
            amount = unpack_u64_le(data, 1) if len(data) >= 9 and data[0] == 3 else 0
            decimals = raw.token_decimals if raw.token_decimals is not None else 0
            owner = ix.accounts[2].pubkey if len(ix.accounts) >= 3 else raw.fee_payer
            token_transfer = TokenTransferInfo(
                contract_address=raw.token_mint or ix.program_id,
                from_address=owner,
                to=ix.accounts[1].pubkey if len(ix.accounts) >= 2 else "",
                value=str(amount),
                formatted_value=format_units(amount, decimals),
                symbol="SPL",
                decimals=decimals,
            )
        elif tx_type is TransactionType.CONTRACT_CALL and first is not None:
            contract_call = ContractCallInfo(contract_address=first.program_id)

        return NormalisedTransaction(
            chain_alias=self.chain_alias,
            from_address=raw.fee_payer,
            to=to,
            value=raw.value,
            formatted_value=format_units(raw.value, currency.decimals),
            symbol=currency.symbol,
            type=tx_type,
            data=first.data if first is not None else None,
            token_transfer=token_transfer,
            contract_call=contract_call,
            metadata=TransactionMetadata(is_contract_deployment=False),
        )

    def _classify(self) -> TransactionType:
        program_ids = [ix.program_id for ix in self._raw.instructions]
        if not program_ids or program_ids == [SYSTEM_PROGRAM_ID]:
            return TransactionType.NATIVE_TRANSFER
        if any(program_id in TOKEN_PROGRAM_IDS for program_id in program_ids):
            return TransactionType.TOKEN_TRANSFER
        return TransactionType.CONTRACT_CALL


class SignedSvmTransaction(SignedTransaction):
    """Solana transaction with its ed25519 signatures attached."""

    def __init__(
        self,
        config: ChainConfig,
        raw: RawSolanaTransaction,
        signatures: Tuple[bytes, ...],
        rpc: Optional[RpcClient] = None,
    ):
        self._config = config
        self._raw = raw
        self._signatures = signatures
        self._rpc = rpc
        wire = serialize_transaction(signatures, raw.message_bytes())
        self._serialized = base64.b64encode(wire).decode("ascii")
        self._hash = signature_to_txid(signatures[0])

    @property
    def chain_alias(self) -> str:
        return self._config.chain_alias

    @property
    def serialized(self) -> str:
        """Base64 wire transaction."""
        return self._serialized

    @property
    def hash(self) -> str:
        return self._hash

    async def broadcast(self, rpc_url: Optional[str] = None) -> BroadcastResult:
        async with rpc_session(
            self.chain_alias, self._rpc, rpc_url, self._config.rpc_url, self._config.headers,
        ) as rpc:
            result = await rpc.call("sendTransaction", [
                self._serialized,
                {"encoding": "base64", "skipPreflight": False, "preflightCommitment": "confirmed"},
            ])

        logger.info("transaction_broadcast", chain=self.chain_alias, hash=result)
        return BroadcastResult(hash=result or self._hash, success=True)
