"""
EVM transactions.

RawEvmTransaction holds the fields of a legacy (EIP-155), access-list
(EIP-2930) or dynamic-fee (EIP-1559) transaction. ``serialized`` is the
field map as JSON; the RLP encoding used for signing and broadcast is
derived from it.
"""

import json
from dataclasses import dataclass, replace
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple

import rlp
import structlog

from chainkit.core.chains import ChainConfig
from chainkit.core.errors import InvalidTransactionError, SignatureError
from chainkit.core.interfaces import SignedTransaction, UnsignedTransaction
from chainkit.core.normalised import (
    ContractCallInfo,
    FeeInfo,
    NormalisedTransaction,
    TokenTransferInfo,
    TransactionMetadata,
)
from chainkit.core.rpc import RpcClient, rpc_session
from chainkit.core.types import (
    BroadcastResult,
    Ecosystem,
    EvmTransactionOverrides,
    RawTransaction,
    SigningAlgorithm,
    SigningPayload,
    TransactionOverrides,
    TransactionType,
)
from chainkit.core.units import format_units
from chainkit.evm.abi import (
    APPROVE_SELECTOR,
    SAFE_TRANSFER_FROM_DATA_SELECTOR,
    SAFE_TRANSFER_FROM_SELECTOR,
    SET_APPROVAL_FOR_ALL_SELECTOR,
    TRANSFER_FROM_SELECTOR,
    TRANSFER_SELECTOR,
    address_bytes,
    strip_0x,
)
from chainkit.hashing import keccak256

logger = structlog.get_logger(__name__)

LEGACY = 0
ACCESS_LIST = 1
DYNAMIC_FEE = 2

SIGNATURE_LENGTH = 65

TOKEN_SELECTORS = (TRANSFER_SELECTOR, TRANSFER_FROM_SELECTOR)
NFT_SELECTORS = (SAFE_TRANSFER_FROM_SELECTOR, SAFE_TRANSFER_FROM_DATA_SELECTOR)
APPROVAL_SELECTORS = (APPROVE_SELECTOR, SET_APPROVAL_FOR_ALL_SELECTOR)


@dataclass(frozen=True)
class AccessListEntry:
    address: str
    storage_keys: Tuple[str, ...] = ()

    def to_rlp(self) -> List[Any]:
        return [address_bytes(self.address), [bytes.fromhex(strip_0x(key)) for key in self.storage_keys]]


@dataclass(frozen=True)
class RawEvmTransaction(RawTransaction):
    """
    Integer quantities are decimal strings; ``to`` is None for contract creation.
    """
    ecosystem: ClassVar[Ecosystem] = Ecosystem.EVM

    type: int
    chain_id: int
    nonce: int
    to: Optional[str]
    value: str
    data: str
    gas_limit: str
    gas_price: Optional[str] = None
    max_fee_per_gas: Optional[str] = None
    max_priority_fee_per_gas: Optional[str] = None
    access_list: Tuple[AccessListEntry, ...] = ()

    def validate(self) -> None:
        """
        Raises:
            ValueError: If fee fields do not match the transaction type
        """
        if self.type not in (LEGACY, ACCESS_LIST, DYNAMIC_FEE):
            raise ValueError(f"unsupported transaction type {self.type}")
        if self.type == DYNAMIC_FEE:
            if self.max_fee_per_gas is None or self.max_priority_fee_per_gas is None:
                raise ValueError("type 2 transactions need maxFeePerGas and maxPriorityFeePerGas")
        elif self.gas_price is None:
            raise ValueError(f"type {self.type} transactions need gasPrice")
        address_bytes(self.to)
        bytes.fromhex(strip_0x(self.data))

    def _fields(self) -> List[Any]:
        """RLP fields without signature, in the order of the transaction type."""
        common = [
            int(self.gas_limit),
            address_bytes(self.to),
            int(self.value),
            bytes.fromhex(strip_0x(self.data)),
        ]
        access_list = [entry.to_rlp() for entry in self.access_list]
        if self.type == DYNAMIC_FEE:
            return [
                self.chain_id,
                self.nonce,
                int(self.max_priority_fee_per_gas),
                int(self.max_fee_per_gas),
                *common,
                access_list,
            ]
        if self.type == ACCESS_LIST:
            return [self.chain_id, self.nonce, int(self.gas_price), *common, access_list]
        return [self.nonce, int(self.gas_price), *common]

    def signing_bytes(self) -> bytes:
        if self.type == LEGACY:
            # EIP-155 replay protection
            return rlp.encode(self._fields() + [self.chain_id, 0, 0])
        return bytes([self.type]) + rlp.encode(self._fields())

    def signing_hash(self) -> str:
        return "0x" + keccak256(self.signing_bytes()).hex()

    def signed_bytes(self, y_parity: int, r: int, s: int) -> bytes:
        if self.type == LEGACY:
            v = y_parity + 35 + 2 * self.chain_id
            return rlp.encode(self._fields() + [v, r, s])
        return bytes([self.type]) + rlp.encode(self._fields() + [y_parity, r, s])

    @property
    def max_fee(self) -> int:
        """Upper bound on the fee in wei."""
        price = self.max_fee_per_gas if self.type == DYNAMIC_FEE else self.gas_price
        return int(self.gas_limit) * int(price or 0)

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "chainId": self.chain_id,
            "nonce": self.nonce,
            "to": self.to,
            "value": self.value,
            "data": self.data,
            "gasLimit": self.gas_limit,
        }
        if self.gas_price is not None:
            data["gasPrice"] = self.gas_price
        if self.max_fee_per_gas is not None:
            data["maxFeePerGas"] = self.max_fee_per_gas
        if self.max_priority_fee_per_gas is not None:
            data["maxPriorityFeePerGas"] = self.max_priority_fee_per_gas
        if self.access_list:
            data["accessList"] = [
                {"address": entry.address, "storageKeys": list(entry.storage_keys)}
                for entry in self.access_list
            ]
        return data

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "RawEvmTransaction":
        def optional(name: str) -> Optional[str]:
            return str(data[name]) if data.get(name) is not None else None

        return cls(
            type=int(data.get("type", LEGACY)),
            chain_id=int(data["chainId"]),
            nonce=int(data["nonce"]),
            to=data.get("to"),
            value=str(data.get("value", "0")),
            data=data.get("data") or "0x",
            gas_limit=str(data["gasLimit"]),
            gas_price=optional("gasPrice"),
            max_fee_per_gas=optional("maxFeePerGas"),
            max_priority_fee_per_gas=optional("maxPriorityFeePerGas"),
            access_list=tuple(
                AccessListEntry(entry["address"], tuple(entry.get("storageKeys", ())))
                for entry in data.get("accessList", ())
            ),
        )


def _selector(data: str) -> Optional[str]:
    body = strip_0x(data or "")
    return "0x" + body[:8].lower() if len(body) >= 8 else None


def classify(raw: RawEvmTransaction) -> TransactionType:
    if raw.to is None:
        return TransactionType.CONTRACT_DEPLOYMENT
    selector = _selector(raw.data)
    if selector is None:
        return TransactionType.NATIVE_TRANSFER
    if selector in TOKEN_SELECTORS:
        return TransactionType.TOKEN_TRANSFER
    if selector in NFT_SELECTORS:
        return TransactionType.NFT_TRANSFER
    if selector in APPROVAL_SELECTORS:
        return TransactionType.APPROVAL
    return TransactionType.CONTRACT_CALL


def decode_transfer(data: str) -> Optional[Dict[str, Optional[str]]]:
    """Recipient, amount and token id of an ERC-20/721 transfer call."""
    selector = _selector(data)
    params = strip_0x(data)[8:]
    try:
        if selector == TRANSFER_SELECTOR and len(params) >= 128:
            return {"from": None, "to": "0x" + params[24:64], "value": str(int(params[64:128], 16)), "token_id": None}
        if selector == TRANSFER_FROM_SELECTOR and len(params) >= 192:
            return {
                "from": "0x" + params[24:64],
                "to": "0x" + params[88:128],
                "value": str(int(params[128:192], 16)),
                "token_id": None,
            }
        if selector in NFT_SELECTORS and len(params) >= 192:
            return {
                "from": "0x" + params[24:64],
                "to": "0x" + params[88:128],
                "value": "1",
                "token_id": str(int(params[128:192], 16)),
            }
    except ValueError:
        return None
    return None


# ============================================================================
# Transactions
# ============================================================================

class UnsignedEvmTransaction(UnsignedTransaction):
    """Unsigned EVM transaction."""

    def __init__(self, config: ChainConfig, raw: RawEvmTransaction, rpc: Optional[RpcClient] = None):
        self._config = config
        self._raw = raw
        self._rpc = rpc
        self._serialized = json.dumps(raw.to_json(), separators=(",", ":"))

    @property
    def chain_alias(self) -> str:
        return self._config.chain_alias

    @property
    def raw(self) -> RawEvmTransaction:
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
    ) -> "UnsignedEvmTransaction":
        try:
            raw = RawEvmTransaction.from_json(json.loads(serialized))
            raw.validate()
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidTransactionError(config.chain_alias, f"malformed EVM transaction: {e}")
        return cls(config, raw, rpc)

    def rebuild(self, overrides: TransactionOverrides) -> "UnsignedEvmTransaction":
        """
        Raises:
            InvalidTransactionError: If the result lacks the fee fields its type needs
        """
        if not isinstance(overrides, EvmTransactionOverrides):
            raise InvalidTransactionError(self.chain_alias, "expected EvmTransactionOverrides")

        changes: Dict[str, Any] = {}
        if overrides.nonce is not None:
            changes["nonce"] = overrides.nonce
        if overrides.gas_limit is not None:
            changes["gas_limit"] = str(overrides.gas_limit)
        if overrides.gas_price is not None:
            changes["gas_price"] = str(overrides.gas_price)
        if overrides.max_fee_per_gas is not None:
            changes["max_fee_per_gas"] = str(overrides.max_fee_per_gas)
        if overrides.max_priority_fee_per_gas is not None:
            changes["max_priority_fee_per_gas"] = str(overrides.max_priority_fee_per_gas)
        if overrides.type is not None:
            changes["type"] = overrides.type
        if overrides.data is not None:
            changes["data"] = overrides.data

        raw = replace(self._raw, **changes)
        try:
            raw.validate()
        except ValueError as e:
            raise InvalidTransactionError(self.chain_alias, str(e))
        return UnsignedEvmTransaction(self._config, raw, self._rpc)

    def get_signing_payload(self) -> SigningPayload:
        return SigningPayload(
            chain_alias=self.chain_alias,
            data=(self._raw.signing_hash(),),
            algorithm=SigningAlgorithm.SECP256K1,
        )

    def apply_signature(self, signatures: Sequence[str]) -> "SignedEvmTransaction":
        """
        Attach one 0x-prefixed r||s||v signature (65 bytes).

        v may be the recovery id (0/1) or 27/28.

        Raises:
            SignatureError: If not exactly one well-formed signature is given
        """
        self._require_signature_count(signatures, 1)
        signature = signatures[0]
        if not signature.startswith("0x"):
            raise SignatureError("Invalid EVM signature format: expected 0x prefix", self.chain_alias)
        try:
            sig = bytes.fromhex(signature[2:])
        except ValueError:
            raise SignatureError("Invalid EVM signature format: expected hex", self.chain_alias)
        if len(sig) != SIGNATURE_LENGTH:
            raise SignatureError(
                f"Invalid EVM signature length: expected {SIGNATURE_LENGTH} bytes, got {len(sig)}",
                self.chain_alias,
            )

        v = sig[64]
        if v in (27, 28):
            v -= 27
        if v not in (0, 1):
            raise SignatureError(f"Invalid EVM signature recovery id: {sig[64]}", self.chain_alias)

        r = int.from_bytes(sig[:32], "big")
        s = int.from_bytes(sig[32:64], "big")
        return SignedEvmTransaction(self._config, self._raw, v, r, s, self._rpc)

    def to_normalised(self) -> NormalisedTransaction:
        raw = self._raw
        currency = self._config.native_currency
        tx_type = classify(raw)
        value = int(raw.value)

        token_transfer = None
        contract_call = None
        if tx_type in (TransactionType.TOKEN_TRANSFER, TransactionType.NFT_TRANSFER):
            decoded = decode_transfer(raw.data)
            if decoded:
                token_transfer = TokenTransferInfo(
                    contract_address=raw.to,
                    from_address=decoded["from"] or "",
                    to=decoded["to"],
                    value=decoded["value"],
                    formatted_value=decoded["value"],
                    symbol="",
                    decimals=18 if tx_type is TransactionType.TOKEN_TRANSFER else 0,
                    token_id=decoded["token_id"],
                )
        elif tx_type is TransactionType.CONTRACT_CALL:
            contract_call = ContractCallInfo(contract_address=raw.to, selector=_selector(raw.data))

        return NormalisedTransaction(
            chain_alias=self.chain_alias,
            to=raw.to,
            value=raw.value,
            formatted_value=format_units(value, currency.decimals),
            symbol=currency.symbol,
            type=tx_type,
            fee=FeeInfo(
                value=str(raw.max_fee),
                formatted_value=format_units(raw.max_fee, currency.decimals),
                symbol=currency.symbol,
            ),
            data=raw.data,
            token_transfer=token_transfer,
            contract_call=contract_call,
            metadata=TransactionMetadata(
                nonce=raw.nonce,
                is_contract_deployment=tx_type is TransactionType.CONTRACT_DEPLOYMENT,
            ),
        )


class SignedEvmTransaction(SignedTransaction):
    """Signed EVM transaction; ``serialized`` is the 0x-prefixed raw transaction."""

    def __init__(
        self,
        config: ChainConfig,
        raw: RawEvmTransaction,
        y_parity: int,
        r: int,
        s: int,
        rpc: Optional[RpcClient] = None,
    ):
        self._config = config
        self._raw = raw
        self._rpc = rpc
        encoded = raw.signed_bytes(y_parity, r, s)
        self._serialized = "0x" + encoded.hex()
        self._hash = "0x" + keccak256(encoded).hex()

    @property
    def chain_alias(self) -> str:
        return self._config.chain_alias

    @property
    def serialized(self) -> str:
        return self._serialized

    @property
    def hash(self) -> str:
        return self._hash

    async def broadcast(self, rpc_url: Optional[str] = None) -> BroadcastResult:
        async with rpc_session(
            self.chain_alias, self._rpc, rpc_url, self._config.rpc_url, self._config.headers,
        ) as rpc:
            result = await rpc.call("eth_sendRawTransaction", [self._serialized])

        logger.info("transaction_broadcast", chain=self.chain_alias, hash=result or self._hash)
        return BroadcastResult(hash=result or self._hash, success=True)
