"""
Tron transactions.

``raw_data`` is encoded with the network's protobuf schema
(protocol.Transaction.raw); the transaction id is the SHA-256 of those
bytes and is what the external signer signs. The JSON form mirrors the
HTTP API (hex addresses, ``visible: false``).
"""

import json
import time
from dataclasses import dataclass, replace
from typing import Any, ClassVar, Dict, Mapping, Optional, Sequence, Tuple

import structlog

from chainkit.codec.protobuf import ProtoWriter
from chainkit.core.chains import ChainConfig
from chainkit.core.errors import CodecError, InvalidTransactionError, SignatureError
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
    TransactionOverrides,
    TransactionType,
    TvmTransactionOverrides,
)
from chainkit.core.units import format_units
from chainkit.hashing import keccak256, sha256
from chainkit.tvm.address import TRANSFER_SELECTOR, address_to_hex, hex_to_address, strip_0x

logger = structlog.get_logger(__name__)

TRANSFER_CONTRACT = "TransferContract"
CREATE_SMART_CONTRACT = "CreateSmartContract"
TRIGGER_SMART_CONTRACT = "TriggerSmartContract"

# protocol.Transaction.Contract.ContractType
CONTRACT_TYPE_IDS = {
    TRANSFER_CONTRACT: 1,
    CREATE_SMART_CONTRACT: 30,
    TRIGGER_SMART_CONTRACT: 31,
}

TYPE_URL_PREFIX = "type.googleapis.com/protocol."

EXPIRATION_MS = 60 * 60 * 1000
DEFAULT_DEPLOY_FEE_LIMIT = 1_000_000_000
SIGNATURE_LENGTH = 65


@dataclass(frozen=True)
class TronSmartContract:
    """The ``new_contract`` of a CreateSmartContract."""
    origin_address: str
    bytecode: str
    name: str = ""
    call_value: int = 0
    consume_user_resource_percent: int = 100
    origin_energy_limit: int = 10_000_000

    def encode(self) -> bytes:
        return (
            ProtoWriter()
            .blob(1, bytes.fromhex(self.origin_address))
            .blob(4, bytes.fromhex(self.bytecode))
            .varint(5, self.call_value)
            .varint(6, self.consume_user_resource_percent)
            .blob(7, self.name)
            .varint(8, self.origin_energy_limit)
            .to_bytes()
        )

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "origin_address": self.origin_address,
            "bytecode": self.bytecode,
            "consume_user_resource_percent": self.consume_user_resource_percent,
            "origin_energy_limit": self.origin_energy_limit,
        }
        if self.name:
            data["name"] = self.name
        if self.call_value:
            data["call_value"] = self.call_value
        return data


@dataclass(frozen=True)
class TronContract:
    """
    One contract of a transaction; addresses and data are hex without 0x.

    Which fields apply depends on ``type``: TransferContract uses
    ``to_address``/``amount``; TriggerSmartContract uses
    ``contract_address``/``data``/``call_value``; CreateSmartContract uses
    ``new_contract``.
    """
    type: str
    owner_address: str
    to_address: Optional[str] = None
    amount: int = 0
    contract_address: Optional[str] = None
    data: Optional[str] = None
    call_value: int = 0
    new_contract: Optional[TronSmartContract] = None
    permission_id: int = 0

    @property
    def type_url(self) -> str:
        return TYPE_URL_PREFIX + self.type

    def encode_parameter(self) -> bytes:
        writer = ProtoWriter().blob(1, bytes.fromhex(self.owner_address))
        if self.type == TRANSFER_CONTRACT:
            writer.blob(2, bytes.fromhex(self.to_address or "")).varint(3, self.amount)
        elif self.type == TRIGGER_SMART_CONTRACT:
            writer.blob(2, bytes.fromhex(self.contract_address or ""))
            writer.varint(3, self.call_value)
            writer.blob(4, bytes.fromhex(self.data or ""))
        elif self.type == CREATE_SMART_CONTRACT:
            if self.new_contract is None:
                raise CodecError("CreateSmartContract needs new_contract")
            writer.message(2, self.new_contract.encode())
        else:
            raise CodecError(f"Unsupported contract type: {self.type}")
        return writer.to_bytes()

    def encode(self) -> bytes:
        any_parameter = ProtoWriter().blob(1, self.type_url).blob(2, self.encode_parameter()).to_bytes()
        return (
            ProtoWriter()
            .varint(1, CONTRACT_TYPE_IDS[self.type])
            .message(2, any_parameter)
            .varint(5, self.permission_id)
            .to_bytes()
        )

    def parameter_value(self) -> Dict[str, Any]:
        value: Dict[str, Any] = {"owner_address": self.owner_address}
        if self.type == TRANSFER_CONTRACT:
            value["to_address"] = self.to_address
            value["amount"] = self.amount
        elif self.type == TRIGGER_SMART_CONTRACT:
            value["contract_address"] = self.contract_address
            if self.data:
                value["data"] = self.data
            if self.call_value:
                value["call_value"] = self.call_value
        elif self.type == CREATE_SMART_CONTRACT and self.new_contract is not None:
            value["new_contract"] = self.new_contract.to_json()
        return value

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "parameter": {"value": self.parameter_value(), "type_url": self.type_url},
            "type": self.type,
        }
        if self.permission_id:
            data["Permission_id"] = self.permission_id
        return data

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "TronContract":
        if data["type"] not in CONTRACT_TYPE_IDS:
            raise ValueError(f"unsupported contract type: {data['type']}")
        value = data["parameter"]["value"]
        new_contract = None
        if "new_contract" in value:
            nc = value["new_contract"]
            new_contract = TronSmartContract(
                origin_address=nc.get("origin_address", value["owner_address"]),
                bytecode=nc["bytecode"],
                name=nc.get("name", ""),
                call_value=int(nc.get("call_value", 0)),
                consume_user_resource_percent=int(nc.get("consume_user_resource_percent", 0)),
                origin_energy_limit=int(nc.get("origin_energy_limit", 0)),
            )
        return cls(
            type=data["type"],
            owner_address=value["owner_address"],
            to_address=value.get("to_address"),
            amount=int(value.get("amount", 0)),
            contract_address=value.get("contract_address"),
            data=value.get("data"),
            call_value=int(value.get("call_value", 0)),
            new_contract=new_contract,
            permission_id=int(data.get("Permission_id", 0)),
        )


@dataclass(frozen=True)
class RawTronTransaction(RawTransaction):
    ecosystem: ClassVar[Ecosystem] = Ecosystem.TVM

    contract: TronContract
    ref_block_bytes: str
    ref_block_hash: str
    expiration: int
    timestamp: int
    fee_limit: int = 0

    def raw_data_bytes(self) -> bytes:
        """protocol.Transaction.raw in field order."""
        return (
            ProtoWriter()
            .blob(1, bytes.fromhex(self.ref_block_bytes))
            .blob(4, bytes.fromhex(self.ref_block_hash))
            .varint(8, self.expiration)
            .message(11, self.contract.encode())
            .varint(14, self.timestamp)
            .varint(18, self.fee_limit)
            .to_bytes()
        )

    @property
    def raw_data_hex(self) -> str:
        return self.raw_data_bytes().hex()

    @property
    def tx_id(self) -> str:
        return sha256(self.raw_data_bytes()).hex()

    def raw_data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "contract": [self.contract.to_json()],
            "ref_block_bytes": self.ref_block_bytes,
            "ref_block_hash": self.ref_block_hash,
            "expiration": self.expiration,
            "timestamp": self.timestamp,
        }
        if self.fee_limit:
            data["fee_limit"] = self.fee_limit
        return data

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["tx_id"] = self.tx_id
        return data

    def to_json(self) -> Dict[str, Any]:
        return {
            "visible": False,
            "txID": self.tx_id,
            "raw_data": self.raw_data(),
            "raw_data_hex": self.raw_data_hex,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "RawTronTransaction":
        raw_data = data["raw_data"]
        contracts = raw_data["contract"]
        if len(contracts) != 1:
            raise ValueError(f"expected one contract, got {len(contracts)}")
        return cls(
            contract=TronContract.from_json(contracts[0]),
            ref_block_bytes=raw_data["ref_block_bytes"],
            ref_block_hash=raw_data["ref_block_hash"],
            expiration=int(raw_data["expiration"]),
            timestamp=int(raw_data["timestamp"]),
            fee_limit=int(raw_data.get("fee_limit", 0)),
        )


# ============================================================================
# Builders
# ============================================================================

def block_reference(block: Mapping[str, Any]) -> Tuple[str, str]:
    """
    Derive (ref_block_bytes, ref_block_hash) from a getnowblock response.

    ref_block_bytes is the low two bytes of the height; ref_block_hash is
    bytes 8..16 of the block id.
    """
    number = int(block["block_header"]["raw_data"]["number"])
    block_id = block["blockID"]
    return format(number & 0xFFFF, "04x"), block_id[16:32]


def build_transaction(
    contract: TronContract,
    block: Mapping[str, Any],
    fee_limit: int = 0,
    now_ms: Optional[int] = None,
) -> RawTronTransaction:
    ref_block_bytes, ref_block_hash = block_reference(block)
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return RawTronTransaction(
        contract=contract,
        ref_block_bytes=ref_block_bytes,
        ref_block_hash=ref_block_hash,
        expiration=timestamp + EXPIRATION_MS,
        timestamp=timestamp,
        fee_limit=fee_limit,
    )


def trx_transfer(owner: str, to: str, amount: int) -> TronContract:
    return TronContract(
        type=TRANSFER_CONTRACT,
        owner_address=address_to_hex(owner),
        to_address=address_to_hex(to),
        amount=amount,
    )


def trigger_contract(owner: str, contract_address: str, data: str, call_value: int = 0) -> TronContract:
    return TronContract(
        type=TRIGGER_SMART_CONTRACT,
        owner_address=address_to_hex(owner),
        contract_address=address_to_hex(contract_address),
        data=strip_0x(data).lower(),
        call_value=call_value,
    )


def create_contract(owner: str, bytecode: str, constructor_args: Optional[str] = None, call_value: int = 0) -> TronContract:
    owner_hex = address_to_hex(owner)
    code = strip_0x(bytecode) + (strip_0x(constructor_args) if constructor_args else "")
    return TronContract(
        type=CREATE_SMART_CONTRACT,
        owner_address=owner_hex,
        new_contract=TronSmartContract(origin_address=owner_hex, bytecode=code.lower(), call_value=call_value),
    )


def deployed_contract_address(raw: RawTronTransaction) -> str:
    """Address assigned to a CreateSmartContract: keccak(txID || owner), last 20 bytes, 0x41 prefix."""
    digest = keccak256(bytes.fromhex(raw.tx_id) + bytes.fromhex(raw.contract.owner_address))
    return hex_to_address("41" + digest[12:].hex())


# ============================================================================
# Transactions
# ============================================================================

class UnsignedTvmTransaction(UnsignedTransaction):
    """Unsigned Tron transaction carrying exactly one contract."""

    def __init__(self, config: ChainConfig, raw: RawTronTransaction, rpc: Optional[RpcClient] = None):
        self._config = config
        self._raw = raw
        self._rpc = rpc
        self._serialized = json.dumps(raw.to_json(), separators=(",", ":"))

    @property
    def chain_alias(self) -> str:
        return self._config.chain_alias

    @property
    def raw(self) -> RawTronTransaction:
        return self._raw

    @property
    def serialized(self) -> str:
        return self._serialized

    @property
    def tx_id(self) -> str:
        return self._raw.tx_id

    @classmethod
    def from_serialized(
        cls,
        config: ChainConfig,
        serialized: str,
        rpc: Optional[RpcClient] = None,
    ) -> "UnsignedTvmTransaction":
        try:
            raw = RawTronTransaction.from_json(json.loads(serialized))
            raw.raw_data_bytes()
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidTransactionError(config.chain_alias, f"malformed Tron transaction: {e}")
        return cls(config, raw, rpc)

    def rebuild(self, overrides: TransactionOverrides) -> "UnsignedTvmTransaction":
        if not isinstance(overrides, TvmTransactionOverrides):
            raise InvalidTransactionError(self.chain_alias, "expected TvmTransactionOverrides")

        raw = self._raw
        if overrides.fee_limit is not None:
            raw = replace(raw, fee_limit=overrides.fee_limit)
        if overrides.permission_id is not None:
            raw = replace(raw, contract=replace(raw.contract, permission_id=overrides.permission_id))
        return UnsignedTvmTransaction(self._config, raw, self._rpc)

    def get_signing_payload(self) -> SigningPayload:
        return SigningPayload(
            chain_alias=self.chain_alias,
            data=(self._raw.tx_id,),
            algorithm=SigningAlgorithm.SECP256K1,
        )

    def apply_signature(self, signatures: Sequence[str]) -> "SignedTvmTransaction":
        """
        Attach one 65-byte r||s||v signature (hex) per signing payload entry.

        Raises:
            SignatureError: If the count is wrong or a signature is not 65 bytes of hex
        """
        self._require_signature_count(signatures, len(self.get_signing_payload().data))

        normalised = []
        for index, signature in enumerate(signatures):
            value = strip_0x(signature)
            try:
                length = len(bytes.fromhex(value))
            except ValueError:
                raise SignatureError(f"Invalid signature at index {index}: expected hex", self.chain_alias)
            if length != SIGNATURE_LENGTH:
                raise SignatureError(
                    f"Invalid signature length at index {index}: expected {SIGNATURE_LENGTH} bytes, got {length}",
                    self.chain_alias,
                )
            normalised.append(value.lower())

        return SignedTvmTransaction(self._config, self._raw, tuple(normalised), self._rpc)

    def to_normalised(self) -> NormalisedTransaction:
        raw = self._raw
        contract = raw.contract
        currency = self._config.native_currency
        tx_type = self._classify()

        to = None
        value = 0
        token_transfer = None
        contract_call = None

        if contract.type == TRANSFER_CONTRACT:
            to = hex_to_address(contract.to_address) if contract.to_address else None
            value = contract.amount
        elif contract.type == TRIGGER_SMART_CONTRACT:
            to = hex_to_address(contract.contract_address) if contract.contract_address else None
            value = contract.call_value
            data = contract.data or ""
            if tx_type is TransactionType.TOKEN_TRANSFER:
                amount = int(data[72:136] or "0", 16)
                token_transfer = TokenTransferInfo(
                    contract_address=to,
                    from_address=hex_to_address(contract.owner_address),
                    to=hex_to_address("41" + data[32:72]),
                    value=str(amount),
                    formatted_value=str(amount),
                    symbol="TRC20",
                    decimals=0,
                )
            else:
                contract_call = ContractCallInfo(contract_address=to, selector=data[:8] or None)

        return NormalisedTransaction(
            chain_alias=self.chain_alias,
            hash=raw.tx_id,
            from_address=hex_to_address(contract.owner_address),
            to=to,
            value=str(value),
            formatted_value=format_units(value, currency.decimals),
            symbol=currency.symbol,
            type=tx_type,
            data=contract.data,
            token_transfer=token_transfer,
            contract_call=contract_call,
            metadata=TransactionMetadata(is_contract_deployment=contract.type == CREATE_SMART_CONTRACT),
        )

    def _classify(self) -> TransactionType:
        contract = self._raw.contract
        if contract.type == TRANSFER_CONTRACT:
            return TransactionType.NATIVE_TRANSFER
        if contract.type == CREATE_SMART_CONTRACT:
            return TransactionType.CONTRACT_DEPLOYMENT
        if contract.type == TRIGGER_SMART_CONTRACT:
            if (contract.data or "").startswith(TRANSFER_SELECTOR):
                return TransactionType.TOKEN_TRANSFER
            return TransactionType.CONTRACT_CALL
        return TransactionType.UNKNOWN


class SignedTvmTransaction(SignedTransaction):
    """Tron transaction with signatures, serialized in broadcast JSON form."""

    def __init__(
        self,
        config: ChainConfig,
        raw: RawTronTransaction,
        signatures: Tuple[str, ...],
        rpc: Optional[RpcClient] = None,
    ):
        self._config = config
        self._raw = raw
        self._signatures = signatures
        self._rpc = rpc
        self._payload = {**raw.to_json(), "signature": list(signatures)}
        self._serialized = json.dumps(self._payload, separators=(",", ":"))

    @property
    def chain_alias(self) -> str:
        return self._config.chain_alias

    @property
    def serialized(self) -> str:
        return self._serialized

    @property
    def hash(self) -> str:
        return self._raw.tx_id

    async def broadcast(self, rpc_url: Optional[str] = None) -> BroadcastResult:
        async with rpc_session(
            self.chain_alias, self._rpc, rpc_url, self._config.rpc_url, self._config.headers,
        ) as rpc:
            result = await rpc.post("/wallet/broadcasttransaction", self._payload) or {}

        if not result.get("result"):
            error = decode_node_message(result.get("message")) or result.get("code") or "Unknown error"
            logger.warning("transaction_rejected", chain=self.chain_alias, hash=self.hash, error=error)
            return BroadcastResult(hash=self.hash, success=False, error=error)

        logger.info("transaction_broadcast", chain=self.chain_alias, hash=self.hash)
        return BroadcastResult(hash=result.get("txid") or self.hash, success=True)


def decode_node_message(message: Optional[str]) -> Optional[str]:
    """Node messages are hex encoded UTF-8."""
    if not message:
        return None
    try:
        return bytes.fromhex(message).decode("utf-8")
    except ValueError:
        return message
