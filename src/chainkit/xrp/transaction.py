"""
XRP Ledger transactions.

RawXrpTransaction mirrors rippled's ``tx_json`` field map; ``serialized``
is that map as compact JSON. Signed transactions are encoded to the
canonical binary blob with xrpl-py's binary codec, which also fixes the
transaction hash.
"""

import binascii
import json
from dataclasses import dataclass, replace
from typing import Any, ClassVar, Dict, Mapping, Optional, Sequence, Tuple, Union

import structlog
from xrpl import XRPLException
from xrpl.core import binarycodec

from chainkit.core.chains import ChainConfig
from chainkit.core.errors import InvalidTransactionError, SignatureError
from chainkit.core.interfaces import SignedTransaction, UnsignedTransaction
from chainkit.core.normalised import FeeInfo, NormalisedTransaction, TokenTransferInfo, TransactionMetadata
from chainkit.core.rpc import RpcClient, rpc_session
from chainkit.core.types import (
    BroadcastResult,
    Ecosystem,
    RawTransaction,
    SigningAlgorithm,
    SigningPayload,
    TransactionOverrides,
    TransactionType,
    XrpTransactionOverrides,
)
from chainkit.core.units import format_units
from chainkit.hashing import sha512_half
from chainkit.xrp.client import XrplClient, XrplRequestError

logger = structlog.get_logger(__name__)

PAYMENT = "Payment"
TRUST_SET = "TrustSet"

# "TXN\0"
TX_HASH_PREFIX = bytes.fromhex("54584E00")

ENGINE_SUCCESS = "tesSUCCESS"
# tec: fee claimed, transaction applied as failed; ter: retried, may still settle
SETTLED_PREFIXES = ("tec", "ter")

# Issued currency values carry up to 15 significant digits
ISSUED_CURRENCY_DECIMALS = 15


def classify_engine_result(engine_result: str, message: Optional[str] = None) -> Tuple[bool, Optional[str]]:
    """
    Classify a submit result.

    Returns:
        (success, error) where error embeds the engine code on failure
    """
    if engine_result == ENGINE_SUCCESS or engine_result.startswith(SETTLED_PREFIXES):
        return True, None
    return False, f"{engine_result}: {message}" if message else engine_result


def currency_symbol(currency: str) -> str:
    """Display form of a currency code; 160-bit codes are decoded as ASCII."""
    if len(currency) == 40:
        try:
            return bytes.fromhex(currency).rstrip(b"\x00").lstrip(b"\x00").decode("ascii")
        except (ValueError, UnicodeDecodeError):
            return currency
    return currency


# ============================================================================
# Field types
# ============================================================================

@dataclass(frozen=True)
class IssuedCurrencyAmount:
    currency: str
    issuer: str
    value: str

    @property
    def identifier(self) -> str:
        """Token identifier in ``currency:issuer`` form."""
        return f"{self.currency}:{self.issuer}"

    def to_json(self) -> Dict[str, str]:
        return {"currency": self.currency, "issuer": self.issuer, "value": self.value}

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "IssuedCurrencyAmount":
        return cls(currency=data["currency"], issuer=data["issuer"], value=str(data["value"]))


XrpAmount = Union[str, IssuedCurrencyAmount]


def is_native_amount(amount: Optional[XrpAmount]) -> bool:
    return isinstance(amount, str)


def _amount_to_json(amount: XrpAmount) -> Union[str, Dict[str, str]]:
    return amount if isinstance(amount, str) else amount.to_json()


def _amount_from_json(data: Any) -> XrpAmount:
    if isinstance(data, (str, int)):
        return str(data)
    return IssuedCurrencyAmount.from_json(data)


@dataclass(frozen=True)
class Memo:
    """A memo; every field is hex as it appears on the ledger."""
    data: Optional[str] = None
    type: Optional[str] = None
    format: Optional[str] = None

    @classmethod
    def from_text(cls, data: str, type: Optional[str] = None) -> "Memo":
        return cls(
            data=data.encode("utf-8").hex().upper(),
            type=type.encode("utf-8").hex().upper() if type else None,
        )

    def text(self) -> Optional[str]:
        if not self.data:
            return None
        try:
            return bytes.fromhex(self.data).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            return self.data

    def to_json(self) -> Dict[str, Dict[str, str]]:
        memo = {}
        if self.type is not None:
            memo["MemoType"] = self.type
        if self.data is not None:
            memo["MemoData"] = self.data
        if self.format is not None:
            memo["MemoFormat"] = self.format
        return {"Memo": memo}

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "Memo":
        memo = data["Memo"]
        return cls(data=memo.get("MemoData"), type=memo.get("MemoType"), format=memo.get("MemoFormat"))


# ============================================================================
# Raw transaction
# ============================================================================

# Attribute name -> tx_json field name, in the order fields are emitted
_SCALAR_FIELDS = (
    ("transaction_type", "TransactionType"),
    ("account", "Account"),
    ("destination", "Destination"),
    ("fee", "Fee"),
    ("sequence", "Sequence"),
    ("last_ledger_sequence", "LastLedgerSequence"),
    ("destination_tag", "DestinationTag"),
    ("source_tag", "SourceTag"),
    ("flags", "Flags"),
    ("quality_in", "QualityIn"),
    ("quality_out", "QualityOut"),
    ("signing_pub_key", "SigningPubKey"),
)
_AMOUNT_FIELDS = (
    ("amount", "Amount"),
    ("send_max", "SendMax"),
    ("deliver_min", "DeliverMin"),
)
_KNOWN_FIELDS = (
    {name for _, name in _SCALAR_FIELDS}
    | {name for _, name in _AMOUNT_FIELDS}
    | {"LimitAmount", "Memos"}
)


@dataclass(frozen=True)
class RawXrpTransaction(RawTransaction):
    """
    A Payment or TrustSet field map.

    Amounts in drops are decimal strings; issued amounts are
    IssuedCurrencyAmount records.
    """
    ecosystem: ClassVar[Ecosystem] = Ecosystem.XRP

    transaction_type: str
    account: str
    fee: str
    sequence: int
    destination: Optional[str] = None
    amount: Optional[XrpAmount] = None
    last_ledger_sequence: Optional[int] = None
    destination_tag: Optional[int] = None
    source_tag: Optional[int] = None
    flags: Optional[int] = None
    signing_pub_key: str = ""
    memos: Tuple[Memo, ...] = ()
    limit_amount: Optional[IssuedCurrencyAmount] = None
    quality_in: Optional[int] = None
    quality_out: Optional[int] = None
    send_max: Optional[XrpAmount] = None
    deliver_min: Optional[XrpAmount] = None

    def to_tx_json(self) -> Dict[str, Any]:
        tx_json: Dict[str, Any] = {}
        for attr, name in _SCALAR_FIELDS:
            value = getattr(self, attr)
            if value is not None:
                tx_json[name] = value
        for attr, name in _AMOUNT_FIELDS:
            value = getattr(self, attr)
            if value is not None:
                tx_json[name] = _amount_to_json(value)
        if self.limit_amount is not None:
            tx_json["LimitAmount"] = self.limit_amount.to_json()
        if self.memos:
            tx_json["Memos"] = [memo.to_json() for memo in self.memos]
        return tx_json

    @classmethod
    def from_tx_json(cls, data: Mapping[str, Any]) -> "RawXrpTransaction":
        """
        Raises:
            ValueError: For fields this model cannot carry
            KeyError: If a required field is missing
        """
        unknown = set(data) - _KNOWN_FIELDS
        if unknown:
            raise ValueError(f"unsupported fields: {', '.join(sorted(unknown))}")

        kwargs: Dict[str, Any] = {}
        for attr, name in _SCALAR_FIELDS:
            if name in data:
                kwargs[attr] = data[name]
        for attr, name in _AMOUNT_FIELDS:
            if name in data:
                kwargs[attr] = _amount_from_json(data[name])
        if "LimitAmount" in data:
            kwargs["limit_amount"] = IssuedCurrencyAmount.from_json(data["LimitAmount"])
        if "Memos" in data:
            kwargs["memos"] = tuple(Memo.from_json(memo) for memo in data["Memos"])

        for required in ("transaction_type", "account", "fee", "sequence"):
            if required not in kwargs:
                raise KeyError(required)
        kwargs["fee"] = str(kwargs["fee"])
        kwargs["sequence"] = int(kwargs["sequence"])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {"_chain": self.ecosystem.value, **self.to_tx_json()}


def build_payment(
    account: str,
    destination: str,
    amount: XrpAmount,
    fee: str,
    sequence: int,
    last_ledger_sequence: Optional[int] = None,
    destination_tag: Optional[int] = None,
    source_tag: Optional[int] = None,
    memos: Sequence[Memo] = (),
    signing_pub_key: str = "",
) -> RawXrpTransaction:
    return RawXrpTransaction(
        transaction_type=PAYMENT,
        account=account,
        destination=destination,
        amount=amount,
        fee=fee,
        sequence=sequence,
        last_ledger_sequence=last_ledger_sequence,
        destination_tag=destination_tag,
        source_tag=source_tag,
        memos=tuple(memos),
        signing_pub_key=signing_pub_key,
    )


def build_trust_set(
    account: str,
    limit: IssuedCurrencyAmount,
    fee: str,
    sequence: int,
    last_ledger_sequence: Optional[int] = None,
    flags: Optional[int] = None,
    quality_in: Optional[int] = None,
    quality_out: Optional[int] = None,
    signing_pub_key: str = "",
) -> RawXrpTransaction:
    return RawXrpTransaction(
        transaction_type=TRUST_SET,
        account=account,
        limit_amount=limit,
        fee=fee,
        sequence=sequence,
        last_ledger_sequence=last_ledger_sequence,
        flags=flags,
        quality_in=quality_in,
        quality_out=quality_out,
        signing_pub_key=signing_pub_key,
    )


def transaction_hash(tx_blob: str) -> str:
    """SHA-512Half of the hash prefix and signed blob, uppercase hex."""
    return sha512_half(TX_HASH_PREFIX + bytes.fromhex(tx_blob)).hex().upper()


# ============================================================================
# Transactions
# ============================================================================

class UnsignedXrpTransaction(UnsignedTransaction):
    """Unsigned XRP Ledger transaction."""

    def __init__(self, config: ChainConfig, raw: RawXrpTransaction, rpc: Optional[RpcClient] = None):
        self._config = config
        self._raw = raw
        self._rpc = rpc
        self._serialized = json.dumps(raw.to_tx_json(), separators=(",", ":"))

    @property
    def chain_alias(self) -> str:
        return self._config.chain_alias

    @property
    def raw(self) -> RawXrpTransaction:
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
    ) -> "UnsignedXrpTransaction":
        try:
            raw = RawXrpTransaction.from_tx_json(json.loads(serialized))
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidTransactionError(config.chain_alias, f"malformed XRP transaction: {e}")
        return cls(config, raw, rpc)

    def rebuild(self, overrides: TransactionOverrides) -> "UnsignedXrpTransaction":
        """
        Override fee, sequence or LastLedgerSequence.

        Raises:
            InvalidTransactionError: For max_ledger_version_offset, which needs
                the current ledger index and is applied by the provider
        """
        if not isinstance(overrides, XrpTransactionOverrides):
            raise InvalidTransactionError(self.chain_alias, "expected XrpTransactionOverrides")
        if overrides.max_ledger_version_offset is not None:
            raise InvalidTransactionError(
                self.chain_alias,
                "max_ledger_version_offset is applied at build time; use last_ledger_sequence",
            )

        changes: Dict[str, Any] = {}
        if overrides.fee is not None:
            changes["fee"] = str(overrides.fee)
        if overrides.sequence is not None:
            changes["sequence"] = overrides.sequence
        if overrides.last_ledger_sequence is not None:
            changes["last_ledger_sequence"] = overrides.last_ledger_sequence
        return UnsignedXrpTransaction(self._config, replace(self._raw, **changes), self._rpc)

    def get_signing_payload(self) -> SigningPayload:
        # Ed25519 public keys carry an "ED" prefix on the ledger
        algorithm = (
            SigningAlgorithm.ED25519
            if self._raw.signing_pub_key.upper().startswith("ED")
            else SigningAlgorithm.SECP256K1
        )
        return SigningPayload(chain_alias=self.chain_alias, data=(self._serialized,), algorithm=algorithm)

    def apply_signature(self, signatures: Sequence[str]) -> "SignedXrpTransaction":
        """
        Attach the single TxnSignature (hex, DER for secp256k1).

        Raises:
            SignatureError: If not exactly one hex signature is given
        """
        self._require_signature_count(signatures, 1)
        signature = signatures[0]
        if signature.startswith(("0x", "0X")):
            signature = signature[2:]
        try:
            binascii.unhexlify(signature)
        except (binascii.Error, ValueError):
            raise SignatureError("Invalid signature: expected hex", self.chain_alias)
        if not signature:
            raise SignatureError("Invalid signature: empty", self.chain_alias)
        return SignedXrpTransaction(self._config, self._raw, signature.upper(), self._rpc)

    def to_normalised(self) -> NormalisedTransaction:
        raw = self._raw
        currency = self._config.native_currency
        tx_type = self._classify()

        to = None
        value = "0"
        token_transfer = None

        if raw.transaction_type == PAYMENT:
            to = raw.destination
            if is_native_amount(raw.amount):
                value = raw.amount
            elif raw.amount is not None:
                token_transfer = TokenTransferInfo(
                    contract_address=raw.amount.identifier,
                    from_address=raw.account,
                    to=raw.destination,
                    value=raw.amount.value,
                    formatted_value=raw.amount.value,
                    symbol=currency_symbol(raw.amount.currency),
                    decimals=ISSUED_CURRENCY_DECIMALS,
                )
        elif raw.transaction_type == TRUST_SET and raw.limit_amount is not None:
            to = raw.limit_amount.issuer

        memo = raw.memos[0].text() if raw.memos else None
        return NormalisedTransaction(
            chain_alias=self.chain_alias,
            from_address=raw.account,
            to=to,
            value=value,
            formatted_value=format_units(int(value), currency.decimals),
            symbol=currency.symbol,
            type=tx_type,
            fee=FeeInfo(
                value=raw.fee,
                formatted_value=format_units(int(raw.fee), currency.decimals),
                symbol=currency.symbol,
            ),
            token_transfer=token_transfer,
            data=raw.transaction_type,
            metadata=TransactionMetadata(sequence=raw.sequence, memo=memo),
        )

    def _classify(self) -> TransactionType:
        if self._raw.transaction_type == PAYMENT:
            if is_native_amount(self._raw.amount):
                return TransactionType.NATIVE_TRANSFER
            return TransactionType.TOKEN_TRANSFER
        # A trust line authorises holding a token
        if self._raw.transaction_type == TRUST_SET:
            return TransactionType.APPROVAL
        return TransactionType.UNKNOWN


class SignedXrpTransaction(SignedTransaction):
    """
    Signed XRP transaction.

    ``serialized`` is the canonical binary blob (uppercase hex) submitted
    with rippled's ``submit`` method.
    """

    def __init__(
        self,
        config: ChainConfig,
        raw: RawXrpTransaction,
        signature: str,
        rpc: Optional[RpcClient] = None,
    ):
        self._config = config
        self._raw = raw
        self._signature = signature
        self._rpc = rpc
        self._tx_json = {**raw.to_tx_json(), "TxnSignature": signature}
        try:
            self._blob = binarycodec.encode(self._tx_json)
        except (XRPLException, ValueError, TypeError) as e:
            raise InvalidTransactionError(config.chain_alias, f"cannot encode XRP transaction: {e}")
        self._hash = transaction_hash(self._blob)

    @property
    def chain_alias(self) -> str:
        return self._config.chain_alias

    @property
    def serialized(self) -> str:
        return self._blob

    @property
    def hash(self) -> str:
        return self._hash

    @property
    def tx_json(self) -> Dict[str, Any]:
        return dict(self._tx_json)

    async def broadcast(self, rpc_url: Optional[str] = None) -> BroadcastResult:
        async with rpc_session(
            self.chain_alias, self._rpc, rpc_url, self._config.rpc_url, self._config.headers,
        ) as rpc:
            try:
                result = await XrplClient(rpc).submit(self._blob)
            except XrplRequestError as e:
                logger.warning("transaction_rejected", chain=self.chain_alias, hash=self.hash, error=e.error)
                return BroadcastResult(hash=self.hash, success=False, error=e.message)

        engine_result = result.get("engine_result", "")
        success, error = classify_engine_result(engine_result, result.get("engine_result_message"))
        tx_hash = (result.get("tx_json") or {}).get("hash") or result.get("hash") or self.hash

        if success:
            logger.info("transaction_broadcast", chain=self.chain_alias, hash=tx_hash, engine_result=engine_result)
        else:
            logger.warning("transaction_rejected", chain=self.chain_alias, hash=tx_hash, error=error)
        return BroadcastResult(hash=tx_hash, success=success, error=error)

