"""
Shared value types for chain providers and transaction builders.

Everything here is immutable: overrides, intents and results are frozen
dataclasses, and list-valued fields are tuples.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Optional, Tuple, Union

from chainkit.core.errors import InvalidTransactionHashError

if TYPE_CHECKING:
    from chainkit.core.interfaces import UnsignedTransaction


class Ecosystem(str, Enum):
    """Protocol families with their own transaction format."""
    EVM = "evm"
    SVM = "svm"
    UTXO = "utxo"
    TVM = "tvm"
    XRP = "xrp"
    SUBSTRATE = "substrate"


CHAIN_ECOSYSTEM_MAP: Dict[str, Ecosystem] = {
    "ethereum": Ecosystem.EVM,
    "polygon": Ecosystem.EVM,
    "arbitrum": Ecosystem.EVM,
    "optimism": Ecosystem.EVM,
    "base": Ecosystem.EVM,
    "avalanche": Ecosystem.EVM,
    "fantom": Ecosystem.EVM,
    "bsc": Ecosystem.EVM,
    "solana": Ecosystem.SVM,
    "solana-devnet": Ecosystem.SVM,
    "bitcoin": Ecosystem.UTXO,
    "bitcoin-testnet": Ecosystem.UTXO,
    "mnee": Ecosystem.UTXO,
    "tron": Ecosystem.TVM,
    "tron-testnet": Ecosystem.TVM,
    "xrp": Ecosystem.XRP,
    "xrp-testnet": Ecosystem.XRP,
    "bittensor": Ecosystem.SUBSTRATE,
    "bittensor-testnet": Ecosystem.SUBSTRATE,
}


class TransactionType(str, Enum):
    """Classification used by the normalised transaction view."""
    NATIVE_TRANSFER = "native-transfer"
    TOKEN_TRANSFER = "token-transfer"
    NFT_TRANSFER = "nft-transfer"
    CONTRACT_CALL = "contract-call"
    CONTRACT_DEPLOYMENT = "contract-deployment"
    APPROVAL = "approval"
    UNKNOWN = "unknown"


class SigningAlgorithm(str, Enum):
    SECP256K1 = "secp256k1"
    ED25519 = "ed25519"


class DecodeFormat(str, Enum):
    RAW = "raw"
    NORMALISED = "normalised"


@dataclass(frozen=True)
class NativeCurrency:
    symbol: str
    decimals: int


@dataclass(frozen=True)
class SigningPayload:
    """
    Digests an external signer must sign, in order.

    Account-based chains carry exactly one entry; UTXO chains carry one per input.
    """
    chain_alias: str
    data: Tuple[str, ...]
    algorithm: SigningAlgorithm


@dataclass(frozen=True)
class BroadcastResult:
    hash: str
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True, eq=False)
class TransactionHash:
    """
    A transaction hash on one chain.

    ``original`` keeps the case it was given in; equality and ``matches``
    compare the lowercase form.
    """
    original: str
    chain_alias: str

    @classmethod
    def create(cls, value: str, chain_alias: str) -> "TransactionHash":
        """
        Raises:
            InvalidTransactionHashError: If the value is empty or not a string
        """
        if not isinstance(value, str) or not value.strip():
            raise InvalidTransactionHashError(chain_alias, value if isinstance(value, str) else "", "empty")
        return cls(value.strip(), chain_alias)

    @property
    def normalized(self) -> str:
        return self.original.lower()

    def matches(self, value: str) -> bool:
        return self.normalized == value.strip().lower()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransactionHash):
            return NotImplemented
        return self.normalized == other.normalized and self.chain_alias == other.chain_alias

    def __hash__(self) -> int:
        return hash((self.normalized, self.chain_alias))

    def __str__(self) -> str:
        return self.original


@dataclass(frozen=True)
class FeeLevel:
    fee: str
    formatted_fee: str


@dataclass(frozen=True)
class FeeEstimate:
    slow: FeeLevel
    standard: FeeLevel
    fast: FeeLevel


@dataclass(frozen=True)
class NativeBalance:
    balance: str
    formatted_balance: str
    symbol: str
    decimals: int
    is_native: bool = True


@dataclass(frozen=True)
class TokenBalance:
    balance: str
    formatted_balance: str
    symbol: str
    decimals: int
    contract_address: str
    name: Optional[str] = None
    is_native: bool = False


# ============================================================================
# Transaction overrides
# ============================================================================

@dataclass(frozen=True)
class EvmTransactionOverrides:
    gas_price: Optional[int] = None
    gas_limit: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    nonce: Optional[int] = None
    type: Optional[int] = None
    data: Optional[str] = None


@dataclass(frozen=True)
class SvmTransactionOverrides:
    compute_unit_price: Optional[int] = None   # micro-lamports per compute unit
    compute_unit_limit: Optional[int] = None
    skip_preflight: Optional[bool] = None


@dataclass(frozen=True)
class UtxoInput:
    """An unspent output as reported by the indexer."""
    txid: str
    vout: int
    value: int
    script_pubkey: str
    address: Optional[str] = None
    confirmations: int = 0


@dataclass(frozen=True)
class UtxoTransactionOverrides:
    fee_rate: Optional[float] = None           # sat/vB
    absolute_fee: Optional[int] = None         # takes precedence over fee_rate
    rbf: Optional[bool] = None                 # defaults to enabled
    change_address: Optional[str] = None
    utxos: Optional[Tuple[UtxoInput, ...]] = None


@dataclass(frozen=True)
class TvmTransactionOverrides:
    fee_limit: Optional[int] = None
    permission_id: Optional[int] = None


@dataclass(frozen=True)
class XrpTransactionOverrides:
    fee: Optional[str] = None                  # drops
    sequence: Optional[int] = None
    last_ledger_sequence: Optional[int] = None
    max_ledger_version_offset: Optional[int] = None   # applied at build time only


@dataclass(frozen=True)
class SubstrateTransactionOverrides:
    tip: Optional[int] = None
    nonce: Optional[int] = None
    era: Optional[int] = None


TransactionOverrides = Union[
    EvmTransactionOverrides,
    SvmTransactionOverrides,
    UtxoTransactionOverrides,
    TvmTransactionOverrides,
    XrpTransactionOverrides,
    SubstrateTransactionOverrides,
]


# ============================================================================
# Transfer intents and contract parameters
# ============================================================================

@dataclass(frozen=True)
class NativeTransferParams:
    """Intent to move the chain's native asset; value is in smallest units."""
    from_address: str
    to: str
    value: str
    overrides: Optional[TransactionOverrides] = None


@dataclass(frozen=True)
class TokenTransferParams:
    from_address: str
    to: str
    contract_address: str
    value: str
    overrides: Optional[TransactionOverrides] = None


TransferIntent = Union[NativeTransferParams, TokenTransferParams]


@dataclass(frozen=True)
class ContractReadParams:
    contract_address: str
    data: str
    from_address: Optional[str] = None


@dataclass(frozen=True)
class ContractReadResult:
    data: str


@dataclass(frozen=True)
class ContractCallParams:
    from_address: str
    contract_address: str
    data: str
    value: Optional[str] = None
    overrides: Optional[TransactionOverrides] = None


@dataclass(frozen=True)
class ContractDeployParams:
    from_address: str
    bytecode: str
    constructor_args: Optional[str] = None
    value: Optional[str] = None
    overrides: Optional[TransactionOverrides] = None


@dataclass(frozen=True)
class DeployedContract:
    transaction: "UnsignedTransaction"
    expected_address: str


@dataclass(frozen=True)
class RawTransaction:
    """Base for the per-ecosystem raw variants; the ``ecosystem`` class attribute is the tag."""
    ecosystem: ClassVar[Ecosystem]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["_chain"] = self.ecosystem.value
        return data
