"""
Chain-agnostic transaction view used for display and classification.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

from chainkit.core.types import TransactionType


@dataclass(frozen=True)
class FeeInfo:
    value: str
    formatted_value: str
    symbol: str


@dataclass(frozen=True)
class TokenTransferInfo:
    contract_address: str
    from_address: str
    to: str
    value: str
    formatted_value: str
    symbol: str
    decimals: int
    token_id: Optional[str] = None


@dataclass(frozen=True)
class ContractCallInfo:
    contract_address: str
    method: Optional[str] = None
    selector: Optional[str] = None


@dataclass(frozen=True)
class TransactionMetadata:
    is_contract_deployment: bool = False
    nonce: Optional[int] = None
    sequence: Optional[int] = None
    memo: Optional[str] = None
    input_count: Optional[int] = None
    output_count: Optional[int] = None


@dataclass(frozen=True)
class OutputInfo:
    address: Optional[str]
    value: str
    formatted_value: str


@dataclass(frozen=True)
class NormalisedTransaction:
    """
    Cross-chain view of a transaction.

    ``to`` is None for contract deployments and for chains where the
    recipient cannot be determined from the transaction alone.
    """
    chain_alias: str
    to: Optional[str]
    value: str
    formatted_value: str
    symbol: str
    type: TransactionType
    metadata: TransactionMetadata
    hash: Optional[str] = None
    from_address: Optional[str] = None
    fee: Optional[FeeInfo] = None
    token_transfer: Optional[TokenTransferInfo] = None
    contract_call: Optional[ContractCallInfo] = None
    data: Optional[str] = None
    outputs: Optional[Tuple[OutputInfo, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data
