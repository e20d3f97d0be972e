"""
Abstract contracts implemented once per ecosystem.

Defines the unsigned/signed transaction lifecycle and the provider
capability set callers use to treat every chain the same way.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union

from chainkit.core.chains import ChainConfig
from chainkit.core.errors import InvalidAddressError, SignatureError
from chainkit.core.normalised import NormalisedTransaction
from chainkit.core.rpc import RpcClient
from chainkit.core.types import (
    BroadcastResult,
    ContractCallParams,
    ContractDeployParams,
    ContractReadParams,
    ContractReadResult,
    DecodeFormat,
    DeployedContract,
    FeeEstimate,
    NativeBalance,
    NativeTransferParams,
    RawTransaction,
    SigningPayload,
    TokenBalance,
    TokenTransferParams,
    TransactionHash,
    TransactionOverrides,
)
from chainkit.core.units import parse_amount


class SignedTransaction(ABC):
    """A transaction carrying all of its signatures, ready to broadcast."""

    @property
    @abstractmethod
    def chain_alias(self) -> str:
        pass

    @property
    @abstractmethod
    def serialized(self) -> str:
        """Wire encoding submitted to the network."""
        pass

    @property
    @abstractmethod
    def hash(self) -> str:
        """Chain-native transaction identifier derived from the signed bytes."""
        pass

    @property
    def transaction_hash(self) -> TransactionHash:
        """``hash`` as a case-insensitive value bound to this chain."""
        return TransactionHash.create(self.hash, self.chain_alias)

    @abstractmethod
    async def broadcast(self, rpc_url: Optional[str] = None) -> BroadcastResult:
        """
        Submit the transaction once.

        Args:
            rpc_url: Optional endpoint overriding the chain config

        Returns:
            BroadcastResult with success flag and error text on rejection
        """
        pass


class UnsignedTransaction(ABC):
    """
    An immutable unsigned transaction.

    ``raw`` is the canonical ecosystem-specific shape and ``serialized`` is
    its wire or text encoding; each is derivable from the other.
    """

    @property
    @abstractmethod
    def chain_alias(self) -> str:
        pass

    @property
    @abstractmethod
    def raw(self) -> RawTransaction:
        pass

    @property
    @abstractmethod
    def serialized(self) -> str:
        pass

    @abstractmethod
    def rebuild(self, overrides: TransactionOverrides) -> "UnsignedTransaction":
        """
        Return a sibling transaction with overridden fields.

        The receiver is never modified.
        """
        pass

    @abstractmethod
    def get_signing_payload(self) -> SigningPayload:
        pass

    @abstractmethod
    def apply_signature(self, signatures: Sequence[str]) -> SignedTransaction:
        """
        Attach signatures produced by an external signer.

        Args:
            signatures: Signatures in the order of the signing payload's data

        Raises:
            SignatureError: If the count or encoding does not match
        """
        pass

    @abstractmethod
    def to_normalised(self) -> NormalisedTransaction:
        pass

    def to_raw(self) -> RawTransaction:
        return self.raw

    def _require_signature_count(self, signatures: Sequence[str], expected: int) -> None:
        if not signatures:
            raise SignatureError("At least one signature is required", self.chain_alias)
        if len(signatures) != expected:
            raise SignatureError(
                f"Expected {expected} signature(s), got {len(signatures)}",
                self.chain_alias,
            )


class ChainProvider(ABC):
    """
    Capability set every ecosystem provider implements.

    Balance reads, transfer building, fee estimation, decoding and contract
    interaction. Addresses are validated before any network call.
    """

    def __init__(self, config: ChainConfig, rpc: RpcClient):
        self.config = config
        self.rpc = rpc

    @property
    def chain_alias(self) -> str:
        return self.config.chain_alias

    async def close(self) -> None:
        """Release the HTTP client."""
        await self.rpc.close()

    @abstractmethod
    def is_valid_address(self, address: str) -> bool:
        pass

    def validate_address(self, address: str) -> None:
        """
        Raises:
            InvalidAddressError: If the address is not valid for this chain
        """
        if not address or not self.is_valid_address(address):
            raise InvalidAddressError(self.chain_alias, address)

    def parse_native_amount(self, value: Optional[str]) -> int:
        """
        Smallest-unit amount of the native asset; empty means zero.

        Raises:
            InvalidTransactionError: If the amount is negative or malformed
        """
        if not value:
            return 0
        return parse_amount(value, self.config.native_currency.decimals, self.chain_alias)

    def parse_token_amount(self, value: str) -> int:
        """
        Smallest-unit token amount. Token decimals are not known up front, so
        only integer strings are accepted.

        Raises:
            InvalidTransactionError: If the amount is negative or not an integer string
        """
        return parse_amount(value, None, self.chain_alias)

    # Balances

    @abstractmethod
    async def get_native_balance(self, address: str) -> NativeBalance:
        pass

    @abstractmethod
    async def get_token_balance(self, address: str, contract_address: str) -> TokenBalance:
        pass

    # Transaction building

    @abstractmethod
    async def build_native_transfer(self, params: NativeTransferParams) -> UnsignedTransaction:
        pass

    @abstractmethod
    async def build_token_transfer(self, params: TokenTransferParams) -> UnsignedTransaction:
        pass

    @abstractmethod
    def decode(
        self,
        serialized: str,
        format: Union[DecodeFormat, str],
    ) -> Union[RawTransaction, NormalisedTransaction]:
        """
        Decode a serialized unsigned transaction.

        Args:
            serialized: Output of ``UnsignedTransaction.serialized``
            format: "raw" for the tagged raw variant, "normalised" for the cross-chain view
        """
        pass

    @abstractmethod
    async def estimate_fee(self) -> FeeEstimate:
        pass

    @abstractmethod
    async def estimate_gas(self, params: ContractCallParams) -> str:
        pass

    # Contracts

    @abstractmethod
    async def contract_read(self, params: ContractReadParams) -> ContractReadResult:
        pass

    @abstractmethod
    async def contract_call(self, params: ContractCallParams) -> UnsignedTransaction:
        pass

    @abstractmethod
    async def contract_deploy(self, params: ContractDeployParams) -> DeployedContract:
        pass


def decode_as(
    transaction: UnsignedTransaction,
    format: Union[DecodeFormat, str],
) -> Union[RawTransaction, NormalisedTransaction]:
    """Project a decoded transaction into the requested format."""
    if DecodeFormat(format) is DecodeFormat.RAW:
        return transaction.raw
    return transaction.to_normalised()
