"""
Error taxonomy for chain operations.

Every chain-scoped failure derives from ChainError and carries the alias of
the chain it happened on. Codec failures are plain ValueErrors so that the
byte-level primitives stay independent of any chain.
"""

from typing import Optional, Union


class CodecError(ValueError):
    """Raised when bytes or text cannot be encoded or decoded."""
    pass


class CodecRangeError(CodecError, OverflowError):
    """Raised when an integer does not fit the target encoding."""
    pass


class ChainError(Exception):
    """Base class for errors raised while talking to or building for a chain."""

    def __init__(
        self,
        message: str,
        chain_alias: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.chain_alias = chain_alias
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class RpcError(ChainError):
    """Raised when an upstream RPC or indexer call fails or is rejected."""

    def __init__(
        self,
        message: str,
        chain_alias: Optional[str] = None,
        code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, chain_alias, cause)
        self.code = code


class RpcTimeoutError(RpcError):
    """Raised when an RPC request exceeds its timeout."""

    def __init__(self, chain_alias: Optional[str], timeout_ms: int):
        super().__init__(f"RPC request timed out after {timeout_ms}ms", chain_alias)
        self.timeout_ms = timeout_ms


class RateLimitError(RpcError):
    """Raised when the RPC endpoint answers with HTTP 429."""

    def __init__(self, chain_alias: Optional[str], retry_after_ms: Optional[int] = None):
        message = "RPC rate limit exceeded"
        if retry_after_ms is not None:
            message += f", retry after {retry_after_ms}ms"
        super().__init__(message, chain_alias, code=429)
        self.retry_after_ms = retry_after_ms


class InvalidAddressError(ChainError):
    """Raised when an address fails chain-specific validation."""

    def __init__(self, chain_alias: Optional[str], address: str, reason: Optional[str] = None):
        message = f"Invalid address for {chain_alias}: {address}"
        if reason:
            message += f" ({reason})"
        super().__init__(message, chain_alias)
        self.address = address
        self.reason = reason


class InvalidTransactionError(ChainError):
    """Raised when a transaction cannot be built or decoded."""

    def __init__(self, chain_alias: Optional[str], reason: str):
        super().__init__(f"Invalid transaction: {reason}", chain_alias)
        self.reason = reason


class InvalidTransactionHashError(ChainError):
    """Raised when a hash or signature fails length or alphabet checks."""

    def __init__(self, chain_alias: Optional[str], value: str, reason: Optional[str] = None):
        message = f"Invalid transaction hash or signature: {value}"
        if reason:
            message += f" ({reason})"
        super().__init__(message, chain_alias)
        self.value = value


class SignatureError(ChainError):
    """Raised when supplied signatures do not match the signing payload."""
    pass


class InsufficientBalanceError(ChainError):
    """Raised when an account cannot cover the requested amount."""

    def __init__(
        self,
        chain_alias: Optional[str],
        required: Union[int, str],
        available: Union[int, str],
    ):
        super().__init__(
            f"Insufficient balance: required {required}, available {available}",
            chain_alias,
        )
        self.required = str(required)
        self.available = str(available)


class InsufficientFundsError(InsufficientBalanceError):
    """Raised when no set of unspent outputs covers amount plus fee."""
    pass


class UnsupportedOperationError(ChainError):
    """Raised when an operation is not available for an ecosystem."""

    def __init__(self, chain_alias: Optional[str], operation: str):
        super().__init__(f"Operation not supported on {chain_alias}: {operation}", chain_alias)
        self.operation = operation


class ContractError(ChainError):
    """Raised for contract operations that fail or are structurally unsupported."""
    pass


class UnsupportedAddressTypeError(ChainError):
    """Raised when a locking script or address type cannot be spent."""
    pass


class PsbtError(ChainError):
    """Raised when a partially signed transaction is malformed."""
    pass


class BroadcastError(ChainError):
    """Raised when the network rejects a signed transaction."""

    def __init__(
        self,
        message: str,
        chain_alias: Optional[str] = None,
        code: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, chain_alias, cause)
        self.code = code


class UnsupportedChainError(Exception):
    """Raised for an alias that no ecosystem recognises."""

    def __init__(self, chain_alias: str):
        super().__init__(f"Unsupported chain: {chain_alias}")
        self.chain_alias = chain_alias
