"""
XRP Ledger chain provider.

Account sequence, open-ledger fee and the validated ledger index are
fetched concurrently for every build. Tokens are issued currencies,
identified as ``currency:issuer``.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import structlog
from xrpl.core.addresscodec import is_valid_classic_address

from chainkit.config import get_config
from chainkit.core.chains import ChainConfig
from chainkit.core.errors import ChainError, ContractError
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
    TransactionOverrides,
    XrpTransactionOverrides,
)
from chainkit.core.units import format_units, parse_amount
from chainkit.xrp.client import XrplClient
from chainkit.xrp.transaction import (
    ISSUED_CURRENCY_DECIMALS,
    IssuedCurrencyAmount,
    Memo,
    RawXrpTransaction,
    UnsignedXrpTransaction,
    build_payment,
    build_trust_set,
    currency_symbol,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class XrpNativeTransferParams(NativeTransferParams):
    """Payment with the ledger-specific optional fields."""
    destination_tag: Optional[int] = None
    memo: Optional[str] = None
    signing_pub_key: str = ""


@dataclass(frozen=True)
class XrpTokenTransferParams(TokenTransferParams):
    destination_tag: Optional[int] = None
    memo: Optional[str] = None
    signing_pub_key: str = ""


class XrpChainProvider(ChainProvider):
    """Provider for the XRP Ledger over rippled JSON-RPC."""

    def __init__(
        self,
        config: ChainConfig,
        rpc: Optional[RpcClient] = None,
        ledger_offset: Optional[int] = None,
    ):
        super().__init__(config, rpc or RpcClient(config.chain_alias, config.rpc_url, headers=config.headers))
        self.client = XrplClient(self.rpc)
        self.ledger_offset = ledger_offset if ledger_offset is not None else get_config().xrp_ledger_offset

    def is_valid_address(self, address: str) -> bool:
        return isinstance(address, str) and is_valid_classic_address(address)

    def parse_token_identifier(self, identifier: str) -> Tuple[str, str]:
        """
        Split ``currency:issuer``.

        Raises:
            ChainError: If the identifier is not in that form
        """
        currency, _, issuer = identifier.partition(":")
        if not currency or not issuer:
            raise ChainError('Invalid token identifier. Expected format: "currency:issuer"', self.chain_alias)
        self.validate_address(issuer)
        return currency, issuer

    # Balances

    async def get_native_balance(self, address: str) -> NativeBalance:
        """Total balance in drops; zero for an unfunded account."""
        self.validate_address(address)
        account = await self.client.get_account_info(address)
        drops = int(account["Balance"]) if account else 0
        currency = self.config.native_currency
        return NativeBalance(
            balance=str(drops),
            formatted_balance=format_units(drops, currency.decimals),
            symbol=currency.symbol,
            decimals=currency.decimals,
        )

    async def get_available_balance(self, address: str) -> int:
        """Spendable drops after the base and owner reserves."""
        self.validate_address(address)
        account = await self.client.get_account_info(address)
        if not account:
            return 0
        reserve = (self.config.reserve_base or 0) + (self.config.reserve_increment or 0) * int(
            account.get("OwnerCount", 0)
        )
        return max(int(account["Balance"]) - reserve, 0)

    async def get_token_balance(self, address: str, contract_address: str) -> TokenBalance:
        self.validate_address(address)
        currency, issuer = self.parse_token_identifier(contract_address)
        symbol = currency_symbol(currency)

        balance = "0"
        for line in await self.client.get_account_lines(address):
            if line.get("account") != issuer:
                continue
            if line.get("currency") == currency or currency_symbol(line.get("currency", "")) == symbol:
                balance = line.get("balance", "0")
                break

        return TokenBalance(
            balance=balance,
            formatted_balance=balance,
            symbol=symbol,
            decimals=ISSUED_CURRENCY_DECIMALS,
            contract_address=f"{currency}:{issuer}",
        )

    async def get_sequence(self, address: str) -> int:
        """
        Raises:
            ChainError: If the account does not exist on the ledger
        """
        account = await self.client.get_account_info(address)
        if not account:
            raise ChainError(f"Account not found: {address}", self.chain_alias)
        return int(account["Sequence"])

    # Transaction building

    async def _build_context(
        self,
        address: str,
        overrides: Optional[TransactionOverrides],
    ) -> Tuple[str, int, int]:
        """Fee, sequence and LastLedgerSequence, honouring overrides."""
        xrp_overrides = overrides if isinstance(overrides, XrpTransactionOverrides) else XrpTransactionOverrides()

        sequence, base_fee, ledger_index = await asyncio.gather(
            self.get_sequence(address),
            self.client.get_base_fee(),
            self.client.get_ledger_index(),
        )

        fee = xrp_overrides.fee if xrp_overrides.fee is not None else str(base_fee)
        if xrp_overrides.sequence is not None:
            sequence = xrp_overrides.sequence
        if xrp_overrides.last_ledger_sequence is not None:
            last_ledger = xrp_overrides.last_ledger_sequence
        else:
            offset = xrp_overrides.max_ledger_version_offset
            last_ledger = ledger_index + (offset if offset is not None else self.ledger_offset)
        return fee, sequence, last_ledger

    def _wrap(self, raw: RawXrpTransaction) -> UnsignedXrpTransaction:
        return UnsignedXrpTransaction(self.config, raw, self.rpc)

    async def build_native_transfer(self, params: NativeTransferParams) -> UnsignedXrpTransaction:
        self.validate_address(params.from_address)
        self.validate_address(params.to)
        drops = self.parse_native_amount(params.value)

        fee, sequence, last_ledger = await self._build_context(params.from_address, params.overrides)
        memo = getattr(params, "memo", None)
        raw = build_payment(
            account=params.from_address,
            destination=params.to,
            amount=str(drops),
            fee=fee,
            sequence=sequence,
            last_ledger_sequence=last_ledger,
            destination_tag=getattr(params, "destination_tag", None),
            memos=(Memo.from_text(memo),) if memo else (),
            signing_pub_key=getattr(params, "signing_pub_key", ""),
        )
        logger.debug("xrp_payment_built", chain=self.chain_alias, sequence=sequence, fee=fee)
        return self._wrap(raw)

    async def build_token_transfer(self, params: TokenTransferParams) -> UnsignedXrpTransaction:
        self.validate_address(params.from_address)
        self.validate_address(params.to)
        currency, issuer = self.parse_token_identifier(params.contract_address)
        parse_amount(params.value, ISSUED_CURRENCY_DECIMALS, self.chain_alias)

        fee, sequence, last_ledger = await self._build_context(params.from_address, params.overrides)
        memo = getattr(params, "memo", None)
        raw = build_payment(
            account=params.from_address,
            destination=params.to,
            amount=IssuedCurrencyAmount(currency, issuer, params.value),
            fee=fee,
            sequence=sequence,
            last_ledger_sequence=last_ledger,
            destination_tag=getattr(params, "destination_tag", None),
            memos=(Memo.from_text(memo),) if memo else (),
            signing_pub_key=getattr(params, "signing_pub_key", ""),
        )
        logger.debug("xrp_issued_payment_built", chain=self.chain_alias, currency=currency, sequence=sequence)
        return self._wrap(raw)

    async def build_trust_set(
        self,
        from_address: str,
        currency: str,
        issuer: str,
        limit: str,
        overrides: Optional[XrpTransactionOverrides] = None,
        flags: Optional[int] = None,
    ) -> UnsignedXrpTransaction:
        """Create or modify a trust line towards ``issuer``."""
        self.validate_address(from_address)
        self.validate_address(issuer)
        parse_amount(limit, ISSUED_CURRENCY_DECIMALS, self.chain_alias)

        fee, sequence, last_ledger = await self._build_context(from_address, overrides)
        raw = build_trust_set(
            account=from_address,
            limit=IssuedCurrencyAmount(currency, issuer, limit),
            fee=fee,
            sequence=sequence,
            last_ledger_sequence=last_ledger,
            flags=flags,
        )
        return self._wrap(raw)

    def decode(
        self,
        serialized: str,
        format: Union[DecodeFormat, str],
    ) -> Union[RawTransaction, NormalisedTransaction]:
        return decode_as(UnsignedXrpTransaction.from_serialized(self.config, serialized, self.rpc), format)

    async def estimate_fee(self) -> FeeEstimate:
        """Base fee scaled 1x, 2x and 5x."""
        base_fee = await self.client.get_base_fee()
        currency = self.config.native_currency

        def level(fee: int) -> FeeLevel:
            return FeeLevel(str(fee), f"{format_units(fee, currency.decimals)} {currency.symbol}")

        return FeeEstimate(slow=level(base_fee), standard=level(base_fee * 2), fast=level(base_fee * 5))

    async def estimate_gas(self, params: ContractCallParams) -> str:
        # No gas on the ledger; the flat base fee is the closest equivalent
        return str(await self.client.get_base_fee())

    # Contracts

    async def contract_read(self, params: ContractReadParams) -> ContractReadResult:
        raise ContractError("Contract read operations are not supported on XRP Ledger", self.chain_alias)

    async def contract_call(self, params: ContractCallParams) -> UnsignedXrpTransaction:
        raise ContractError("Contract call operations are not supported on XRP Ledger", self.chain_alias)

    async def contract_deploy(self, params: ContractDeployParams) -> DeployedContract:
        raise ContractError("Contract deployment is not supported on XRP Ledger", self.chain_alias)
