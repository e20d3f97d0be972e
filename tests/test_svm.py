"""
Test suite for Solana message compilation, transaction lifecycle and provider.
"""

import base64

import pytest

from chainkit.codec import b58encode, decode_compact_u16
from chainkit.core.errors import ChainError, ContractError, InvalidAddressError, InvalidTransactionError, SignatureError
from chainkit.core.types import (
    ContractDeployParams,
    ContractReadParams,
    NativeTransferParams,
    SigningAlgorithm,
    SvmTransactionOverrides,
    TokenTransferParams,
    TransactionType,
)
from chainkit.svm.message import (
    COMPUTE_BUDGET_PROGRAM_ID,
    SPL_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    AccountMeta,
    Instruction,
    compile_account_keys,
    is_valid_solana_address,
    system_transfer,
)
from chainkit.svm.provider import SvmChainProvider
from chainkit.svm.transaction import RawSolanaTransaction, UnsignedSvmTransaction

from conftest import JsonRpcMock, chain_config, make_rpc


def address(seed: int) -> str:
    return b58encode(bytes([seed]) * 32)


PAYER = address(1)
RECIPIENT = address(2)
MINT = address(3)
SOURCE_ATA = address(4)
DEST_ATA = address(5)
BLOCKHASH = address(9)


def token_account(pubkey: str, amount: int = 5000, decimals: int = 6) -> dict:
    return {
        "pubkey": pubkey,
        "account": {
            "owner": SPL_TOKEN_PROGRAM_ID,
            "data": {"parsed": {"info": {"tokenAmount": {"amount": str(amount), "decimals": decimals}}}},
        },
    }


@pytest.fixture
def rpc_mock() -> JsonRpcMock:
    def token_accounts(params):
        owner = params[0]
        if owner == PAYER:
            return {"value": [token_account(SOURCE_ATA)]}
        if owner == RECIPIENT:
            return {"value": [token_account(DEST_ATA, 0)]}
        return {"value": []}

    return JsonRpcMock({
        "getLatestBlockhash": {"value": {"blockhash": BLOCKHASH, "lastValidBlockHeight": 100}},
        "getBalance": {"value": 2_500_000_000},
        "getTokenAccountsByOwner": token_accounts,
        "getAccountInfo": {"value": {"data": {"parsed": {"info": {"decimals": 9}}}}},
        "getFeeForMessage": {"value": 5000},
        "sendTransaction": "5" * 88,
    })


@pytest.fixture
def provider(rpc_mock) -> SvmChainProvider:
    return SvmChainProvider(chain_config("solana"), make_rpc("solana", rpc_mock))


def signature(fill: int = 7) -> str:
    return base64.b64encode(bytes([fill]) * 64).decode("ascii")


# ============================================================================
# Message Compilation
# ============================================================================

class TestMessage:
    """Tests for account ordering and message layout."""

    def test_address_validation(self):
        assert is_valid_solana_address(PAYER)
        assert is_valid_solana_address(SYSTEM_PROGRAM_ID)
        assert not is_valid_solana_address("short")
        assert not is_valid_solana_address("0" * 44)

    def test_account_ordering(self):
        """Fee payer, signers, writable non-signers, then readonly non-signers."""
        extra_signer = address(10)
        readonly = address(11)
        program = address(12)
        ix = Instruction(
            program_id=program,
            accounts=(
                AccountMeta(readonly, is_signer=False, is_writable=False),
                AccountMeta(RECIPIENT, is_signer=False, is_writable=True),
                AccountMeta(extra_signer, is_signer=True, is_writable=False),
            ),
            data="",
        )
        header, keys = compile_account_keys(PAYER, [ix])

        assert keys == [PAYER, extra_signer, RECIPIENT, program, readonly]
        assert header.num_required_signatures == 2
        assert header.num_readonly_signed_accounts == 1
        assert header.num_readonly_unsigned_accounts == 2

    def test_permissions_are_merged(self):
        """A key mentioned twice keeps the union of its permissions."""
        ix1 = Instruction(SYSTEM_PROGRAM_ID, (AccountMeta(RECIPIENT, False, False),), "")
        ix2 = Instruction(SYSTEM_PROGRAM_ID, (AccountMeta(RECIPIENT, False, True),), "")
        header, keys = compile_account_keys(PAYER, [ix1, ix2])

        assert keys == [PAYER, RECIPIENT, SYSTEM_PROGRAM_ID]
        assert header.num_readonly_unsigned_accounts == 1

    def test_system_transfer_data(self):
        ix = system_transfer(PAYER, RECIPIENT, 1_000_000_000)
        assert ix.data_bytes == bytes([2, 0, 0, 0]) + (1_000_000_000).to_bytes(8, "little")


# ============================================================================
# Transaction Lifecycle
# ============================================================================

class TestNativeTransfer:
    """End-to-end native transfer building."""

    @pytest.mark.asyncio
    async def test_single_instruction_message(self, provider):
        tx = await provider.build_native_transfer(NativeTransferParams(PAYER, RECIPIENT, "1000000000"))

        assert len(tx.raw.instructions) == 1
        message = tx.raw.message_bytes()
        assert message[:3] == bytes([1, 0, 1])
        count, consumed = decode_compact_u16(message, 3)
        assert count == 3
        assert message[3 + consumed:3 + consumed + 32] == bytes([1]) * 32

    @pytest.mark.asyncio
    async def test_signing_payload_is_message(self, provider):
        tx = await provider.build_native_transfer(NativeTransferParams(PAYER, RECIPIENT, "1000000000"))
        payload = tx.get_signing_payload()

        assert payload.algorithm is SigningAlgorithm.ED25519
        assert payload.data == (base64.b64encode(tx.raw.message_bytes()).decode("ascii"),)

    @pytest.mark.asyncio
    async def test_apply_signature(self, provider):
        tx = await provider.build_native_transfer(NativeTransferParams(PAYER, RECIPIENT, "1000000000"))
        signed = tx.apply_signature([signature()])

        wire = base64.b64decode(signed.serialized)
        assert wire[0] == 1
        assert wire[1:65] == bytes([7]) * 64
        assert wire[65:] == tx.raw.message_bytes()
        assert signed.hash == b58encode(bytes([7]) * 64)

    @pytest.mark.asyncio
    async def test_signature_count_must_match_signers(self, provider):
        tx = await provider.build_native_transfer(NativeTransferParams(PAYER, RECIPIENT, "1"))

        with pytest.raises(SignatureError, match="Expected 1 signature"):
            tx.apply_signature([signature(), signature(8)])
        with pytest.raises(SignatureError, match="at least one"):
            tx.apply_signature([])

    @pytest.mark.asyncio
    async def test_signature_length_checked(self, provider):
        tx = await provider.build_native_transfer(NativeTransferParams(PAYER, RECIPIENT, "1"))
        short = base64.b64encode(b"\x01" * 32).decode("ascii")

        with pytest.raises(SignatureError, match="Invalid signature length"):
            tx.apply_signature([short])

    @pytest.mark.asyncio
    async def test_invalid_address_before_network(self, provider, rpc_mock):
        with pytest.raises(InvalidAddressError):
            await provider.build_native_transfer(NativeTransferParams(PAYER, "not-an-address", "1"))
        assert rpc_mock.calls == []

    @pytest.mark.asyncio
    async def test_rejected_amounts_before_network(self, provider, rpc_mock):
        with pytest.raises(InvalidTransactionError, match="must not be negative"):
            await provider.build_native_transfer(NativeTransferParams(PAYER, RECIPIENT, "-5"))
        with pytest.raises(InvalidTransactionError, match="integer in smallest units"):
            await provider.build_token_transfer(TokenTransferParams(PAYER, RECIPIENT, MINT, "2.5"))
        assert rpc_mock.calls == []

    @pytest.mark.asyncio
    async def test_decimal_amount_is_whole_sol(self, provider):
        tx = await provider.build_native_transfer(NativeTransferParams(PAYER, RECIPIENT, "1.5"))
        assert tx.raw.value == "1500000000"

    @pytest.mark.asyncio
    async def test_normalised(self, provider):
        tx = await provider.build_native_transfer(NativeTransferParams(PAYER, RECIPIENT, "1500000000"))
        normalised = tx.to_normalised()

        assert normalised.type is TransactionType.NATIVE_TRANSFER
        assert normalised.from_address == PAYER
        assert normalised.to == RECIPIENT
        assert normalised.formatted_value == "1.5"
        assert normalised.symbol == "SOL"

    @pytest.mark.asyncio
    async def test_broadcast(self, provider, rpc_mock):
        tx = await provider.build_native_transfer(NativeTransferParams(PAYER, RECIPIENT, "1"))
        result = await tx.apply_signature([signature()]).broadcast()

        assert result.success is True
        assert result.hash == "5" * 88
        assert rpc_mock.params("sendTransaction")[1]["encoding"] == "base64"


class TestOverridesAndDecode:
    """Tests for rebuild and serialized round trips."""

    @pytest.mark.asyncio
    async def test_compute_budget_overrides(self, provider):
        tx = await provider.build_native_transfer(NativeTransferParams(PAYER, RECIPIENT, "1"))
        rebuilt = tx.rebuild(SvmTransactionOverrides(compute_unit_price=1000, compute_unit_limit=300_000))

        assert rebuilt is not tx
        assert tx.raw.compute_unit_price is None
        compiled = rebuilt.raw.compiled_instructions()
        assert [ix.program_id for ix in compiled] == [
            COMPUTE_BUDGET_PROGRAM_ID, COMPUTE_BUDGET_PROGRAM_ID, SYSTEM_PROGRAM_ID,
        ]
        assert rebuilt.raw.message_bytes()[:3] == bytes([1, 0, 2])

    @pytest.mark.asyncio
    async def test_wrong_override_type(self, provider):
        from chainkit.core.types import EvmTransactionOverrides

        tx = await provider.build_native_transfer(NativeTransferParams(PAYER, RECIPIENT, "1"))
        with pytest.raises(InvalidTransactionError, match="SvmTransactionOverrides"):
            tx.rebuild(EvmTransactionOverrides(nonce=1))

    @pytest.mark.asyncio
    async def test_decode_raw_round_trip(self, provider):
        tx = await provider.build_native_transfer(
            NativeTransferParams(PAYER, RECIPIENT, "1", SvmTransactionOverrides(compute_unit_price=5)),
        )
        decoded = provider.decode(tx.serialized, "raw")

        assert isinstance(decoded, RawSolanaTransaction)
        assert decoded == tx.raw
        assert decoded.to_dict()["_chain"] == "svm"

    def test_decode_malformed(self, provider):
        with pytest.raises(InvalidTransactionError, match="malformed"):
            provider.decode("{not json", "raw")

    def test_from_serialized_preserves_message(self):
        raw = RawSolanaTransaction(BLOCKHASH, PAYER, (system_transfer(PAYER, RECIPIENT, 10),), value="10")
        tx = UnsignedSvmTransaction(chain_config("solana"), raw)
        again = UnsignedSvmTransaction.from_serialized(chain_config("solana"), tx.serialized)
        assert again.raw.message_bytes() == raw.message_bytes()


# ============================================================================
# Provider
# ============================================================================

class TestProvider:
    """Tests for balances, tokens, fees and contract operations."""

    @pytest.mark.asyncio
    async def test_native_balance(self, provider):
        balance = await provider.get_native_balance(PAYER)
        assert balance.balance == "2500000000"
        assert balance.formatted_balance == "2.5"

    @pytest.mark.asyncio
    async def test_token_balance(self, provider):
        balance = await provider.get_token_balance(PAYER, MINT)
        assert balance.balance == "5000"
        assert balance.decimals == 6
        assert balance.formatted_balance == "0.005"

    @pytest.mark.asyncio
    async def test_token_balance_without_account_uses_mint_decimals(self, provider):
        balance = await provider.get_token_balance(address(20), MINT)
        assert balance.balance == "0"
        assert balance.decimals == 9

    @pytest.mark.asyncio
    async def test_token_transfer(self, provider):
        tx = await provider.build_token_transfer(TokenTransferParams(PAYER, RECIPIENT, MINT, "2500"))
        normalised = tx.to_normalised()

        assert normalised.type is TransactionType.TOKEN_TRANSFER
        assert normalised.value == "0"
        assert normalised.token_transfer.value == "2500"
        assert normalised.token_transfer.decimals == 6
        assert normalised.token_transfer.to == DEST_ATA
        assert normalised.token_transfer.contract_address == MINT

    @pytest.mark.asyncio
    async def test_token_transfer_requires_destination_account(self, provider):
        with pytest.raises(ChainError, match="Destination wallet has no token account"):
            await provider.build_token_transfer(TokenTransferParams(PAYER, address(20), MINT, "1"))

    @pytest.mark.asyncio
    async def test_estimate_fee(self, provider):
        estimate = await provider.estimate_fee()
        assert estimate.slow.fee == "5000"
        assert estimate.standard.fee == "10000"
        assert estimate.fast.fee == "25000"
        assert estimate.standard.formatted_fee == "0.00001 SOL"

    @pytest.mark.asyncio
    async def test_contract_read_unsupported(self, provider):
        with pytest.raises(ContractError):
            await provider.contract_read(ContractReadParams(MINT, "0x"))

    @pytest.mark.asyncio
    async def test_contract_deploy_unsupported(self, provider):
        with pytest.raises(ContractError):
            await provider.contract_deploy(ContractDeployParams(PAYER, "0x00"))
