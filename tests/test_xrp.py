"""
Test suite for XRP Ledger transactions, submit classification and the provider.
"""

import hashlib
import json

import pytest
from xrpl.core import binarycodec
from xrpl.core.addresscodec import encode_classic_address

from chainkit.core.errors import ChainError, ContractError, InvalidAddressError, InvalidTransactionError, SignatureError
from chainkit.core.types import (
    ContractCallParams,
    NativeTransferParams,
    SigningAlgorithm,
    TransactionType,
    XrpTransactionOverrides,
)
from chainkit.xrp.client import XrplClient, XrplRequestError
from chainkit.xrp.provider import XrpChainProvider, XrpNativeTransferParams, XrpTokenTransferParams
from chainkit.xrp.transaction import (
    IssuedCurrencyAmount,
    Memo,
    RawXrpTransaction,
    UnsignedXrpTransaction,
    build_payment,
    classify_engine_result,
    currency_symbol,
    transaction_hash,
)

from conftest import JsonRpcMock, chain_config, make_rpc


SENDER = encode_classic_address(bytes([1]) * 20)
RECIPIENT = encode_classic_address(bytes([2]) * 20)
ISSUER = encode_classic_address(bytes([3]) * 20)
UNFUNDED = encode_classic_address(bytes([4]) * 20)

ED_PUBLIC_KEY = "ED" + "01" * 32
SECP_PUBLIC_KEY = "02" + "01" * 32
SIGNATURE = "AB" * 70


def account_info(params):
    account = params[0]["account"]
    if account == UNFUNDED:
        return {"status": "error", "error": "actNotFound", "error_message": "Account not found."}
    return {
        "status": "success",
        "account_data": {"Account": account, "Balance": "25000000", "Sequence": 7, "OwnerCount": 2},
    }


def account_lines(params):
    if params[0]["account"] == UNFUNDED:
        return {"status": "error", "error": "actNotFound"}
    return {
        "status": "success",
        "lines": [
            {"account": ISSUER, "currency": "EUR", "balance": "1"},
            {"account": ISSUER, "currency": "USD", "balance": "42.5"},
        ],
    }


@pytest.fixture
def rippled() -> JsonRpcMock:
    return JsonRpcMock({
        "account_info": account_info,
        "account_lines": account_lines,
        "fee": {"status": "success", "drops": {"base_fee": "12", "open_ledger_fee": "15"}},
        "ledger": {"status": "success", "ledger_index": 1000},
    })


@pytest.fixture
def provider(rippled) -> XrpChainProvider:
    return XrpChainProvider(chain_config("xrp"), make_rpc("xrp", rippled))


def payment(**overrides) -> RawXrpTransaction:
    fields = dict(
        account=SENDER,
        destination=RECIPIENT,
        amount="1000000",
        fee="12",
        sequence=7,
        last_ledger_sequence=1020,
        signing_pub_key=SECP_PUBLIC_KEY,
    )
    fields.update(overrides)
    return build_payment(**fields)


# ============================================================================
# Engine Results
# ============================================================================

class TestEngineResult:
    """Tests for submit result classification."""

    def test_success(self):
        assert classify_engine_result("tesSUCCESS") == (True, None)

    def test_claimed_fee_counts_as_success(self):
        assert classify_engine_result("tecPATH_DRY", "Path could not send partial amount.") == (True, None)

    def test_retry_counts_as_success(self):
        assert classify_engine_result("terQUEUED")[0] is True

    def test_failure_embeds_code(self):
        success, error = classify_engine_result("tefBAD_AUTH", "Transaction's public key is not authorized.")
        assert success is False
        assert error == "tefBAD_AUTH: Transaction's public key is not authorized."

    def test_failure_without_message(self):
        assert classify_engine_result("temMALFORMED") == (False, "temMALFORMED")


# ============================================================================
# Raw Transactions
# ============================================================================

class TestRawTransaction:
    """Tests for the tx_json field map."""

    def test_tx_json_fields(self):
        raw = payment(destination_tag=99, memos=(Memo.from_text("hello"),))
        tx_json = raw.to_tx_json()

        assert tx_json["TransactionType"] == "Payment"
        assert tx_json["Amount"] == "1000000"
        assert tx_json["DestinationTag"] == 99
        assert tx_json["Memos"] == [{"Memo": {"MemoData": "68656C6C6F"}}]
        assert "SendMax" not in tx_json

    def test_round_trip_issued_amount(self):
        raw = payment(amount=IssuedCurrencyAmount("USD", ISSUER, "12.5"))
        again = RawXrpTransaction.from_tx_json(raw.to_tx_json())
        assert again == raw
        assert again.amount.identifier == f"USD:{ISSUER}"

    def test_unknown_fields_rejected(self):
        data = {**payment().to_tx_json(), "TicketSequence": 5}
        with pytest.raises(ValueError, match="unsupported fields: TicketSequence"):
            RawXrpTransaction.from_tx_json(data)

    def test_required_fields(self):
        data = payment().to_tx_json()
        del data["Sequence"]
        with pytest.raises(KeyError):
            RawXrpTransaction.from_tx_json(data)

    def test_to_dict_is_tagged(self):
        data = payment().to_dict()
        assert data["_chain"] == "xrp"
        assert data["Account"] == SENDER

    def test_currency_symbol(self):
        assert currency_symbol("USD") == "USD"
        assert currency_symbol("534F4C4F00000000000000000000000000000000") == "SOLO"

    def test_memo_text(self):
        assert Memo.from_text("hi", "text/plain").text() == "hi"
        assert Memo(data="ZZ").text() == "ZZ"


# ============================================================================
# Signing
# ============================================================================

class TestSigning:
    """Tests for signing payloads and the signed blob."""

    def test_payload_is_serialized_json(self):
        tx = UnsignedXrpTransaction(chain_config("xrp"), payment())
        payload = tx.get_signing_payload()

        assert payload.data == (tx.serialized,)
        assert json.loads(payload.data[0])["Account"] == SENDER
        assert payload.algorithm is SigningAlgorithm.SECP256K1

    def test_ed25519_key_selects_algorithm(self):
        tx = UnsignedXrpTransaction(chain_config("xrp"), payment(signing_pub_key=ED_PUBLIC_KEY))
        assert tx.get_signing_payload().algorithm is SigningAlgorithm.ED25519

    def test_signed_blob(self):
        tx = UnsignedXrpTransaction(chain_config("xrp"), payment())
        signed = tx.apply_signature([SIGNATURE.lower()])

        decoded = binarycodec.decode(signed.serialized)
        assert decoded["TxnSignature"] == SIGNATURE
        assert decoded["Amount"] == "1000000"
        assert decoded["Destination"] == RECIPIENT
        assert signed.tx_json["TxnSignature"] == SIGNATURE

    def test_hash_is_prefixed_sha512_half(self):
        tx = UnsignedXrpTransaction(chain_config("xrp"), payment())
        signed = tx.apply_signature([SIGNATURE])

        expected = hashlib.sha512(b"TXN\x00" + bytes.fromhex(signed.serialized)).hexdigest()[:64].upper()
        assert signed.hash == expected
        assert transaction_hash(signed.serialized) == expected

    def test_exactly_one_signature(self):
        tx = UnsignedXrpTransaction(chain_config("xrp"), payment())
        with pytest.raises(SignatureError, match="Expected 1 signature"):
            tx.apply_signature([SIGNATURE, SIGNATURE])
        with pytest.raises(SignatureError, match="At least one"):
            tx.apply_signature([])

    @pytest.mark.parametrize("signature,message", [("zz", "expected hex"), ("", "empty")])
    def test_invalid_signature(self, signature, message):
        tx = UnsignedXrpTransaction(chain_config("xrp"), payment())
        with pytest.raises(SignatureError, match=message):
            tx.apply_signature([signature])


# ============================================================================
# Broadcast
# ============================================================================

class TestBroadcast:
    """Submit results mapped to broadcast outcomes."""

    async def _broadcast(self, rippled, result):
        rippled.results["submit"] = result
        tx = UnsignedXrpTransaction(chain_config("xrp"), payment(), make_rpc("xrp", rippled))
        return await tx.apply_signature([SIGNATURE]).broadcast()

    @pytest.mark.asyncio
    async def test_tec_is_success(self, rippled):
        result = await self._broadcast(rippled, {
            "status": "success",
            "engine_result": "tecPATH_DRY",
            "engine_result_message": "Path could not send partial amount.",
            "tx_json": {"hash": "AB" * 32},
        })
        assert result.success is True
        assert result.error is None
        assert result.hash == "AB" * 32

    @pytest.mark.asyncio
    async def test_tef_is_failure(self, rippled):
        result = await self._broadcast(rippled, {
            "status": "success",
            "engine_result": "tefBAD_AUTH",
            "engine_result_message": "Transaction's public key is not authorized.",
        })
        assert result.success is False
        assert "tefBAD_AUTH" in result.error

    @pytest.mark.asyncio
    async def test_submit_sends_blob(self, rippled):
        await self._broadcast(rippled, {"status": "success", "engine_result": "tesSUCCESS"})
        blob = rippled.params("submit")[0]["tx_blob"]
        assert binarycodec.decode(blob)["Sequence"] == 7

    @pytest.mark.asyncio
    async def test_request_error(self, rippled):
        result = await self._broadcast(rippled, {
            "status": "error",
            "error": "invalidTransaction",
            "error_message": "Malformed transaction.",
        })
        assert result.success is False
        assert result.error == "Malformed transaction."


# ============================================================================
# Client
# ============================================================================

class TestClient:
    """Tests for rippled error handling."""

    @pytest.mark.asyncio
    async def test_unfunded_account(self, rippled):
        client = XrplClient(make_rpc("xrp", rippled))
        assert await client.get_account_info(UNFUNDED) is None
        assert await client.get_account_lines(UNFUNDED) == []

    @pytest.mark.asyncio
    async def test_other_errors_raise(self):
        rippled = JsonRpcMock({"ledger": {"status": "error", "error": "lgrNotFound"}})
        client = XrplClient(make_rpc("xrp", rippled))
        with pytest.raises(XrplRequestError, match="lgrNotFound") as exc_info:
            await client.get_ledger_index()
        assert exc_info.value.error == "lgrNotFound"

    @pytest.mark.asyncio
    async def test_base_fee_fallbacks(self):
        client = XrplClient(make_rpc("xrp", JsonRpcMock({"fee": {"drops": {"open_ledger_fee": "15"}}})))
        assert await client.get_base_fee() == 15
        client = XrplClient(make_rpc("xrp", JsonRpcMock({"fee": {}})))
        assert await client.get_base_fee() == 10


# ============================================================================
# Provider
# ============================================================================

class TestProvider:
    """Tests for balances, building and fees."""

    def test_address_validation(self, provider):
        assert provider.is_valid_address(SENDER)
        assert not provider.is_valid_address("rNotAnAddress")
        assert not provider.is_valid_address("0x" + "00" * 20)

    @pytest.mark.asyncio
    async def test_native_balance(self, provider):
        balance = await provider.get_native_balance(SENDER)
        assert balance.balance == "25000000"
        assert balance.formatted_balance == "25"

    @pytest.mark.asyncio
    async def test_unfunded_balance(self, provider):
        balance = await provider.get_native_balance(UNFUNDED)
        assert balance.balance == "0"

    @pytest.mark.asyncio
    async def test_available_balance(self, provider):
        assert await provider.get_available_balance(SENDER) == 25_000_000 - 1_000_000 - 2 * 200_000

    @pytest.mark.asyncio
    async def test_token_balance(self, provider):
        balance = await provider.get_token_balance(SENDER, f"USD:{ISSUER}")
        assert balance.balance == "42.5"
        assert balance.symbol == "USD"
        assert balance.contract_address == f"USD:{ISSUER}"

    @pytest.mark.asyncio
    async def test_bad_token_identifier(self, provider):
        with pytest.raises(ChainError, match="currency:issuer"):
            await provider.get_token_balance(SENDER, "USD")

    @pytest.mark.asyncio
    async def test_native_transfer(self, provider, rippled):
        params = XrpNativeTransferParams(
            from_address=SENDER,
            to=RECIPIENT,
            value="1500000",
            destination_tag=12345,
            memo="invoice 7",
        )
        tx = await provider.build_native_transfer(params)
        raw = tx.raw

        assert raw.fee == "12"
        assert raw.sequence == 7
        assert raw.last_ledger_sequence == 1020
        assert raw.destination_tag == 12345
        assert set(rippled.methods()) == {"account_info", "fee", "ledger"}

        normalised = tx.to_normalised()
        assert normalised.type is TransactionType.NATIVE_TRANSFER
        assert normalised.formatted_value == "1.5"
        assert normalised.metadata.memo == "invoice 7"
        assert normalised.metadata.sequence == 7
        assert normalised.fee.value == "12"

    @pytest.mark.asyncio
    async def test_build_overrides(self, provider):
        overrides = XrpTransactionOverrides(fee="20", sequence=50, max_ledger_version_offset=5)
        tx = await provider.build_native_transfer(NativeTransferParams(SENDER, RECIPIENT, "1", overrides))

        assert tx.raw.fee == "20"
        assert tx.raw.sequence == 50
        assert tx.raw.last_ledger_sequence == 1005

    @pytest.mark.asyncio
    async def test_configured_ledger_offset(self, rippled):
        provider = XrpChainProvider(chain_config("xrp"), make_rpc("xrp", rippled), ledger_offset=75)
        tx = await provider.build_native_transfer(NativeTransferParams(SENDER, RECIPIENT, "1"))
        assert tx.raw.last_ledger_sequence == 1075

    @pytest.mark.asyncio
    async def test_unfunded_sender(self, provider):
        with pytest.raises(ChainError, match="Account not found"):
            await provider.build_native_transfer(NativeTransferParams(UNFUNDED, RECIPIENT, "1"))

    @pytest.mark.asyncio
    async def test_invalid_destination(self, provider, rippled):
        with pytest.raises(InvalidAddressError):
            await provider.build_native_transfer(NativeTransferParams(SENDER, "bogus", "1"))
        assert rippled.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value,message", [
        ("-5", "must not be negative"),
        ("1.5.0", "malformed amount"),
        ("0.0000001", "more than 6 decimal places"),
    ])
    async def test_rejected_amount(self, provider, rippled, value, message):
        with pytest.raises(InvalidTransactionError, match=message):
            await provider.build_native_transfer(NativeTransferParams(SENDER, RECIPIENT, value))
        assert rippled.calls == []

    @pytest.mark.asyncio
    async def test_decimal_amount_is_whole_xrp(self, provider):
        tx = await provider.build_native_transfer(NativeTransferParams(SENDER, RECIPIENT, "1.5"))
        assert tx.raw.to_tx_json()["Amount"] == "1500000"

    @pytest.mark.asyncio
    async def test_rejected_issued_amounts(self, provider, rippled):
        with pytest.raises(InvalidTransactionError, match="must not be negative"):
            await provider.build_token_transfer(XrpTokenTransferParams(SENDER, RECIPIENT, f"USD:{ISSUER}", "-10"))
        with pytest.raises(InvalidTransactionError, match="malformed amount"):
            await provider.build_trust_set(SENDER, "USD", ISSUER, "lots")
        assert rippled.calls == []

    @pytest.mark.asyncio
    async def test_token_transfer(self, provider):
        params = XrpTokenTransferParams(SENDER, RECIPIENT, f"USD:{ISSUER}", "10.25")
        tx = await provider.build_token_transfer(params)
        normalised = tx.to_normalised()

        assert tx.raw.amount == IssuedCurrencyAmount("USD", ISSUER, "10.25")
        assert normalised.type is TransactionType.TOKEN_TRANSFER
        assert normalised.value == "0"
        assert normalised.token_transfer.value == "10.25"
        assert normalised.token_transfer.contract_address == f"USD:{ISSUER}"

    @pytest.mark.asyncio
    async def test_trust_set(self, provider):
        tx = await provider.build_trust_set(SENDER, "USD", ISSUER, "1000000")
        normalised = tx.to_normalised()

        assert tx.raw.to_tx_json()["LimitAmount"] == {"currency": "USD", "issuer": ISSUER, "value": "1000000"}
        assert normalised.type is TransactionType.APPROVAL
        assert normalised.to == ISSUER

    @pytest.mark.asyncio
    async def test_rebuild(self, provider):
        tx = await provider.build_native_transfer(NativeTransferParams(SENDER, RECIPIENT, "1"))
        rebuilt = tx.rebuild(XrpTransactionOverrides(fee="30", last_ledger_sequence=2000))

        assert rebuilt.raw.fee == "30"
        assert rebuilt.raw.last_ledger_sequence == 2000
        assert tx.raw.fee == "12"
        with pytest.raises(InvalidTransactionError, match="applied at build time"):
            tx.rebuild(XrpTransactionOverrides(max_ledger_version_offset=3))

    @pytest.mark.asyncio
    async def test_decode(self, provider):
        tx = await provider.build_native_transfer(XrpNativeTransferParams(SENDER, RECIPIENT, "5", memo="m"))

        assert provider.decode(tx.serialized, "raw") == tx.raw
        assert provider.decode(tx.serialized, "normalised") == tx.to_normalised()

    def test_decode_malformed(self, provider):
        with pytest.raises(InvalidTransactionError, match="malformed XRP transaction"):
            provider.decode('{"TransactionType": "Payment"}', "raw")

    @pytest.mark.asyncio
    async def test_estimate_fee(self, provider):
        estimate = await provider.estimate_fee()
        assert [estimate.slow.fee, estimate.standard.fee, estimate.fast.fee] == ["12", "24", "60"]
        assert estimate.standard.formatted_fee == "0.000024 XRP"

    @pytest.mark.asyncio
    async def test_contracts_unsupported(self, provider):
        with pytest.raises(ContractError):
            await provider.contract_call(ContractCallParams(SENDER, RECIPIENT, "0x"))
