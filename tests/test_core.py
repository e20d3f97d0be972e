"""
Test suite for shared core pieces: units, errors, configuration,
chain configs and the HTTP transport.
"""

import httpx
import pytest

from chainkit.config import ChainkitConfig, get_config, set_config
from chainkit.core.chains import BUILTIN_CHAINS, get_chain_config
from chainkit.core.errors import (
    ChainError,
    InsufficientBalanceError,
    InsufficientFundsError,
    InvalidAddressError,
    InvalidTransactionError,
    InvalidTransactionHashError,
    RateLimitError,
    RpcError,
    RpcTimeoutError,
    UnsupportedChainError,
)
from chainkit.core.rpc import RpcClient
from chainkit.core.types import CHAIN_ECOSYSTEM_MAP, Ecosystem, TransactionHash
from chainkit.core.units import format_units, parse_amount, parse_units

from conftest import JsonRpcMock, make_rpc


# ============================================================================
# Units
# ============================================================================

class TestUnits:
    """Tests for smallest-unit formatting and parsing."""

    @pytest.mark.parametrize("value,decimals,expected", [
        (1_500_000, 6, "1.5"),
        (1, 18, "0.000000000000000001"),
        (10 ** 9, 9, "1"),
        (0, 8, "0"),
        ("2500", 2, "25"),
        (-150, 2, "-1.5"),
        (42, 0, "42"),
    ])
    def test_format(self, value, decimals, expected):
        assert format_units(value, decimals) == expected

    @pytest.mark.parametrize("text,decimals,expected", [
        ("1.5", 6, 1_500_000),
        ("0.000000000000000001", 18, 1),
        ("25", 2, 2500),
        (".5", 1, 5),
        ("-1.5", 2, -150),
    ])
    def test_parse(self, text, decimals, expected):
        assert parse_units(text, decimals) == expected

    def test_parse_truncates_extra_precision(self):
        assert parse_units("1.23456789", 2) == 123

    @pytest.mark.parametrize("text", ["", "abc", "1.2.3", "1,5"])
    def test_parse_invalid(self, text):
        with pytest.raises(ValueError, match="invalid decimal amount"):
            parse_units(text, 6)


class TestParseAmount:
    """Tests for transfer amounts given as smallest-unit or decimal strings."""

    @pytest.mark.parametrize("text,decimals,expected", [
        ("1500", 6, 1500),
        ("1.5", 6, 1_500_000),
        ("1.500", 2, 150),
        (" 42 ", 0, 42),
        ("0", 18, 0),
    ])
    def test_valid(self, text, decimals, expected):
        assert parse_amount(text, decimals, "ethereum") == expected

    def test_integer_without_decimals(self):
        assert parse_amount("2500", None) == 2500

    @pytest.mark.parametrize("text", ["-5", "-1.5", " -0"])
    def test_negative_rejected(self, text):
        with pytest.raises(InvalidTransactionError, match="must not be negative") as exc_info:
            parse_amount(text, 6, "xrp")
        assert exc_info.value.chain_alias == "xrp"

    @pytest.mark.parametrize("text", ["", "abc", "1.2.3", "1,5", "1e3", ".5", "1.", "+1", "١"])
    def test_malformed_rejected(self, text):
        with pytest.raises(InvalidTransactionError, match="malformed amount"):
            parse_amount(text, 6)

    def test_excess_precision_rejected(self):
        with pytest.raises(InvalidTransactionError, match="more than 2 decimal places"):
            parse_amount("1.234", 2)

    def test_decimal_needs_known_decimals(self):
        with pytest.raises(InvalidTransactionError, match="integer in smallest units"):
            parse_amount("1.5", None)


# ============================================================================
# Errors
# ============================================================================

class TestErrors:
    """Tests for the error taxonomy."""

    def test_chain_errors_carry_alias(self):
        error = InvalidAddressError("ethereum", "0xnope", "bad checksum")
        assert isinstance(error, ChainError)
        assert error.chain_alias == "ethereum"
        assert str(error) == "Invalid address for ethereum: 0xnope (bad checksum)"

    def test_insufficient_funds_is_insufficient_balance(self):
        error = InsufficientFundsError("bitcoin", 1000, 10)
        assert isinstance(error, InsufficientBalanceError)
        assert error.required == "1000"
        assert error.available == "10"

    def test_rpc_error_cause(self):
        cause = RuntimeError("boom")
        error = RpcError("failed", "solana", code=-32000, cause=cause)
        assert error.__cause__ is cause
        assert error.code == -32000

    def test_unsupported_chain_is_not_chain_error(self):
        assert not issubclass(UnsupportedChainError, ChainError)
        assert str(UnsupportedChainError("dogecoin")) == "Unsupported chain: dogecoin"


# ============================================================================
# Configuration
# ============================================================================

class TestConfig:
    """Tests for settings loading."""

    def test_defaults(self):
        config = ChainkitConfig(_env_file=None)
        assert config.request_timeout_seconds == 30.0
        assert config.utxo_dust_threshold == 546
        assert config.xrp_ledger_offset == 20
        assert config.rpc_headers == {}

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CHAINKIT_RPC_OVERRIDES", '{"ethereum": "http://localhost:8545"}')
        monkeypatch.setenv("CHAINKIT_RPC_API_KEY", "secret")
        monkeypatch.setenv("CHAINKIT_XRP_LEDGER_OFFSET", "40")
        config = ChainkitConfig(_env_file=None)
        assert config.rpc_overrides == {"ethereum": "http://localhost:8545"}
        assert config.rpc_headers == {"x-api-key": "secret"}
        assert config.xrp_ledger_offset == 40

    def test_invalid_timeout_rejected(self):
        with pytest.raises(ValueError):
            ChainkitConfig(_env_file=None, request_timeout_seconds=0)

    def test_set_config(self):
        config = ChainkitConfig(_env_file=None, tron_fee_limit=5)
        set_config(config)
        assert get_config() is config


# ============================================================================
# Chain Configs
# ============================================================================

class TestChainConfigs:
    """Tests for built-in chain records."""

    def test_every_alias_has_config(self):
        assert set(BUILTIN_CHAINS) == set(CHAIN_ECOSYSTEM_MAP)
        for alias, config in BUILTIN_CHAINS.items():
            assert config.chain_alias == alias
            assert config.ecosystem is CHAIN_ECOSYSTEM_MAP[alias]

    def test_rpc_override_returns_copy(self):
        default = get_chain_config("ethereum")
        custom = get_chain_config("ethereum", "http://localhost:8545")
        assert custom.rpc_url == "http://localhost:8545"
        assert default.rpc_url != custom.rpc_url
        assert custom.chain_id == 1

    def test_unknown_alias(self):
        with pytest.raises(UnsupportedChainError):
            get_chain_config("dogecoin")

    def test_ecosystems(self):
        assert get_chain_config("bsc").supports_eip1559 is False
        assert get_chain_config("bitcoin-testnet").bech32_hrp == "tb"
        assert get_chain_config("bittensor").ecosystem is Ecosystem.SUBSTRATE


# ============================================================================
# Transaction Hashes
# ============================================================================

class TestTransactionHash:
    """Tests for the case-insensitive hash value."""

    def test_case_insensitive_equality(self):
        upper = TransactionHash.create("0xABCDEF", "ethereum")
        lower = TransactionHash.create(" 0xabcdef ", "ethereum")
        assert upper == lower
        assert hash(upper) == hash(lower)
        assert str(upper) == "0xABCDEF"
        assert upper.normalized == "0xabcdef"

    def test_chain_is_part_of_identity(self):
        assert TransactionHash.create("ab", "ethereum") != TransactionHash.create("ab", "polygon")

    def test_matches(self):
        assert TransactionHash.create("DEADBEEF", "xrp").matches("deadbeef ")

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_empty_rejected(self, value):
        with pytest.raises(InvalidTransactionHashError, match="empty"):
            TransactionHash.create(value, "tron")


# ============================================================================
# RPC Client
# ============================================================================

class TestRpcClient:
    """Tests for the shared HTTP transport."""

    @pytest.mark.asyncio
    async def test_json_rpc_call(self):
        mock = JsonRpcMock({"eth_chainId": "0x1"})
        rpc = make_rpc("ethereum", mock)
        assert await rpc.call("eth_chainId") == "0x1"
        assert mock.calls[0]["jsonrpc"] == "2.0"
        assert mock.calls[0]["params"] == []
        await rpc.close()

    @pytest.mark.asyncio
    async def test_json_rpc_error(self):
        mock = JsonRpcMock()
        mock.fail("eth_call", -32000, "execution reverted")
        rpc = make_rpc("ethereum", mock)
        with pytest.raises(RpcError, match="execution reverted") as exc_info:
            await rpc.call("eth_call", [])
        assert exc_info.value.code == -32000
        assert exc_info.value.chain_alias == "ethereum"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        rpc = make_rpc("tron", lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(RpcError, match="RPC error 500") as exc_info:
            await rpc.get("/wallet/getnowblock")
        assert exc_info.value.code == 500

    @pytest.mark.asyncio
    async def test_not_found_returns_none(self):
        rpc = make_rpc("bitcoin", lambda request: httpx.Response(404))
        assert await rpc.get("/api/v2/utxo/x") is None

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        rpc = make_rpc("solana", lambda request: httpx.Response(429, headers={"retry-after": "2"}))
        with pytest.raises(RateLimitError) as exc_info:
            await rpc.call("getBalance", [])
        assert exc_info.value.retry_after_ms == 2000

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        rpc = RpcClient("xrp", "http://node.test", timeout=1.5, transport=httpx.MockTransport(handler))
        with pytest.raises(RpcTimeoutError, match="1500ms"):
            await rpc.post("", {})

    @pytest.mark.asyncio
    async def test_headers_sent(self):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, json={"result": None})

        rpc = RpcClient(
            "ethereum", "http://node.test", headers={"x-api-key": "k"}, transport=httpx.MockTransport(handler),
        )
        await rpc.call("eth_blockNumber")
        assert seen["x-api-key"] == "k"
        assert seen["content-type"] == "application/json"
