"""
Built-in chain configurations.

A ChainConfig is created once per provider and shared read-only by every
build on that chain. Use ``with_rpc_url`` to derive a config pointing at a
different endpoint.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, Optional

from chainkit.core.errors import UnsupportedChainError
from chainkit.core.types import Ecosystem, NativeCurrency


@dataclass(frozen=True)
class ChainConfig:
    """
    Immutable per-alias chain record.

    Attributes:
        chain_alias: Alias such as "ethereum" or "bitcoin-testnet"
        ecosystem: Protocol family the alias belongs to
        rpc_url: JSON-RPC, REST or indexer endpoint
        native_currency: Symbol and decimals of the native asset
        chain_id: EVM chain id (EIP-155)
        supports_eip1559: Whether type-2 transactions are built by default
        network: UTXO network name ("mainnet" or "testnet")
        bech32_hrp: Human readable part of segwit addresses
        ss58_prefix: Substrate address prefix
        reserve_base: XRP base reserve in drops
        reserve_increment: XRP owner reserve in drops
        is_testnet: True for test networks
        headers: Extra HTTP headers sent with every RPC request
    """
    chain_alias: str
    ecosystem: Ecosystem
    rpc_url: str
    native_currency: NativeCurrency
    chain_id: Optional[int] = None
    supports_eip1559: bool = False
    network: Optional[str] = None
    bech32_hrp: Optional[str] = None
    ss58_prefix: Optional[int] = None
    reserve_base: Optional[int] = None
    reserve_increment: Optional[int] = None
    is_testnet: bool = False
    headers: Mapping[str, str] = field(default_factory=dict)

    def with_rpc_url(self, rpc_url: str) -> "ChainConfig":
        return replace(self, rpc_url=rpc_url)

    def with_headers(self, headers: Mapping[str, str]) -> "ChainConfig":
        return replace(self, headers={**self.headers, **headers})


_ETH = NativeCurrency("ETH", 18)
_SOL = NativeCurrency("SOL", 9)
_BTC = NativeCurrency("BTC", 8)
_TRX = NativeCurrency("TRX", 6)
_XRP = NativeCurrency("XRP", 6)
_TAO = NativeCurrency("TAO", 9)


def _evm(alias: str, url: str, chain_id: int, currency: NativeCurrency = _ETH, eip1559: bool = True) -> ChainConfig:
    return ChainConfig(
        chain_alias=alias,
        ecosystem=Ecosystem.EVM,
        rpc_url=url,
        native_currency=currency,
        chain_id=chain_id,
        supports_eip1559=eip1559,
    )


BUILTIN_CHAINS: Dict[str, ChainConfig] = {
    # EVM
    "ethereum": _evm("ethereum", "https://ethereum-rpc.publicnode.com", 1),
    "polygon": _evm("polygon", "https://polygon-rpc.com", 137, NativeCurrency("POL", 18)),
    "arbitrum": _evm("arbitrum", "https://arb1.arbitrum.io/rpc", 42161),
    "optimism": _evm("optimism", "https://mainnet.optimism.io", 10),
    "base": _evm("base", "https://mainnet.base.org", 8453),
    "avalanche": _evm("avalanche", "https://api.avax.network/ext/bc/C/rpc", 43114, NativeCurrency("AVAX", 18)),
    "fantom": _evm("fantom", "https://rpc.ftm.tools", 250, NativeCurrency("FTM", 18), eip1559=False),
    "bsc": _evm("bsc", "https://bsc-dataseed.binance.org", 56, NativeCurrency("BNB", 18), eip1559=False),
    # Solana
    "solana": ChainConfig("solana", Ecosystem.SVM, "https://api.mainnet-beta.solana.com", _SOL),
    "solana-devnet": ChainConfig(
        "solana-devnet", Ecosystem.SVM, "https://api.devnet.solana.com", _SOL, is_testnet=True,
    ),
    # UTXO (Blockbook indexers)
    "bitcoin": ChainConfig(
        "bitcoin", Ecosystem.UTXO, "https://btc1.trezor.io", _BTC, network="mainnet", bech32_hrp="bc",
    ),
    "bitcoin-testnet": ChainConfig(
        "bitcoin-testnet", Ecosystem.UTXO, "https://tbtc1.trezor.io", _BTC,
        network="testnet", bech32_hrp="tb", is_testnet=True,
    ),
    "mnee": ChainConfig(
        "mnee", Ecosystem.UTXO, "https://btc1.trezor.io", NativeCurrency("MNEE", 8),
        network="mainnet", bech32_hrp="bc",
    ),
    # Tron
    "tron": ChainConfig("tron", Ecosystem.TVM, "https://api.trongrid.io", _TRX),
    "tron-testnet": ChainConfig(
        "tron-testnet", Ecosystem.TVM, "https://api.shasta.trongrid.io", _TRX, is_testnet=True,
    ),
    # XRP Ledger
    "xrp": ChainConfig(
        "xrp", Ecosystem.XRP, "https://xrplcluster.com", _XRP,
        reserve_base=1_000_000, reserve_increment=200_000,
    ),
    "xrp-testnet": ChainConfig(
        "xrp-testnet", Ecosystem.XRP, "https://s.altnet.rippletest.net:51234", _XRP,
        reserve_base=1_000_000, reserve_increment=200_000, is_testnet=True,
    ),
    # Substrate
    "bittensor": ChainConfig(
        "bittensor", Ecosystem.SUBSTRATE, "wss://entrypoint-finney.opentensor.ai:443", _TAO, ss58_prefix=42,
    ),
    "bittensor-testnet": ChainConfig(
        "bittensor-testnet", Ecosystem.SUBSTRATE, "wss://test.finney.opentensor.ai:443", _TAO,
        ss58_prefix=42, is_testnet=True,
    ),
}


def get_chain_config(chain_alias: str, rpc_url: Optional[str] = None) -> ChainConfig:
    """
    Look up the built-in config for an alias.

    Args:
        chain_alias: Chain alias
        rpc_url: Optional endpoint replacing the default

    Raises:
        UnsupportedChainError: If the alias is unknown
    """
    config = BUILTIN_CHAINS.get(chain_alias)
    if config is None:
        raise UnsupportedChainError(chain_alias)
    if rpc_url:
        config = config.with_rpc_url(rpc_url)
    return config
