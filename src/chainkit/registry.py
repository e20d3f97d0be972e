"""
Provider registry.

Resolves a chain alias to its ecosystem provider. Providers are cached per
(alias, effective RPC URL) so repeated lookups share one HTTP client.
"""

from typing import Dict, List, Optional, Tuple, Type

import structlog

from chainkit.config import get_config
from chainkit.core.chains import ChainConfig, get_chain_config
from chainkit.core.errors import UnsupportedChainError
from chainkit.core.interfaces import ChainProvider
from chainkit.core.rpc import RpcClient
from chainkit.core.types import CHAIN_ECOSYSTEM_MAP, Ecosystem
from chainkit.evm.provider import EvmChainProvider
from chainkit.substrate.provider import SubstrateChainProvider, http_url
from chainkit.svm.provider import SvmChainProvider
from chainkit.tvm.provider import TvmChainProvider
from chainkit.utxo.provider import UtxoChainProvider
from chainkit.xrp.provider import XrpChainProvider

logger = structlog.get_logger(__name__)

PROVIDER_CLASSES: Dict[Ecosystem, Type[ChainProvider]] = {
    Ecosystem.EVM: EvmChainProvider,
    Ecosystem.SVM: SvmChainProvider,
    Ecosystem.UTXO: UtxoChainProvider,
    Ecosystem.TVM: TvmChainProvider,
    Ecosystem.XRP: XrpChainProvider,
    Ecosystem.SUBSTRATE: SubstrateChainProvider,
}

_providers: Dict[Tuple[str, str], ChainProvider] = {}


def get_ecosystem(chain_alias: str) -> Ecosystem:
    """
    Raises:
        UnsupportedChainError: If the alias is unknown
    """
    ecosystem = CHAIN_ECOSYSTEM_MAP.get(chain_alias)
    if ecosystem is None:
        raise UnsupportedChainError(chain_alias)
    return ecosystem


def is_supported_chain(chain_alias: str) -> bool:
    return chain_alias in CHAIN_ECOSYSTEM_MAP


def supported_chains(ecosystem: Optional[Ecosystem] = None) -> List[str]:
    """Known aliases, optionally limited to one ecosystem."""
    return [
        alias for alias, eco in CHAIN_ECOSYSTEM_MAP.items()
        if ecosystem is None or eco is ecosystem
    ]


def resolve_chain_config(chain_alias: str, rpc_url: Optional[str] = None) -> ChainConfig:
    """
    Chain config with the effective RPC URL and configured headers applied.

    The URL is the explicit argument, else the configured override for the
    alias, else the built-in default.
    """
    settings = get_config()
    config = get_chain_config(chain_alias)
    url = rpc_url or settings.rpc_overrides.get(chain_alias)
    if url:
        config = config.with_rpc_url(url)
    if settings.rpc_headers:
        config = config.with_headers(settings.rpc_headers)
    return config


def get_chain_provider(chain_alias: str, rpc_url: Optional[str] = None) -> ChainProvider:
    """
    Get the provider for a chain alias.

    Args:
        chain_alias: Alias such as "ethereum" or "bitcoin"
        rpc_url: Optional endpoint overriding config and built-in defaults

    Returns:
        The cached provider for (alias, effective URL)

    Raises:
        UnsupportedChainError: If the alias is unknown
    """
    ecosystem = get_ecosystem(chain_alias)
    config = resolve_chain_config(chain_alias, rpc_url)

    key = (chain_alias, config.rpc_url)
    provider = _providers.get(key)
    if provider is not None:
        return provider

    url = http_url(config.rpc_url) if ecosystem is Ecosystem.SUBSTRATE else config.rpc_url
    rpc = RpcClient(
        chain_alias,
        url,
        timeout=get_config().request_timeout_seconds,
        headers=config.headers,
    )
    provider = PROVIDER_CLASSES[ecosystem](config, rpc)
    _providers[key] = provider

    logger.debug("provider_created", chain=chain_alias, ecosystem=ecosystem.value, rpc_url=config.rpc_url)
    return provider


def clear_provider_cache() -> None:
    """Forget cached providers. Their HTTP clients are not closed."""
    _providers.clear()


async def close_providers() -> None:
    """Close every cached provider's HTTP client and empty the cache."""
    providers = list(_providers.values())
    _providers.clear()
    for provider in providers:
        await provider.close()


__all__ = [
    "get_chain_provider",
    "get_ecosystem",
    "is_supported_chain",
    "supported_chains",
    "resolve_chain_config",
    "clear_provider_cache",
    "close_providers",
]
