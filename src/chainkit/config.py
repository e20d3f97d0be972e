"""
Configuration management for chainkit.

Supports configuration via environment variables and .env files.
"""

from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChainkitConfig(BaseSettings):
    """
    Configuration settings for chain providers.

    All settings can be configured via environment variables with the CHAINKIT_ prefix.
    ``CHAINKIT_RPC_OVERRIDES`` takes a JSON object mapping chain alias to URL.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHAINKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # RPC settings
    rpc_overrides: Dict[str, str] = Field(
        default_factory=dict,
        description="Per-alias RPC URL overrides"
    )
    rpc_api_key: Optional[str] = Field(
        default=None,
        description="API key sent with every RPC request"
    )
    rpc_api_key_header: str = Field(
        default="x-api-key",
        description="Header carrying the RPC API key"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP request timeout"
    )

    # Builder defaults
    utxo_dust_threshold: int = Field(
        default=546,
        ge=0,
        description="Change below this many satoshis is folded into the fee"
    )
    xrp_ledger_offset: int = Field(
        default=20,
        ge=1,
        description="Ledgers added to the validated index for LastLedgerSequence"
    )
    tron_fee_limit: int = Field(
        default=100_000_000,
        ge=0,
        description="Default fee limit in sun for smart contract calls"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )

    @property
    def rpc_headers(self) -> Dict[str, str]:
        """Headers added to every RPC request."""
        if not self.rpc_api_key:
            return {}
        return {self.rpc_api_key_header: self.rpc_api_key}


# Global config instance
_config: Optional[ChainkitConfig] = None


def get_config() -> ChainkitConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = ChainkitConfig()
    return _config


def set_config(config: ChainkitConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
