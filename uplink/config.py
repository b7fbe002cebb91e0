"""
Uplink Configuration Management
Uses pydantic-settings for type-safe environment variable loading
"""

from typing import Literal
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_API_URL = "https://api.onchain.fi"
DEFAULT_SOLANA_RPC_URL = "https://api.mainnet-beta.solana.com"

# PayAI fee payer, used when the facilitator ranking is unavailable
DEFAULT_SOLANA_FEE_PAYER = "2wKupLR9q6wXYppw8Gr2NvWxKBUqm4PPJKkQfoxHDBg4"


class UplinkConfig(BaseSettings):
    """Configuration for the Uplink payment client"""

    model_config = SettingsConfigDict(
        env_prefix="UPLINK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Credentials
    api_key: str = Field(default="", description="Aggregator API key")
    private_key: str = Field(default="", description="Signing key (hex for EVM, base58 or hex for Solana)")

    # Network Configuration
    network: Literal["base", "solana"] = Field(default="base", description="Default source network")
    api_url: str = Field(default=DEFAULT_API_URL, description="Aggregator endpoint override")
    solana_rpc_url: str = Field(default=DEFAULT_SOLANA_RPC_URL)
    solana_default_fee_payer: str = Field(default=DEFAULT_SOLANA_FEE_PAYER)

    # Request behaviour
    max_retries: int = Field(default=3, description="Attempt cap for idempotent aggregator calls")
    retry_delay: float = Field(default=1.0, description="Backoff base in seconds")
    timeout: float = Field(default=120.0, description="Per-call deadline in seconds")
    facilitator_lookup_timeout: float = Field(default=5.0, description="Deadline for the ranking lookup")

    # Fee acknowledgements
    create_ata_fee_acceptance: bool = Field(default=False)
    minimum_crosschain_fee_acceptance: bool = Field(default=False)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")

    @field_validator("max_retries", "retry_delay", "timeout", "facilitator_lookup_timeout")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("must be non-negative")
        return v


# Singleton instance
_uplink_config: UplinkConfig | None = None


def get_uplink_config() -> UplinkConfig:
    """Get or create Uplink configuration singleton"""
    global _uplink_config
    if _uplink_config is None:
        _uplink_config = UplinkConfig()
    return _uplink_config
